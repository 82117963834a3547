"""Game domain services: session store, engine and player stats.

This package contains the authoritative game logic imported by HTTP routes
and socket handlers, keeping transport concerns separated from core game
mechanics.
"""
