import threading
import weakref
from contextlib import contextmanager
from typing import Optional

from flask import current_app

from gamehall import db
from gamehall.errors import (
    InvalidMove,
    InvalidState,
    InvalidTarget,
    NotParticipant,
    NotYourTurn,
    UserNotFound,
)
from gamehall.models import GameSession, User
from . import stats
from .store import SessionStore

SYMBOLS = ('X', 'O')
LINES = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
)


def other_symbol(symbol: str) -> str:
    return 'O' if symbol == 'X' else 'X'


def winning_symbol(board) -> Optional[str]:
    for a, b, c in LINES:
        if board[a] is not None and board[a] == board[b] == board[c]:
            return board[a]
    return None


class SessionLocks:
    """One re-entrant lock per session id.

    Held across load, validate, commit and broadcast so that two moves on
    the same session are applied, and announced, one after the other.
    Entries are weak: a lock nobody holds or waits on is dropped.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: 'weakref.WeakValueDictionary[int, threading.RLock]' = weakref.WeakValueDictionary()

    def get(self, session_id) -> threading.RLock:
        key = int(session_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, session_id):
        lock = self.get(session_id)
        with lock:
            yield

    def discard(self, session_id) -> None:
        with self._guard:
            self._locks.pop(int(session_id), None)


class GameEngine:
    """State machine for a session: pending -> playing -> finished.

    The engine is the only writer of GameSession rows. It validates turn
    ownership and board shape, decides the terminal status and books the
    win/loss/draw counters. Notifications are left to the caller so that
    nothing is announced before the commit.
    """

    def __init__(self, store: SessionStore, verify_winner: bool = False):
        self.store = store
        self.verify_winner = verify_winner
        self.locks = SessionLocks()

    def session_lock(self, session_id):
        return self.locks.hold(session_id)

    def challenge(self, challenger_id: int, opponent_id) -> GameSession:
        try:
            opponent_id = int(opponent_id)
        except (TypeError, ValueError):
            raise UserNotFound('Opponent not found')
        if challenger_id == opponent_id:
            raise InvalidTarget()
        if db.session.get(User, opponent_id) is None:
            raise UserNotFound('Opponent not found')
        session = self.store.create_session(challenger_id, opponent_id)
        current_app.logger.info(f"[challenge] session={session.id} x={challenger_id} o={opponent_id}")
        return session

    def accept(self, session_id, accepter_id: int) -> GameSession:
        with self.session_lock(session_id):
            session = self.store.get_session(session_id, fresh=True)
            if session.player_o_id != accepter_id:
                raise NotParticipant('Only the challenged player may accept')
            if session.status != 'pending':
                raise InvalidState('Challenge is no longer pending')
            self.store.set_status(session.id, 'playing')
            current_app.logger.info(f"[accept] session={session.id} by={accepter_id}")
            return session

    def reject(self, session_id, rejecter_id: int) -> GameSession:
        with self.session_lock(session_id):
            session = self.store.get_session(session_id, fresh=True)
            if session.player_o_id != rejecter_id:
                raise NotParticipant('Only the challenged player may reject')
            if session.status != 'pending':
                raise InvalidState('Challenge is no longer pending')
            return session

    def discard(self, session: GameSession) -> None:
        session_id = session.id
        self.store.delete_session(session_id)
        self.locks.discard(session_id)
        current_app.logger.info(f"[reject] session={session_id} discarded")

    def _validate_board(self, session: GameSession, board, next_turn, winner_id):
        if not isinstance(board, (list, tuple)) or len(board) != 9:
            raise InvalidMove('Board must have exactly 9 cells')
        if any(cell not in (None, 'X', 'O') for cell in board):
            raise InvalidMove("Cells must be empty, 'X' or 'O'")
        previous = session.board
        if any(old is not None and new is None for old, new in zip(previous, board)):
            raise InvalidMove('A played cell cannot be cleared')
        if next_turn != other_symbol(session.current_turn):
            raise InvalidMove(f"Next turn must be '{other_symbol(session.current_turn)}'")
        if winner_id is not None and winner_id not in session.player_ids:
            raise InvalidMove('Winner must be one of the players')
        if self.verify_winner:
            symbol = winning_symbol(board)
            expected = session.player_for(symbol) if symbol else None
            if expected != winner_id:
                raise InvalidMove('Declared winner does not match the board')

    def move(self, session_id, actor_id: int, board, next_turn, winner_id=None) -> GameSession:
        """Apply one move. Caller must hold ``session_lock`` to keep the
        broadcast in acceptance order; the lock is re-entrant."""
        with self.session_lock(session_id):
            session = self.store.get_session(session_id, fresh=True)
            if session.status != 'playing':
                raise InvalidState('Session is not being played')
            if actor_id != session.player_for(session.current_turn):
                raise NotYourTurn()
            if winner_id is not None:
                try:
                    winner_id = int(winner_id)
                except (TypeError, ValueError):
                    raise InvalidMove('Winner must be one of the players')
            board = list(board) if isinstance(board, (list, tuple)) else board
            self._validate_board(session, board, next_turn, winner_id)

            if winner_id is not None or None not in board:
                status = 'finished'
            else:
                status = 'playing'

            if status == 'finished':
                # Counters are staged here and committed together with the move
                if winner_id is not None:
                    stats.increment_wins(winner_id, commit=False)
                    stats.increment_losses(session.opponent_of(winner_id), commit=False)
                else:
                    stats.increment_draws(session.player_x_id, session.player_o_id, commit=False)

            self.store.apply_move(session.id, board, next_turn, status, winner_id)
            current_app.logger.info(
                f"[move] session={session.id} by={actor_id} next={next_turn} status={status} winner={winner_id}"
            )
            return session

    def require_participant(self, session_id, actor_id: int) -> GameSession:
        session = self.store.get_session(session_id)
        if not session.is_participant(actor_id):
            raise NotParticipant()
        return session

    def accept_rematch(self, session_id, actor_id: int) -> GameSession:
        with self.session_lock(session_id):
            session = self.store.get_session(session_id, fresh=True)
            if not session.is_participant(actor_id):
                raise NotParticipant()
            if session.status != 'finished':
                raise InvalidState('Rematch is only possible after the game has finished')
            self.store.clear_for_rematch(session.id)
            current_app.logger.info(f"[rematch] session={session.id} restarted by={actor_id}")
            return session
