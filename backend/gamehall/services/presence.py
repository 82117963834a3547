"""Who is connected right now.

Presence lives in process memory only and is rebuilt from nothing on
restart. Several server processes would each see only their own sockets;
sharing presence across them needs an external store and is not handled
here.
"""
import threading
from typing import Dict, Optional, Set

from .games.store import SessionStore


class PresenceRegistry:
    def __init__(self, store: SessionStore):
        self._store = store
        self._lock = threading.RLock()
        self._sid_to_user: Dict[str, str] = {}
        self._user_to_sids: Dict[str, Set[str]] = {}

    def authenticate(self, sid: str, username: str) -> Optional[str]:
        """Bind ``sid`` to ``username`` and mark the user online.

        Returns the username this sid was previously bound to if that user
        just went offline because of the re-binding, otherwise None.
        """
        with self._lock:
            went_offline = None
            previous = self._sid_to_user.get(sid)
            if previous is not None and previous != username:
                went_offline = self._release(sid)
            self._sid_to_user[sid] = username
            self._user_to_sids.setdefault(username, set()).add(sid)
            return went_offline

    def disconnect(self, sid: str) -> Optional[str]:
        """Forget ``sid``. Returns the username if it was that user's last
        connection, i.e. the user is now offline."""
        with self._lock:
            return self._release(sid)

    def _release(self, sid: str) -> Optional[str]:
        username = self._sid_to_user.pop(sid, None)
        if username is None:
            return None
        sids = self._user_to_sids.get(username)
        if sids is not None:
            sids.discard(sid)
            if sids:
                return None
            del self._user_to_sids[username]
        return username

    def is_online(self, username: str) -> bool:
        with self._lock:
            return bool(self._user_to_sids.get(username))

    def username_for(self, sid: str) -> Optional[str]:
        with self._lock:
            return self._sid_to_user.get(sid)

    def handles_for(self, username: str) -> Set[str]:
        with self._lock:
            return set(self._user_to_sids.get(username, ()))

    def online_usernames(self) -> Set[str]:
        with self._lock:
            return set(self._user_to_sids)

    def compute_busy(self, user_id: int) -> bool:
        return self._store.has_playing_session(user_id)

    def status_of(self, username: str, user_id: int) -> dict:
        return {
            'username': username,
            'online': self.is_online(username),
            'is_busy': self.compute_busy(user_id),
        }

    def clear(self) -> None:
        with self._lock:
            self._sid_to_user.clear()
            self._user_to_sids.clear()
