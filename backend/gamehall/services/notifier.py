from flask import current_app

from .presence import PresenceRegistry


def room_for(session_id) -> str:
    return f"game:{session_id}"


class RealtimeNotifier:
    """Best-effort push over Socket.IO.

    Events go to a session room, to every connection of one user, or to
    everyone on the namespace. Nobody listening is fine; delivery errors are
    logged and dropped.
    """

    def __init__(self, socketio, presence: PresenceRegistry, namespace: str = '/ws'):
        self._socketio = socketio
        self._presence = presence
        self.namespace = namespace

    def _emit(self, event: str, payload: dict, **kwargs) -> None:
        try:
            self._socketio.emit(event, payload, namespace=self.namespace, **kwargs)
        except Exception as exc:
            current_app.logger.debug(f"[notify-drop] event={event} error={exc}")

    def to_room(self, session_id, event: str, payload: dict, skip_sid=None) -> None:
        self._emit(event, payload, to=room_for(session_id), skip_sid=skip_sid)

    def to_user(self, username: str, event: str, payload: dict) -> int:
        sids = self._presence.handles_for(username)
        for sid in sids:
            self._emit(event, payload, to=sid)
        return len(sids)

    def broadcast(self, event: str, payload: dict) -> None:
        self._emit(event, payload)

    def presence_changed(self, username: str, online: bool, busy: bool) -> None:
        self.broadcast('user_status_changed', {
            'username': username,
            'online': online,
            'is_busy': busy,
        })
