from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from gamehall import socketio
from gamehall.auth import identity_of, resolve_identity
from gamehall.errors import GameError, Unauthenticated
from gamehall.models import User
from gamehall.services.coordinator import get_coordinator
from gamehall.services.notifier import room_for


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _session_id(data):
    if isinstance(data, dict):
        return data.get('session_id')
    return data


def _current_identity():
    """Identity bound to this socket by a previous ``authenticate``."""
    username = get_coordinator().presence.username_for(_get_sid())
    if not username:
        raise Unauthenticated()
    user = User.query.filter_by(username=username).first()
    if user is None or not user.is_active:
        raise Unauthenticated()
    return identity_of(user)


def _report(exc: GameError) -> None:
    emit('error', {'message': exc.message, 'status': exc.status_code})


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})
    token = (auth or {}).get('token') if isinstance(auth, dict) else None
    if token:
        handle_authenticate(token)


def handle_disconnect(reason=None):
    get_coordinator().connection_closed(_get_sid())


def handle_authenticate(data):
    token = data.get('token') if isinstance(data, dict) else data
    try:
        identity = resolve_identity(token)
    except Unauthenticated as exc:
        _report(exc)
        return
    status = get_coordinator().connection_authenticated(_get_sid(), identity)
    emit('authenticated', {'user_id': identity.user_id, 'username': identity.username, 'status': status})


def handle_join_game(data):
    session_id = _session_id(data)
    if session_id is None:
        emit('error', {'message': 'session_id is required'})
        return
    room = room_for(session_id)
    join_room(room)
    current_app.logger.debug(f"[join] sid={_get_sid()} room={room}")
    emit('joined', {'room': room})


def handle_leave_game(data):
    session_id = _session_id(data)
    if session_id is None:
        emit('error', {'message': 'session_id is required'})
        return
    try:
        get_coordinator().leave_session(_current_identity(), session_id)
    except GameError as exc:
        _report(exc)
        return
    room = room_for(session_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_request_rematch(data):
    try:
        get_coordinator().request_rematch(_current_identity(), _session_id(data), sid=_get_sid())
    except GameError as exc:
        _report(exc)


def handle_reject_rematch(data):
    try:
        get_coordinator().reject_rematch(_current_identity(), _session_id(data), sid=_get_sid())
    except GameError as exc:
        _report(exc)


def handle_accept_rematch(data):
    try:
        get_coordinator().accept_rematch(_current_identity(), _session_id(data))
    except GameError as exc:
        _report(exc)


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('authenticate', handle_authenticate, namespace=namespace)
    socketio.on_event('join_game', handle_join_game, namespace=namespace)
    socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
    socketio.on_event('request_rematch', handle_request_rematch, namespace=namespace)
    socketio.on_event('reject_rematch', handle_reject_rematch, namespace=namespace)
    socketio.on_event('accept_rematch', handle_accept_rematch, namespace=namespace)
    socketio.on_event('ping', handle_ping, namespace=namespace)
