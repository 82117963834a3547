from flask import current_app

from gamehall import db
from gamehall.models import EMPTY_BOARD, Role, User, user_roles
from .games import stats
from .games.engine import GameEngine
from .games.store import SessionStore
from .notifier import RealtimeNotifier
from .presence import PresenceRegistry


def get_coordinator() -> 'SessionCoordinator':
    return current_app.extensions['gamehall']


class SessionCoordinator:
    """Request-facing facade over the store, engine, presence and notifier.

    Every mutating operation persists first and only then notifies, under
    the session lock, so clients never see state that is not yet durable.
    """

    def __init__(self, store: SessionStore, engine: GameEngine,
                 presence: PresenceRegistry, notifier: RealtimeNotifier):
        self.store = store
        self.engine = engine
        self.presence = presence
        self.notifier = notifier

    # ---- challenges ----

    def challenge(self, actor, opponent_id) -> dict:
        session = self.engine.challenge(actor.user_id, opponent_id)
        self.notifier.to_user(stats.username_of(session.player_o_id), 'game_updated', {
            'type': 'new-challenge',
            'session_id': session.id,
            'from': actor.username,
        })
        return session.to_dict()

    def list_my_sessions(self, actor) -> list:
        return [s.to_dict(include_names=True) for s in self.store.list_sessions_for_user(actor.user_id)]

    def accept_challenge(self, actor, session_id) -> dict:
        with self.engine.session_lock(session_id):
            session = self.engine.accept(session_id, actor.user_id)
            self.notifier.to_user(stats.username_of(session.player_x_id), 'game_updated', {
                'type': 'challenge-accepted',
                'session_id': session.id,
            })
            self.broadcast_status(session.player_x_id)
            self.broadcast_status(session.player_o_id)
            return session.to_dict()

    def reject_challenge(self, actor, session_id) -> None:
        with self.engine.session_lock(session_id):
            session = self.engine.reject(session_id, actor.user_id)
            challenger = stats.username_of(session.player_x_id)
            rejected_id = session.id
            self.engine.discard(session)
            self.notifier.to_user(challenger, 'game_updated', {
                'type': 'challenge-rejected',
                'session_id': rejected_id,
            })

    # ---- play ----

    def submit_move(self, actor, session_id, board, next_turn, winner_id=None) -> dict:
        with self.engine.session_lock(session_id):
            session = self.engine.move(session_id, actor.user_id, board, next_turn, winner_id)
            payload = {
                'session_id': session.id,
                'board': session.board,
                'next_turn': session.current_turn,
                'winner_id': session.winner_id,
                'status': session.status,
            }
            if session.status == 'finished':
                self.broadcast_status(session.player_x_id)
                self.broadcast_status(session.player_o_id)
            self.notifier.to_room(session.id, 'move_made', payload)
            return session.to_dict()

    def get_session(self, actor, session_id) -> dict:
        return self.store.get_session(session_id).to_dict(include_names=True)

    # ---- rematch and exit ----

    def request_rematch(self, actor, session_id, sid=None) -> None:
        session = self.engine.require_participant(session_id, actor.user_id)
        self.notifier.to_room(session.id, 'rematch_offered', {
            'session_id': session.id,
            'from': actor.username,
        }, skip_sid=sid)

    def reject_rematch(self, actor, session_id, sid=None) -> None:
        session = self.engine.require_participant(session_id, actor.user_id)
        self.notifier.to_room(session.id, 'rematch_declined', {
            'session_id': session.id,
            'from': actor.username,
        }, skip_sid=sid)

    def accept_rematch(self, actor, session_id) -> dict:
        with self.engine.session_lock(session_id):
            session = self.engine.accept_rematch(session_id, actor.user_id)
            self.notifier.to_room(session.id, 'game_restarted', {
                'session_id': session.id,
                'board': list(EMPTY_BOARD),
                'current_turn': 'X',
                'status': 'playing',
            })
            self.broadcast_status(session.player_x_id)
            self.broadcast_status(session.player_o_id)
            return session.to_dict()

    def leave_session(self, actor, session_id) -> None:
        session = self.engine.require_participant(session_id, actor.user_id)
        self.notifier.to_room(session.id, 'force_exit', {
            'session_id': session.id,
            'by': actor.username,
        })
        current_app.logger.info(f"[leave] session={session.id} by={actor.user_id}")

    # ---- stats ----

    def my_stats(self, actor) -> dict:
        return stats.get_stats(actor.user_id)

    def reset_my_stats(self, actor) -> dict:
        return stats.reset_stats(actor.user_id)

    def record_result(self, actor, result) -> dict:
        stats.record_result(actor.user_id, result)
        return stats.get_stats(actor.user_id)

    # ---- presence ----

    def connection_authenticated(self, sid: str, identity) -> dict:
        went_offline = self.presence.authenticate(sid, identity.username)
        if went_offline:
            self._announce_offline(went_offline)
        status = self.presence.status_of(identity.username, identity.user_id)
        self.notifier.presence_changed(status['username'], status['online'], status['is_busy'])
        current_app.logger.info(f"[presence] online user={identity.username} sid={sid}")
        return status

    def connection_closed(self, sid: str) -> None:
        username = self.presence.disconnect(sid)
        if username:
            self._announce_offline(username)
            current_app.logger.info(f"[presence] offline user={username}")

    def _announce_offline(self, username: str) -> None:
        # an offline user is never reported busy
        self.notifier.presence_changed(username, online=False, busy=False)

    def broadcast_status(self, user_id: int) -> None:
        user = db.session.get(User, user_id)
        if user is None:
            return
        status = self.presence.status_of(user.username, user.id)
        self.notifier.presence_changed(status['username'], status['online'], status['is_busy'])

    def users_status(self) -> list:
        superadmins = (
            db.select(user_roles.c.user_id)
            .join(Role, Role.id == user_roles.c.role_id)
            .where(Role.name == 'Sa')
        )
        users = (
            User.query
            .filter(User.is_active.is_(True))
            .filter(User.id.not_in(superadmins))
            .order_by(User.username)
            .all()
        )
        return [dict(self.presence.status_of(u.username, u.id), id=u.id) for u in users]
