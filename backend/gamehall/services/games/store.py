from contextlib import contextmanager

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from gamehall import db
from gamehall.errors import PersistenceFailure, SessionNotFound
from gamehall.models import EMPTY_BOARD, GameSession, utcnow


@contextmanager
def committing(action: str):
    """Commit on exit; roll back and raise PersistenceFailure on a DB error.

    Nothing leaves this block as a success unless the commit went through.
    """
    try:
        yield
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[persist-fail] action={action} error={exc}")
        raise PersistenceFailure() from exc


class SessionStore:
    """Durable table of game sessions.

    Every state-changing call commits before returning so that an
    acknowledged change survives a crash right after the response.
    """

    def create_session(self, player_x_id: int, player_o_id: int) -> GameSession:
        with committing('create_session'):
            session = GameSession(
                player_x_id=player_x_id,
                player_o_id=player_o_id,
                current_turn='X',
                status='pending',
            )
            session.board = EMPTY_BOARD
            db.session.add(session)
        return session

    def get_session(self, session_id: int, fresh: bool = False) -> GameSession:
        try:
            session = db.session.get(GameSession, int(session_id), populate_existing=fresh)
        except (TypeError, ValueError):
            session = None
        if session is None:
            raise SessionNotFound()
        return session

    def list_sessions_for_user(self, user_id: int):
        return (
            GameSession.query
            .filter(or_(GameSession.player_x_id == user_id, GameSession.player_o_id == user_id))
            .filter(GameSession.status != 'finished')
            .order_by(GameSession.last_move_at.desc(), GameSession.id.desc())
            .all()
        )

    def has_playing_session(self, user_id: int) -> bool:
        return db.session.query(
            GameSession.query
            .filter(or_(GameSession.player_x_id == user_id, GameSession.player_o_id == user_id))
            .filter(GameSession.status == 'playing')
            .exists()
        ).scalar()

    def apply_move(self, session_id: int, board, next_turn: str, status: str, winner_id) -> GameSession:
        session = self.get_session(session_id)
        with committing('apply_move'):
            session.board = board
            session.current_turn = next_turn
            session.status = status
            session.winner_id = winner_id
            session.last_move_at = utcnow()
            db.session.add(session)
        return session

    def set_status(self, session_id: int, status: str) -> GameSession:
        session = self.get_session(session_id)
        with committing('set_status'):
            session.status = status
            session.last_move_at = utcnow()
            db.session.add(session)
        return session

    def clear_for_rematch(self, session_id: int) -> GameSession:
        session = self.get_session(session_id)
        with committing('clear_for_rematch'):
            session.board = EMPTY_BOARD
            session.current_turn = 'X'
            session.status = 'playing'
            session.winner_id = None
            session.last_move_at = utcnow()
            db.session.add(session)
        return session

    def delete_session(self, session_id: int) -> None:
        session = self.get_session(session_id)
        with committing('delete_session'):
            db.session.delete(session)
