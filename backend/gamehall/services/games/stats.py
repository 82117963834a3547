from gamehall import db
from gamehall.errors import InvalidMove, UserNotFound
from gamehall.models import User, UserStats
from .store import committing

RESULT_COLUMNS = {'win': 'wins', 'loss': 'losses', 'draw': 'draws'}


def _stats_row(user_id: int) -> UserStats:
    row = db.session.get(UserStats, user_id)
    if row is None:
        if db.session.get(User, user_id) is None:
            raise UserNotFound()
        row = UserStats(user_id=user_id, wins=0, losses=0, draws=0)
        db.session.add(row)
    return row


def _bump(user_ids, column: str, commit: bool) -> None:
    def apply():
        for uid in user_ids:
            row = _stats_row(uid)
            setattr(row, column, (getattr(row, column) or 0) + 1)

    if commit:
        with committing(f'increment_{column}'):
            apply()
    else:
        apply()


def increment_wins(user_id: int, commit: bool = True) -> None:
    _bump([user_id], 'wins', commit)


def increment_losses(user_id: int, commit: bool = True) -> None:
    _bump([user_id], 'losses', commit)


def increment_draws(*user_ids: int, commit: bool = True) -> None:
    _bump(user_ids, 'draws', commit)


def record_result(user_id: int, result: str) -> None:
    """Record a single-player result ('win', 'loss' or 'draw')."""
    column = RESULT_COLUMNS.get(result)
    if column is None:
        raise InvalidMove('Invalid result')
    _bump([user_id], column, commit=True)


def reset_stats(user_id: int) -> dict:
    with committing('reset_stats'):
        row = _stats_row(user_id)
        row.wins = 0
        row.losses = 0
        row.draws = 0
    return row.to_dict()


def get_stats(user_id: int) -> dict:
    row = db.session.get(UserStats, user_id)
    if row is None:
        if db.session.get(User, user_id) is None:
            raise UserNotFound()
        return {'wins': 0, 'losses': 0, 'draws': 0}
    return row.to_dict()


def username_of(user_id: int) -> str:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFound()
    return user.username
