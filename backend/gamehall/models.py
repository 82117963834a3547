from gamehall import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import json

EMPTY_BOARD = [None] * 9


def utcnow():
    return datetime.now(timezone.utc)


user_roles = db.Table(
    'user_roles',
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True),
    db.Column('role_id', db.Integer, db.ForeignKey('role.id'), primary_key=True),
)


class Role(db.Model):
    __tablename__ = 'role'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(16), unique=True, nullable=False)  # usr, adm, Sa


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    roles = db.relationship('Role', secondary=user_roles, lazy='selectin')
    stats = db.relationship('UserStats', uselist=False, back_populates='user', cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def role_names(self):
        return sorted(r.name for r in self.roles)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'roles': self.role_names,
        }


class UserStats(db.Model):
    __tablename__ = 'user_stats'
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)
    wins = db.Column(db.Integer, default=0, nullable=False)
    losses = db.Column(db.Integer, default=0, nullable=False)
    draws = db.Column(db.Integer, default=0, nullable=False)
    user = db.relationship('User', back_populates='stats')

    def to_dict(self):
        return {
            'wins': self.wins or 0,
            'losses': self.losses or 0,
            'draws': self.draws or 0,
        }


class GameSession(db.Model):
    __tablename__ = 'game_session'
    id = db.Column(db.Integer, primary_key=True)
    player_x_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    player_o_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    board_json = db.Column('board', db.Text, nullable=False, default=lambda: json.dumps(EMPTY_BOARD))
    current_turn = db.Column(db.String(1), nullable=False, default='X')
    status = db.Column(db.String(16), nullable=False, default='pending')  # pending, playing, finished
    winner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    last_move_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    player_x = db.relationship('User', foreign_keys=[player_x_id])
    player_o = db.relationship('User', foreign_keys=[player_o_id])

    @property
    def board(self):
        try:
            cells = json.loads(self.board_json) if self.board_json else list(EMPTY_BOARD)
        except ValueError:
            cells = list(EMPTY_BOARD)
        return cells

    @board.setter
    def board(self, cells):
        self.board_json = json.dumps(list(cells))

    @property
    def player_ids(self):
        return (self.player_x_id, self.player_o_id)

    def is_participant(self, user_id):
        return user_id in self.player_ids

    def symbol_for(self, user_id):
        if user_id == self.player_x_id:
            return 'X'
        if user_id == self.player_o_id:
            return 'O'
        return None

    def player_for(self, symbol):
        return self.player_x_id if symbol == 'X' else self.player_o_id

    def opponent_of(self, user_id):
        return self.player_o_id if user_id == self.player_x_id else self.player_x_id

    def to_dict(self, include_names=False):
        data = {
            'id': self.id,
            'player_x_id': self.player_x_id,
            'player_o_id': self.player_o_id,
            'board': self.board,
            'current_turn': self.current_turn,
            'status': self.status,
            'winner_id': self.winner_id,
            'last_move_at': self.last_move_at.isoformat() if self.last_move_at else None,
        }
        if include_names:
            data['player_x_name'] = self.player_x.username if self.player_x else None
            data['player_o_name'] = self.player_o.username if self.player_o else None
        return data
