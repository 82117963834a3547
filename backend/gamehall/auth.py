"""Bearer-token identity for HTTP requests and socket connections.

Tokens are signed with the app's SECRET_KEY through itsdangerous, the
signing library Flask itself uses for cookies. HTTP callers send the token
in ``x-access-token`` or ``Authorization: Bearer``; Flask-Login's request
loader turns it into ``current_user``.
"""
from collections import namedtuple

from flask import current_app, jsonify
from itsdangerous import BadData, URLSafeTimedSerializer

from gamehall import db, login_manager
from gamehall.errors import Unauthenticated
from gamehall.models import User

Identity = namedtuple('Identity', ['user_id', 'username', 'roles'])

_TOKEN_SALT = 'gamehall-auth'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=_TOKEN_SALT)


def issue_token(user: User) -> str:
    return _serializer().dumps({'id': user.id, 'username': user.username})


def _user_from_token(token):
    if not token or not isinstance(token, str):
        return None
    max_age = int(current_app.config.get('TOKEN_MAX_AGE_SEC', 86400))
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadData:
        # expired, tampered or malformed
        return None
    user = db.session.get(User, data.get('id'))
    if user is None or not user.is_active:
        return None
    return user


def identity_of(user: User) -> Identity:
    return Identity(user.id, user.username, tuple(user.role_names))


def resolve_identity(token) -> Identity:
    """Return the identity behind ``token`` or raise Unauthenticated."""
    user = _user_from_token(token)
    if user is None:
        raise Unauthenticated()
    return identity_of(user)


def token_from_request(req):
    token = req.headers.get('x-access-token')
    if token:
        return token
    header = req.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip()
    return None


@login_manager.user_loader
def load_user(user_id):
    user = db.session.get(User, int(user_id))
    return user if user is not None and user.is_active else None


@login_manager.request_loader
def load_user_from_request(req):
    return _user_from_token(token_from_request(req))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(Unauthenticated().to_dict()), 401
