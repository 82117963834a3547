import re

from flask import Blueprint, current_app, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy.exc import IntegrityError

from gamehall import db
from gamehall.auth import identity_of, issue_token
from gamehall.models import Role, User
from gamehall.services.coordinator import get_coordinator

main = Blueprint('main', __name__)

USERNAME_RE = re.compile(r'^[a-zA-Z0-9_]{3,20}$')
MIN_PASSWORD_LENGTH = 6


def _validate_credentials(data):
    username = data.get('username')
    password = data.get('password')
    if not username:
        return 'Username is required.'
    if not USERNAME_RE.match(username):
        return 'Username must be 3-20 characters (letters, numbers or underscore).'
    if not password:
        return 'Password is required.'
    if len(password) < MIN_PASSWORD_LENGTH:
        return f'Password must be at least {MIN_PASSWORD_LENGTH} characters.'
    return None


def _ensure_roles(names):
    roles = []
    for name in names:
        role = Role.query.filter_by(name=name).first()
        if role is None:
            role = Role(name=name)
            db.session.add(role)
        roles.append(role)
    return roles


@main.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    error = _validate_credentials(data)
    if error:
        return jsonify({'error': error}), 400
    if User.query.filter_by(username=data['username']).first():
        return jsonify({'error': 'Username already exists'}), 400

    # The first account of the system administers it
    is_first_user = User.query.count() == 0
    role_names = ['usr', 'adm', 'Sa'] if is_first_user else ['usr']

    new_user = User(username=data['username'])
    new_user.set_password(data['password'])
    new_user.roles.extend(_ensure_roles(role_names))
    db.session.add(new_user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'Username already exists'}), 400
    login_user(new_user)
    current_app.logger.info(f"[register] user={new_user.id} roles={new_user.role_names}")
    return jsonify({'token': issue_token(new_user), 'user': new_user.to_dict()}), 201


@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if not user:
        return jsonify({'error': 'User not found'}), 404
    if not user.check_password(data.get('password') or ''):
        return jsonify({'error': 'Invalid credentials'}), 401
    if not user.is_active:
        return jsonify({'error': 'Account disabled. Contact an administrator.'}), 403
    login_user(user)
    return jsonify({'token': issue_token(user), 'user': user.to_dict()})


@main.route('/check_login', methods=['GET'])
@login_required
def check_login():
    return jsonify({'success': True, 'user': current_user.to_dict()})


@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@main.route('/users/status', methods=['GET'])
def users_status():
    """Active users (SuperAdmins hidden) with their online and busy flags."""
    return jsonify(get_coordinator().users_status())


@main.route('/user/stats', methods=['GET'])
@login_required
def user_stats():
    return jsonify(get_coordinator().my_stats(identity_of(current_user)))
