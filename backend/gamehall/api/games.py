from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user

from gamehall.auth import identity_of
from gamehall.errors import GameError, PersistenceFailure
from gamehall.services.coordinator import get_coordinator

games = Blueprint('games', __name__)


@games.errorhandler(GameError)
def handle_game_error(exc):
    if isinstance(exc, PersistenceFailure):
        current_app.logger.error(f"[error] {request.method} {request.path} persistence failure: {exc.__cause__}")
    return jsonify(exc.to_dict()), exc.status_code


def _actor():
    return identity_of(current_user)


@games.route('/challenge', methods=['POST'])
@login_required
def challenge():
    data = request.get_json(silent=True) or {}
    session = get_coordinator().challenge(_actor(), data.get('opponent_id'))
    return jsonify({'success': True, 'session': session}), 201


@games.route('/sessions', methods=['GET'])
@login_required
def list_sessions():
    return jsonify(get_coordinator().list_my_sessions(_actor()))


@games.route('/accept/<int:session_id>', methods=['POST'])
@login_required
def accept_challenge(session_id):
    session = get_coordinator().accept_challenge(_actor(), session_id)
    return jsonify({'success': True, 'session': session})


@games.route('/reject/<int:session_id>', methods=['DELETE'])
@login_required
def reject_challenge(session_id):
    get_coordinator().reject_challenge(_actor(), session_id)
    return jsonify({'success': True})


@games.route('/move/<int:session_id>', methods=['POST'])
@login_required
def submit_move(session_id):
    data = request.get_json(silent=True) or {}
    if 'board' not in data or 'next_turn' not in data:
        return jsonify({'error': 'board and next_turn are required'}), 400
    session = get_coordinator().submit_move(
        _actor(),
        session_id,
        data.get('board'),
        data.get('next_turn'),
        data.get('winner_id'),
    )
    return jsonify({'success': True, 'session': session})


@games.route('/session/<int:session_id>', methods=['GET'])
@login_required
def get_session(session_id):
    return jsonify(get_coordinator().get_session(_actor(), session_id))


@games.route('/session/<int:session_id>/leave', methods=['POST'])
@login_required
def leave_session(session_id):
    get_coordinator().leave_session(_actor(), session_id)
    return jsonify({'success': True})


@games.route('/stats', methods=['GET'])
@login_required
def my_stats():
    return jsonify(get_coordinator().my_stats(_actor()))


@games.route('/reset-stats', methods=['POST'])
@login_required
def reset_stats():
    stats = get_coordinator().reset_my_stats(_actor())
    return jsonify({'success': True, 'stats': stats})


@games.route('/result', methods=['POST'])
@login_required
def record_result():
    """Records the outcome of a local game played against the computer."""
    data = request.get_json(silent=True) or {}
    stats = get_coordinator().record_result(_actor(), data.get('result'))
    return jsonify({'success': True, 'stats': stats})
