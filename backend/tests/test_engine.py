import threading

import pytest

from conftest import TestConfig
from gamehall import create_app, db
from gamehall.errors import (
    GameError,
    InvalidMove,
    InvalidState,
    InvalidTarget,
    NotParticipant,
    NotYourTurn,
    SessionNotFound,
    UserNotFound,
)
from gamehall.models import User
from gamehall.services.games import stats
from gamehall.services.games.engine import GameEngine, SessionLocks, winning_symbol


@pytest.fixture()
def engine(coordinator):
    return coordinator.engine


@pytest.fixture()
def alice_bob(app_ctx):
    alice = User(username='alice')
    bob = User(username='bob')
    for user in (alice, bob):
        user.set_password('secret123')
        db.session.add(user)
    db.session.commit()
    return alice.id, bob.id


@pytest.fixture()
def playing(engine, alice_bob):
    alice, bob = alice_bob
    session = engine.challenge(alice, bob)
    engine.accept(session.id, bob)
    return session.id


def board_with(**cells):
    board = [None] * 9
    for key, value in cells.items():
        board[int(key[1:])] = value
    return board


def test_challenge_self_is_invalid_target(engine, alice_bob):
    alice, _ = alice_bob
    with pytest.raises(InvalidTarget):
        engine.challenge(alice, alice)


def test_challenge_unknown_opponent(engine, alice_bob):
    alice, _ = alice_bob
    with pytest.raises(UserNotFound):
        engine.challenge(alice, 4242)


def test_only_player_o_can_accept(engine, alice_bob):
    alice, bob = alice_bob
    session = engine.challenge(alice, bob)
    with pytest.raises(NotParticipant):
        engine.accept(session.id, alice)
    assert engine.store.get_session(session.id).status == 'pending'
    engine.accept(session.id, bob)
    assert engine.store.get_session(session.id).status == 'playing'


def test_accept_twice_is_invalid_state(engine, playing, alice_bob):
    _, bob = alice_bob
    with pytest.raises(InvalidState):
        engine.accept(playing, bob)


def test_move_on_pending_session_cannot_start_it(engine, alice_bob):
    alice, bob = alice_bob
    session = engine.challenge(alice, bob)
    with pytest.raises(InvalidState):
        engine.move(session.id, alice, board_with(c0='X'), 'O')
    assert engine.store.get_session(session.id).status == 'pending'


def test_move_missing_session(engine, alice_bob):
    alice, _ = alice_bob
    with pytest.raises(SessionNotFound):
        engine.move(999, alice, board_with(c0='X'), 'O')


def test_turns_alternate_and_wrong_player_is_rejected(engine, playing, alice_bob):
    alice, bob = alice_bob

    with pytest.raises(NotYourTurn):
        engine.move(playing, bob, board_with(c0='O'), 'X')
    assert engine.store.get_session(playing).board == [None] * 9

    session = engine.move(playing, alice, board_with(c0='X'), 'O')
    assert session.current_turn == 'O'
    assert session.board == board_with(c0='X')

    with pytest.raises(NotYourTurn):
        engine.move(playing, alice, board_with(c0='X', c1='X'), 'O')

    session = engine.move(playing, bob, board_with(c0='X', c4='O'), 'X')
    assert session.current_turn == 'X'
    assert session.status == 'playing'


def test_second_of_two_identical_submissions_fails(engine, playing, alice_bob):
    alice, _ = alice_bob
    engine.move(playing, alice, board_with(c0='X'), 'O')
    with pytest.raises(NotYourTurn):
        engine.move(playing, alice, board_with(c0='X'), 'O')
    assert engine.store.get_session(playing).board == board_with(c0='X')


def test_occupied_cell_overwrite_is_accepted_structurally(engine, playing, alice_bob):
    alice, bob = alice_bob
    engine.move(playing, alice, board_with(c0='X'), 'O')
    session = engine.move(playing, bob, board_with(c0='O'), 'X')
    assert session.board[0] == 'O'


@pytest.mark.parametrize('board, next_turn', [
    ([None] * 8, 'O'),
    (['Z'] + [None] * 8, 'O'),
    ('X........', 'O'),
    (board_with(c0='X'), 'X'),
])
def test_malformed_moves_are_rejected(engine, playing, alice_bob, board, next_turn):
    alice, _ = alice_bob
    with pytest.raises(InvalidMove):
        engine.move(playing, alice, board, next_turn)
    assert engine.store.get_session(playing).current_turn == 'X'


def test_played_cell_cannot_be_cleared(engine, playing, alice_bob):
    alice, bob = alice_bob
    engine.move(playing, alice, board_with(c0='X'), 'O')
    with pytest.raises(InvalidMove):
        engine.move(playing, bob, board_with(c4='O'), 'X')


def test_winner_must_be_a_player(engine, playing, alice_bob):
    alice, _ = alice_bob
    with pytest.raises(InvalidMove):
        engine.move(playing, alice, board_with(c0='X'), 'O', winner_id=4242)


def test_declared_win_finishes_and_books_counters(engine, playing, alice_bob):
    alice, bob = alice_bob
    board = board_with(c0='X', c1='X', c2='X', c3='O', c4='O')
    engine.store.apply_move(playing, board_with(c0='X', c1='X', c3='O', c4='O'), 'X', 'playing', None)

    session = engine.move(playing, alice, board, 'O', winner_id=alice)
    assert session.status == 'finished'
    assert session.winner_id == alice
    assert stats.get_stats(alice) == {'wins': 1, 'losses': 0, 'draws': 0}
    assert stats.get_stats(bob) == {'wins': 0, 'losses': 1, 'draws': 0}


def test_full_board_without_winner_is_a_draw(engine, playing, alice_bob):
    alice, bob = alice_bob
    almost = ['X', 'O', 'X', 'X', 'O', 'O', 'O', 'X', None]
    engine.store.apply_move(playing, almost, 'X', 'playing', None)

    session = engine.move(playing, alice, almost[:8] + ['X'], 'O')
    assert session.status == 'finished'
    assert session.winner_id is None
    assert stats.get_stats(alice) == {'wins': 0, 'losses': 0, 'draws': 1}
    assert stats.get_stats(bob) == {'wins': 0, 'losses': 0, 'draws': 1}


def test_finished_game_accepts_no_more_moves(engine, playing, alice_bob):
    alice, bob = alice_bob
    engine.move(playing, alice, board_with(c0='X'), 'O', winner_id=alice)
    with pytest.raises(InvalidState):
        engine.move(playing, bob, board_with(c0='X', c1='O'), 'X')
    assert stats.get_stats(alice)['wins'] == 1


def test_rematch_resets_same_session(engine, playing, alice_bob):
    alice, bob = alice_bob
    engine.move(playing, alice, board_with(c0='X'), 'O', winner_id=alice)

    session = engine.accept_rematch(playing, bob)
    assert session.id == playing
    assert session.board == [None] * 9
    assert session.current_turn == 'X'
    assert session.status == 'playing'
    assert session.winner_id is None


def test_rematch_requires_finished_game_and_participant(engine, playing, alice_bob):
    alice, _ = alice_bob
    with pytest.raises(InvalidState):
        engine.accept_rematch(playing, alice)

    outsider = User(username='eve')
    outsider.set_password('secret123')
    db.session.add(outsider)
    db.session.commit()
    with pytest.raises(NotParticipant):
        engine.accept_rematch(playing, outsider.id)


def test_server_side_win_check(flask_app, alice_bob):
    alice, bob = alice_bob
    engine = GameEngine(flask_app.extensions['gamehall'].store, verify_winner=True)
    session = engine.challenge(alice, bob)
    engine.accept(session.id, bob)

    with pytest.raises(InvalidMove):
        engine.move(session.id, alice, board_with(c0='X'), 'O', winner_id=alice)

    engine.store.apply_move(session.id, board_with(c0='X', c1='X', c3='O', c4='O'), 'X', 'playing', None)
    with pytest.raises(InvalidMove):
        # line completed but no winner declared
        engine.move(session.id, alice, board_with(c0='X', c1='X', c2='X', c3='O', c4='O'), 'O')
    done = engine.move(session.id, alice, board_with(c0='X', c1='X', c2='X', c3='O', c4='O'), 'O', winner_id=alice)
    assert done.status == 'finished'


def test_winning_symbol():
    assert winning_symbol(board_with(c2='O', c4='O', c6='O')) == 'O'
    assert winning_symbol(board_with(c0='X', c4='X')) is None


def test_session_locks_are_per_session_and_reentrant():
    locks = SessionLocks()
    assert locks.get(1) is locks.get('1')
    assert locks.get(1) is not locks.get(2)
    with locks.hold(1):
        with locks.hold(1):
            pass
    locks.discard(1)
    assert 1 not in locks._locks


def test_unused_session_locks_are_released():
    locks = SessionLocks()
    with locks.hold(5):
        assert 5 in locks._locks
    assert 5 not in locks._locks


def test_concurrent_identical_moves_are_serialised(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.sqlite'}"

    application = create_app(FileConfig)
    with application.app_context():
        db.create_all()
        alice = User(username='alice')
        bob = User(username='bob')
        for user in (alice, bob):
            user.set_password('secret123')
            db.session.add(user)
        db.session.commit()
        alice_id, bob_id = alice.id, bob.id
        engine = application.extensions['gamehall'].engine
        session_id = engine.challenge(alice_id, bob_id).id
        engine.accept(session_id, bob_id)
        db.session.remove()

    barrier = threading.Barrier(2)
    results = []

    def submit():
        with application.app_context():
            barrier.wait()
            try:
                engine.move(session_id, alice_id, board_with(c0='X'), 'O')
                results.append('ok')
            except GameError as exc:
                results.append(type(exc).__name__)
            finally:
                db.session.remove()

    workers = [threading.Thread(target=submit) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=30)

    try:
        assert sorted(results) == ['NotYourTurn', 'ok']
        with application.app_context():
            stored = engine.store.get_session(session_id)
            assert stored.board == board_with(c0='X')
            assert stored.current_turn == 'O'
    finally:
        with application.app_context():
            db.drop_all()
            db.engine.dispose()
