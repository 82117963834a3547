import os
import sys
import pytest

# Ensure the backend root (containing the `gamehall` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from gamehall import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = []
    SOCKETIO_NAMESPACE = '/ws'
    TOKEN_MAX_AGE_SEC = 3600
    SERVER_SIDE_WIN_CHECK = False
    LOG_LEVEL = 'DEBUG'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import gamehall.models  # noqa: F401
        db.create_all()
    # No context stays pushed: each test request must get its own
    # app context, otherwise Flask-Login's cached user leaks through `g`.
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """App context for tests that use the services and `db` directly."""
    with flask_app.app_context():
        yield flask_app
        db.session.remove()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def coordinator(flask_app):
    return flask_app.extensions['gamehall']


def register(client, username, password='secret123'):
    res = client.post('/api/register', json={'username': username, 'password': password})
    assert res.status_code == 201, res.get_json()
    data = res.get_json()
    return {
        'id': data['user']['id'],
        'username': username,
        'token': data['token'],
        'headers': {'x-access-token': data['token']},
    }


@pytest.fixture()
def users(flask_app):
    """Registers users through a cookie-less client so each one is only
    identified by its bearer token."""
    http = flask_app.test_client(use_cookies=False)

    def make(*names):
        return [register(http, name) for name in names]
    return make


@pytest.fixture()
def api(flask_app):
    return flask_app.test_client(use_cookies=False)


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def make(token=None):
        test_client = socketio.test_client(flask_app, namespace='/ws')
        clients.append(test_client)
        if token:
            test_client.emit('authenticate', token, namespace='/ws')
        test_client.get_received('/ws')  # flush
        return test_client

    yield make
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(flask_app, namespace='/ws')
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


def events(test_client, name):
    """Payloads of every received event called ``name``."""
    return [pkt['args'][0] if pkt['args'] else None
            for pkt in test_client.get_received('/ws') if pkt['name'] == name]
