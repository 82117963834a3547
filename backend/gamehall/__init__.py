from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

DEFAULT_ROLES = ('usr', 'adm', 'Sa')


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []
    namespace = flask_app.config.get('SOCKETIO_NAMESPACE', '/ws')

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Identity loaders bind to login_manager on import
    from gamehall import auth  # noqa: F401

    # One presence registry per process, shared by the notifier and the coordinator
    from gamehall.services.games.store import SessionStore
    from gamehall.services.games.engine import GameEngine
    from gamehall.services.presence import PresenceRegistry
    from gamehall.services.notifier import RealtimeNotifier
    from gamehall.services.coordinator import SessionCoordinator

    store = SessionStore()
    engine = GameEngine(store, verify_winner=flask_app.config.get('SERVER_SIDE_WIN_CHECK', False))
    presence = PresenceRegistry(store)
    notifier = RealtimeNotifier(socketio, presence, namespace=namespace)
    flask_app.extensions['gamehall'] = SessionCoordinator(store, engine, presence, notifier)

    from gamehall.main import main
    flask_app.register_blueprint(main, url_prefix='/api')

    from gamehall.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/game')

    from gamehall.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace)

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from gamehall.models import Role, User
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            roles = {name: Role(name=name) for name in DEFAULT_ROLES}
            db.session.add_all(roles.values())

            # Seed users
            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u)
                user.set_password('password')
                user.roles.append(roles['usr'])
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
