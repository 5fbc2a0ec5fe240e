from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:8081",
    "http://127.0.0.1:8081",
    "http://localhost:19006",
    "http://127.0.0.1:19006",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

from snipegame.services.sync import GroupCacheSynchronizer  # noqa: E402

group_sync = GroupCacheSynchronizer()

def create_app(config_class=Config, catalog=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # The price list is read-only configuration handed to the services
    from snipegame.catalog import Catalog
    if catalog is None:
        path = flask_app.config.get('CATALOG_PATH')
        catalog = Catalog.from_json_file(path) if path else Catalog.default()
    flask_app.extensions['catalog'] = catalog

    group_sync.init_app(flask_app)

    from snipegame.api import api
    flask_app.register_blueprint(api, url_prefix='/api')

    from snipegame.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from snipegame.services import groups as group_service
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed a demo group with three players
            names = ['alice', 'bob', 'cara']
            users = [group_service.create_user(name) for name in names]
            group = group_service.create_group('Demo', users[0].id)
            for user in users[1:]:
                group_service.join_group(group.invite_code, user.id)

            print(f'Database has been reset and seeded! Invite code: {group.invite_code}')

    @click.command('snipes-sweep')
    def snipes_sweep_command():
        """Resolves every pending snipe whose dodge window has elapsed."""
        from snipegame.services.snipes import sweep_expired_snipes
        with flask_app.app_context():
            resolved = sweep_expired_snipes()
            print(f'Resolved {len(resolved)} expired snipe(s)')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(snipes_sweep_command)

    return flask_app
