import os
import sys
import pytest

# Ensure the backend root (containing the `snipegame` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from snipegame import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DODGE_WINDOW_MS = 20000
    EXPIRY_GRACE_MS = 0
    BASE_SNIPE_POINTS = 1
    DODGE_POINTS = 5
    SHIELD_DODGE_POINTS = 10
    ACCUSATION_PENALTY = 1
    TX_MAX_ATTEMPTS = 3
    SYNC_MAX_ATTEMPTS = 3
    SYNC_RETRY_DELAY_SEC = 0
    INVITE_CODE_LENGTH = 6


class FakeClock:
    def __init__(self, start_ms=1_700_000_000_000):
        self.current = start_ms

    def __call__(self):
        return self.current

    def advance(self, ms):
        self.current += ms
        return self.current


def _make_app(config_class):
    application = create_app(config_class)
    with application.app_context():
        # Ensure models are imported so tables are created
        import snipegame.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr('snipegame.timeutils.now_ms', fake)
    return fake


@pytest.fixture()
def flask_app(clock):
    yield from _make_app(TestConfig)


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def make_user(flask_app):
    """Create a user and optionally set a starting balance."""
    from snipegame.services import groups as group_service

    def _make(name, points=0):
        user = group_service.create_user(name)
        if points:
            user.points = points
            db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_group(flask_app):
    """Create a group owned by the first user with every other user joined."""
    from snipegame.services import groups as group_service

    def _make(*users, name='Crew'):
        group = group_service.create_group(name, users[0].id)
        for user in users[1:]:
            group_service.join_group(group.invite_code, user.id)
        return db.session.get(type(group), group.id)
    return _make
