import os
import random
import sys
import pytest

# Ensure the backend root (containing the `groupvote` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from groupvote import create_app, db, socketio
from groupvote.models import User
from groupvote.services.games.eligibility import signup
from groupvote.services.games.progressor import start_tournament
from groupvote.services.games.supervisor import create_game


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    DEFAULT_GROUP_SIZE = 3
    MAX_GROUP_SIZE = 10
    ADMIN_USER_IDS = []
    ALLOWED_ADVANCE_DELAYS = [60, 120, 180, 300]
    MAX_VOTE_REASON_LENGTH = 10000


@pytest.fixture()
def bare_app():
    """App with its tables created and no app context left pushed.

    HTTP tests use this directly so every request gets its own app context
    (and its own Flask-Login user).
    """
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import groupvote.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def flask_app(bare_app):
    with bare_app.app_context():
        yield bare_app


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
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def make_users(flask_app):
    """Create users and return their ids. Every password is 'password'."""
    created = []

    def _make(count, admin=False):
        ids = []
        with flask_app.app_context():
            for _ in range(count):
                prefix = 'admin' if admin else 'player'
                user = User(username=f'{prefix}{len(created) + 1}', is_admin=admin)
                user.set_password('password')
                db.session.add(user)
                db.session.flush()
                created.append(user.id)
                ids.append(user.id)
            db.session.commit()
        return ids
    return _make


@pytest.fixture()
def new_game(flask_app, make_users):
    """Create a game with ``players`` signed up. Returns (game_id, player_ids)."""
    def _new(preset='buddy_up', players=4, **settings):
        ids = make_users(players)
        with flask_app.app_context():
            game_id = create_game(preset, **settings).id
            for uid in ids:
                signup(game_id, uid)
        return game_id, ids
    return _new


@pytest.fixture()
def started_game(flask_app, new_game):
    """Start a game whose groups are given as lists of player indexes.

    ``holders`` maps group number to the index of that group's role holder.
    Returns (game_id, player_ids, NextRoundOutcome).
    """
    def _start(preset='buddy_up', players=4, groups=None, holders=None, **settings):
        game_id, ids = new_game(preset, players, **settings)
        custom = [[ids[i] for i in group] for group in groups] if groups else None
        role_holders = {number: ids[i] for number, i in (holders or {}).items()}
        with flask_app.app_context():
            outcome = start_tournament(game_id, custom_assignment=custom, role_holders=role_holders,
                                       rng=random.Random(7))
        return game_id, ids, outcome
    return _start


@pytest.fixture()
def login(flask_app):
    """Return a fresh test client logged in as the user with ``user_id``."""
    def _login(user_id, password='password'):
        with flask_app.app_context():
            username = db.session.get(User, user_id).username
        test_client = flask_app.test_client()
        res = test_client.post('/login', json={'username': username, 'password': password})
        assert res.status_code == 200, res.get_json()
        return test_client
    return _login
