import os
import sys
import pytest

# Ensure the backend root (containing the `live_trivia` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from live_trivia import create_app, db, socketio
from live_trivia.services.rounds.bus import bus
from live_trivia.services.rounds.clock import ManualClock


MODERATOR_PASSWORD = 'quizmaster'

OPTIONS = [
    {'en': 'Berlin', 'ar': 'برلين'},
    {'en': 'Paris', 'ar': 'باريس'},
    {'en': 'Madrid', 'ar': 'مدريد'},
    {'en': 'Rome', 'ar': 'روما'},
]


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = []
    DEFAULT_TIMER_SEC = 20
    LEADERBOARD_LIMIT = 10
    SUBMISSION_GRACE_MS = 0
    MODERATOR_PASSWORD = None
    BCRYPT_LOG_ROUNDS = 4


class ProtectedConfig(TestConfig):
    MODERATOR_PASSWORD = MODERATOR_PASSWORD


def _make_app(config_class, clock):
    application = create_app(config_class)
    application.extensions['round_clock'] = clock
    return application


@pytest.fixture()
def clock():
    return ManualClock()


@pytest.fixture()
def flask_app(clock):
    application = _make_app(TestConfig, clock)
    with application.app_context():
        # Ensure models are imported so tables are created
        import live_trivia.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
    bus.reset()


@pytest.fixture()
def protected_app(clock):
    application = _make_app(ProtectedConfig, clock)
    with application.app_context():
        import live_trivia.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
    bus.reset()


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


def make_quiz():
    """A quiz with two questions; returns plain ids so tests never hold ORM rows."""
    from live_trivia.services.rounds.controller import controller

    created = controller.create_or_update_quiz('General knowledge', 'معلومات عامة')
    first = controller.create_or_update_question(
        created.id, 'What is the capital of France?', 'ما هي عاصمة فرنسا؟', OPTIONS, 1, sort_order=0
    )
    second = controller.create_or_update_question(
        created.id, 'Which is the largest?', 'أيها الأكبر؟',
        [{'en': 'Mouse', 'ar': 'فأر'}, {'en': 'Whale', 'ar': 'حوت'}, {'en': 'Cat', 'ar': 'قطة'}],
        1, sort_order=1,
    )
    return {'quiz_id': created.id, 'question_ids': [first.id, second.id]}


@pytest.fixture()
def quiz(flask_app):
    return make_quiz()
