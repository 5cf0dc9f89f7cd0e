import os
import sys
import pytest

# Ensure the backend root (containing the `arena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from arena import create_app, socketio
from arena.exceptions import ExternalUpdateFailed
from arena.services.backends import Backends
from arena.services.rooms.registry import RoomRegistry
from arena.services.rooms.submissions import SubmissionPipeline


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = ['http://localhost:5173']
    LOG_LEVEL = 'DEBUG'
    DEFAULT_ROOM_CAPACITY = 4
    MAX_ROOM_CAPACITY = 10
    EVALUATION_DELAY_SEC = 0


class FakeGenerator:
    """Stands in for the problem generation service."""

    def __init__(self):
        self.calls = []
        self.fail = None
        self.cached = False

    def generate(self, difficulty, topic, user_email):
        self.calls.append({'difficulty': difficulty, 'topic': topic, 'email': user_email})
        if self.fail:
            raise self.fail
        n = len(self.calls)
        return {
            'challenge': {
                'challengeId': f'content-{n}',
                'title': 'Sum of two numbers',
                'difficulty': difficulty,
                'topic': topic,
                'testCases': [
                    {'input': '1 2', 'output': '3'},
                    {'input': '2 2', 'output': '4', 'hidden': True},
                ],
            },
            'cached': self.cached,
            'similarity': 0.93 if self.cached else None,
            'source': 'cache' if self.cached else 'generated',
        }


class FakeJudge:
    """Passes every test case unless the code contains 'wrong' (first case fails)."""

    def __init__(self):
        self.calls = []
        self.fail = None

    def run(self, code, language, test_cases):
        self.calls.append({'code': code, 'language': language, 'test_cases': test_cases})
        if self.fail:
            raise self.fail
        results = []
        for i, tc in enumerate(test_cases):
            passed = not (i == 0 and 'wrong' in code)
            results.append({'input': tc['input'], 'expected': tc['output'], 'passed': passed})
        return {'results': results}


class FakeProfiles:
    def __init__(self):
        self.stats = {}
        self.solved = []
        self.failing_emails = set()
        self.fail_mark_solved = False

    def mark_solved(self, email, challenge_id):
        if self.fail_mark_solved:
            raise ExternalUpdateFailed('profile service down')
        self.solved.append((email, challenge_id))

    def update_stats(self, email, stats):
        if email in self.failing_emails:
            raise ExternalUpdateFailed('profile service down')
        self.stats[email] = stats


@pytest.fixture()
def backends():
    return Backends(generator=FakeGenerator(), judge=FakeJudge(), profiles=FakeProfiles())


@pytest.fixture()
def flask_app(backends):
    application = create_app(TestConfig, backends=backends)
    yield application
    application.extensions['arena'].reset()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return flask_app.extensions['arena']


@pytest.fixture()
def room(services):
    return services.registry.create_room('Alice', capacity=4, room_id='R1')


@pytest.fixture()
def connect(flask_app):
    """Factory for Socket.IO test clients on /ws; all are closed at teardown."""
    clients = []

    def _connect():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        test_client.get_received('/ws')  # flush 'connected'
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


@pytest.fixture()
def registry():
    return RoomRegistry(default_capacity=4, max_capacity=10)


@pytest.fixture()
def pipeline(registry, backends):
    return SubmissionPipeline(registry, backends.judge, backends.profiles)
