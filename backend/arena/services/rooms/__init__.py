"""Room domain services: registry, challenges, submissions, scoring.

This package contains the room state machine; Socket.IO handlers and HTTP
routes call into it, keeping transport concerns out of the core.
"""
from .challenges import ChallengeManager
from .registry import RoomRegistry
from .scheduler import EvaluationScheduler
from .scoring import DEFAULT_POLICY
from .stats import StatsPublisher
from .submissions import SubmissionPipeline


class RoomServices:
    """Everything that owns room state, built once per application."""

    def __init__(self, socketio, backends, config, rating_policy=None):
        inline = bool(config.get('TESTING')) and not config.get('ENABLE_SCHEDULER_IN_TESTS')
        self.backends = backends
        self.registry = RoomRegistry(
            default_capacity=int(config.get('DEFAULT_ROOM_CAPACITY', 4)),
            max_capacity=int(config.get('MAX_ROOM_CAPACITY', 10)),
        )
        self.challenges = ChallengeManager(self.registry, backends.generator)
        self.submissions = SubmissionPipeline(self.registry, backends.judge, backends.profiles)
        self.scheduler = EvaluationScheduler(
            socketio,
            self.submissions,
            delay=float(config.get('EVALUATION_DELAY_SEC', 2)),
            inline=inline,
        )
        self.stats = StatsPublisher(socketio, backends.profiles, inline=inline)
        self.rating_policy = rating_policy or DEFAULT_POLICY

    def reset(self) -> None:
        self.registry.clear()
