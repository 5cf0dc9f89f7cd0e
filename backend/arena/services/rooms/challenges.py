import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from arena.exceptions import ArenaError, Forbidden, GenerationFailed, NotFound
from arena.models import Challenge, Participant, Room

from .registry import RoomRegistry

logger = logging.getLogger(__name__)


def can_generate(room: Room, participant: Participant) -> bool:
    """Creator may always generate; a participant practicing alone may too."""
    return room.is_creator(participant) or len(room.participants) == 1


def require_creator(room: Room, participant: Participant, action: str) -> None:
    if not room.is_creator(participant):
        raise Forbidden(f'Only the room creator can {action}.')


@dataclass
class GenerationResult:
    success: bool
    challenge: Optional[Challenge] = None
    cached: bool = False
    similarity: Optional[float] = None
    source: Optional[str] = None
    error: Optional[str] = None
    details: Any = field(default=None)

    def to_dict(self):
        if not self.success:
            return {'success': False, 'error': self.error, 'details': self.details}
        return {
            'success': True,
            'cached': self.cached,
            'similarity': self.similarity,
            'source': self.source,
        }


def build_challenge(data: dict, difficulty: str, topic: Optional[str], generated_by: Optional[str]) -> Challenge:
    body = dict(data.get('challenge') or {})
    test_cases = body.pop('testCases', None) or []
    cached = bool(data.get('cached', False))
    return Challenge(
        content_id=body.get('challengeId') or body.get('id'),
        difficulty=body.get('difficulty') or difficulty,
        topic=body.get('topic') or topic,
        title=body.get('title', ''),
        content=body,
        test_cases=list(test_cases),
        source=data.get('source') or ('cache' if cached else 'generated'),
        cached=cached,
        similarity=data.get('similarity'),
        generated_by=generated_by,
    )


class ChallengeManager:
    """Owns the active challenge of every room."""

    def __init__(self, registry: RoomRegistry, generator):
        self.registry = registry
        self.generator = generator

    def set_topic(self, room_id: str, topic: str, requester: Participant) -> Room:
        with self.registry.lock:
            room = self.registry.get_room(room_id)
            require_creator(room, requester, 'set the topic')
            room.topic = topic
            room.touch()
        logger.info(f"[topic] room={room_id} topic={topic!r} by={requester.name}")
        return room

    def generate_challenge(self, room_id: str, difficulty: str, topic: Optional[str],
                           requester: Participant) -> GenerationResult:
        """Fetch a (possibly cached) challenge and make it the room's active one.

        Backend failures come back as ``success=False`` so the caller can keep
        the requester connected.
        """
        room = self.registry.get_room(room_id)
        if not can_generate(room, requester):
            raise Forbidden('Only room creator can generate challenges')

        topic = topic or room.topic
        try:
            data = self.generator.generate(difficulty, topic, requester.email)
            challenge = build_challenge(data, difficulty, topic, requester.name)
        except GenerationFailed as e:
            logger.warning(f"[generate-fail] room={room_id} error={e.message} details={e.details}")
            return GenerationResult(success=False, error=e.message, details=e.details)
        except ArenaError:
            raise
        except Exception as e:
            logger.error(f"[generate-fail] room={room_id} unexpected error", exc_info=True)
            return GenerationResult(
                success=False,
                error='An unexpected error occurred while generating the challenge.',
                details=str(e),
            )

        with self.registry.lock:
            room.challenges[challenge.id] = challenge
            room.active_challenge = challenge
            room.difficulty = challenge.difficulty
            if challenge.topic:
                room.topic = challenge.topic
            room.touch()
        logger.info(
            f"[generate] room={room_id} challenge={challenge.id} content={challenge.content_id} "
            f"source={challenge.source} cached={challenge.cached}"
        )
        return GenerationResult(
            success=True,
            challenge=challenge,
            cached=challenge.cached,
            similarity=challenge.similarity,
            source=challenge.source,
        )

    def end_challenge(self, room_id: str, requester: Optional[Participant] = None) -> Room:
        """Freeze the active challenge. Winners are computed by the caller."""
        with self.registry.lock:
            room = self.registry.get_room(room_id)
            if requester is not None:
                require_creator(room, requester, 'end challenges')
            if not room.active_challenge:
                raise NotFound('No challenge is active')
            room.ended_challenge_id = room.active_challenge.id
            room.active_challenge = None
            room.touch()
        logger.info(f"[end] room={room_id} challenge={room.ended_challenge_id}")
        return room
