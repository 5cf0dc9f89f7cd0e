"""Error taxonomy for room orchestration.

Every error carries a machine readable ``code`` that is forwarded to the
client in the ``error`` event, next to the human readable message.
"""
from typing import Any, Optional


class ArenaError(Exception):
    """Base class for all room errors."""
    code = 'ARENA_ERROR'

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'message': self.message, 'code': self.code}
        if self.details is not None:
            payload['details'] = self.details
        return payload


class NotFound(ArenaError):
    """Room, participant, challenge or submission absent."""
    code = 'NOT_FOUND'


class Forbidden(ArenaError):
    """Acting participant may not perform this action."""
    code = 'FORBIDDEN'


class RoomFull(ArenaError):
    code = 'ROOM_FULL'

    def __init__(self, room_id: str, capacity: int):
        self.room_id = room_id
        self.capacity = capacity
        super().__init__('Room is full')


class InvalidInput(ArenaError):
    code = 'INVALID_INPUT'


class AlreadySolved(ArenaError):
    code = 'ALREADY_SOLVED'

    def __init__(self, challenge_id: str):
        self.challenge_id = challenge_id
        super().__init__('You have already solved this challenge. No need to submit again.')


class SubmissionPending(ArenaError):
    code = 'SUBMISSION_PENDING'

    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__('Your previous submission is still being evaluated.',
                         details={'submissionId': submission_id})


class GenerationFailed(ArenaError):
    code = 'GENERATION_FAILED'


class EvaluationFailed(ArenaError):
    code = 'EVALUATION_ERROR'

    def __init__(self, message: str, submission_id: Optional[str] = None, details: Any = None):
        super().__init__(message, details)
        self.submission_id = submission_id

    def to_dict(self):
        payload = super().to_dict()
        if self.submission_id:
            payload['submissionId'] = self.submission_id
        return payload


class ExternalUpdateFailed(ArenaError):
    code = 'EXTERNAL_UPDATE_FAILED'
