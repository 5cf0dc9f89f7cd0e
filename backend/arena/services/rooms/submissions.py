import logging
from typing import Any, Dict, List, Optional

from arena.exceptions import AlreadySolved, ArenaError, EvaluationFailed, InvalidInput, NotFound, SubmissionPending
from arena.models import ACCEPTED, PENDING, REJECTED, Submission, utcnow

from .registry import RoomRegistry

logger = logging.getLogger(__name__)


def score_results(results: List[Dict[str, Any]]):
    """Return ``(status, score)`` for a list of judge test results."""
    total = len(results)
    passed = sum(1 for r in results if r.get('passed'))
    if not total:
        return REJECTED, 0
    score = round(100 * passed / total)
    return (ACCEPTED if passed == total else REJECTED), score


class SubmissionPipeline:
    """submit -> (delay) -> evaluate -> record.

    A submission captures the challenge id at submit time; evaluation always
    judges against that challenge, whatever the room is showing by then.
    """

    def __init__(self, registry: RoomRegistry, judge, profiles):
        self.registry = registry
        self.judge = judge
        self.profiles = profiles

    def has_already_solved(self, room_id: str, participant_id: str, challenge_id: str) -> bool:
        return self.registry.get_room(room_id).has_accepted(participant_id, challenge_id)

    def submit(self, room_id: str, participant_id: str, solution: Optional[Dict[str, Any]]) -> Submission:
        solution = solution or {}
        language = (solution.get('language') or '').strip()
        code = solution.get('code') or ''
        if not language or not code.strip():
            raise InvalidInput('Invalid submission data', details={
                'roomId': room_id,
                'hasCode': bool(code.strip()),
                'hasLanguage': bool(language),
            })

        with self.registry.lock:
            room = self.registry.get_room(room_id)
            if not room.find_participant(participant_id):
                raise NotFound('Participant not found in room')
            if not room.active_challenge:
                raise NotFound('No challenge is active')
            challenge_id = room.active_challenge.id
            if room.has_accepted(participant_id, challenge_id):
                raise AlreadySolved(challenge_id)
            in_flight = room.awaiting_verdict(participant_id, challenge_id)
            if in_flight:
                raise SubmissionPending(in_flight.id)

            submission = Submission(
                participant_id=participant_id,
                challenge_id=challenge_id,
                code=code,
                language=language,
            )
            room.submissions.setdefault(participant_id, []).append(submission)
            room.touch()
        logger.info(f"[submit] room={room_id} participant={participant_id} submission={submission.id}")
        return submission

    def evaluate(self, room_id: str, submission_id: str) -> Submission:
        """Judge a pending submission; a terminal one is returned unchanged."""
        room = self.registry.get_room(room_id)
        submission = room.find_submission(submission_id)
        if not submission:
            raise NotFound('Submission not found')
        if submission.is_terminal:
            return submission

        challenge = room.challenges.get(submission.challenge_id)
        if not challenge:
            raise EvaluationFailed('Challenge no longer available', submission_id=submission_id)

        try:
            outcome = self.judge.run(submission.code, submission.language, challenge.test_cases)
        except ArenaError as e:
            submission.error = e.message
            raise EvaluationFailed(e.message or 'Evaluation failed', submission_id=submission_id, details=e.details)
        except Exception as e:
            submission.error = str(e)
            logger.error(f"[eval-fail] submission={submission_id} unexpected judge error", exc_info=True)
            raise EvaluationFailed('Evaluation failed', submission_id=submission_id, details=str(e))

        results = list(outcome.get('results') or [])
        status, score = score_results(results)
        with self.registry.lock:
            # a concurrent evaluation may have finished first
            if submission.status == PENDING:
                if status == ACCEPTED and room.has_accepted(submission.participant_id, submission.challenge_id):
                    # at most one accepted record per participant and challenge
                    status = REJECTED
                submission.status = status
                submission.score = score
                submission.test_results = results
                submission.evaluated_at = utcnow()
                submission.error = None
                room.touch()
        logger.info(
            f"[eval] room={room_id} submission={submission_id} status={submission.status} score={submission.score}"
        )
        return submission

    def mark_solved(self, room_id: str, participant_id: str, challenge_content_id: str) -> bool:
        """Tell the profile service a problem was solved. Best effort."""
        try:
            room = self.registry.get_room(room_id)
            participant = room.find_participant(participant_id)
            if not participant or not participant.email:
                return False
            self.profiles.mark_solved(participant.email, challenge_content_id)
        except Exception as e:
            logger.warning(f"[mark-solved-fail] room={room_id} participant={participant_id} error={e}")
            return False
        logger.info(f"[mark-solved] room={room_id} participant={participant_id} content={challenge_content_id}")
        return True

    def get_submissions(self, room_id: str, participant_id: str) -> List[Submission]:
        room = self.registry.get_room(room_id)
        return list(room.submissions_for(participant_id))

    def save_code(self, room_id: str, participant_id: str, code: str) -> None:
        with self.registry.lock:
            room = self.registry.get_room(room_id)
            room.saved_code[participant_id] = code
            room.touch()
