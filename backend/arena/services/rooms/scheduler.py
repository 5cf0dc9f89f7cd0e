import logging
import threading
from typing import Callable, Optional, Set

from arena.exceptions import ArenaError, EvaluationFailed
from arena.models import Submission

from .submissions import SubmissionPipeline

logger = logging.getLogger(__name__)

OnComplete = Callable[[str, Optional[Submission], Optional[ArenaError]], None]


class EvaluationScheduler:
    """Run ``SubmissionPipeline.evaluate`` a fixed delay after submit.

    - One pending job per submission id; a second schedule is skipped
    - Jobs re-fetch room and submission by id when they fire, so a room that
      ended its challenge or lost the submitter meanwhile is tolerated
    - No cancellation: a scheduled job always runs
    - In TESTING the job runs inline unless ENABLE_SCHEDULER_IN_TESTS is set
    """

    def __init__(self, socketio, pipeline: SubmissionPipeline, delay: float = 2.0, inline: bool = False):
        self.socketio = socketio
        self.pipeline = pipeline
        self.delay = delay
        self.inline = inline
        self._scheduled: Set[str] = set()
        self._lock = threading.Lock()

    def is_scheduled(self, submission_id: str) -> bool:
        return submission_id in self._scheduled

    def schedule(self, room_id: str, submission_id: str, on_complete: OnComplete) -> bool:
        with self._lock:
            if submission_id in self._scheduled:
                logger.info(f"[eval-skip] submission={submission_id} already scheduled")
                return False
            self._scheduled.add(submission_id)
        logger.info(f"[eval-set] room={room_id} submission={submission_id} delay={self.delay}s")

        if self.inline:
            self._worker(room_id, submission_id, on_complete)
        else:
            self.socketio.start_background_task(self._worker, room_id, submission_id, on_complete)
        return True

    def _worker(self, room_id: str, submission_id: str, on_complete: OnComplete) -> None:
        if self.delay and not self.inline:
            self.socketio.sleep(self.delay)
        submission = None
        error = None
        try:
            logger.info(f"[eval-fire] room={room_id} submission={submission_id}")
            submission = self.pipeline.evaluate(room_id, submission_id)
        except EvaluationFailed as e:
            error = e
        except ArenaError as e:
            error = EvaluationFailed(e.message, submission_id=submission_id, details=e.details)
        except Exception as e:
            logger.error(f"[eval-fail] submission={submission_id} unexpected error", exc_info=True)
            error = EvaluationFailed('Evaluation failed', submission_id=submission_id, details=str(e))
        finally:
            with self._lock:
                self._scheduled.discard(submission_id)

        if error:
            logger.warning(f"[eval-fail] room={room_id} submission={submission_id} error={error.message}")
        try:
            on_complete(room_id, submission, error)
        except Exception:
            logger.error(f"[eval-callback-fail] submission={submission_id}", exc_info=True)
