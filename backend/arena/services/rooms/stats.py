import logging
from typing import Any, Dict, List, Optional, Tuple

from arena.models import ACCEPTED, Room

from .scoring import Winner

logger = logging.getLogger(__name__)


def build_stats_payloads(room: Room, winner: Optional[Winner], deltas: Dict[str, int]) -> List[Dict[str, Any]]:
    """One profile update per participant with an email."""
    payloads = []
    winner_id = winner.participant.id if winner else None
    for p in room.participants:
        if not p.email:
            continue
        subs = room.submissions_for(p.id)
        accepted = [s for s in subs if s.status == ACCEPTED]
        solved, difficulties = [], []
        for s in accepted:
            challenge = room.challenges.get(s.challenge_id)
            solved.append(challenge.content_id if challenge and challenge.content_id else s.challenge_id)
            difficulties.append((challenge.difficulty if challenge else None) or room.difficulty or 'medium')
        payloads.append({
            'email': p.email,
            'stats': {
                'won': p.id == winner_id,
                'ratingChange': deltas.get(p.id, 0),
                'solvedProblems': solved,
                'problemDifficulties': difficulties,
                'submissions': len(subs),
                'acceptedSubmissions': len(accepted),
                'score': sum(s.score for s in accepted),
            },
        })
    return payloads


class StatsPublisher:
    """Push end-of-challenge stats to the profile service.

    Every payload is its own task with its own error boundary; a failure is
    logged and never reaches the room.
    """

    def __init__(self, socketio, profiles, inline: bool = False):
        self.socketio = socketio
        self.profiles = profiles
        self.inline = inline

    def publish(self, payloads: List[Dict[str, Any]]) -> List[Tuple[str, bool]]:
        if not self.inline:
            for payload in payloads:
                self.socketio.start_background_task(self._push_one, payload)
            return []
        results = [(payload['email'], self._push_one(payload)) for payload in payloads]
        failed = [email for email, ok in results if not ok]
        if failed:
            logger.warning(f"[stats-batch] {len(failed)}/{len(results)} update(s) failed: {', '.join(failed)}")
        return results

    def _push_one(self, payload: Dict[str, Any]) -> bool:
        email = payload.get('email')
        try:
            self.profiles.update_stats(email, payload['stats'])
        except Exception as e:
            details = getattr(e, 'details', None)
            logger.error(f"[stats-fail] email={email} error={e} details={details}")
            return False
        logger.info(f"[stats] updated email={email} ratingChange={payload['stats'].get('ratingChange')}")
        return True
