from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from arena.models import ACCEPTED, Participant, Room

_NEVER = datetime.max.replace(tzinfo=timezone.utc)


def leaderboard(room: Room) -> List[dict]:
    """Rank current participants by the sum of their accepted scores.

    Derived from submission history on every call; ties keep join order.
    """
    rows = []
    for p in room.participants:
        subs = room.submissions_for(p.id)
        accepted = [s for s in subs if s.status == ACCEPTED]
        rows.append({
            'participantId': p.id,
            'name': p.name,
            'score': sum(s.score for s in accepted),
            'submissionsCount': len(subs),
            'acceptedCount': len(accepted),
            'connected': p.connected,
        })
    return sorted(rows, key=lambda r: r['score'], reverse=True)


@dataclass
class Winner:
    participant: Participant
    score: int
    accepted_at: Optional[datetime]

    def to_dict(self):
        return {'participantId': self.participant.id, 'name': self.participant.name, 'score': self.score}


def determine_winner(room: Room, challenge_id: Optional[str]) -> Optional[Winner]:
    """Highest accepted score on ``challenge_id``; earliest acceptance breaks ties."""
    if not challenge_id:
        return None
    candidates = []
    for order, p in enumerate(room.participants):
        solved = [s for s in room.submissions_for(p.id) if s.challenge_id == challenge_id and s.status == ACCEPTED]
        if not solved:
            continue
        best = max(solved, key=lambda s: s.score)
        candidates.append((-best.score, best.evaluated_at or _NEVER, order, Winner(p, best.score, best.evaluated_at)))
    if not candidates:
        return None
    return min(candidates, key=lambda c: c[:3])[3]


@dataclass(frozen=True)
class RatingPolicy:
    """Fixed rating deltas applied at challenge end.

    Nobody loses rating when the challenge stumps the whole room.
    """
    win: int = 25
    solved: int = 10
    unsolved: int = -5

    def delta(self, won: bool, solved: bool, winner_exists: bool) -> int:
        if not winner_exists:
            return 0
        if won:
            return self.win
        if solved:
            return self.solved
        return self.unsolved


DEFAULT_POLICY = RatingPolicy()


def compute_rating_deltas(room: Room, winner: Optional[Winner],
                          policy: Optional[RatingPolicy] = None) -> Dict[str, int]:
    """``{participant_id: delta}``; "solved" is any accepted submission in the room."""
    policy = policy or DEFAULT_POLICY
    winner_id = winner.participant.id if winner else None
    return {
        p.id: policy.delta(
            won=p.id == winner_id,
            solved=room.has_accepted(p.id),
            winner_exists=winner is not None,
        )
        for p in room.participants
    }
