import random
import string
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

PENDING = 'pending'
ACCEPTED = 'accepted'
REJECTED = 'rejected'
TERMINAL_STATUSES = (ACCEPTED, REJECTED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def generate_room_code(length=6):
    """Generate a short, human friendly room code."""
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Participant:
    name: str
    email: str
    connection_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    session_token: str = field(default_factory=lambda: str(uuid.uuid4()))
    language: str = 'python'
    connected: bool = True
    joined_at: datetime = field(default_factory=utcnow)

    def to_dict(self):
        # session_token is a secret, only handed back to its owner on join
        return {
            'id': self.id,
            'name': self.name,
            'language': self.language,
            'connected': self.connected,
            'joinedAt': _iso(self.joined_at),
        }


@dataclass
class Challenge:
    content_id: Optional[str]
    difficulty: str
    topic: Optional[str]
    title: str = ''
    content: Dict[str, Any] = field(default_factory=dict)
    test_cases: List[Dict[str, Any]] = field(default_factory=list)
    source: str = 'generated'
    cached: bool = False
    similarity: Optional[float] = None
    generated_by: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def visible_test_cases(self):
        return [tc for tc in self.test_cases if not tc.get('hidden')]

    def to_dict(self):
        return {
            'id': self.id,
            'challengeId': self.content_id,
            'title': self.title,
            'difficulty': self.difficulty,
            'topic': self.topic,
            'content': self.content,
            'testCases': self.visible_test_cases,
            'source': self.source,
            'cached': self.cached,
            'similarity': self.similarity,
            'generatedBy': self.generated_by,
            'createdAt': _iso(self.created_at),
        }


@dataclass
class Submission:
    participant_id: str
    challenge_id: str
    code: str
    language: str
    id: str = field(default_factory=new_id)
    status: str = PENDING
    score: int = 0
    test_results: List[Dict[str, Any]] = field(default_factory=list)
    submitted_at: datetime = field(default_factory=utcnow)
    evaluated_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.participant_id,
            'challengeId': self.challenge_id,
            'code': self.code,
            'language': self.language,
            'status': self.status,
            'score': self.score,
            'testResults': self.test_results,
            'submittedAt': _iso(self.submitted_at),
            'evaluatedAt': _iso(self.evaluated_at),
        }


@dataclass
class Room:
    created_by: str
    capacity: int
    topic: Optional[str] = None
    difficulty: Optional[str] = None
    id: str = field(default_factory=generate_room_code)
    participants: List[Participant] = field(default_factory=list)
    active_challenge: Optional[Challenge] = None
    ended_challenge_id: Optional[str] = None
    challenges: Dict[str, Challenge] = field(default_factory=dict)
    submissions: Dict[str, List[Submission]] = field(default_factory=dict)
    saved_code: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)

    def touch(self) -> None:
        self.last_activity = utcnow()

    def is_full(self) -> bool:
        return len(self.participants) >= self.capacity

    def find_participant(self, participant_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.id == participant_id), None)

    def find_by_session(self, session_token: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.session_token == session_token), None)

    def is_creator(self, participant: Participant) -> bool:
        return self.created_by == participant.name

    def submissions_for(self, participant_id: str) -> List[Submission]:
        return self.submissions.get(participant_id, [])

    def has_accepted(self, participant_id: str, challenge_id: Optional[str] = None) -> bool:
        """Any accepted submission, restricted to ``challenge_id`` when given."""
        return any(
            s.status == ACCEPTED and (challenge_id is None or s.challenge_id == challenge_id)
            for s in self.submissions_for(participant_id)
        )

    def awaiting_verdict(self, participant_id: str, challenge_id: str) -> Optional[Submission]:
        # a pending record with an error set already failed in the judge
        return next(
            (s for s in self.submissions_for(participant_id)
             if s.challenge_id == challenge_id and s.status == PENDING and not s.error),
            None,
        )

    def find_submission(self, submission_id: str) -> Optional[Submission]:
        for subs in self.submissions.values():
            for sub in subs:
                if sub.id == submission_id:
                    return sub
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'createdBy': self.created_by,
            'topic': self.topic,
            'difficulty': self.difficulty,
            'capacity': self.capacity,
            'participantCount': len(self.participants),
            'currentChallenge': self.active_challenge.to_dict() if self.active_challenge else None,
            'createdAt': _iso(self.created_at),
            'lastActivity': _iso(self.last_activity),
        }

    def data_for_participant(self, participant_id: str):
        """Room snapshot plus the participant's own drafts and submissions."""
        payload = self.to_dict()
        payload['savedCode'] = self.saved_code.get(participant_id)
        payload['submissions'] = [s.to_dict() for s in self.submissions_for(participant_id)]
        return payload
