"""Typed payloads for inbound Socket.IO events.

Each event body is validated at the boundary; anything malformed is turned
into ``InvalidInput`` before it reaches the room services.
"""
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import InvalidInput

class EventPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class RoomEvent(EventPayload):
    room_id: str = Field(alias='roomId', min_length=1)


class JoinRoom(RoomEvent):
    user_name: str = Field(alias='userName', min_length=1)
    user_email: str = Field(alias='userEmail', min_length=1)
    session_id: Optional[str] = Field(default=None, alias='sessionId')


class SetRoomTopic(RoomEvent):
    topic: str = Field(min_length=1)


class GenerateChallenge(RoomEvent):
    difficulty: str = Field(default='medium', min_length=1)
    topic: Optional[str] = None


class SaveCode(RoomEvent):
    code: str = ''


class Solution(EventPayload):
    # leading whitespace in code is significant
    model_config = ConfigDict(populate_by_name=True)

    language: str = Field(min_length=1)
    code: str = Field(min_length=1)


class SubmitSolution(RoomEvent):
    solution: Solution


class EndChallenge(RoomEvent):
    pass


class GetUserSubmissions(RoomEvent):
    user_id: Optional[str] = Field(default=None, alias='userId')


class GetLeaderboard(RoomEvent):
    pass


class ChangeLanguage(RoomEvent):
    language: str = Field(min_length=1)


class GetRoomInfo(RoomEvent):
    pass


class LeaveRoom(RoomEvent):
    pass


P = TypeVar('P', bound=EventPayload)


def parse_event(model: Type[P], data) -> P:
    """Validate a raw event body into ``model`` or raise ``InvalidInput``."""
    if not isinstance(data, dict):
        raise InvalidInput('Event payload must be an object')
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        fields = sorted({'.'.join(str(p) for p in err['loc']) for err in exc.errors()})
        raise InvalidInput(f"Invalid payload: {', '.join(fields)}", details={'fields': fields})
