import logging
import threading
from typing import Dict, List, Optional, Tuple

from arena.exceptions import InvalidInput, NotFound, RoomFull
from arena.models import Participant, Room, generate_room_code

logger = logging.getLogger(__name__)


class RoomRegistry:
    """In-memory directory of rooms and of the connections bound to them.

    The session token is the durable identity of a participant; the
    connection id only routes calls and changes on every reconnect.
    """

    def __init__(self, default_capacity: int = 4, max_capacity: int = 10):
        self.default_capacity = default_capacity
        self.max_capacity = max_capacity
        self.lock = threading.RLock()
        self._rooms: Dict[str, Room] = {}
        # connection id -> (room id, participant id)
        self._connections: Dict[str, Tuple[str, str]] = {}

    def create_room(self, created_by: str, topic: Optional[str] = None, difficulty: Optional[str] = None,
                    capacity: Optional[int] = None, room_id: Optional[str] = None) -> Room:
        if not created_by:
            raise InvalidInput('createdBy is required')
        if capacity is None:
            capacity = self.default_capacity
        if capacity < 1 or capacity > self.max_capacity:
            raise InvalidInput(f'Capacity must be between 1 and {self.max_capacity}')
        with self.lock:
            if room_id is None:
                room_id = generate_room_code()
                while room_id in self._rooms:
                    room_id = generate_room_code()
            elif room_id in self._rooms:
                raise InvalidInput(f'Room {room_id} already exists')
            room = Room(id=room_id, created_by=created_by, topic=topic,
                        difficulty=difficulty, capacity=capacity)
            self._rooms[room_id] = room
        logger.info(f"[room-create] room={room_id} created_by={created_by} capacity={capacity}")
        return room

    def get_room(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if not room:
            raise NotFound('Room not found')
        return room

    def list_rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def add_participant(self, room_id: str, participant: Participant) -> Participant:
        with self.lock:
            room = self.get_room(room_id)
            if room.is_full():
                raise RoomFull(room_id, room.capacity)
            room.participants.append(participant)
            room.submissions.setdefault(participant.id, [])
            if participant.connection_id:
                self._connections[participant.connection_id] = (room_id, participant.id)
            room.touch()
        return participant

    def reconnect(self, room_id: str, session_token: str, new_connection_id: str) -> Optional[Participant]:
        with self.lock:
            room = self.get_room(room_id)
            participant = room.find_by_session(session_token)
            if not participant:
                return None
            if participant.connection_id:
                self._connections.pop(participant.connection_id, None)
            participant.connection_id = new_connection_id
            participant.connected = True
            self._connections[new_connection_id] = (room_id, participant.id)
            room.touch()
        logger.info(f"[reconnect] room={room_id} participant={participant.id}")
        return participant

    def get_participant_by_connection(self, connection_id: str) -> Optional[Participant]:
        entry = self._connections.get(connection_id)
        if not entry:
            return None
        room = self._rooms.get(entry[0])
        return room.find_participant(entry[1]) if room else None

    def get_room_for_connection(self, connection_id: str) -> Optional[str]:
        entry = self._connections.get(connection_id)
        return entry[0] if entry else None

    def set_language(self, room_id: str, participant_id: str, language: str) -> Participant:
        with self.lock:
            room = self.get_room(room_id)
            participant = room.find_participant(participant_id)
            if not participant:
                raise NotFound('Participant not found in room')
            participant.language = language
            room.touch()
        return participant

    def remove_temporarily(self, connection_id: str) -> Optional[Tuple[Participant, str]]:
        """Mark the participant behind ``connection_id`` as disconnected.

        Membership and submission history stay in place for a later reconnect.
        """
        with self.lock:
            entry = self._connections.get(connection_id)
            if not entry:
                return None
            room_id, participant_id = entry
            participant = self.mark_disconnected(room_id, participant_id)
            self._connections.pop(connection_id, None)
        if not participant:
            return None
        return participant, room_id

    def mark_disconnected(self, room_id: str, participant_id: str) -> Optional[Participant]:
        """Detach a participant from its connection; the binding is dropped only if it still points here."""
        with self.lock:
            room = self._rooms.get(room_id)
            participant = room.find_participant(participant_id) if room else None
            if not participant:
                return None
            if self._connections.get(participant.connection_id) == (room_id, participant_id):
                self._connections.pop(participant.connection_id, None)
            participant.connected = False
            participant.connection_id = None
            room.touch()
        return participant

    def remove_permanently(self, room_id: str, participant_id: str) -> Optional[Participant]:
        """Erase the participant from membership; its submissions stay with the room."""
        with self.lock:
            room = self.get_room(room_id)
            participant = room.find_participant(participant_id)
            if not participant:
                return None
            room.participants.remove(participant)
            if participant.connection_id:
                self._connections.pop(participant.connection_id, None)
            room.touch()
        return participant

    def clear(self) -> None:
        with self.lock:
            count = len(self._rooms)
            self._rooms.clear()
            self._connections.clear()
        logger.info(f"[rooms-reset] dropped {count} room(s)")
