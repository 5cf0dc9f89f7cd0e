import pytest

from arena.exceptions import InvalidInput, NotFound, RoomFull
from arena.models import Participant, Submission


def _participant(name, sid):
    return Participant(name=name, email=f'{name.lower()}@example.com', connection_id=sid)


def test_create_and_get_room(registry):
    room = registry.create_room('Alice', topic='graphs')
    assert registry.get_room(room.id) is room
    assert room.capacity == 4
    assert len(room.id) == 6


def test_create_room_rejects_bad_input(registry):
    with pytest.raises(InvalidInput):
        registry.create_room('')
    with pytest.raises(InvalidInput):
        registry.create_room('Alice', capacity=11)
    registry.create_room('Alice', room_id='R1')
    with pytest.raises(InvalidInput):
        registry.create_room('Bob', room_id='R1')


def test_get_unknown_room(registry):
    with pytest.raises(NotFound):
        registry.get_room('nope')


def test_capacity_is_never_exceeded(registry):
    room = registry.create_room('Alice', capacity=2)
    registry.add_participant(room.id, _participant('Alice', 's1'))
    registry.add_participant(room.id, _participant('Bob', 's2'))
    with pytest.raises(RoomFull):
        registry.add_participant(room.id, _participant('Cara', 's3'))
    assert [p.name for p in room.participants] == ['Alice', 'Bob']
    assert registry.get_participant_by_connection('s3') is None


def test_reconnect_keeps_identity_and_skips_capacity(registry):
    room = registry.create_room('Alice', capacity=1)
    alice = registry.add_participant(room.id, _participant('Alice', 's1'))
    token, pid, email = alice.session_token, alice.id, alice.email

    assert registry.remove_temporarily('s1') == (alice, room.id)
    assert alice.connected is False
    assert room.participants == [alice]

    # room is at capacity, reconnect still succeeds
    again = registry.reconnect(room.id, token, 's9')
    assert again is alice
    assert (again.id, again.email, again.session_token) == (pid, email, token)
    assert again.connection_id == 's9'
    assert again.connected is True
    assert registry.get_participant_by_connection('s9') is alice
    assert registry.get_participant_by_connection('s1') is None


def test_reconnect_unknown_token_returns_none(registry):
    room = registry.create_room('Alice')
    assert registry.reconnect(room.id, 'not-a-token', 's1') is None


def test_remove_temporarily_unknown_connection(registry):
    assert registry.remove_temporarily('ghost') is None


def test_remove_permanently_frees_seat(registry):
    room = registry.create_room('Alice', capacity=1)
    alice = registry.add_participant(room.id, _participant('Alice', 's1'))
    assert registry.remove_permanently(room.id, alice.id) is alice
    assert room.participants == []
    assert registry.get_participant_by_connection('s1') is None
    registry.add_participant(room.id, _participant('Bob', 's2'))
    assert len(room.participants) == 1


def test_remove_permanently_keeps_submissions(registry):
    room = registry.create_room('Alice')
    bob = registry.add_participant(room.id, _participant('Bob', 's2'))
    sub = Submission(participant_id=bob.id, challenge_id='c1', code='x', language='python')
    room.submissions[bob.id].append(sub)
    registry.remove_permanently(room.id, bob.id)
    assert room.find_submission(sub.id) is sub
    assert bob not in room.participants


def test_mark_disconnected_leaves_newer_binding(registry):
    first = registry.create_room('Alice', room_id='A')
    second = registry.create_room('Bob', room_id='B')
    alice = registry.add_participant(first.id, _participant('Alice', 's1'))
    moved = registry.add_participant(second.id, _participant('Alice', 's1'))
    registry.mark_disconnected(first.id, alice.id)
    assert alice.connected is False
    assert alice.connection_id is None
    assert registry.get_participant_by_connection('s1') is moved


def test_set_language(registry):
    room = registry.create_room('Alice')
    alice = registry.add_participant(room.id, _participant('Alice', 's1'))
    registry.set_language(room.id, alice.id, 'java')
    assert alice.language == 'java'
    with pytest.raises(NotFound):
        registry.set_language(room.id, 'missing', 'java')


def test_clear_drops_everything(registry):
    room = registry.create_room('Alice')
    registry.add_participant(room.id, _participant('Alice', 's1'))
    registry.clear()
    assert registry.list_rooms() == []
    assert registry.get_participant_by_connection('s1') is None
