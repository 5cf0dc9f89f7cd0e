from datetime import datetime, timedelta, timezone

from arena.models import ACCEPTED, REJECTED, Challenge, Participant, Room, Submission
from arena.services.rooms.scoring import (
    RatingPolicy,
    compute_rating_deltas,
    determine_winner,
    leaderboard,
)
from arena.services.rooms.stats import StatsPublisher, build_stats_payloads

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _room(*names):
    room = Room(created_by=names[0], capacity=4, difficulty='easy', id='R1')
    for name in names:
        p = Participant(name=name, email=f'{name.lower()}@example.com')
        room.participants.append(p)
        room.submissions[p.id] = []
    challenge = Challenge(content_id='content-1', difficulty='easy', topic='arrays')
    room.challenges[challenge.id] = challenge
    return room, challenge


def _add(room, name, challenge, status, score, minutes=0):
    p = next(p for p in room.participants if p.name == name)
    sub = Submission(participant_id=p.id, challenge_id=challenge.id, code='x', language='python',
                     status=status, score=score, evaluated_at=T0 + timedelta(minutes=minutes))
    room.submissions[p.id].append(sub)
    return sub


def test_leaderboard_orders_by_accepted_score():
    room, ch = _room('Alice', 'Bob', 'Cara')
    _add(room, 'Bob', ch, REJECTED, 50)
    _add(room, 'Bob', ch, ACCEPTED, 100)
    _add(room, 'Cara', ch, ACCEPTED, 80)
    rows = leaderboard(room)
    assert [r['name'] for r in rows] == ['Bob', 'Cara', 'Alice']
    assert rows[0]['score'] == 100
    assert rows[0]['submissionsCount'] == 2
    assert rows[0]['acceptedCount'] == 1
    assert rows[2] == {
        'participantId': room.participants[0].id, 'name': 'Alice', 'score': 0,
        'submissionsCount': 0, 'acceptedCount': 0, 'connected': True,
    }


def test_leaderboard_is_pure():
    room, ch = _room('Alice', 'Bob')
    _add(room, 'Alice', ch, ACCEPTED, 100)
    _add(room, 'Bob', ch, ACCEPTED, 100)
    assert leaderboard(room) == leaderboard(room)
    assert [r['name'] for r in leaderboard(room)] == ['Alice', 'Bob']


def test_winner_is_highest_accepted_score():
    room, ch = _room('Alice', 'Bob', 'Cara')
    _add(room, 'Bob', ch, ACCEPTED, 90)
    _add(room, 'Cara', ch, ACCEPTED, 100, minutes=5)
    _add(room, 'Alice', ch, REJECTED, 99)
    winner = determine_winner(room, ch.id)
    assert winner.participant.name == 'Cara'
    assert winner.to_dict()['score'] == 100


def test_tie_goes_to_earliest_acceptance():
    room, ch = _room('Alice', 'Bob')
    _add(room, 'Alice', ch, ACCEPTED, 100, minutes=10)
    _add(room, 'Bob', ch, ACCEPTED, 100, minutes=2)
    assert determine_winner(room, ch.id).participant.name == 'Bob'


def test_winner_only_counts_the_ended_challenge():
    room, ch = _room('Alice', 'Bob')
    other = Challenge(content_id='content-2', difficulty='hard', topic=None)
    room.challenges[other.id] = other
    _add(room, 'Alice', other, ACCEPTED, 100)
    assert determine_winner(room, ch.id) is None
    assert determine_winner(room, None) is None


def test_rating_deltas_with_winner():
    room, ch = _room('Alice', 'Bob', 'Cara')
    _add(room, 'Bob', ch, ACCEPTED, 100, minutes=1)
    _add(room, 'Cara', ch, ACCEPTED, 100, minutes=3)
    winner = determine_winner(room, ch.id)
    deltas = compute_rating_deltas(room, winner)
    alice, bob, cara = room.participants
    assert deltas == {alice.id: -5, bob.id: 25, cara.id: 10}


def test_earlier_solve_in_room_counts_for_rating():
    room, first = _room('Alice', 'Bob', 'Cara')
    second = Challenge(content_id='content-2', difficulty='hard', topic=None)
    room.challenges[second.id] = second
    _add(room, 'Bob', first, ACCEPTED, 100)
    _add(room, 'Cara', second, ACCEPTED, 100)
    winner = determine_winner(room, second.id)
    assert winner.participant.name == 'Cara'
    alice, bob, cara = room.participants
    assert compute_rating_deltas(room, winner) == {alice.id: -5, bob.id: 10, cara.id: 25}


def test_no_winner_means_no_rating_change():
    room, ch = _room('Alice', 'Bob')
    _add(room, 'Bob', ch, REJECTED, 50)
    winner = determine_winner(room, ch.id)
    assert winner is None
    assert set(compute_rating_deltas(room, winner).values()) == {0}


def test_rating_policy_is_replaceable():
    room, ch = _room('Alice', 'Bob')
    _add(room, 'Bob', ch, ACCEPTED, 100)
    winner = determine_winner(room, ch.id)
    deltas = compute_rating_deltas(room, winner, RatingPolicy(win=50, solved=0, unsolved=0))
    assert deltas[room.participants[1].id] == 50
    assert deltas[room.participants[0].id] == 0


def test_stats_payloads():
    room, ch = _room('Alice', 'Bob')
    _add(room, 'Bob', ch, REJECTED, 50)
    _add(room, 'Bob', ch, ACCEPTED, 100)
    winner = determine_winner(room, ch.id)
    deltas = compute_rating_deltas(room, winner)
    payloads = {p['email']: p['stats'] for p in build_stats_payloads(room, winner, deltas)}
    assert payloads['bob@example.com'] == {
        'won': True,
        'ratingChange': 25,
        'solvedProblems': ['content-1'],
        'problemDifficulties': ['easy'],
        'submissions': 2,
        'acceptedSubmissions': 1,
        'score': 100,
    }
    assert payloads['alice@example.com']['won'] is False
    assert payloads['alice@example.com']['ratingChange'] == -5
    assert payloads['alice@example.com']['solvedProblems'] == []


def test_stats_publisher_continues_after_failure(backends):
    profiles = backends.profiles
    profiles.failing_emails.add('alice@example.com')
    publisher = StatsPublisher(socketio=None, profiles=profiles, inline=True)
    results = publisher.publish([
        {'email': 'alice@example.com', 'stats': {'ratingChange': 0}},
        {'email': 'bob@example.com', 'stats': {'ratingChange': 0}},
    ])
    assert results == [('alice@example.com', False), ('bob@example.com', True)]
    assert 'bob@example.com' in profiles.stats


def test_stats_publisher_spawns_one_task_per_payload(backends):
    spawned = []

    class FakeSocketIO:
        def start_background_task(self, target, *args):
            spawned.append((target, args))

    publisher = StatsPublisher(FakeSocketIO(), backends.profiles)
    assert publisher.publish([{'email': 'a@example.com', 'stats': {}}, {'email': 'b@example.com', 'stats': {}}]) == []
    assert len(spawned) == 2
    for target, args in spawned:
        assert target(*args) is True
    assert set(backends.profiles.stats) == {'a@example.com', 'b@example.com'}
