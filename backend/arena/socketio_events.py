import functools
import logging
from datetime import datetime, timezone

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from arena import socketio
from arena.broadcast import NAMESPACE, BroadcastGateway
from arena.events import (
    ChangeLanguage,
    EndChallenge,
    GenerateChallenge,
    GetLeaderboard,
    GetRoomInfo,
    GetUserSubmissions,
    JoinRoom,
    LeaveRoom,
    SaveCode,
    SetRoomTopic,
    SubmitSolution,
    parse_event,
)
from arena.exceptions import ArenaError, Forbidden, NotFound
from arena.models import ACCEPTED, Participant
from arena.services.rooms import RoomServices
from arena.services.rooms.scoring import compute_rating_deltas, determine_winner, leaderboard
from arena.services.rooms.stats import build_stats_payloads

logger = logging.getLogger(__name__)


def _services() -> RoomServices:
    return current_app.extensions['arena']


def _gateway() -> BroadcastGateway:
    return current_app.extensions['arena.broadcast']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _users(room):
    return [p.to_dict() for p in room.participants]


def _resolve(room_id: str):
    """Room and acting participant for the current connection."""
    registry = _services().registry
    room = registry.get_room(room_id)
    participant = registry.get_participant_by_connection(_get_sid())
    if not participant:
        raise NotFound('User session not found')
    if registry.get_room_for_connection(_get_sid()) != room.id:
        raise Forbidden('You are not a member of this room')
    return room, participant


def handle_connect(auth=None):
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_join_room(data):
    evt = parse_event(JoinRoom, data)
    services, gateway = _services(), _gateway()
    registry = services.registry
    sid = _get_sid()
    room = registry.get_room(evt.room_id)

    previous_room_id = registry.get_room_for_connection(sid)
    previous = registry.get_participant_by_connection(sid)
    participant = None
    reconnecting = False
    if previous_room_id == room.id:
        # same connection joining twice
        participant = previous
        reconnecting = participant is not None
    if participant is None and evt.session_id:
        participant = registry.reconnect(room.id, evt.session_id, sid)
        reconnecting = participant is not None
    if participant is None:
        # RoomFull here leaves the current seat untouched
        participant = registry.add_participant(
            room.id, Participant(name=evt.user_name, email=evt.user_email, connection_id=sid)
        )
        logger.info(f"[join] room={room.id} participant={participant.id} name={participant.name}")

    if previous_room_id and previous_room_id != room.id:
        # moved to another room; the old seat is kept for a reconnect
        leave_room(previous_room_id)
        if previous:
            registry.mark_disconnected(previous_room_id, previous.id)
            gateway.to_room(previous_room_id, 'user-disconnected', {
                'userId': previous.id,
                'userName': previous.name,
                'users': _users(registry.get_room(previous_room_id)),
            })
        logger.info(f"[move] sid={sid} from={previous_room_id} to={room.id}")

    join_room(room.id)
    users = _users(room)
    payload = room.data_for_participant(participant.id)
    payload.update({
        'user': participant.to_dict(),
        'sessionId': participant.session_token,
        'isCreator': room.is_creator(participant),
        'users': users,
    })
    emit('room-joined', payload)

    event = 'user-reconnected' if reconnecting else 'user-joined'
    gateway.to_room(room.id, event, {'user': participant.to_dict(), 'users': users}, skip_sid=sid)
    message = f'{participant.name} has reconnected!' if reconnecting else f'{participant.name} has joined the room.'
    gateway.notify(room.id, 'info', message)
    gateway.to_room(room.id, 'users-list-sync', {'users': users})


def handle_set_room_topic(data):
    evt = parse_event(SetRoomTopic, data)
    room, participant = _resolve(evt.room_id)
    _services().challenges.set_topic(room.id, evt.topic, participant)
    gateway = _gateway()
    gateway.to_room(room.id, 'room-topic-updated', {'topic': evt.topic, 'updatedBy': participant.name})
    gateway.notify(room.id, 'info', f"Topic changed to '{evt.topic}' by {participant.name}.")


def handle_generate_challenge(data):
    evt = parse_event(GenerateChallenge, data)
    room, participant = _resolve(evt.room_id)
    gateway = _gateway()
    result = _services().challenges.generate_challenge(room.id, evt.difficulty, evt.topic, participant)

    if not result.success:
        # keep the requester connected; the room only gets a notification
        gateway.notify(room.id, 'error', result.error)
        emit('ai-generation-failed', {'error': result.error, 'details': result.details})
        return

    gateway.to_room(room.id, 'new-challenge', {
        'challenge': result.challenge.to_dict(),
        'generatedBy': participant.name,
        'room': room.to_dict(),
        'cached': result.cached,
        'similarity': result.similarity,
        'source': result.source,
    })
    gateway.notify(room.id, 'success', f'New challenge generated by {participant.name}!')


def handle_save_code(data):
    evt = parse_event(SaveCode, data)
    room, participant = _resolve(evt.room_id)
    _services().submissions.save_code(room.id, participant.id, evt.code)
    emit('code-saved', {
        'userId': participant.id,
        'roomId': room.id,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


def _evaluation_callback(services: RoomServices, gateway: BroadcastGateway, participant_id: str):
    def on_complete(room_id, submission, error):
        try:
            room = services.registry.get_room(room_id)
        except NotFound:
            logger.info(f"[eval-drop] room={room_id} is gone")
            return
        # route to wherever the submitter is connected now
        participant = room.find_participant(participant_id)
        sid = participant.connection_id if participant else None
        if error:
            gateway.to_one(sid, 'error', error.to_dict())
            return

        gateway.to_one(sid, 'evaluation-result', {
            'submission': submission.to_dict(),
            'testResults': submission.test_results,
        })
        if submission.status == ACCEPTED:
            challenge = room.challenges.get(submission.challenge_id)
            if challenge and challenge.content_id:
                services.submissions.mark_solved(room_id, participant_id, challenge.content_id)

        name = participant.name if participant else 'A former participant'
        gateway.to_room(room_id, 'leaderboard-updated', {
            'leaderboard': leaderboard(room),
            'lastSubmission': {
                'userId': participant_id,
                'userName': name,
                'status': submission.status,
                'score': submission.score,
            },
        })
        if submission.status == ACCEPTED:
            gateway.notify(room_id, 'success', f'{name} passed all test cases!')
        else:
            gateway.notify(room_id, 'warning', f"{name}'s submission failed some test cases.")

    return on_complete


def handle_submit_solution(data):
    evt = parse_event(SubmitSolution, data)
    room, participant = _resolve(evt.room_id)
    services, gateway = _services(), _gateway()
    submission = services.submissions.submit(room.id, participant.id, evt.solution.model_dump())

    emit('solution-submitted', {
        'submission': submission.to_dict(),
        'message': 'Solution submitted successfully',
    })
    gateway.to_room(room.id, 'user-submitted', {
        'userId': participant.id,
        'userName': participant.name,
        'submissionId': submission.id,
        'submittedAt': submission.to_dict()['submittedAt'],
    }, skip_sid=_get_sid())
    gateway.notify(room.id, 'info', f'{participant.name} has submitted a solution.')

    services.scheduler.schedule(room.id, submission.id, _evaluation_callback(services, gateway, participant.id))


def handle_end_challenge(data):
    evt = parse_event(EndChallenge, data)
    room, participant = _resolve(evt.room_id)
    services, gateway = _services(), _gateway()
    room = services.challenges.end_challenge(room.id, requester=participant)

    challenge_id = room.ended_challenge_id
    final_leaderboard = leaderboard(room)
    winner = determine_winner(room, challenge_id)
    deltas = compute_rating_deltas(room, winner, services.rating_policy)

    gateway.notify(room.id, 'warning', f'The challenge has been ended by {participant.name}.')
    if winner:
        gateway.notify(room.id, 'success', f'{winner.participant.name} wins the challenge!')
    else:
        gateway.notify(room.id, 'info', 'Challenge ended with no winners. Better luck next time!')

    gateway.to_room(room.id, 'challenge-ended', {
        'room': room.to_dict(),
        'finalLeaderboard': final_leaderboard,
        'endedBy': participant.name,
        'winner': winner.to_dict() if winner else None,
        'ratingChanges': deltas,
    })

    logger.info(f"[end] room={room.id} winner={winner.participant.id if winner else None}; updating user stats")
    services.stats.publish(build_stats_payloads(room, winner, deltas))


def handle_get_user_submissions(data):
    evt = parse_event(GetUserSubmissions, data)
    room, participant = _resolve(evt.room_id)
    target = evt.user_id or participant.id
    submissions = _services().submissions.get_submissions(room.id, target)
    emit('user-submissions', {'userId': target, 'submissions': [s.to_dict() for s in submissions]})


def handle_get_leaderboard(data):
    evt = parse_event(GetLeaderboard, data)
    room, _ = _resolve(evt.room_id)
    emit('leaderboard-data', {'leaderboard': leaderboard(room)})


def handle_change_language(data):
    evt = parse_event(ChangeLanguage, data)
    room, participant = _resolve(evt.room_id)
    _services().registry.set_language(room.id, participant.id, evt.language)
    _gateway().to_room(room.id, 'user-language-changed', {
        'userId': participant.id,
        'userName': participant.name,
        'language': evt.language,
    }, skip_sid=_get_sid())


def handle_get_room_info(data):
    evt = parse_event(GetRoomInfo, data)
    room, _ = _resolve(evt.room_id)
    emit('room-info', {'room': room.to_dict(), 'users': _users(room)})


def handle_leave_room(data):
    evt = parse_event(LeaveRoom, data)
    room, participant = _resolve(evt.room_id)
    gateway = _gateway()
    _services().registry.remove_permanently(room.id, participant.id)
    leave_room(room.id)
    gateway.to_room(room.id, 'user-left', {
        'userId': participant.id,
        'userName': participant.name,
        'users': _users(room),
    })
    gateway.notify(room.id, 'warning', f'{participant.name} has left the room.')
    emit('room-left', {'message': 'Successfully left the room', 'roomId': room.id})
    logger.info(f"[leave] room={room.id} participant={participant.id}")


def handle_disconnect(reason=None):
    try:
        services, gateway = _services(), _gateway()
        removed = services.registry.remove_temporarily(_get_sid())
        if not removed:
            return
        participant, room_id = removed
        room = services.registry.get_room(room_id)
        gateway.to_room(room_id, 'user-disconnected', {
            'userId': participant.id,
            'userName': participant.name,
            'users': _users(room),
        }, skip_sid=_get_sid())
        gateway.notify(room_id, 'warning', f'{participant.name} has disconnected.')
        logger.info(f"[disconnect] room={room_id} participant={participant.id} reason={reason}")
    except Exception:
        logger.error('[disconnect] error handling disconnect', exc_info=True)


def _guarded(event: str, handler):
    """Report failures to the originating connection only; never disconnect."""
    @functools.wraps(handler)
    def wrapper(data=None):
        try:
            return handler(data)
        except ArenaError as e:
            logger.info(f"[{event}] rejected sid={_get_sid()} code={e.code} message={e.message}")
            emit('error', e.to_dict())
        except Exception:
            logger.error(f"[{event}] unexpected error sid={_get_sid()}", exc_info=True)
            emit('error', {'message': 'An unexpected error occurred. Please try again.', 'code': 'INTERNAL_ERROR'})
    return wrapper


EVENT_HANDLERS = {
    'join-room': handle_join_room,
    'set-room-topic': handle_set_room_topic,
    'generate-challenge': handle_generate_challenge,
    'save-code': handle_save_code,
    'submit-solution': handle_submit_solution,
    'end-challenge': handle_end_challenge,
    'get-user-submissions': handle_get_user_submissions,
    'get-leaderboard': handle_get_leaderboard,
    'change-language': handle_change_language,
    'get-room-info': handle_get_room_info,
    'leave-room': handle_leave_room,
}


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    for event, handler in EVENT_HANDLERS.items():
        socketio.on_event(event, _guarded(event, handler), namespace=NAMESPACE)
