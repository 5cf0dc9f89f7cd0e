from flask import Blueprint, current_app, jsonify, request

from arena.exceptions import ArenaError, Forbidden, InvalidInput, NotFound, RoomFull
from arena.services.rooms.scoring import leaderboard

rooms = Blueprint('rooms', __name__)

_STATUS_BY_ERROR = {
    NotFound: 404,
    Forbidden: 403,
    RoomFull: 409,
    InvalidInput: 400,
}


def _registry():
    return current_app.extensions['arena'].registry


def register_error_handlers(flask_app) -> None:
    @flask_app.errorhandler(ArenaError)
    def handle_arena_error(exc):
        status = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
        return jsonify({'error': exc.message, 'code': exc.code}), status


@rooms.route('/')
def index():
    return jsonify({'message': 'Arena rooms server', 'status': 'ok'})


@rooms.route('/health')
def health():
    return jsonify({'status': 'healthy'})


@rooms.route('/api/rooms', methods=['POST'])
def create_room():
    """
    Creates a room ahead of any join. The creator later joins under the same name.
    """
    data = request.get_json(silent=True) or {}
    capacity = data.get('capacity')
    if capacity is not None:
        try:
            capacity = int(capacity)
        except (TypeError, ValueError):
            raise InvalidInput('capacity must be an integer')
    room = _registry().create_room(
        data.get('createdBy'),
        topic=data.get('topic'),
        difficulty=data.get('difficulty'),
        capacity=capacity,
        room_id=data.get('roomId'),
    )
    return jsonify(room.to_dict()), 201


@rooms.route('/api/rooms', methods=['GET'])
def list_rooms():
    return jsonify([room.to_dict() for room in _registry().list_rooms()])


@rooms.route('/api/rooms/<string:room_id>', methods=['GET'])
def get_room(room_id):
    room = _registry().get_room(room_id)
    payload = room.to_dict()
    payload['users'] = [p.to_dict() for p in room.participants]
    return jsonify(payload)


@rooms.route('/api/rooms/<string:room_id>/leaderboard', methods=['GET'])
def get_leaderboard(room_id):
    room = _registry().get_room(room_id)
    return jsonify({'leaderboard': leaderboard(room)})
