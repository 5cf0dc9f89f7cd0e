NAMESPACE = '/ws'

NOTIFICATION_TYPES = ('info', 'success', 'warning', 'error')


class BroadcastGateway:
    """Fan-out of room events over Socket.IO. Owns no room state."""

    def __init__(self, socketio, namespace: str = NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def to_room(self, room_id: str, event: str, payload: dict, skip_sid=None) -> None:
        self.socketio.emit(event, payload, to=room_id, skip_sid=skip_sid, namespace=self.namespace)

    def to_one(self, sid: str, event: str, payload: dict) -> None:
        if not sid:
            return
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)

    def notify(self, room_id: str, category: str, message: str) -> None:
        if category not in NOTIFICATION_TYPES:
            category = 'info'
        self.to_room(room_id, 'notification', {'type': category, 'message': message})
