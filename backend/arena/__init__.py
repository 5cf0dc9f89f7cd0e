from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, backends=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'
    # credentials cannot be combined with a wildcard origin
    CORS(flask_app, supports_credentials=allowed_origins != '*', origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Room state lives for the lifetime of the app object
    from arena.broadcast import BroadcastGateway
    from arena.services.backends import Backends
    from arena.services.rooms import RoomServices
    if backends is None:
        backends = Backends.from_config(flask_app.config)
    services = RoomServices(socketio, backends, flask_app.config)
    flask_app.extensions['arena'] = services
    flask_app.extensions['arena.broadcast'] = BroadcastGateway(socketio)

    from arena.api.rooms import rooms, register_error_handlers
    flask_app.register_blueprint(rooms)
    register_error_handlers(flask_app)

    # Register Socket.IO event handlers
    from arena.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('rooms-reset')
    def rooms_reset_command():
        """Drops every room held by this process."""
        services.reset()
        click.echo('All rooms have been dropped.')

    @click.command('rooms-create')
    @click.option('--created-by', required=True, help='Display name of the room creator.')
    @click.option('--capacity', type=int, default=None)
    @click.option('--topic', default=None)
    @click.option('--difficulty', default=None)
    def rooms_create_command(created_by, capacity, topic, difficulty):
        """Creates a room and prints its id."""
        room = services.registry.create_room(created_by, topic=topic, difficulty=difficulty, capacity=capacity)
        click.echo(room.id)

    flask_app.cli.add_command(rooms_reset_command)
    flask_app.cli.add_command(rooms_create_command)

    return flask_app
