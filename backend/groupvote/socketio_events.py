from flask_socketio import join_room, leave_room, emit
from groupvote import socketio
from groupvote.models import Game


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def _room_for(data):
    game_id = (data or {}).get('game_id')
    try:
        return f"game:{int(game_id)}"
    except (TypeError, ValueError):
        emit('error', {'message': 'game_id is required'})
        return None


def handle_join_game(data):
    room = _room_for(data)
    if not room:
        return
    game = Game.query.filter_by(id=int(data['game_id'])).first()
    if not game:
        emit('error', {'message': 'Game not found'})
        return
    join_room(room)
    emit('joined', {'room': room, 'status': game.status, 'current_round': game.current_round})


def handle_leave_game(data):
    room = _room_for(data)
    if not room:
        return
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def broadcast_state(game_id: int) -> None:
    """Tell everyone watching the game to refetch its state."""
    socketio.emit('state_update', {'game_id': game_id}, to=f"game:{game_id}", namespace='/ws')


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for namespace in (['/ws', '/'] if testing else ['/ws']):
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_game', handle_join_game, namespace=namespace)
        socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
