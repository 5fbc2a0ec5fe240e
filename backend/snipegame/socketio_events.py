from flask_socketio import join_room, leave_room, emit

from snipegame import socketio
from snipegame.services.notifications import NAMESPACE, room_for

# Collections a client may follow
SUBSCRIBABLE = ('users', 'groups', 'snipes')


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def _room_from(data):
    collection = (data or {}).get('collection')
    record_id = (data or {}).get('id')
    if collection not in SUBSCRIBABLE or not record_id:
        emit('error', {'message': f"collection must be one of {', '.join(SUBSCRIBABLE)} and id is required"})
        return None
    return room_for(collection, str(record_id))


def handle_subscribe(data):
    room = _room_from(data)
    if room is None:
        return
    join_room(room)
    emit('subscribed', {'room': room})


def handle_unsubscribe(data):
    room = _room_from(data)
    if room is None:
        return
    leave_room(room)
    emit('unsubscribed', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on the '/ws' namespace. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('subscribe', handle_subscribe, namespace=namespace)
        socketio.on_event('unsubscribe', handle_unsubscribe, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
