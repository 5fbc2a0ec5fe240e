from typing import Any, Dict, Optional

from snipegame import socketio

NAMESPACE = '/ws'


def room_for(collection: str, record_id: str) -> str:
    return f"{collection}:{record_id}"


def publish_change(collection: str, record_id: str, payload: Optional[Dict[str, Any]] = None) -> None:
    """Tell subscribers of ``<collection>:<id>`` that the record changed."""
    body = {'collection': collection, 'id': record_id}
    if payload:
        body.update(payload)
    socketio.emit('record_changed', body, to=room_for(collection, record_id), namespace=NAMESPACE)


def notify_sniped(snipe) -> None:
    """Push the dodge prompt to the target's user room."""
    socketio.emit(
        'sniped',
        {
            'snipe_id': snipe.id,
            'sniper_id': snipe.sniper_id,
            'group_id': snipe.group_id,
            'timestamp': snipe.timestamp,
        },
        to=room_for('users', snipe.target_id),
        namespace=NAMESPACE,
    )
