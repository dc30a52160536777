"""Socket.IO channels: live notifications and the per-job chat relay."""
import logging

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from auth import user_from_token

logger = logging.getLogger(__name__)

socketio = SocketIO()


def user_room(user_id):
    return f"user_{user_id}"


def role_room(role):
    return f"role_{role}"


def subscriber_count(room=None, namespace="/"):
    """Connections in ``room`` as the server sees them; ``None`` means all of them."""
    try:
        return sum(1 for _ in socketio.server.manager.get_participants(namespace, room))
    except KeyError:
        # nothing has ever connected on this namespace or joined this room
        return 0


def publish(notification):
    """Push a notification to its channel.

    A direct recipient wins over a role; with neither, every connected
    client gets it. Returns False, without emitting, when nobody is
    listening on the target channel.
    """
    if notification.user_id:
        event, room = f"notification_{notification.user_id}", user_room(notification.user_id)
    elif notification.recipient_role:
        event, room = f"notification_{notification.recipient_role}", role_room(notification.recipient_role)
    else:
        event, room = "new_notification", None

    if not subscriber_count(room):
        return False
    socketio.emit(event, notification.to_dict(), to=room)
    return True


@socketio.on("connect")
def on_connect(auth=None):
    token = (auth or {}).get("token") or request.args.get("token")
    if not token:
        logger.info("Anonymous socket connected: %s", request.sid)
        return

    user = user_from_token(token)
    if user is None:
        logger.info("Refused socket %s: bad token", request.sid)
        return False

    join_room(user_room(user.id))
    join_room(role_room(user.role))
    logger.info("User %s connected on socket %s", user.id, request.sid)


@socketio.on("disconnect")
def on_disconnect(reason=None):
    logger.info("Socket disconnected: %s", request.sid)


# ================= CHAT =================
@socketio.on("join_room")
def on_join(data):
    room = str((data or {}).get("jobId", ""))
    if not room:
        return
    join_room(room)
    logger.debug("Socket %s joined chat room %s", request.sid, room)


@socketio.on("leave_room")
def on_leave(data):
    room = str((data or {}).get("jobId", ""))
    if not room:
        return
    leave_room(room)
    logger.debug("Socket %s left chat room %s", request.sid, room)


@socketio.on("send_message")
def on_message(data):
    room = str((data or {}).get("jobId", ""))
    if not room:
        return
    # relayed to the other members only; nothing is kept
    emit("receive_message", data, to=room, include_self=False)
