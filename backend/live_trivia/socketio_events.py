from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from typing import Dict

from live_trivia import socketio
from live_trivia.services.rounds.bus import ANSWERS_CHANNEL, ROUND_CHANNEL, SOCKET_NAMESPACE, room_for
from live_trivia.services.rounds.ledger import count_responses
from live_trivia.services.rounds.store import get_round_state

# sid -> question id whose answer room the socket is in
_sid_to_question: Dict[str, int] = {}


def _get_sid() -> str:
    return request.sid  # type: ignore


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    _sid_to_question.pop(_get_sid(), None)


def handle_subscribe_round(data=None):
    """Join the round room and send the current snapshot.

    Clients call this on every (re)connect, so they always resume from the
    stored state rather than from whatever they last saw.
    """
    room = room_for(ROUND_CHANNEL)
    join_room(room)
    emit('round_state', get_round_state().to_dict())


def handle_subscribe_answers(data):
    raw = (data or {}).get('question_id')
    try:
        question_id = int(raw)
    except (TypeError, ValueError):
        emit('error', {'message': 'question_id is required'})
        return
    sid = _get_sid()
    previous = _sid_to_question.get(sid)
    if previous is not None and previous != question_id:
        leave_room(room_for(ANSWERS_CHANNEL, previous))
    room = room_for(ANSWERS_CHANNEL, question_id)
    join_room(room)
    _sid_to_question[sid] = question_id
    current_app.logger.info(f"[ws-subscribe] sid={sid} room={room}")
    emit('subscribed', {'room': room, 'question_id': question_id, 'count': count_responses(question_id)})


def handle_unsubscribe_answers(data=None):
    question_id = _sid_to_question.pop(_get_sid(), None)
    if question_id is None:
        return
    room = room_for(ANSWERS_CHANNEL, question_id)
    leave_room(room)
    emit('unsubscribed', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=SOCKET_NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=SOCKET_NAMESPACE)
    socketio.on_event('subscribe_round', handle_subscribe_round, namespace=SOCKET_NAMESPACE)
    socketio.on_event('subscribe_answers', handle_subscribe_answers, namespace=SOCKET_NAMESPACE)
    socketio.on_event('unsubscribe_answers', handle_unsubscribe_answers, namespace=SOCKET_NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=SOCKET_NAMESPACE)
