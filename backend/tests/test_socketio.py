from live_trivia import socketio
from live_trivia.services.rounds import ledger
from live_trivia.services.rounds.controller import controller


def _named(received, name):
    return [pkt['args'][0] for pkt in received if pkt['name'] == name]


def test_socket_connect_and_snapshot(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')

    sio_client.emit('subscribe_round', namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'connected' for pkt in received)
    states = _named(received, 'round_state')
    assert states and states[-1]['status'] == 'idle'


def test_round_changes_are_pushed(client, sio_client, quiz):
    sio_client.emit('subscribe_round', namespace='/ws')
    sio_client.get_received('/ws')  # flush

    question_id = quiz['question_ids'][0]
    res = client.post('/api/round/start', json={'question_id': question_id, 'quiz_id': quiz['quiz_id'], 'timer_sec': 20})
    assert res.status_code == 200
    client.post('/api/round/status', json={'status': 'revealed'})

    states = _named(sio_client.get_received('/ws'), 'round_state')
    assert [s['status'] for s in states] == ['active', 'revealed']
    assert states[0]['question_id'] == question_id
    assert states[1]['version'] > states[0]['version']


def test_answer_inserts_reach_their_room_only(flask_app, clock, sio_client, quiz):
    first, second = quiz['question_ids']
    other_client = socketio.test_client(flask_app, namespace='/ws')

    sio_client.emit('subscribe_answers', {'question_id': first}, namespace='/ws')
    other_client.emit('subscribe_answers', {'question_id': second}, namespace='/ws')
    subscribed = _named(sio_client.get_received('/ws'), 'subscribed')
    assert subscribed == [{'room': f'answers:{first}', 'question_id': first, 'count': 0}]
    other_client.get_received('/ws')

    controller.start_question(first, quiz['quiz_id'], 20)
    clock.advance(2)
    ledger.submit_response(first, 'Alice', 1)

    inserts = _named(sio_client.get_received('/ws'), 'answer_inserted')
    assert len(inserts) == 1
    assert inserts[0]['player_name'] == 'Alice'
    assert inserts[0]['response_time_ms'] == 2000
    assert _named(other_client.get_received('/ws'), 'answer_inserted') == []
    other_client.disconnect(namespace='/ws')


def test_switching_answer_rooms(clock, sio_client, quiz):
    first, second = quiz['question_ids']
    sio_client.emit('subscribe_answers', {'question_id': first}, namespace='/ws')
    sio_client.emit('subscribe_answers', {'question_id': second}, namespace='/ws')
    sio_client.get_received('/ws')

    controller.start_question(first, quiz['quiz_id'], 20)
    ledger.submit_response(first, 'Alice', 1)
    assert _named(sio_client.get_received('/ws'), 'answer_inserted') == []

    sio_client.emit('unsubscribe_answers', namespace='/ws')
    assert _named(sio_client.get_received('/ws'), 'unsubscribed') == [{'room': f'answers:{second}'}]


def test_subscribe_answers_requires_question(sio_client):
    sio_client.emit('subscribe_answers', {}, namespace='/ws')
    errors = _named(sio_client.get_received('/ws'), 'error')
    assert errors == [{'message': 'question_id is required'}]


def test_ping(sio_client):
    sio_client.emit('ping', {'t': 1}, namespace='/ws')
    assert _named(sio_client.get_received('/ws'), 'pong') == [{'t': 1}]
