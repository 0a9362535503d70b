import pytest
from sqlalchemy.exc import OperationalError

from conftest import MODERATOR_PASSWORD, OPTIONS
from live_trivia.services.rounds import ledger


def _create_quiz(client, headers=None):
    res = client.post('/api/quizzes', json={'title_en': 'Capitals', 'title_ar': 'العواصم'}, headers=headers)
    assert res.status_code == 201
    quiz = res.get_json()
    res = client.post(f"/api/quizzes/{quiz['id']}/questions", json={
        'question_en': 'What is the capital of France?',
        'question_ar': 'ما هي عاصمة فرنسا؟',
        'options': OPTIONS,
        'correct_index': 1,
    }, headers=headers)
    assert res.status_code == 201
    return quiz, res.get_json()


def test_index_and_health(client):
    assert client.get('/').status_code == 200
    res = client.get('/health')
    assert res.status_code == 200
    data = res.get_json()
    assert data['ok'] is True
    assert data['round_status'] == 'idle'


def test_round_state_starts_idle(client):
    res = client.get('/api/round')
    assert res.status_code == 200
    state = res.get_json()
    assert state['status'] == 'idle'
    assert state['question_id'] is None
    assert state['version'] == 0


def test_full_round_over_http(client, clock):
    quiz, question = _create_quiz(client)

    res = client.post('/api/round/start', json={'question_id': question['id'], 'quiz_id': quiz['id'], 'timer_sec': 20})
    assert res.status_code == 200
    state = res.get_json()
    assert state['status'] == 'active'
    assert state['started_at'] == clock.now()

    # The answer stays hidden while the question is live
    live = client.get(f"/api/questions/{question['id']}").get_json()
    assert 'correct_index' not in live
    assert len(live['options']) == 4

    clock.advance(3)
    res = client.post('/api/responses', json={
        'question_id': question['id'], 'player_name': 'Alice', 'selected_index': 1,
        # Client claims are ignored
        'is_correct': False, 'response_time_ms': 1,
    })
    assert res.status_code == 201
    response = res.get_json()
    assert response['is_correct'] is True
    assert response['response_time_ms'] == 3000

    res = client.post('/api/responses', json={'question_id': question['id'], 'player_name': 'Alice', 'selected_index': 2})
    assert res.status_code == 409
    assert res.get_json()['code'] == 'duplicate_answer'

    res = client.get(f"/api/questions/{question['id']}/responses/mine", query_string={'player_name': 'Alice'})
    assert res.status_code == 200
    assert res.get_json()['selected_index'] == 1
    assert client.get(f"/api/questions/{question['id']}/responses/mine", query_string={'player_name': 'Nobody'}).status_code == 404

    count = client.get(f"/api/questions/{question['id']}/responses/count").get_json()
    assert count == {'question_id': question['id'], 'count': 1}

    # No distribution while answers are still coming in
    assert client.get(f"/api/questions/{question['id']}/distribution").status_code == 400

    res = client.post('/api/round/status', json={'status': 'revealed'})
    assert res.status_code == 200
    assert res.get_json()['status'] == 'revealed'

    revealed = client.get(f"/api/questions/{question['id']}").get_json()
    assert revealed['correct_index'] == 1

    dist = client.get(f"/api/questions/{question['id']}/distribution").get_json()
    assert dist['counts'] == [0, 1, 0, 0]
    assert dist['winner']['player_name'] == 'Alice'
    assert dist['winner']['score'] == 1425

    res = client.post('/api/round/status', json={'status': 'leaderboard'})
    assert res.get_json()['status'] == 'leaderboard'
    board = client.get(f"/api/quizzes/{quiz['id']}/leaderboard").get_json()
    assert board == [{'player_name': 'Alice', 'total_score': 1425, 'correct_count': 1, 'avg_time_ms': 3000.0}]

    res = client.post('/api/round/status', json={'status': 'idle'})
    state = res.get_json()
    assert state['status'] == 'idle'
    assert state['question_id'] is None
    assert state['version'] == 4


def test_late_submission_over_http(client, clock):
    quiz, question = _create_quiz(client)
    client.post('/api/round/start', json={'question_id': question['id'], 'quiz_id': quiz['id'], 'timer_sec': 10})
    clock.advance(10.5)
    res = client.post('/api/responses', json={'question_id': question['id'], 'player_name': 'Bob', 'selected_index': 1})
    assert res.status_code == 410
    assert res.get_json()['code'] == 'late_submission'
    # The round itself is still active; only the moderator ends it
    assert client.get('/api/round').get_json()['status'] == 'active'


def test_invalid_transition_over_http(client):
    res = client.post('/api/round/status', json={'status': 'revealed'})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'invalid_transition'

    res = client.post('/api/round/status', json={})
    assert res.status_code == 400

    res = client.post('/api/round/status', json={'status': 'active'})
    assert res.status_code == 400

    res = client.post('/api/round/start', json={'question_id': 1})
    assert res.status_code == 400


def test_invalid_submission_over_http(client):
    quiz, question = _create_quiz(client)
    client.post('/api/round/start', json={'question_id': question['id'], 'quiz_id': quiz['id']})
    res = client.post('/api/responses', json={'question_id': question['id'], 'player_name': '', 'selected_index': 1})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'invalid_submission'
    res = client.post('/api/responses', json={'question_id': 999, 'player_name': 'Al', 'selected_index': 1})
    assert res.status_code == 404


def test_clear_responses_empties_leaderboard(client, clock):
    quiz, question = _create_quiz(client)
    client.post('/api/round/start', json={'question_id': question['id'], 'quiz_id': quiz['id']})
    clock.advance(1)
    client.post('/api/responses', json={'question_id': question['id'], 'player_name': 'Alice', 'selected_index': 1})
    assert client.get(f"/api/quizzes/{quiz['id']}/leaderboard").get_json()

    res = client.delete(f"/api/quizzes/{quiz['id']}/responses")
    assert res.status_code == 200
    assert res.get_json() == {'quiz_id': quiz['id'], 'deleted': 1}
    assert client.get(f"/api/quizzes/{quiz['id']}/leaderboard").get_json() == []

    # The same player may answer again once the ledger is cleared
    res = client.post('/api/responses', json={'question_id': question['id'], 'player_name': 'Alice', 'selected_index': 0})
    assert res.status_code == 201


def test_clear_all_responses(client):
    _create_quiz(client)
    _create_quiz(client)
    res = client.delete('/api/responses')
    assert res.status_code == 200
    data = res.get_json()
    assert data['ok'] is True
    assert len(data['cleared']) == 2


def test_clear_all_reports_partial_failure(monkeypatch, client):
    first, _ = _create_quiz(client)
    second, _ = _create_quiz(client)

    real_clear = ledger.clear_responses

    def flaky_clear(quiz_id):
        if quiz_id == second['id']:
            raise OperationalError('DELETE', {}, Exception('database is locked'))
        return real_clear(quiz_id)

    monkeypatch.setattr(ledger, 'clear_responses', flaky_clear)
    res = client.delete('/api/responses')
    assert res.status_code == 207
    data = res.get_json()
    assert data['ok'] is False
    assert data['cleared'] == {str(first['id']): 0}
    assert list(data['failed']) == [str(second['id'])]


@pytest.mark.parametrize('name', ['count', 'mine', 'a/b', 'Alice Smith'])
def test_own_response_lookup_for_any_name(client, name):
    quiz, question = _create_quiz(client)
    client.post('/api/round/start', json={'question_id': question['id'], 'quiz_id': quiz['id']})
    url = f"/api/questions/{question['id']}/responses/mine"

    assert client.get(url, query_string={'player_name': name}).status_code == 404

    res = client.post('/api/responses', json={'question_id': question['id'], 'player_name': name, 'selected_index': 1})
    assert res.status_code == 201
    res = client.get(url, query_string={'player_name': name})
    assert res.status_code == 200
    assert res.get_json()['player_name'] == name


def test_own_response_lookup_needs_a_name(client):
    _, question = _create_quiz(client)
    res = client.get(f"/api/questions/{question['id']}/responses/mine")
    assert res.status_code == 400
    assert res.get_json()['code'] == 'invalid_submission'


def test_leaderboard_limit_param(client):
    quiz, _ = _create_quiz(client)
    assert client.get(f"/api/quizzes/{quiz['id']}/leaderboard?limit=3").status_code == 200
    assert client.get(f"/api/quizzes/{quiz['id']}/leaderboard?limit=abc").status_code == 400


def test_quiz_crud(client):
    quiz, question = _create_quiz(client)
    res = client.post('/api/quizzes', json={'id': quiz['id'], 'title_en': 'Cities', 'title_ar': 'مدن'})
    assert res.status_code == 200
    assert res.get_json()['title_en'] == 'Cities'

    questions = client.get(f"/api/quizzes/{quiz['id']}/questions").get_json()
    assert [q['id'] for q in questions] == [question['id']]
    assert questions[0]['correct_index'] == 1

    res = client.post(f"/api/quizzes/{quiz['id']}/questions", json={
        'question_en': 'Q', 'question_ar': 'س', 'options': OPTIONS[:1], 'correct_index': 0,
    })
    assert res.status_code == 400

    assert client.delete(f"/api/questions/{question['id']}").status_code == 200
    assert client.delete(f"/api/quizzes/{quiz['id']}").status_code == 200
    assert client.get('/api/quizzes').get_json() == []
    assert client.delete(f"/api/quizzes/{quiz['id']}").status_code == 404


def test_moderator_password_required(protected_app):
    client = protected_app.test_client()
    headers = {'X-Moderator-Password': MODERATOR_PASSWORD}

    res = client.post('/api/quizzes', json={'title_en': 'Capitals', 'title_ar': 'العواصم'})
    assert res.status_code == 403
    assert res.get_json()['code'] == 'invalid_transition'

    res = client.post('/api/round/status', json={'status': 'idle'}, headers={'X-Moderator-Password': 'guess'})
    assert res.status_code == 403

    quiz, question = _create_quiz(client, headers=headers)
    res = client.post('/api/round/start', json={'question_id': question['id'], 'quiz_id': quiz['id']}, headers=headers)
    assert res.status_code == 200

    # Players and displays need no password
    res = client.post('/api/responses', json={'question_id': question['id'], 'player_name': 'Alice', 'selected_index': 1})
    assert res.status_code == 201
    assert client.get('/api/round').status_code == 200
    assert client.get(f"/api/questions/{question['id']}/responses").status_code == 403
    assert client.get(f"/api/questions/{question['id']}/responses", headers=headers).status_code == 200
