from flask import Blueprint, jsonify, request, current_app
from live_trivia.models import Question
from live_trivia.services.rounds import ledger, scoring
from live_trivia.services.rounds.controller import controller
from live_trivia.services.rounds.errors import InvalidSubmission, InvalidTransition, NotFound, RoundError
from live_trivia.services.rounds.store import get_round_state
from .common import error_response, moderator_required, parse_limit


rounds = Blueprint('rounds', __name__)
rounds.register_error_handler(RoundError, error_response)


def _is_live(question_id: int) -> bool:
    state = get_round_state()
    return state.status == 'active' and state.question_id == question_id


@rounds.route('/round', methods=['GET'])
def get_round():
    return jsonify(get_round_state().to_dict())


@rounds.route('/round/start', methods=['POST'])
@moderator_required
def start_round():
    data = request.get_json(silent=True) or {}
    state = controller.start_question(data.get('question_id'), data.get('quiz_id'), data.get('timer_sec'))
    return jsonify(state.to_dict())


@rounds.route('/round/status', methods=['POST'])
@moderator_required
def update_round_status():
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if not status:
        raise InvalidTransition('status is required')
    state = controller.update_status(status)
    return jsonify(state.to_dict())


@rounds.route('/responses', methods=['POST'])
def submit_response():
    data = request.get_json(silent=True) or {}
    # Correctness and latency are decided here, whatever the client claims
    response = ledger.submit_response(data.get('question_id'), data.get('player_name'), data.get('selected_index'))
    return jsonify(response.to_dict()), 201


@rounds.route('/questions/<int:question_id>', methods=['GET'])
def get_question(question_id):
    question = Question.query.filter_by(id=question_id).first()
    if question is None:
        raise NotFound('Question not found')
    return jsonify(question.to_dict(include_answer=not _is_live(question.id)))


@rounds.route('/questions/<int:question_id>/responses', methods=['GET'])
@moderator_required
def list_responses(question_id):
    return jsonify([r.to_dict() for r in ledger.list_responses(question_id)])


@rounds.route('/questions/<int:question_id>/responses/count', methods=['GET'])
def count_responses(question_id):
    return jsonify({'question_id': question_id, 'count': ledger.count_responses(question_id)})


@rounds.route('/questions/<int:question_id>/responses/mine', methods=['GET'])
def get_player_response(question_id):
    # Name travels in the query so no player name can collide with a route segment
    player_name = (request.args.get('player_name') or '').strip()
    if not player_name:
        raise InvalidSubmission('player_name is required')
    response = ledger.find_response(question_id, player_name)
    if response is None:
        raise NotFound('No response from this player')
    return jsonify(response.to_dict())


@rounds.route('/questions/<int:question_id>/distribution', methods=['GET'])
def get_distribution(question_id):
    if _is_live(question_id):
        raise RoundError('Distribution is available once the question is revealed')
    return jsonify(scoring.get_distribution(question_id).to_dict())


@rounds.route('/quizzes/<int:quiz_id>/leaderboard', methods=['GET'])
def get_leaderboard(quiz_id):
    limit = parse_limit(current_app.config.get('LEADERBOARD_LIMIT', 10))
    return jsonify([e.to_dict() for e in scoring.get_leaderboard(quiz_id, limit)])
