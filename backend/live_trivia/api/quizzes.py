from flask import Blueprint, jsonify, request
from live_trivia.models import Question, Quiz
from live_trivia.services.rounds.controller import controller
from live_trivia.services.rounds.errors import NotFound, RoundError
from .common import error_response, moderator_required


quizzes = Blueprint('quizzes', __name__)
quizzes.register_error_handler(RoundError, error_response)


@quizzes.route('/quizzes', methods=['GET'])
def list_quizzes():
    return jsonify([q.to_dict() for q in Quiz.query.order_by(Quiz.created_at, Quiz.id).all()])


@quizzes.route('/quizzes', methods=['POST'])
@moderator_required
def save_quiz():
    data = request.get_json(silent=True) or {}
    quiz_id = data.get('id')
    quiz = controller.create_or_update_quiz(data.get('title_en'), data.get('title_ar'), quiz_id=quiz_id)
    return jsonify(quiz.to_dict()), (200 if quiz_id else 201)


@quizzes.route('/quizzes/<int:quiz_id>', methods=['DELETE'])
@moderator_required
def delete_quiz(quiz_id):
    controller.delete_quiz(quiz_id)
    return jsonify({'message': 'Quiz deleted'})


@quizzes.route('/quizzes/<int:quiz_id>/questions', methods=['GET'])
@moderator_required
def list_questions(quiz_id):
    if Quiz.query.filter_by(id=quiz_id).first() is None:
        raise NotFound('Quiz not found')
    questions = Question.query.filter_by(quiz_id=quiz_id).order_by(Question.sort_order, Question.id).all()
    return jsonify([q.to_dict() for q in questions])


@quizzes.route('/quizzes/<int:quiz_id>/questions', methods=['POST'])
@moderator_required
def save_question(quiz_id):
    data = request.get_json(silent=True) or {}
    question_id = data.get('id')
    question = controller.create_or_update_question(
        quiz_id,
        data.get('question_en'),
        data.get('question_ar'),
        data.get('options'),
        data.get('correct_index', 0),
        sort_order=data.get('sort_order', 0),
        question_id=question_id,
    )
    return jsonify(question.to_dict()), (200 if question_id else 201)


@quizzes.route('/questions/<int:question_id>', methods=['DELETE'])
@moderator_required
def delete_question(question_id):
    controller.delete_question(question_id)
    return jsonify({'message': 'Question deleted'})


@quizzes.route('/quizzes/<int:quiz_id>/responses', methods=['DELETE'])
@moderator_required
def clear_quiz_responses(quiz_id):
    deleted = controller.clear_responses(quiz_id)
    return jsonify({'quiz_id': quiz_id, 'deleted': deleted})


@quizzes.route('/responses', methods=['DELETE'])
@moderator_required
def clear_all_responses():
    report = controller.clear_all_responses()
    # 207: some quizzes cleared, some did not
    return jsonify(report.to_dict()), (200 if report.ok else 207)
