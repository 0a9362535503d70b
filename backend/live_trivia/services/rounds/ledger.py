"""Answer ledger: at most one response per (question, participant).

The write is the arbiter of both uniqueness and timeliness. Elapsed time is
measured here, at the moment of the write, against the round's start time.
"""

from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from live_trivia import db
from live_trivia.models import Question, Quiz, Response
from .bus import ANSWERS_CHANNEL, bus
from .clock import elapsed_ms, get_clock
from .errors import DuplicateAnswer, InvalidSubmission, LateSubmission, NotFound
from .store import get_round_state

MAX_NAME_LENGTH = 64


def find_response(question_id: int, player_name: str) -> Optional[Response]:
    return Response.query.filter_by(question_id=question_id, player_name=player_name).first()


def list_responses(question_id: int) -> List[Response]:
    return Response.query.filter_by(question_id=question_id).order_by(Response.response_time_ms, Response.id).all()


def count_responses(question_id: int) -> int:
    return Response.query.filter_by(question_id=question_id).count()


def submit_response(question_id: int, player_name: str, selected_index: int) -> Response:
    name = (player_name or '').strip()
    if not name:
        raise InvalidSubmission('player_name is required')
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidSubmission(f'player_name must be at most {MAX_NAME_LENGTH} characters')

    question = Question.query.filter_by(id=question_id).first()
    if question is None:
        raise NotFound('Question not found')
    try:
        index = int(selected_index)
    except (TypeError, ValueError):
        raise InvalidSubmission('selected_index must be an integer')
    if not 0 <= index < len(question.options):
        raise InvalidSubmission('selected_index is out of range')

    if find_response(question.id, name) is not None:
        current_app.logger.info(f"[answer-duplicate] question={question.id} player={name!r}")
        raise DuplicateAnswer()

    state = get_round_state()
    now = get_clock().now()
    if state.status != 'active' or state.question_id != question.id or state.started_at is None:
        current_app.logger.info(f"[answer-closed] question={question.id} player={name!r} round_status={state.status}")
        raise LateSubmission('Question is not accepting answers')

    elapsed = elapsed_ms(state.started_at, now)
    deadline_ms = int(state.timer_sec) * 1000 + int(current_app.config.get('SUBMISSION_GRACE_MS', 0))
    if elapsed > deadline_ms:
        current_app.logger.info(f"[answer-late] question={question.id} player={name!r} elapsed={elapsed}ms deadline={deadline_ms}ms")
        raise LateSubmission()

    response = Response(
        question_id=question.id,
        player_name=name,
        selected_index=index,
        is_correct=(index == question.correct_index),
        response_time_ms=elapsed,
        timer_sec=int(state.timer_sec),
        created_at=now,
    )
    db.session.add(response)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race against a concurrent submission for the same pair
        db.session.rollback()
        current_app.logger.info(f"[answer-duplicate] question={question.id} player={name!r} (constraint)")
        raise DuplicateAnswer()

    current_app.logger.info(
        f"[answer] question={question.id} player={name!r} index={index} correct={response.is_correct} elapsed={elapsed}ms"
    )
    bus.publish(ANSWERS_CHANNEL, question.id, response.to_dict())
    return response


def clear_responses(quiz_id: int) -> int:
    """Delete every response to the quiz's questions. Returns the number removed."""
    if Quiz.query.filter_by(id=quiz_id).first() is None:
        raise NotFound('Quiz not found')
    question_ids = [q.id for q in Question.query.filter_by(quiz_id=quiz_id).all()]
    if not question_ids:
        return 0
    try:
        deleted = Response.query.filter(Response.question_id.in_(question_ids)).delete(synchronize_session=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f"[responses-cleared] quiz={quiz_id} deleted={deleted}")
    return deleted
