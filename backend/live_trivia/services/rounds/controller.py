"""The round controller: the only writer of round state.

Moderator actions go through one process-wide ``RoundController`` which
serialises them with a lock, validates the requested transition, and lets
the store commit and broadcast the result.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from live_trivia import db
from live_trivia.models import Question, Quiz, Response, RoundState
from . import ledger, store
from .errors import InvalidTransition, NotFound, RoundError

MIN_OPTIONS = 2
MAX_OPTIONS = 6

# target status -> statuses it may be entered from ('active' is entered via start_question)
ALLOWED_TRANSITIONS = {
    'revealed': {'active'},
    'leaderboard': {'active', 'revealed'},
    'idle': set(RoundState.STATUSES),
}


@dataclass
class ClearReport:
    cleared: Dict[int, int] = field(default_factory=dict)  # quiz id -> responses deleted
    failed: Dict[int, str] = field(default_factory=dict)  # quiz id -> error message

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self):
        return {
            'ok': self.ok,
            'cleared': {str(k): v for k, v in self.cleared.items()},
            'failed': {str(k): v for k, v in self.failed.items()},
        }


class RoundController:
    def __init__(self) -> None:
        self._lock = threading.RLock()

    # ---- Round transitions ----

    def start_question(self, question_id, quiz_id, timer_sec=None) -> RoundState:
        if not question_id or not quiz_id:
            raise InvalidTransition('question_id and quiz_id are required')
        if timer_sec is None:
            timer_sec = current_app.config.get('DEFAULT_TIMER_SEC', 20)
        try:
            timer_sec = int(timer_sec)
        except (TypeError, ValueError):
            raise InvalidTransition('timer_sec must be a positive integer')
        if timer_sec <= 0:
            raise InvalidTransition('timer_sec must be a positive integer')

        with self._lock:
            question = Question.query.filter_by(id=question_id).first()
            if question is None:
                raise InvalidTransition('Question not found')
            if question.quiz_id != int(quiz_id):
                raise InvalidTransition('Question does not belong to quiz')
            if len(question.options) < MIN_OPTIONS:
                raise InvalidTransition('Question needs at least two options')
            state = store.set_active(question, question.quiz_id, timer_sec)
            current_app.logger.info(f"[round-start] question={question.id} quiz={question.quiz_id} timer={timer_sec}s")
            return state

    def update_status(self, status: str) -> RoundState:
        if status == 'active':
            raise InvalidTransition('Use start_question to activate a question')
        if status not in ALLOWED_TRANSITIONS:
            raise InvalidTransition(f'Unknown status {status!r}')
        with self._lock:
            state = store.get_round_state()
            if state.status not in ALLOWED_TRANSITIONS[status]:
                raise InvalidTransition(f'Cannot move from {state.status} to {status}')
            return store.set_status(status)

    def reveal(self) -> RoundState:
        return self.update_status('revealed')

    def show_leaderboard(self) -> RoundState:
        return self.update_status('leaderboard')

    def stop(self) -> RoundState:
        return self.update_status('idle')

    # ---- Responses ----

    def clear_responses(self, quiz_id: int) -> int:
        with self._lock:
            return ledger.clear_responses(quiz_id)

    def clear_all_responses(self, quiz_ids: Optional[Iterable[int]] = None) -> ClearReport:
        """Clear responses quiz by quiz.

        Not atomic: a failure on one quiz is recorded and the loop moves on,
        so earlier quizzes stay cleared.
        """
        if quiz_ids is None:
            quiz_ids = [q.id for q in Quiz.query.order_by(Quiz.created_at, Quiz.id).all()]
        report = ClearReport()
        for quiz_id in quiz_ids:
            try:
                report.cleared[quiz_id] = self.clear_responses(quiz_id)
            except (RoundError, SQLAlchemyError) as exc:
                db.session.rollback()
                current_app.logger.warning(f"[responses-clear-failed] quiz={quiz_id} error={exc}")
                report.failed[quiz_id] = str(exc)
        return report

    # ---- Content ----

    def create_or_update_quiz(self, title_en: str, title_ar: str, quiz_id=None) -> Quiz:
        title_en = (title_en or '').strip()
        title_ar = (title_ar or '').strip()
        if not title_en or not title_ar:
            raise RoundError('Both titles are required')
        with self._lock:
            if quiz_id:
                quiz = Quiz.query.filter_by(id=quiz_id).first()
                if quiz is None:
                    raise NotFound('Quiz not found')
            else:
                quiz = Quiz()
            quiz.title_en = title_en
            quiz.title_ar = title_ar
            db.session.add(quiz)
            db.session.commit()
            return quiz

    def delete_quiz(self, quiz_id: int) -> None:
        with self._lock:
            quiz = Quiz.query.filter_by(id=quiz_id).first()
            if quiz is None:
                raise NotFound('Quiz not found')
            state = store.get_round_state()
            if state.quiz_id == quiz.id:
                state.quiz_id = None
                store.set_status('idle')
            question_ids = [q.id for q in Question.query.filter_by(quiz_id=quiz.id).all()]
            try:
                if question_ids:
                    Response.query.filter(Response.question_id.in_(question_ids)).delete(synchronize_session=False)
                Question.query.filter_by(quiz_id=quiz.id).delete()
                db.session.delete(quiz)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            current_app.logger.info(f"[quiz-deleted] quiz={quiz_id} questions={len(question_ids)}")

    def create_or_update_question(self, quiz_id, question_en, question_ar, options, correct_index,
                                  sort_order=0, question_id=None) -> Question:
        question_en = (question_en or '').strip()
        question_ar = (question_ar or '').strip()
        if not question_en or not question_ar:
            raise RoundError('Both question texts are required')
        options = _clean_options(options)
        try:
            correct_index = int(correct_index)
            sort_order = int(sort_order or 0)
        except (TypeError, ValueError):
            raise RoundError('correct_index and sort_order must be integers')
        if not 0 <= correct_index < len(options):
            raise RoundError('correct_index is out of range')

        with self._lock:
            if Quiz.query.filter_by(id=quiz_id).first() is None:
                raise NotFound('Quiz not found')
            if question_id:
                question = Question.query.filter_by(id=question_id).first()
                if question is None:
                    raise NotFound('Question not found')
                state = store.get_round_state()
                if state.status != 'idle' and state.question_id == question.id:
                    raise InvalidTransition('Question is in the current round; stop the round before editing it')
            else:
                question = Question()
            question.quiz_id = int(quiz_id)
            question.question_en = question_en
            question.question_ar = question_ar
            question.options = options
            question.correct_index = correct_index
            question.sort_order = sort_order
            db.session.add(question)
            db.session.commit()
            return question

    def delete_question(self, question_id: int) -> None:
        with self._lock:
            question = Question.query.filter_by(id=question_id).first()
            if question is None:
                raise NotFound('Question not found')
            if store.get_round_state().question_id == question.id:
                store.set_status('idle')
            try:
                Response.query.filter_by(question_id=question.id).delete()
                db.session.delete(question)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise


def _clean_options(options):
    if not isinstance(options, (list, tuple)):
        raise RoundError('options must be a list')
    if not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
        raise RoundError(f'Questions need between {MIN_OPTIONS} and {MAX_OPTIONS} options')
    cleaned = []
    for opt in options:
        opt = opt or {}
        en = str(opt.get('en') or '').strip()
        ar = str(opt.get('ar') or '').strip()
        if not en or not ar:
            raise RoundError('Fill in all option texts')
        cleaned.append({'en': en, 'ar': ar})
    return cleaned


controller = RoundController()
