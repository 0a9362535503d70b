from flask import current_app
from sqlalchemy.exc import IntegrityError

from live_trivia import db
from live_trivia.models import Question, RoundState
from .bus import ROUND_CHANNEL, bus
from .clock import get_clock
from .shuffle import new_seed


def get_round_state() -> RoundState:
    """Return the singleton round record, creating it idle on first use."""
    state = RoundState.query.filter_by(id=RoundState.SINGLETON_ID).first()
    if state is not None:
        return state
    state = RoundState(
        id=RoundState.SINGLETON_ID,
        status='idle',
        timer_sec=int(current_app.config.get('DEFAULT_TIMER_SEC', 20)),
        shuffle_seed=0,
        version=0,
    )
    db.session.add(state)
    try:
        db.session.commit()
    except IntegrityError:
        # Another worker created it first
        db.session.rollback()
        state = RoundState.query.filter_by(id=RoundState.SINGLETON_ID).first()
    return state


def set_active(question: Question, quiz_id: int, timer_sec: int) -> RoundState:
    state = get_round_state()
    state.status = 'active'
    state.question_id = question.id
    state.quiz_id = quiz_id
    state.timer_sec = int(timer_sec)
    state.shuffle_seed = new_seed()
    state.started_at = get_clock().now()
    return _commit_and_publish(state)


def set_status(status: str) -> RoundState:
    state = get_round_state()
    state.status = status
    if status == 'idle':
        state.question_id = None
        state.started_at = None
    return _commit_and_publish(state)


def _commit_and_publish(state: RoundState) -> RoundState:
    state.version = int(state.version or 0) + 1
    db.session.add(state)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(
        f"[round-state] status={state.status} question={state.question_id} quiz={state.quiz_id} "
        f"timer={state.timer_sec}s seed={state.shuffle_seed} version={state.version}"
    )
    bus.publish(ROUND_CHANNEL, RoundState.SINGLETON_ID, state.to_dict())
    return state
