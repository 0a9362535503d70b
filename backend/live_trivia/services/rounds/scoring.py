from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from live_trivia.models import Question, Response
from .errors import NotFound

BASE_POINTS = 1000
MAX_SPEED_BONUS = 500
BONUS_STEP_MS = 40


def calculate_score(elapsed_ms: int, timer_ms: int, is_correct: bool = True) -> int:
    """Points for one answer.

    Correct answers earn 1000 plus a speed bonus of up to 500 that drops by
    one point every 40 ms. Wrong answers and answers outside the timer earn 0.
    """
    if not is_correct or elapsed_ms > timer_ms:
        return 0
    return BASE_POINTS + max(0, MAX_SPEED_BONUS - int(elapsed_ms) // BONUS_STEP_MS)


def score_response(response: Response) -> int:
    return calculate_score(response.response_time_ms, int(response.timer_sec) * 1000, response.is_correct)


@dataclass
class LeaderboardEntry:
    player_name: str
    total_score: int = 0
    correct_count: int = 0
    avg_time_ms: float = 0.0

    def to_dict(self):
        return asdict(self)


def get_leaderboard(quiz_id: int, limit: Optional[int] = 10) -> List[LeaderboardEntry]:
    responses = (
        Response.query.join(Question, Response.question_id == Question.id)
        .filter(Question.quiz_id == quiz_id)
        .order_by(Response.id)
        .all()
    )
    entries: Dict[str, LeaderboardEntry] = {}
    total_time: Dict[str, int] = {}
    answered: Dict[str, int] = {}
    for r in responses:
        entry = entries.setdefault(r.player_name, LeaderboardEntry(player_name=r.player_name))
        total_time[r.player_name] = total_time.get(r.player_name, 0) + r.response_time_ms
        answered[r.player_name] = answered.get(r.player_name, 0) + 1
        if r.is_correct:
            entry.total_score += score_response(r)
            entry.correct_count += 1
    for name, entry in entries.items():
        entry.avg_time_ms = total_time[name] / answered[name]

    # sorted() is stable, so ties keep storage order
    ranked = sorted(entries.values(), key=lambda e: e.total_score, reverse=True)
    if limit is not None and limit >= 0:
        ranked = ranked[:limit]
    return ranked


@dataclass
class Distribution:
    question_id: int
    correct_index: int
    counts: List[int]
    percentages: List[float]
    total: int
    winner: Optional[dict] = None

    def to_dict(self):
        return asdict(self)


def get_distribution(question_id: int) -> Distribution:
    """Per-option answer counts and the fastest correct answer for a question."""
    question = Question.query.filter_by(id=question_id).first()
    if question is None:
        raise NotFound('Question not found')
    responses = Response.query.filter_by(question_id=question_id).order_by(Response.response_time_ms, Response.id).all()

    counts = [0] * len(question.options)
    for r in responses:
        if 0 <= r.selected_index < len(counts):
            counts[r.selected_index] += 1
    total = len(responses)
    percentages = [(c / total * 100.0) if total else 0.0 for c in counts]

    winner = None
    correct = [r for r in responses if r.is_correct]
    if correct:
        fastest = correct[0]
        winner = {
            'player_name': fastest.player_name,
            'response_time_ms': fastest.response_time_ms,
            'score': score_response(fastest),
        }
    return Distribution(
        question_id=question.id,
        correct_index=question.correct_index,
        counts=counts,
        percentages=percentages,
        total=total,
        winner=winner,
    )
