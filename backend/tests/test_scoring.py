import pytest

from live_trivia.services.rounds import ledger, scoring
from live_trivia.services.rounds.controller import controller
from live_trivia.services.rounds.errors import NotFound
from live_trivia.services.rounds.scoring import calculate_score


def test_answer_after_three_seconds():
    assert calculate_score(3000, 20000) == 1425


def test_score_bounds():
    assert calculate_score(0, 20000) == 1500
    assert calculate_score(20000, 20000) == 1000
    assert calculate_score(20001, 20000) == 0
    assert calculate_score(1500, 20000, is_correct=False) == 0


def test_score_never_increases_with_time():
    previous = calculate_score(0, 30000)
    for elapsed in range(0, 30001, 37):
        score = calculate_score(elapsed, 30000)
        assert 0 <= score <= 1500
        assert score <= previous
        previous = score


def test_bonus_floors_at_base_points():
    # 500 bonus points are gone after 20 s, longer timers still pay the base
    assert calculate_score(25000, 30000) == 1000


def _answer(clock, question_id, name, index, after):
    clock.advance(after)
    return ledger.submit_response(question_id, name, index)


def test_leaderboard_ranks_by_total_score(flask_app, clock, quiz):
    first, second = quiz['question_ids']
    controller.start_question(first, quiz['quiz_id'], 20)
    _answer(clock, first, 'Alice', 1, 3)     # 1425
    _answer(clock, first, 'Bob', 0, 1)       # wrong
    _answer(clock, first, 'Cara', 1, 1)      # 5 s in, 1375

    controller.start_question(second, quiz['quiz_id'], 20)
    _answer(clock, second, 'Bob', 1, 0)      # 1500
    _answer(clock, second, 'Alice', 2, 2)    # wrong

    board = scoring.get_leaderboard(quiz['quiz_id'])
    assert [e.player_name for e in board] == ['Bob', 'Alice', 'Cara']
    assert [e.total_score for e in board] == [1500, 1425, 1375]
    bob = board[0]
    assert bob.correct_count == 1
    # Average covers every answer, right or wrong
    assert bob.avg_time_ms == pytest.approx((4000 + 0) / 2)


def test_leaderboard_ties_keep_first_answer_first(flask_app, clock, quiz):
    first = quiz['question_ids'][0]
    controller.start_question(first, quiz['quiz_id'], 20)
    _answer(clock, first, 'Zed', 0, 1)
    _answer(clock, first, 'Amy', 2, 1)
    board = scoring.get_leaderboard(quiz['quiz_id'])
    assert [e.player_name for e in board] == ['Zed', 'Amy']
    assert all(e.total_score == 0 for e in board)


def test_leaderboard_limit_and_scope(flask_app, clock, quiz):
    first = quiz['question_ids'][0]
    other = controller.create_or_update_quiz('Other', 'أخرى')
    controller.start_question(first, quiz['quiz_id'], 20)
    for name in ['P1', 'P2', 'P3']:
        _answer(clock, first, name, 1, 1)

    assert len(scoring.get_leaderboard(quiz['quiz_id'], limit=2)) == 2
    assert scoring.get_leaderboard(other.id) == []


def test_clearing_responses_empties_the_leaderboard(flask_app, clock, quiz):
    first = quiz['question_ids'][0]
    controller.start_question(first, quiz['quiz_id'], 20)
    _answer(clock, first, 'Alice', 1, 2)
    assert scoring.get_leaderboard(quiz['quiz_id'])

    assert controller.clear_responses(quiz['quiz_id']) == 1
    assert scoring.get_leaderboard(quiz['quiz_id']) == []


def test_distribution_counts_and_winner(flask_app, clock, quiz):
    first = quiz['question_ids'][0]
    controller.start_question(first, quiz['quiz_id'], 20)
    _answer(clock, first, 'Alice', 1, 4)
    _answer(clock, first, 'Bob', 1, 1)
    _answer(clock, first, 'Cara', 3, 1)
    _answer(clock, first, 'Dan', 0, 1)

    dist = scoring.get_distribution(first)
    assert dist.counts == [1, 2, 0, 1]
    assert dist.total == 4
    assert dist.percentages == [25.0, 50.0, 0.0, 25.0]
    assert dist.correct_index == 1
    assert dist.winner == {'player_name': 'Alice', 'response_time_ms': 4000, 'score': 1400}


def test_distribution_without_answers(flask_app, quiz):
    dist = scoring.get_distribution(quiz['question_ids'][1])
    assert dist.counts == [0, 0, 0]
    assert dist.total == 0
    assert dist.winner is None


def test_distribution_unknown_question(flask_app):
    with pytest.raises(NotFound):
        scoring.get_distribution(999)
