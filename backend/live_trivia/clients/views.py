"""Role projections of the shared round state.

Views receive typed events from a ``RoundObserver`` and keep a small,
render-ready model of what their screen shows. Nothing here decides round
transitions; the observer does that once for all roles.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from live_trivia.services.rounds.errors import (
    ConnectionFailure,
    DuplicateAnswer,
    LateSubmission,
    RoundError,
)
from live_trivia.services.rounds.scoring import calculate_score

logger = logging.getLogger(__name__)

LETTERS = 'ABCDEF'
URGENT_SECONDS = 5
LEADERBOARD_SIZE = 10


def shuffled_options(question: Dict[str, Any], shuffle_map: List[int]) -> List[Dict[str, Any]]:
    options = question.get('options') or []
    return [
        {
            'letter': LETTERS[position],
            'original_index': original,
            'en': options[original].get('en'),
            'ar': options[original].get('ar'),
        }
        for position, original in enumerate(shuffle_map)
    ]


class RoundView:
    role = 'observer'
    tick_interval = 0.25
    wants_answers = False

    def __init__(self):
        self.observer = None
        self.screen: Optional[str] = None
        self.history: List[str] = []
        self.error: Optional[str] = None
        self.remaining: Optional[float] = None
        self.leaderboard: List[Dict[str, Any]] = []

    @property
    def gateway(self):
        return self.observer.gateway

    def bind(self, observer) -> None:
        self.observer = observer

    def handle(self, event) -> None:
        handler = getattr(self, f'on_{event.kind}', None)
        if handler is not None:
            handler(event)

    def show(self, screen: str) -> None:
        if screen == self.screen:
            return
        logger.info(f"[{self.role}] screen {self.screen} -> {screen}")
        self.screen = screen
        self.history.append(screen)

    @property
    def urgent(self) -> bool:
        return self.remaining is not None and math.ceil(self.remaining) <= URGENT_SECONDS

    def on_tick(self, event) -> None:
        self.remaining = event.remaining

    def on_connection_lost(self, event) -> None:
        # Keep the current screen; the observer re-renders after it reconnects
        self.error = event.message

    def _load_leaderboard(self, state) -> List[Dict[str, Any]]:
        if not state.get('quiz_id'):
            return []
        try:
            return self.gateway.get_leaderboard(state['quiz_id'], LEADERBOARD_SIZE)
        except ConnectionFailure as exc:
            self.error = exc.message
            return []


class ParticipantView(RoundView):
    """What a player's phone shows, plus the one write a player makes."""
    role = 'participant'
    tick_interval = 0.25

    def __init__(self, player_name: str):
        super().__init__()
        player_name = (player_name or '').strip()
        if not player_name:
            raise ValueError('player_name is required')
        self.player_name = player_name
        self.options: List[Dict[str, Any]] = []
        self.has_answered = False
        self.my_response: Optional[Dict[str, Any]] = None
        # submitted | already_answered | time_expired | time_up | connection_error
        self.feedback: Optional[str] = None
        self.result: Optional[Dict[str, Any]] = None

    def _reset_round(self) -> None:
        self.options = []
        self.has_answered = False
        self.my_response = None
        self.feedback = None
        self.result = None
        self.remaining = None

    def on_waiting(self, event) -> None:
        self._reset_round()
        self.leaderboard = []
        self.show('waiting')

    def on_question_shown(self, event) -> None:
        self._reset_round()
        self.error = None
        question = event.question
        try:
            existing = self.gateway.find_response(question['id'], self.player_name)
        except ConnectionFailure as exc:
            self.error = exc.message
            existing = None
        if existing is not None:
            self.has_answered = True
            self.my_response = existing
            self.feedback = 'already_answered'
            self.show('answered')
            return
        self.options = shuffled_options(question, event.shuffle_map)
        self.show('question')

    def on_expired(self, event) -> None:
        if not self.has_answered:
            self.has_answered = True
            self.feedback = 'time_up'
            self.show('answered')

    def submit(self, position: int) -> Optional[str]:
        """Answer with the option shown at ``position``. Returns the resulting feedback."""
        observer = self.observer
        with observer._lock:
            state = observer.state
            if self.has_answered or self.screen != 'question' or not state or state.get('status') != 'active':
                return self.feedback
            if not 0 <= position < len(observer.shuffle_map):
                raise ValueError(f'No option at position {position}')
            if observer.remaining() <= 0:
                self.has_answered = True
                self.feedback = 'time_up'
                self.show('answered')
                return self.feedback
            question_id = state['question_id']
            version = state.get('version')
            original_index = observer.shuffle_map[position]
            # Claimed before the write so a second tap is a no-op
            self.has_answered = True

        # The write runs unlocked; ticks and broadcasts keep flowing meanwhile
        response = None
        error = None
        try:
            response = self.gateway.submit_response(question_id, self.player_name, original_index)
        except DuplicateAnswer:
            feedback = 'already_answered'
        except LateSubmission:
            feedback = 'time_expired'
        except ConnectionFailure as exc:
            feedback = 'connection_error'
            error = exc.message
        else:
            feedback = 'submitted'

        with observer._lock:
            if (observer.state or {}).get('version') != version:
                # The round moved on while the write was in flight; the new screen stands
                return feedback
            self.feedback = feedback
            if feedback == 'connection_error':
                # Not terminal: the player may tap again, nothing retries on its own
                self.has_answered = False
                self.error = error
                return feedback
            self.my_response = response
            self.show('answered')
            return feedback

    def on_revealed(self, event) -> None:
        question = event.question
        options = question.get('options') or []
        correct_index = question.get('correct_index')
        response = self.my_response
        if response is None:
            try:
                response = self.gateway.find_response(question['id'], self.player_name)
            except ConnectionFailure as exc:
                self.error = exc.message
        result = {
            'correct_index': correct_index,
            'correct_option': options[correct_index] if correct_index is not None and 0 <= correct_index < len(options) else None,
            'answered': response is not None,
            'is_correct': bool(response and response.get('is_correct')),
            'points': 0,
            'response_time_ms': response.get('response_time_ms') if response else None,
        }
        if response is not None:
            timer_sec = response.get('timer_sec') or event.state.get('timer_sec') or 0
            result['points'] = calculate_score(response['response_time_ms'], int(timer_sec) * 1000, bool(response.get('is_correct')))
        self.my_response = response
        self.result = result
        self.show('revealed')

    def on_leaderboard_shown(self, event) -> None:
        entries = self._load_leaderboard(event.state)
        self.leaderboard = [dict(e, is_me=(e.get('player_name') == self.player_name)) for e in entries]
        self.show('leaderboard')


class DisplayView(RoundView):
    """The shared screen: question, countdown ring, live count, results."""
    role = 'display'
    tick_interval = 0.1
    wants_answers = True

    def __init__(self):
        super().__init__()
        self.options: List[Dict[str, Any]] = []
        self.response_count = 0
        self.fraction = 0.0
        self.distribution: List[Dict[str, Any]] = []
        self.winner: Optional[Dict[str, Any]] = None

    def on_waiting(self, event) -> None:
        self.options = []
        self.response_count = 0
        self.remaining = None
        self.fraction = 0.0
        self.distribution = []
        self.winner = None
        self.leaderboard = []
        self.show('waiting')

    def on_question_shown(self, event) -> None:
        question = event.question
        self.options = shuffled_options(question, event.shuffle_map)
        self.distribution = []
        self.winner = None
        self.remaining = float(event.state.get('timer_sec') or 0)
        self.fraction = 1.0
        try:
            self.response_count = self.gateway.count_responses(question['id'])
        except ConnectionFailure as exc:
            self.error = exc.message
            self.response_count = 0
        self.show('question')

    def on_answer_received(self, event) -> None:
        self.response_count += 1

    def on_tick(self, event) -> None:
        self.remaining = event.remaining
        self.fraction = event.fraction

    def on_expired(self, event) -> None:
        self.remaining = 0.0
        self.fraction = 0.0

    def on_revealed(self, event) -> None:
        question = event.question
        self.options = shuffled_options(question, event.shuffle_map)
        try:
            dist = self.gateway.get_distribution(question['id'])
        except (ConnectionFailure, RoundError) as exc:
            self.error = exc.message
            dist = {'counts': [], 'percentages': [], 'total': 0, 'winner': None}
        counts = dist.get('counts') or []
        percentages = dist.get('percentages') or []
        correct_index = question.get('correct_index')
        rows = []
        for opt in self.options:
            original = opt['original_index']
            rows.append({
                'letter': opt['letter'],
                'original_index': original,
                'count': counts[original] if original < len(counts) else 0,
                'percentage': percentages[original] if original < len(percentages) else 0.0,
                'is_correct': original == correct_index,
            })
        self.distribution = rows
        self.response_count = dist.get('total', 0)
        self.winner = dist.get('winner')
        self.show('revealed')

    def on_leaderboard_shown(self, event) -> None:
        self.leaderboard = self._load_leaderboard(event.state)
        self.show('leaderboard')


class ModeratorView(RoundView):
    """Moderator console: status, controls, live response list.

    Control buttons are disabled optimistically when pressed. The broadcast
    that follows a successful request re-syncs them; a failed request
    reverts them at once and keeps the error for display.
    """
    role = 'moderator'
    tick_interval = 0.25
    wants_answers = True

    def __init__(self):
        super().__init__()
        self.status = 'idle'
        self.buttons = self._buttons_for('idle')
        self.responses: List[Dict[str, Any]] = []
        self.error_code: Optional[str] = None

    @staticmethod
    def _buttons_for(status: str) -> Dict[str, bool]:
        return {
            'start': True,
            'reveal': status == 'active',
            'leaderboard': status in ('active', 'revealed'),
            'stop': status != 'idle',
            'clear': True,
        }

    def _sync(self, state) -> None:
        self.status = (state or {}).get('status') or 'idle'
        self.buttons = self._buttons_for(self.status)

    @property
    def response_count(self) -> int:
        return len(self.responses)

    def on_waiting(self, event) -> None:
        self._sync(event.state)
        self.responses = []
        self.leaderboard = []
        self.show('waiting')

    def on_question_shown(self, event) -> None:
        self._sync(event.state)
        self._reload_responses(event.question['id'])
        self.show('question')

    def on_answer_received(self, event) -> None:
        if all(r.get('id') != event.response.get('id') for r in self.responses):
            self.responses.append(event.response)

    def on_revealed(self, event) -> None:
        self._sync(event.state)
        # Inserts racing the reveal are dropped by the observer; the list read is complete
        self._reload_responses(event.question['id'])
        self.show('revealed')

    def on_leaderboard_shown(self, event) -> None:
        self._sync(event.state)
        self.leaderboard = self._load_leaderboard(event.state)
        self.show('leaderboard')

    def _reload_responses(self, question_id: int) -> None:
        try:
            self.responses = list(self.gateway.list_responses(question_id))
        except ConnectionFailure as exc:
            self.error = exc.message

    # ---- actions ----

    def _act(self, button: str, request):
        self.buttons[button] = False
        try:
            result = request()
        except RoundError as exc:
            logger.warning(f"[moderator] {button} failed: {exc.message}")
            self.error = exc.message
            self.error_code = exc.code
            self._sync(self.observer.state)
            return None
        self.error = None
        self.error_code = None
        return result

    def start(self, question_id: int, quiz_id: int, timer_sec: int = 20):
        return self._act('start', lambda: self.gateway.start_question(question_id, quiz_id, timer_sec))

    def reveal(self):
        return self._act('reveal', lambda: self.gateway.update_status('revealed'))

    def show_leaderboard(self):
        return self._act('leaderboard', lambda: self.gateway.update_status('leaderboard'))

    def stop(self):
        return self._act('stop', lambda: self.gateway.update_status('idle'))

    def clear_responses(self, quiz_id: int):
        result = self._act('clear', lambda: self.gateway.clear_responses(quiz_id))
        if result is not None:
            self._sync(self.observer.state)
            self.responses = []
        return result

    def clear_all_responses(self):
        result = self._act('clear', self.gateway.clear_all_responses)
        if result is not None:
            self._sync(self.observer.state)
            self.responses = []
            if not result.get('ok', True):
                self.error = f"Some quizzes were not cleared: {', '.join(sorted(result.get('failed', {})))}"
        return result
