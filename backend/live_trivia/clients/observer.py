"""The round state machine shared by every observer role.

A ``RoundObserver`` keeps a cached copy of the broadcast round state,
derives the option order and the countdown from it, and turns incoming
notifications into typed events for a role-specific view. Every round
broadcast is authoritative: local timer, answer subscription and question
cache are rebuilt from it and whatever the view showed before is dropped.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from live_trivia.services.rounds.bus import ANSWERS_CHANNEL, ROUND_CHANNEL, ChangeEvent
from live_trivia.services.rounds.clock import remaining_seconds
from live_trivia.services.rounds.errors import ConnectionFailure
from live_trivia.services.rounds.shuffle import create_shuffle_map
from .gateway import CONNECTION_CHANNEL
from .ticker import Ticker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Waiting:
    kind = 'waiting'
    state: Dict[str, Any]


@dataclass(frozen=True)
class QuestionShown:
    kind = 'question_shown'
    state: Dict[str, Any]
    question: Dict[str, Any]
    shuffle_map: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class Revealed:
    kind = 'revealed'
    state: Dict[str, Any]
    question: Dict[str, Any]
    shuffle_map: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class LeaderboardShown:
    kind = 'leaderboard_shown'
    state: Dict[str, Any]


@dataclass(frozen=True)
class AnswerReceived:
    kind = 'answer_received'
    response: Dict[str, Any]


@dataclass(frozen=True)
class Tick:
    kind = 'tick'
    remaining: float
    fraction: float


@dataclass(frozen=True)
class Expired:
    kind = 'expired'
    state: Dict[str, Any]


@dataclass(frozen=True)
class ConnectionLost:
    kind = 'connection_lost'
    message: str


class RoundObserver:
    def __init__(self, gateway, view, threaded: bool = True, tick_interval: Optional[float] = None):
        self.gateway = gateway
        self.view = view
        self.inbox: 'queue.Queue[ChangeEvent]' = queue.Queue()
        self.state: Optional[Dict[str, Any]] = None
        self.question: Optional[Dict[str, Any]] = None
        self.shuffle_map: List[int] = []
        self.connected = False
        self._lock = threading.RLock()
        self._round_sub = None
        self._answers_sub = None
        self._seen_responses: Set[int] = set()
        self._needs_render = True
        self._expired = False
        self._stopped = threading.Event()
        self.ticker = Ticker(tick_interval or view.tick_interval, self.tick, threaded=threaded, name=f'{view.role}-ticker')
        view.bind(self)

    # ---- lifecycle ----

    def start(self) -> None:
        """Subscribe to round changes and load the current state. Safe to call twice."""
        with self._lock:
            if self._round_sub is None:
                self._round_sub = self.gateway.subscribe_round(self.inbox)
                watch = getattr(self.gateway, 'watch_connection', None)
                if watch is not None:
                    watch(self.inbox)
            self.refresh()

    def refresh(self) -> None:
        """Re-read the authoritative round state, e.g. after a reconnect."""
        try:
            state = self.gateway.fetch_round_state()
        except ConnectionFailure as exc:
            self._connection_lost(str(exc))
            return
        self.connected = True
        self.apply_round_state(state, fresh=True)

    def close(self) -> None:
        with self._lock:
            self._stopped.set()
            self.ticker.stop()
            self._drop_answers()
            if self._round_sub is not None:
                self._round_sub.cancel()
                self._round_sub = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ---- event loop ----

    def pump(self) -> int:
        """Dispatch every queued notification without blocking. Returns how many were handled."""
        handled = 0
        while True:
            try:
                event = self.inbox.get_nowait()
            except queue.Empty:
                return handled
            self.dispatch(event)
            handled += 1

    def run(self, poll_interval: float = 0.5) -> None:
        while not self._stopped.is_set():
            try:
                event = self.inbox.get(timeout=poll_interval)
            except queue.Empty:
                continue
            self.dispatch(event)

    def dispatch(self, event: ChangeEvent) -> None:
        if event.channel == ROUND_CHANNEL:
            self.apply_round_state(event.payload)
        elif event.channel == ANSWERS_CHANNEL:
            self.apply_answer(event.payload)
        elif event.channel == CONNECTION_CHANNEL:
            if event.payload.get('connected'):
                self.refresh()
            else:
                self._connection_lost('Realtime connection lost')

    # ---- round state ----

    def apply_round_state(self, state: Dict[str, Any], fresh: bool = False) -> bool:
        """Adopt a broadcast round state. Returns False when it was dropped as stale."""
        with self._lock:
            version = int(state.get('version') or 0)
            if self.state is not None and not self._needs_render:
                current = int(self.state.get('version') or 0)
                # A fresh read replaces anything different; pushes only move forward
                if version == current or (not fresh and version < current):
                    logger.debug(f"[{self.view.role}] drop round state version={version} current={current}")
                    return False

            self.state = dict(state)
            self._needs_render = False
            self._expired = False
            self.ticker.stop()
            status = state.get('status')

            if status == 'active' and state.get('question_id') is not None:
                question = self._load_question(state['question_id'], state.get('shuffle_seed') or 0, need_answer=False)
                if question is None:
                    return True
                if self.view.wants_answers:
                    self._watch_answers(question['id'])
                self._emit(QuestionShown(self.state, question, list(self.shuffle_map)))
                self.ticker.start()
                self.tick()
            elif status == 'revealed' and state.get('question_id') is not None:
                question = self._load_question(state['question_id'], state.get('shuffle_seed') or 0, need_answer=True)
                if question is None:
                    return True
                self._emit(Revealed(self.state, question, list(self.shuffle_map)))
            elif status == 'leaderboard':
                self._emit(LeaderboardShown(self.state))
            else:
                self._drop_answers()
                self.question = None
                self.shuffle_map = []
                self._emit(Waiting(self.state))
            return True

    def _load_question(self, question_id: int, seed: int, need_answer: bool) -> Optional[Dict[str, Any]]:
        cached = self.question
        stale = cached is None or cached.get('id') != question_id
        # Refetch when the answer is needed but missing, or present while the question is live
        if stale or (need_answer != ('correct_index' in cached)):
            try:
                cached = self.gateway.fetch_question(question_id)
            except ConnectionFailure as exc:
                self._connection_lost(str(exc))
                return None
        self.question = cached
        self.shuffle_map = create_shuffle_map(len(cached.get('options') or []), seed)
        return cached

    # ---- answers ----

    def _watch_answers(self, question_id: int) -> None:
        self._drop_answers()
        self._answers_sub = self.gateway.subscribe_answers(question_id, self.inbox)

    def _drop_answers(self) -> None:
        if self._answers_sub is not None:
            self._answers_sub.cancel()
            self._answers_sub = None
        self._seen_responses = set()

    def apply_answer(self, response: Dict[str, Any]) -> bool:
        """Forward an answer insert if it belongs to the question being answered right now."""
        with self._lock:
            state = self.state
            if not state or state.get('status') != 'active' or response.get('question_id') != state.get('question_id'):
                logger.debug(f"[{self.view.role}] drop answer for question={response.get('question_id')}")
                return False
            response_id = response.get('id')
            if response_id is not None:
                if response_id in self._seen_responses:
                    return False
                self._seen_responses.add(response_id)
            self._emit(AnswerReceived(dict(response)))
            return True

    # ---- timer ----

    def remaining(self) -> float:
        state = self.state
        if not state or state.get('status') != 'active' or state.get('started_at') is None:
            return 0.0
        return remaining_seconds(state['started_at'], state['timer_sec'], self.gateway.now())

    def tick(self) -> None:
        with self._lock:
            state = self.state
            if not state or state.get('status') != 'active' or state.get('started_at') is None:
                self.ticker.stop()
                return
            remaining = self.remaining()
            timer_sec = float(state.get('timer_sec') or 1)
            self._emit(Tick(remaining, max(0.0, min(1.0, remaining / timer_sec))))
            # Local expiry only; the round stays active until the controller says otherwise
            if remaining <= 0 and not self._expired:
                self._expired = True
                self.ticker.stop()
                self._emit(Expired(state))

    # ---- helpers ----

    def _connection_lost(self, message: str) -> None:
        with self._lock:
            self.connected = False
            self._needs_render = True
            logger.warning(f"[{self.view.role}] connection lost: {message}")
            self._emit(ConnectionLost(message))

    def _emit(self, event) -> None:
        self.view.handle(event)
