"""Transports used by observer clients to read and write round data.

``InProcessGateway`` talks straight to the services inside a Flask app and
listens on the in-process change bus. ``RemoteGateway`` talks to a running
server over HTTP and Socket.IO. Both deliver change notifications as
``ChangeEvent`` objects into an inbox queue owned by the observer, and both
surface transport failures as ``ConnectionFailure``.
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional

import requests
from flask import current_app, has_app_context
import socketio
from sqlalchemy.exc import OperationalError

from live_trivia.services.rounds.bus import (
    ANSWERS_CHANNEL,
    ROUND_CHANNEL,
    SOCKET_NAMESPACE,
    ChangeEvent,
)
from live_trivia.services.rounds.errors import ConnectionFailure, NotFound, error_from_payload

logger = logging.getLogger(__name__)

# Synthetic channel for transport up/down notifications
CONNECTION_CHANNEL = 'connection'


class RoundGateway:
    """Operations an observer client needs from the game server."""

    def now(self) -> float:
        return time.time()

    # reads
    def fetch_round_state(self) -> Dict[str, Any]:
        raise NotImplementedError

    def fetch_question(self, question_id: int) -> Dict[str, Any]:
        raise NotImplementedError

    def find_response(self, question_id: int, player_name: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def count_responses(self, question_id: int) -> int:
        raise NotImplementedError

    def list_responses(self, question_id: int) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def get_distribution(self, question_id: int) -> Dict[str, Any]:
        raise NotImplementedError

    def get_leaderboard(self, quiz_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        raise NotImplementedError

    # writes
    def submit_response(self, question_id: int, player_name: str, selected_index: int) -> Dict[str, Any]:
        raise NotImplementedError

    def start_question(self, question_id: int, quiz_id: int, timer_sec: int) -> Dict[str, Any]:
        raise NotImplementedError

    def update_status(self, status: str) -> Dict[str, Any]:
        raise NotImplementedError

    def clear_responses(self, quiz_id: int) -> Dict[str, Any]:
        raise NotImplementedError

    def clear_all_responses(self) -> Dict[str, Any]:
        raise NotImplementedError

    # subscriptions
    def subscribe_round(self, inbox):
        raise NotImplementedError

    def subscribe_answers(self, question_id: int, inbox):
        raise NotImplementedError

    def close(self) -> None:
        pass


class InProcessGateway(RoundGateway):
    """Gateway bound to a Flask app in the same process. Trusted: no moderator password."""

    def __init__(self, app, clock=None):
        self.app = app
        self.clock = clock or app.extensions.get('round_clock')

    def now(self) -> float:
        return self.clock.now() if self.clock is not None else time.time()

    def _call(self, fn, *args, **kwargs):
        # Reuse the caller's context when it already belongs to this app
        if has_app_context() and current_app._get_current_object() is self.app:
            return self._guarded(fn, *args, **kwargs)
        with self.app.app_context():
            return self._guarded(fn, *args, **kwargs)

    @staticmethod
    def _guarded(fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except OperationalError as exc:
            raise ConnectionFailure(str(exc.orig or exc))

    def fetch_round_state(self):
        from live_trivia.services.rounds.store import get_round_state
        return self._call(lambda: get_round_state().to_dict())

    def fetch_question(self, question_id):
        from live_trivia.models import Question
        from live_trivia.services.rounds.store import get_round_state

        def _fetch():
            question = Question.query.filter_by(id=question_id).first()
            if question is None:
                raise NotFound('Question not found')
            state = get_round_state()
            live = state.status == 'active' and state.question_id == question.id
            return question.to_dict(include_answer=not live)
        return self._call(_fetch)

    def find_response(self, question_id, player_name):
        from live_trivia.services.rounds import ledger

        def _find():
            response = ledger.find_response(question_id, player_name)
            return response.to_dict() if response else None
        return self._call(_find)

    def count_responses(self, question_id):
        from live_trivia.services.rounds import ledger
        return self._call(ledger.count_responses, question_id)

    def list_responses(self, question_id):
        from live_trivia.services.rounds import ledger
        return self._call(lambda: [r.to_dict() for r in ledger.list_responses(question_id)])

    def get_distribution(self, question_id):
        from live_trivia.services.rounds import scoring
        return self._call(lambda: scoring.get_distribution(question_id).to_dict())

    def get_leaderboard(self, quiz_id, limit=10):
        from live_trivia.services.rounds import scoring
        return self._call(lambda: [e.to_dict() for e in scoring.get_leaderboard(quiz_id, limit)])

    def submit_response(self, question_id, player_name, selected_index):
        from live_trivia.services.rounds import ledger
        return self._call(lambda: ledger.submit_response(question_id, player_name, selected_index).to_dict())

    def start_question(self, question_id, quiz_id, timer_sec):
        from live_trivia.services.rounds.controller import controller
        return self._call(lambda: controller.start_question(question_id, quiz_id, timer_sec).to_dict())

    def update_status(self, status):
        from live_trivia.services.rounds.controller import controller
        return self._call(lambda: controller.update_status(status).to_dict())

    def clear_responses(self, quiz_id):
        from live_trivia.services.rounds.controller import controller
        return self._call(lambda: {'quiz_id': quiz_id, 'deleted': controller.clear_responses(quiz_id)})

    def clear_all_responses(self):
        from live_trivia.services.rounds.controller import controller
        return self._call(lambda: controller.clear_all_responses().to_dict())

    def subscribe_round(self, inbox):
        from live_trivia.services.rounds.bus import bus
        return bus.subscribe(ROUND_CHANNEL, None, inbox)

    def subscribe_answers(self, question_id, inbox):
        from live_trivia.services.rounds.bus import bus
        return bus.subscribe(ANSWERS_CHANNEL, question_id, inbox)


class RemoteSubscription:
    def __init__(self, gateway: 'RemoteGateway', channel: str, key: Optional[int], inbox):
        self.gateway = gateway
        self.channel = channel
        self.key = key
        self.inbox = inbox
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.gateway._forget(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()


class RemoteGateway(RoundGateway):
    """Gateway to a running server: REST for request/response, Socket.IO for pushes."""

    def __init__(self, base_url: str, moderator_password: Optional[str] = None, timeout: float = 5.0,
                 session: Optional[requests.Session] = None, sio: Optional[socketio.Client] = None):
        self.base_url = base_url.rstrip('/')
        self.moderator_password = moderator_password
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sio = sio or socketio.Client(reconnection=True)
        self._lock = threading.Lock()
        self._subscriptions: List[RemoteSubscription] = []
        self._connection_inboxes = []
        self._register_socket_handlers()

    # ---- HTTP ----

    def _request(self, method: str, path: str, moderator: bool = False, **kwargs):
        headers = kwargs.pop('headers', {})
        if moderator and self.moderator_password:
            headers['X-Moderator-Password'] = self.moderator_password
        try:
            resp = self.session.request(method, f"{self.base_url}/api{path}", headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise ConnectionFailure(str(exc))
        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = {'error': resp.text}
            raise error_from_payload(resp.status_code, payload)
        return resp.json()

    def fetch_round_state(self):
        return self._request('GET', '/round')

    def fetch_question(self, question_id):
        return self._request('GET', f'/questions/{question_id}')

    def find_response(self, question_id, player_name):
        try:
            return self._request('GET', f'/questions/{question_id}/responses/mine', params={'player_name': player_name})
        except NotFound:
            return None

    def count_responses(self, question_id):
        return int(self._request('GET', f'/questions/{question_id}/responses/count')['count'])

    def list_responses(self, question_id):
        return self._request('GET', f'/questions/{question_id}/responses', moderator=True)

    def get_distribution(self, question_id):
        return self._request('GET', f'/questions/{question_id}/distribution')

    def get_leaderboard(self, quiz_id, limit=10):
        return self._request('GET', f'/quizzes/{quiz_id}/leaderboard', params={'limit': limit})

    def submit_response(self, question_id, player_name, selected_index):
        return self._request('POST', '/responses', json={
            'question_id': question_id,
            'player_name': player_name,
            'selected_index': selected_index,
        })

    def start_question(self, question_id, quiz_id, timer_sec):
        return self._request('POST', '/round/start', moderator=True, json={
            'question_id': question_id,
            'quiz_id': quiz_id,
            'timer_sec': timer_sec,
        })

    def update_status(self, status):
        return self._request('POST', '/round/status', moderator=True, json={'status': status})

    def clear_responses(self, quiz_id):
        return self._request('DELETE', f'/quizzes/{quiz_id}/responses', moderator=True)

    def clear_all_responses(self):
        return self._request('DELETE', '/responses', moderator=True)

    # ---- Socket.IO ----

    def connect(self) -> None:
        try:
            self.sio.connect(self.base_url, namespaces=[SOCKET_NAMESPACE], wait_timeout=self.timeout)
        except socketio.exceptions.ConnectionError as exc:
            raise ConnectionFailure(str(exc))

    def close(self) -> None:
        with self._lock:
            self._subscriptions.clear()
        if self.sio.connected:
            self.sio.disconnect()

    def watch_connection(self, inbox) -> None:
        """Deliver connect/disconnect notices to ``inbox`` on the connection channel."""
        with self._lock:
            self._connection_inboxes.append(inbox)

    def subscribe_round(self, inbox):
        sub = RemoteSubscription(self, ROUND_CHANNEL, None, inbox)
        with self._lock:
            self._subscriptions.append(sub)
        self._emit('subscribe_round', {})
        return sub

    def subscribe_answers(self, question_id, inbox):
        sub = RemoteSubscription(self, ANSWERS_CHANNEL, question_id, inbox)
        with self._lock:
            # The server keeps one answer room per socket
            for old in [s for s in self._subscriptions if s.channel == ANSWERS_CHANNEL]:
                old.active = False
                self._subscriptions.remove(old)
            self._subscriptions.append(sub)
        self._emit('subscribe_answers', {'question_id': question_id})
        return sub

    def _forget(self, sub: RemoteSubscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)
        if sub.channel == ANSWERS_CHANNEL:
            self._emit('unsubscribe_answers', {})

    def _emit(self, event: str, data: dict) -> None:
        if self.sio.connected:
            self.sio.emit(event, data, namespace=SOCKET_NAMESPACE)

    def _deliver(self, channel: str, key, payload: dict) -> None:
        event = ChangeEvent(channel=channel, key=key, payload=payload)
        with self._lock:
            targets = [s for s in self._subscriptions if s.active and s.channel == channel and (s.key is None or s.key == key)]
        for sub in targets:
            sub.inbox.put(event)

    def _notify_connection(self, connected: bool) -> None:
        event = ChangeEvent(channel=CONNECTION_CHANNEL, key=None, payload={'connected': connected})
        with self._lock:
            inboxes = list(self._connection_inboxes)
        for inbox in inboxes:
            inbox.put(event)

    def _register_socket_handlers(self) -> None:
        def on_connect():
            logger.info(f"[ws-connect] {self.base_url}")
            # Rejoin rooms; the server answers subscribe_round with the current state
            with self._lock:
                subs = list(self._subscriptions)
            if any(s.channel == ROUND_CHANNEL for s in subs):
                self._emit('subscribe_round', {})
            for s in subs:
                if s.channel == ANSWERS_CHANNEL:
                    self._emit('subscribe_answers', {'question_id': s.key})
            self._notify_connection(True)

        def on_disconnect(*args):
            logger.warning(f"[ws-disconnect] {self.base_url}")
            self._notify_connection(False)

        def on_round_state(data):
            self._deliver(ROUND_CHANNEL, (data or {}).get('id'), data or {})

        def on_answer_inserted(data):
            self._deliver(ANSWERS_CHANNEL, (data or {}).get('question_id'), data or {})

        self.sio.on('connect', on_connect, namespace=SOCKET_NAMESPACE)
        self.sio.on('disconnect', on_disconnect, namespace=SOCKET_NAMESPACE)
        self.sio.on('round_state', on_round_state, namespace=SOCKET_NAMESPACE)
        self.sio.on('answer_inserted', on_answer_inserted, namespace=SOCKET_NAMESPACE)
