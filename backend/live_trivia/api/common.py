from functools import wraps

from flask import current_app, jsonify, request

from live_trivia import bcrypt
from live_trivia.services.rounds.errors import RoundError, Unauthorized

MODERATOR_HEADER = 'X-Moderator-Password'


def error_response(exc: RoundError):
    return jsonify(exc.to_dict()), exc.status_code


def moderator_required(view):
    """Reject the request unless it carries the moderator password.

    No-op when no ``MODERATOR_PASSWORD`` is configured.
    """
    @wraps(view)
    def wrapper(*args, **kwargs):
        password_hash = current_app.extensions.get('moderator_password_hash')
        if password_hash:
            supplied = request.headers.get(MODERATOR_HEADER)
            if not supplied or not bcrypt.check_password_hash(password_hash, supplied):
                current_app.logger.warning(f"[moderator-denied] {request.method} {request.path}")
                raise Unauthorized()
        return view(*args, **kwargs)
    return wrapper


def parse_limit(default):
    raw = request.args.get('limit')
    if raw is None:
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        raise RoundError('limit must be an integer')
