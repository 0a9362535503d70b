"""Errors raised by round services.

Each kind maps to one distinguishable client state, so the code string is
part of the wire contract.
"""


class RoundError(Exception):
    code = 'round_error'
    status_code = 400

    def __init__(self, message=None):
        self.message = message or self.__class__.__doc__ or 'Round error'
        super().__init__(self.message)

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class DuplicateAnswer(RoundError):
    """Already answered this question"""
    code = 'duplicate_answer'
    status_code = 409


class LateSubmission(RoundError):
    """Time expired for this question"""
    code = 'late_submission'
    status_code = 410


class InvalidTransition(RoundError):
    """Round transition not allowed"""
    code = 'invalid_transition'
    status_code = 400


class Unauthorized(InvalidTransition):
    """Moderator password required"""
    status_code = 403


class InvalidSubmission(RoundError):
    """Invalid answer submission"""
    code = 'invalid_submission'
    status_code = 400


class NotFound(RoundError):
    """Not found"""
    code = 'not_found'
    status_code = 404


class ConnectionFailure(RoundError):
    """Could not reach the game server"""
    code = 'connection_failure'
    status_code = 503


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (DuplicateAnswer, LateSubmission, InvalidTransition, InvalidSubmission, NotFound, ConnectionFailure)
}


def error_from_payload(status_code, payload):
    """Rebuild a typed error from an HTTP error body."""
    payload = payload or {}
    code = payload.get('code')
    message = payload.get('error')
    if code == InvalidTransition.code and status_code == 403:
        return Unauthorized(message)
    cls = ERRORS_BY_CODE.get(code)
    if cls is None:
        if status_code == 404:
            cls = NotFound
        elif status_code >= 500:
            cls = ConnectionFailure
        else:
            cls = RoundError
    return cls(message)
