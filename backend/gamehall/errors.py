"""Typed failures raised by the game services.

Transports translate these into responses: HTTP routes return
``{'error': message}`` with ``status_code``; socket handlers emit an
``error`` event back to the caller.
"""


class GameError(Exception):
    status_code = 400
    message = 'Request could not be processed'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {'error': self.message}


class Unauthenticated(GameError):
    status_code = 401
    message = 'Unauthenticated'


class NotParticipant(GameError):
    status_code = 403
    message = 'You are not a player in this game'


class NotYourTurn(GameError):
    status_code = 403
    message = 'Not your turn'


class SessionNotFound(GameError):
    status_code = 404
    message = 'Session not found'


class UserNotFound(GameError):
    status_code = 404
    message = 'User not found'


class InvalidTarget(GameError):
    message = 'You cannot challenge yourself'


class InvalidMove(GameError):
    message = 'Invalid move'


class InvalidState(GameError):
    status_code = 409
    message = 'Session is not in a valid state for this action'


class PersistenceFailure(GameError):
    status_code = 500
    message = 'Internal server error'
