"""Error kinds raised by the engine.

Every kind carries a machine-readable ``code`` and the HTTP status the API
layer renders it with. Only ``TransactionConflict`` is worth retrying.
"""


class EngineError(Exception):
    code = 'engine_error'
    status = 400

    def __init__(self, message=None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self):
        return {'error': self.code, 'message': self.message}


class InvalidRequest(EngineError):
    code = 'invalid_request'


class NotFound(EngineError):
    code = 'not_found'
    status = 404


class NotMember(EngineError):
    code = 'not_member'
    status = 403


class InvalidMember(EngineError):
    code = 'invalid_member'


class AlreadyMember(EngineError):
    code = 'already_member'
    status = 409


class InsufficientFunds(EngineError):
    code = 'insufficient_funds'


class AlreadyOwned(EngineError):
    code = 'already_owned'
    status = 409


class AlreadyInUse(EngineError):
    code = 'already_in_use'
    status = 409


class NotUsable(EngineError):
    code = 'not_usable'


class PowerupAlreadyActive(EngineError):
    code = 'powerup_already_active'
    status = 409


class NotTarget(EngineError):
    code = 'not_target'
    status = 403


class AlreadyResolved(EngineError):
    code = 'already_resolved'
    status = 409


class WindowExpired(EngineError):
    code = 'window_expired'


class WindowStillOpen(EngineError):
    code = 'window_still_open'


class AccusationInProgress(EngineError):
    code = 'accusation_in_progress'
    status = 409


class NoActiveAccusation(EngineError):
    code = 'no_active_accusation'


class AccusedCannotVote(EngineError):
    code = 'accused_cannot_vote'
    status = 403


class TransactionConflict(EngineError):
    code = 'transaction_conflict'
    status = 503
