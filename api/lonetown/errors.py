class MatchEngineError(Exception):
    """Base class for failures raised inside the match engine."""


class StateConflict(MatchEngineError):
    """A user state or match status precondition did not hold at write time."""


class NotFound(MatchEngineError):
    pass


class PersistenceError(MatchEngineError):
    pass
