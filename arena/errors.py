"""
Error taxonomy shared by the engine, the orchestrator and the API.

Every error carries the HTTP status it is surfaced with; the handler in
``arena.main`` turns them into ``{"detail": ...}`` responses.
"""

from fastapi import status


class ArenaError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidConfig(ArenaError):
    """Bad input parameters; the caller can fix them."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class DataUnavailable(ArenaError):
    """Real market data was requested but has not been ingested."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class SimulationFailure(ArenaError):
    """Unexpected error while a round was being simulated."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class NotFound(ArenaError):
    status_code = status.HTTP_404_NOT_FOUND


class StateConflict(ArenaError):
    """The request is not allowed in the round's current state."""
    status_code = status.HTTP_409_CONFLICT
