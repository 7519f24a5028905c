from __future__ import annotations


class PokemonApiError(Exception):
    """Base exception for record operations; carries the HTTP status it maps to."""

    status_code = 500
    message = "internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message is not None:
            self.message = message


class InvalidInput(PokemonApiError):
    """Request body is missing, malformed or not a JSON object."""

    status_code = 400
    message = "invalid body"


class AllocationFailed(PokemonApiError):
    """The id counter transaction did not commit."""

    status_code = 500
    message = "failed to generate id"


class NotFound(PokemonApiError):
    status_code = 404
    message = "not found"


class StoreUnavailable(PokemonApiError):
    status_code = 500
    message = "store unavailable"
