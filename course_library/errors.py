"""Error types raised by the library core and mapped to HTTP responses by the API."""

from __future__ import annotations

from typing import Optional


class LibraryError(Exception):
    """Base error; carries the HTTP status the API should answer with."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class NotFoundError(LibraryError):
    status_code = 404

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class InvalidInputError(LibraryError):
    status_code = 400


class StoreError(LibraryError):
    """A database write or read failed (constraint violation, missing parent row...)."""

    status_code = 409
