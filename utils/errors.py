"""Error hierarchy for endpoint handlers.

Handlers never raise these past the route boundary: they are attached to the
per-request result and the formatter turns them into a status code and a
``{message, status_code}`` body.
"""
from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.exc import DBAPIError


class FluentRestError(Exception):
    """Base class for every error a resource handler can attach to a result."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_response(self) -> dict:
        return {"message": self.message, "status_code": self.status_code}


class VerbNotSupported(FluentRestError):
    status_code = 405

    def __init__(self, verb: str):
        super().__init__(f"This resource does not support the HTTP verb {verb.upper()}.")
        self.verb = verb.upper()


class ResourceNotFound(FluentRestError):
    status_code = 404


class MissingParameter(FluentRestError):
    status_code = 400

    def __init__(self, name: str):
        super().__init__(f"The URI parameter '{name}' is required.")
        self.name = name


class InvalidParameter(FluentRestError):
    status_code = 400

    def __init__(self, name: str, value: Any, expected: str):
        super().__init__(f"The parameter '{name}' must be {expected}, got {value!r}.")
        self.name = name
        self.value = value


class ConstraintViolation(FluentRestError):
    status_code = 409

    def __init__(self, constraint: str, message: str, status_code: Optional[int] = None,
                 nested_error: Optional[BaseException] = None):
        super().__init__(message, status_code)
        self.constraint = constraint
        self.nested_error = nested_error


class UnmappedDatabaseError(FluentRestError):
    status_code = 500

    def __init__(self, nested_error: BaseException):
        super().__init__(str(getattr(nested_error, "orig", None) or nested_error))
        self.nested_error = nested_error


# -----------------------------------------------------------------------------
# Database error mapping
# -----------------------------------------------------------------------------
_QUOTED = re.compile(r'"(\w+)"')
_WORDS = re.compile(r"[\w.]+")


def _structured_constraint_names(err: BaseException) -> list[str]:
    """Constraint identifiers reported by the driver itself (asyncpg, psycopg)."""
    names = []
    candidates = [getattr(err, "orig", None)]
    if candidates[0] is not None:
        candidates.append(candidates[0].__cause__)
    for candidate in candidates:
        if candidate is None:
            continue
        name = getattr(candidate, "constraint_name", None)
        if name is None and getattr(candidate, "diag", None) is not None:
            name = getattr(candidate.diag, "constraint_name", None)
        if name:
            names.append(name)
    return names


def _message_constraint_names(message: str) -> Iterable[str]:
    quoted = _QUOTED.findall(message)
    if quoted:
        return quoted
    # SQLite reports "UNIQUE constraint failed: accounts.email"
    return _WORDS.findall(message)


def map_database_error(err: Optional[BaseException],
                       constraints: Mapping[str, Any]) -> Optional[FluentRestError]:
    """Convert a database error into the handler error hierarchy.

    ``constraints`` maps a constraint name to an object with ``error`` and
    ``status_code`` attributes (see ``ConstraintBuilder``).
    """
    if err is None:
        return None
    if isinstance(err, FluentRestError):
        return err
    if isinstance(err, DBAPIError):
        names = _structured_constraint_names(err)
        if not names:
            names = list(_message_constraint_names(str(err.orig)))
        for name in names:
            constraint = constraints.get(name)
            if constraint is not None and constraint.error:
                return ConstraintViolation(name, constraint.error,
                                           constraint.status_code, nested_error=err)
    return UnmappedDatabaseError(err)
