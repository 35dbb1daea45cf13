"""Error taxonomy for the lending engine.

Every error carries the transport status a presentation layer should use:

- ``NotFound``: referenced item or loan is absent (404)
- ``ValidationError``: malformed input such as a non-positive copy count (422)
- ``ConflictError``: the ledger refuses the change (409) - no copies left,
  duplicate open loan, already returned, delete with open loans
"""

from typing import Any, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LendingError(Exception):
    """Base exception for lending engine errors."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(LendingError):
    """Raised when a referenced item or loan does not exist."""

    status_code = 404

    def __init__(self, kind: str, identifier: object):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class ValidationError(LendingError):
    """Raised when input is malformed."""

    status_code = 422

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        self.errors = errors or [message]
        super().__init__(message)


class ConflictError(LendingError):
    """Raised when a change would break a ledger invariant."""

    status_code = 409


def parse_input(schema: type[SchemaT], data: Any) -> SchemaT:
    """Coerce ``data`` into ``schema``, reporting pydantic failures as ``ValidationError``."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except SchemaValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(f"Invalid {schema.__name__}: {'; '.join(problems)}", problems) from e
