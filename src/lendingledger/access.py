"""Caller identity and role capabilities.

The lending engine trusts the identity it is handed. Deciding *who* may
call which operation belongs to the layer in front of it; that layer builds
a ``Caller`` and checks it with ``authorize`` before invoking a manager.
"""

from dataclasses import dataclass
from enum import Enum

from .errors import LendingError


class Role(str, Enum):
    """Role of a caller."""

    MEMBER = "member"
    LIBRARIAN = "librarian"


class Action(str, Enum):
    """Operations a caller may request."""

    READ_CATALOG = "read_catalog"
    MANAGE_CATALOG = "manage_catalog"
    CHECKOUT = "checkout"
    RETURN = "return"
    READ_LOANS = "read_loans"
    OPERATOR_DASHBOARD = "operator_dashboard"
    BORROWER_DASHBOARD = "borrower_dashboard"


CAPABILITIES: dict[Role, frozenset[Action]] = {
    Role.MEMBER: frozenset({
        Action.READ_CATALOG,
        Action.CHECKOUT,
        Action.READ_LOANS,
        Action.BORROWER_DASHBOARD,
    }),
    Role.LIBRARIAN: frozenset({
        Action.READ_CATALOG,
        Action.MANAGE_CATALOG,
        Action.RETURN,
        Action.READ_LOANS,
        Action.OPERATOR_DASHBOARD,
    }),
}


class PermissionDenied(LendingError):
    """Raised when a caller's role does not allow an action."""

    status_code = 403


@dataclass(frozen=True)
class Caller:
    """An authenticated caller: identity plus role."""

    id: str
    role: Role

    @classmethod
    def parse(cls, value: str) -> "Caller":
        """Parse ``"role:id"``, e.g. ``"member:alice"``."""
        role, sep, ident = value.partition(":")
        if not sep or not ident.strip():
            raise ValueError(f"Expected ROLE:ID, got {value!r}")
        try:
            return cls(id=ident.strip(), role=Role(role.strip().lower()))
        except ValueError:
            valid = ", ".join(r.value for r in Role)
            raise ValueError(f"Unknown role {role!r} (valid: {valid})") from None

    def can(self, action: Action) -> bool:
        return action in CAPABILITIES[self.role]


def authorize(caller: Caller, action: Action) -> Caller:
    """Return ``caller`` if allowed to perform ``action``.

    Raises:
        PermissionDenied: otherwise
    """
    if not caller.can(action):
        raise PermissionDenied(f"{caller.role.value} may not {action.value.replace('_', ' ')}")
    return caller
