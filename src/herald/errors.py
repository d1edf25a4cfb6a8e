"""Exception types raised inside Herald's event pipeline and configuration layer."""

from __future__ import annotations

from typing import List, Tuple


class HeraldError(Exception):
    """Base class for all Herald-specific errors."""


class ConfigValidationError(HeraldError, ValueError):
    """A configuration payload was rejected at the boundary.

    Attributes:
        problems: ``(field, message)`` pairs describing every rejected field.
    """

    def __init__(self, problems: List[Tuple[str, str]]) -> None:
        self.problems = list(problems)
        summary = "; ".join(f"{field}: {message}" for field, message in self.problems)
        super().__init__(f"Invalid configuration ({summary})")


class ConfigStoreError(HeraldError):
    """The durable configuration store could not complete an operation."""


class MalformedEventError(HeraldError):
    """An inbound gateway event is missing structural data (e.g. its guild)."""


class BackgroundUnavailableError(HeraldError):
    """No background could be loaded for a welcome image, fallbacks included."""


class RoleAssignmentError(HeraldError):
    """A configured auto-role could not be granted to a member."""

    def __init__(self, role_id: str, reason: str) -> None:
        self.role_id = role_id
        self.reason = reason
        super().__init__(f"Could not assign role {role_id}: {reason}")


class DeliveryError(HeraldError):
    """An outbound Discord call (send, ban list lookup) failed."""
