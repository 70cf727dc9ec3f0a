"""Exception hierarchy for the plugin engine.

Every error carries a message plus a context dict so callers can log
structured details without parsing strings.
"""

from __future__ import annotations

from typing import Any


class HealthmonError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class RegistrationError(HealthmonError):
    """Duplicate id, missing mandatory capability or unresolvable plugin reference."""


class ConfigurationError(HealthmonError):
    """Option schema failure or a threshold expression that cannot be evaluated."""


class AvailabilityError(HealthmonError):
    """Raised by a plugin's is_available() to opt out of loading."""


class LifecycleError(HealthmonError):
    """A plugin's init() failed; the engine cannot run safely."""


class PluginRuntimeError(HealthmonError):
    """A module or reporter raised during run()."""


class ResponseFormatError(HealthmonError):
    """A module returned output that does not normalise into a Response."""
