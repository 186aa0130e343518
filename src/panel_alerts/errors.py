"""Error taxonomy for the alerting core.

Caller-facing errors (``ValidationError``, ``NotFoundError``,
``InvalidStateError``) propagate to the API layer unchanged.
``DependencyUnavailable`` marks a failed metric fetch or notification
channel; it is recorded in reports and never aborts an evaluation pass.
"""

from __future__ import annotations


class AlertingError(Exception):
    """Base class for all alerting errors."""


class ValidationError(AlertingError):
    """Raised on malformed input (blank title/comment, bad operator, ...)."""


class NotFoundError(AlertingError):
    """Raised when a rule, alert or server id does not exist."""


class InvalidStateError(AlertingError):
    """Raised on an illegal alert state transition."""


class DependencyUnavailable(AlertingError):
    """A metric source or notification channel failed or timed out."""
