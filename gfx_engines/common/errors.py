"""Error taxonomy shared by the designer engines.

Structural violations are rejected locally (``None``/``False`` results) and
never raised into the host. The classes below are raised at the edges: remote
calls, cache decoding, and explicit ``raise_for_failures`` checks on a save.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from gfx_engines.persistence.models import SaveReport


class DesignerError(Exception):
    """Base class for all designer engine errors."""

    code = "designer.error"


class RemoteTimeoutError(DesignerError, TimeoutError):
    """A remote call exceeded its time budget. Never retried automatically."""

    code = "designer.timeout"

    def __init__(self, operation: str, timeout_s: float):
        self.operation = operation
        self.timeout_s = timeout_s
        super().__init__(f"{operation} timed out after {timeout_s:g}s")


class NotFoundError(DesignerError, LookupError):
    """A referenced project or template does not exist."""

    code = "designer.not_found"


class ValidationError(DesignerError, ValueError):
    """Malformed payload or an invalid structural request."""

    code = "designer.validation"


class PartialSaveError(DesignerError):
    """One or more ordered save steps failed while others succeeded."""

    code = "designer.partial_save"

    def __init__(self, report: "SaveReport", message: Optional[str] = None):
        self.report = report
        failed = ", ".join(f"{s.action}:{s.kind.value}" for s in report.failed_steps)
        super().__init__(message or f"Save incomplete, failed steps: {failed}")
