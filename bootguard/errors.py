"""Exceptions raised inside bootguard components.

Component boundaries return result objects; these exceptions carry a
failure member between the private steps of a component and its boundary.
"""

from bootguard.codes import Failure, LifecycleFailure, ToolingFailure, code_for


class BootguardError(Exception):
    """Base error carrying a failure member and its stable code.

    Attributes:
        failure: Failure enum member
        code: Stable numeric code for the failure
        message: Human-readable description
        details: Additional diagnostic details
    """

    def __init__(self, failure: Failure, message: str, details: dict = None):
        super().__init__(message)
        self.failure = failure
        self.code = code_for(failure)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "failure": self.failure.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ToolingError(BootguardError):
    """Raised when a required external tool is not available."""

    def __init__(self, failure: ToolingFailure, message: str, tool: str = None):
        super().__init__(failure, message, details={"tool": tool} if tool else None)
        self.tool = tool


class LifecycleError(BootguardError):
    """Raised by a configuration lifecycle step; fatal to the run."""

    def __init__(self, failure: LifecycleFailure, message: str, details: dict = None):
        super().__init__(failure, message, details)
