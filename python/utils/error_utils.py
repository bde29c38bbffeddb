"""
Error message utilities for providing actionable guidance to users.

This module provides the exception types raised by the retag pipeline and
factory functions that build them with suggested fixes and troubleshooting
details (command, exit code, captured output).
"""

from typing import List, Optional, Dict, Any, Sequence
from enum import Enum


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    RUNTIME = "runtime"
    COMMAND = "command"
    FORMAT = "format"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class RuntimeCommandError(ActionableError):
    """A container runtime command could not be started or exited non-zero"""

    def __init__(self, message: str, command: Sequence[str], returncode: Optional[int] = None,
                 output: str = "", category: ErrorCategory = ErrorCategory.COMMAND,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        self.command = list(command)
        self.returncode = returncode
        self.output = output or ""
        super().__init__(message, category=category, suggestions=suggestions, details=details)


class RecordFormatError(ActionableError):
    """Image listing output did not have the expected shape"""


class RetriesExhaustedError(ActionableError):
    """A transient failure kept recurring until the retry budget ran out"""

    def __init__(self, message: str, attempts: int, last_error: Optional[Exception] = None,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message, category=ErrorCategory.TRANSIENT, suggestions=suggestions, details=details)


def _format_command(command: Sequence[str]) -> str:
    return " ".join(command)


def create_runtime_unavailable_error(command: Sequence[str], error: Exception) -> RuntimeCommandError:
    """Create actionable error for a runtime binary that could not be started"""
    runtime = command[0] if command else "docker"
    error_str = str(error).lower()

    suggestions = [
        f"Verify '{runtime}' is installed and on PATH",
        "Set runtime.command in config.yaml or CONTAINER_RUNTIME to the correct binary",
        "Check that the current user may run the container runtime",
    ]

    if "permission" in error_str:
        suggestions.insert(0, f"Add the current user to the '{runtime}' group or run with sufficient privileges")

    return RuntimeCommandError(
        message=f"Failed to start container runtime command: {_format_command(command)}",
        command=command,
        category=ErrorCategory.RUNTIME,
        suggestions=suggestions,
        details={
            "runtime": runtime,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_listing_error(command: Sequence[str], returncode: int, output: str) -> RuntimeCommandError:
    """Create actionable error for a failed image listing"""
    suggestions = [
        "Check that the container daemon is running",
        f"Run '{_format_command(command)}' manually to inspect the failure",
    ]

    if "permission denied" in (output or "").lower():
        suggestions.insert(0, "Verify access to the daemon socket")

    return RuntimeCommandError(
        message="Failed to list local images",
        command=command,
        returncode=returncode,
        output=output,
        suggestions=suggestions,
        details={
            "command": _format_command(command),
            "exit_code": returncode,
            "output": (output or "").strip()
        }
    )


def create_tag_error(command: Sequence[str], image_id: str, destination: str,
                     returncode: int, output: str) -> RuntimeCommandError:
    """Create actionable error for a failed tag operation"""
    suggestions = [
        f"Verify image '{image_id}' still exists locally",
        f"Verify '{destination}' is a valid image reference",
        "Check the destination repository and version settings",
    ]

    return RuntimeCommandError(
        message=f"Failed to tag image {image_id} as {destination}",
        command=command,
        returncode=returncode,
        output=output,
        suggestions=suggestions,
        details={
            "command": _format_command(command),
            "exit_code": returncode,
            "output": (output or "").strip()
        }
    )


def create_push_error(command: Sequence[str], destination: str, returncode: int, output: str) -> RuntimeCommandError:
    """Create actionable error for a failed push"""
    output_lower = (output or "").lower()

    suggestions = [
        f"Run '{_format_command(command)}' manually to inspect the failure",
        "Verify you are logged in to the destination registry",
    ]

    if "denied" in output_lower or "unauthorized" in output_lower:
        suggestions.insert(0, f"Log in to the destination registry before pushing {destination}")

    if "toomanyrequests" in output_lower or "rate limit" in output_lower:
        suggestions.insert(0, "Reduce the number of push threads (--threads)")

    return RuntimeCommandError(
        message=f"Failed to push image {destination}",
        command=command,
        returncode=returncode,
        output=output,
        suggestions=suggestions,
        details={
            "command": _format_command(command),
            "exit_code": returncode,
            "output": (output or "").strip()
        }
    )


def create_record_format_error(line: str, field_count: int) -> RecordFormatError:
    """Create actionable error for a listing line that is not `<id> <repository> <tag>`"""
    return RecordFormatError(
        message="Incorrect output of image listing: expected 3 space-separated fields",
        category=ErrorCategory.FORMAT,
        suggestions=[
            "Verify the container runtime supports --format '{{.ID}} {{.Repository}} {{.Tag}}'",
            "Check for a wrapper script or alias that alters the listing output",
        ],
        details={
            "line": repr(line),
            "field_count": field_count
        }
    )


def create_retries_exhausted_error(operation: str, attempts: int, last_error: Exception) -> RetriesExhaustedError:
    """Create actionable error for a transient failure that never cleared"""
    return RetriesExhaustedError(
        message=f"{operation} still failing after {attempts} attempts",
        attempts=attempts,
        last_error=last_error,
        suggestions=[
            "Reduce the number of push threads (--threads) to lower daemon contention",
            "Increase retry.max_retries or retry.max_delay in config.yaml",
            "Restart the container daemon if its metadata store stays locked",
        ],
        details={
            "operation": operation,
            "attempts": attempts,
            "last_error": getattr(last_error, "message", str(last_error))
        }
    )

