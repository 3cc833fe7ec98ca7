"""Error formatting utilities.

Turns the errors a process run can end with into short user-facing messages.
"""

import json
import traceback
from typing import Any


def format_error(error: Any) -> str | None:
    """Format known errors into user-friendly messages.

    Returns None if the error type is not recognized, allowing
    fallback to format_unknown_error.
    """
    from ..core.config import ConfigError
    from ..process.errors import NonZeroExitError, ProcessTimeoutError

    if isinstance(error, NonZeroExitError):
        message = str(error)
        stderr = error.output.stderr.strip() if error.output else ""
        if stderr:
            message += f"\n{stderr}"
        return message
    if isinstance(error, ProcessTimeoutError):
        return f'Command "{error.process.command}" timed out after {error.timeout:g}s'
    if isinstance(error, FileNotFoundError):
        return f"Command not found: {error.filename or error}"
    if isinstance(error, PermissionError):
        return f"Permission denied: {error.filename or error}"
    if isinstance(error, ConfigError):
        return str(error)
    return None


def format_unknown_error(error: Any) -> str:
    """Format any error into a string representation.

    Handles Exception objects, serializable objects, and primitives.
    """
    if isinstance(error, BaseException):
        if error.__traceback__:
            return "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return f"{error.__class__.__name__}: {error}"

    if isinstance(error, (dict, list)):
        try:
            return json.dumps(error, indent=2)
        except (TypeError, ValueError):
            return "Unexpected error (unserializable)"

    return str(error)
