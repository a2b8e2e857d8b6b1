"""
Helpers for turning exceptions into persisted, human-readable diagnostics.
"""

from typing import Any, Dict

from agentchain.utils.logger import get_module_logger

logger = get_module_logger(__name__)


def extract_error_details(exception: BaseException) -> str:
    """
    Extract comprehensive error details from an exception.

    Includes the exception type and message, the root cause found by walking
    the ``__cause__`` chain, and every instance attribute of the exception.

    Args:
        exception: The exception to analyze

    Returns:
        A formatted string containing all available error details
    """
    details = [f"Type={type(exception).__name__}", f"Message={str(exception)}"]

    root_cause = exception
    while root_cause.__cause__ is not None:
        root_cause = root_cause.__cause__

    if root_cause is not exception:
        details.append(f"RootCause={type(root_cause).__name__}: {str(root_cause)}")

    try:
        exception_vars = vars(exception)
    except TypeError as e:
        logger.warning(
            f"Failed to extract variables from exception {type(exception).__name__}: {e}"
        )
        exception_vars = {}

    for key, value in exception_vars.items():
        details.append(f"{key}={value!r}")

    return " | ".join(details)


def describe_failure(exception: BaseException) -> str:
    """Short ``Type: message`` form used for a step's ``error`` field."""
    message = str(exception) or "no message"
    return f"{type(exception).__name__}: {message}"


def error_payload(reason: str, message: str, **extra: Any) -> Dict[str, Any]:
    """Build the ``error_details`` mapping stored on a terminal execution."""
    payload: Dict[str, Any] = {"reason": reason, "message": message}
    payload.update({k: v for k, v in extra.items() if v is not None})
    return payload
