from __future__ import annotations

from typing import Any, Dict


# PUBLIC_INTERFACE
def success_envelope(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    """
    Build the standard body of a successful response.

    Args:
        data: Payload of the response; None for operations without one.
        message: Human readable outcome.

    Returns:
        Dict with keys: message, data.
    """
    return {"message": message, "data": data}


# PUBLIC_INTERFACE
def error_envelope(error_code: str, message: str) -> Dict[str, Any]:
    """Build the standard body of an error response."""
    return {"error_code": error_code, "message": message}
