"""
Custom Exceptions

Every failure a caller can act on is reported through one envelope:

    {"status": 403, "message": "...", "reason": {"field": ["..."]}}

ServerResponseError carries those three parts. The handler registered in
main.py renders it with the same HTTP status code.
"""
from typing import Dict, List, Optional
from fastapi import HTTPException, status


class ServerResponseError(HTTPException):
    """Raised for validation failures that are reported to the caller."""

    def __init__(
        self,
        status_code: int,
        message: str,
        reason: Optional[Dict[str, List[str]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.message = message
        self.reason = reason

    def to_dict(self) -> dict:
        body = {"status": self.status_code, "message": self.message}
        if self.reason is not None:
            body["reason"] = self.reason
        return body


class AuthenticationError(ServerResponseError):
    """Raised when a request needs a logged-in user and has none."""

    def __init__(self, message: str, reason: Optional[Dict[str, List[str]]] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            message=message,
            reason=reason,
            headers={"WWW-Authenticate": "Bearer"},
        )
