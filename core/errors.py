"""Error taxonomy for chat and coin operations.

Every error is an ``HTTPException`` so routers can let it propagate; the
handler registered in ``main`` renders it as the ``{"status": "fail"}`` envelope
with a machine-readable ``reason``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class ChatServiceError(HTTPException):
    reason = "error"
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, extra: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status_code_default, detail=message)
        self.extra = extra or {}

    def to_envelope(self) -> Dict[str, Any]:
        body = {"status": "fail", "reason": self.reason, "message": self.detail}
        body.update(self.extra)
        return body


class ValidationError(ChatServiceError):
    reason = "validation"
    status_code_default = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(ChatServiceError):
    reason = "unauthorized"
    status_code_default = status.HTTP_401_UNAUTHORIZED


class NotFoundError(ChatServiceError):
    reason = "not_found"
    status_code_default = status.HTTP_404_NOT_FOUND


class BlockedError(ChatServiceError):
    reason = "blocked"
    status_code_default = status.HTTP_403_FORBIDDEN


class ForbiddenError(ChatServiceError):
    reason = "forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN


class InsufficientFundsError(ChatServiceError):
    reason = "insufficient_balance"
    status_code_default = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, *, required: int, balance: Optional[int] = None):
        message = f"Insufficient coins. Required: {required}"
        if balance is not None:
            message += f", available: {balance}"
        super().__init__(
            message, extra={"required": required, "balance": balance}
        )
        self.required = required
        self.balance = balance
