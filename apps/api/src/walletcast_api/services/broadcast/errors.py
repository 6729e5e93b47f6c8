"""Typed failures surfaced by the broadcast engine."""

from __future__ import annotations

from typing import Any


class BroadcastError(RuntimeError):
    """Base exception carrying a stable error code for callers."""

    code = "BROADCAST_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class BroadcastValidationError(BroadcastError):
    """Bad caller input, rejected before any I/O."""

    code = "VALIDATION_ERROR"


class ProgramNotFoundError(BroadcastError):
    """No program matches the tenant and wallet program id pair."""

    code = "NOT_FOUND"

    def __init__(self, tenant_id: str, wallet_program_id: str) -> None:
        super().__init__(
            f"Program not found for tenant {tenant_id} with wallet program id {wallet_program_id}",
            details={"tenant_id": tenant_id, "wallet_program_id": wallet_program_id},
        )


class ProtocolMismatchError(BroadcastError):
    code = "PROTOCOL_MISMATCH"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Protocol mismatch: program is {actual}, but request specified {expected}",
            details={"expected": expected, "actual": actual},
        )


class BroadcastSystemError(BroadcastError):
    """A directory query or log write failed and the operation was aborted."""

    code = "SYSTEM_FAILURE"


class UnknownSegmentError(LookupError):
    """Raised when a segment has no filter for the program protocol.

    Callers validate segment names up front, so reaching this is a bug.
    """

    def __init__(self, segment: Any, protocol: Any) -> None:
        segment = getattr(segment, "value", segment)
        protocol = getattr(protocol, "value", protocol)
        super().__init__(f"No predicate registered for segment {segment} on protocol {protocol}")
        self.segment = segment
        self.protocol = protocol


__all__ = [
    "BroadcastError",
    "BroadcastSystemError",
    "BroadcastValidationError",
    "ProgramNotFoundError",
    "ProtocolMismatchError",
    "UnknownSegmentError",
]
