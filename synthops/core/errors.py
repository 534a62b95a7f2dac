"""Exception taxonomy for synth removal runs.

Every failure the operator can see carries an :class:`ErrorCode` and a
``details`` dict (synth, step, expected vs actual on-chain value) so the run
can be diagnosed and safely re-invoked:

    PreconditionError      run rejected before any transaction
    ConsentDeclined        operator said no at the confirmation gate
    ChainReadError         an eth_call failed
    TransactionFailedError submission, revert or confirmation failure
    ReadOnlySessionError   a dry-run session was asked to persist
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes surfaced in logs and run reports."""

    # Preconditions
    UNKNOWN_SYNTH = "UNKNOWN_SYNTH"
    PROTECTED_SYNTH = "PROTECTED_SYNTH"
    ADDRESS_MISMATCH = "ADDRESS_MISMATCH"
    MISSING_SOURCE = "MISSING_SOURCE"
    INVALID_NETWORK = "INVALID_NETWORK"
    INVALID_SIGNER = "INVALID_SIGNER"

    # Operator
    CONSENT_DECLINED = "CONSENT_DECLINED"

    # Chain
    CHAIN_READ_FAILED = "CHAIN_READ_FAILED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"

    # Store
    READ_ONLY_SESSION = "READ_ONLY_SESSION"

    @property
    def exit_code(self) -> int:
        """Process exit status for a run that ended with this code."""
        return 0 if self is ErrorCode.CONSENT_DECLINED else 1


class SynthOpsError(Exception):
    """Base exception for synthops failures."""

    code: ErrorCode = ErrorCode.TRANSACTION_FAILED

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


# ── Preconditions ────────────────────────────────────────────────────────────


class PreconditionError(SynthOpsError):
    """The run cannot start or continue safely; nothing is sent."""


class UnknownSynthError(PreconditionError):
    code = ErrorCode.UNKNOWN_SYNTH


class ProtectedSynthError(PreconditionError):
    code = ErrorCode.PROTECTED_SYNTH


class AddressMismatchError(PreconditionError):
    """Local deployment record disagrees with the on-chain registry."""

    code = ErrorCode.ADDRESS_MISMATCH


class MissingSourceError(PreconditionError):
    """A deployment target has no source or the source has no ABI."""

    code = ErrorCode.MISSING_SOURCE


class NetworkError(PreconditionError):
    code = ErrorCode.INVALID_NETWORK


class SignerError(PreconditionError):
    code = ErrorCode.INVALID_SIGNER


# ── Operator ─────────────────────────────────────────────────────────────────


class ConsentDeclined(SynthOpsError):
    """Raised by the confirmation gate when the operator declines."""

    code = ErrorCode.CONSENT_DECLINED


# ── Chain ────────────────────────────────────────────────────────────────────


class ChainReadError(SynthOpsError):
    code = ErrorCode.CHAIN_READ_FAILED


class TransactionFailedError(SynthOpsError):
    """A write could not be submitted, reverted, or was never confirmed."""

    code = ErrorCode.TRANSACTION_FAILED

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        tx_hash: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.tx_hash = tx_hash


# ── Store ────────────────────────────────────────────────────────────────────


class ReadOnlySessionError(SynthOpsError):
    code = ErrorCode.READ_ONLY_SESSION
