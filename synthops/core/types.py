"""Shared enums, constants and schemas used across synthops."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ── Constants ────────────────────────────────────────────────────────────────

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

CONFIG_FILENAME = "config.json"
DEPLOYMENT_FILENAME = "deployment.json"
SYNTHS_FILENAME = "synths.json"
OWNER_ACTIONS_FILENAME = "owner-actions.json"
REMOVAL_LEDGER_FILENAME = "removal-ledger.json"

# Contract instances created per synth; removed together from the mirror.
SYNTH_CONTRACT_PREFIXES = ("Proxy", "TokenState", "Synth")


def to_bytes32(key: str) -> str:
    """Encode a currency key as a right-padded bytes32 hex string."""
    raw = key.encode("utf-8")
    if len(raw) > 32:
        raise ValueError(f"Currency key '{key}' does not fit in bytes32")
    return "0x" + raw.hex().ljust(64, "0")


def is_zero_address(value: Any) -> bool:
    return isinstance(value, str) and value.lower() == ZERO_ADDRESS


def synth_contract_names(currency_key: str) -> list[str]:
    return [f"{prefix}{currency_key}" for prefix in SYNTH_CONTRACT_PREFIXES]


# ── Enums ────────────────────────────────────────────────────────────────────


class StepOutcome(str, enum.Enum):
    """Result of one guarded transactional step."""

    SKIPPED = "skipped"
    EXECUTED = "executed"
    QUEUED_FOR_OWNER = "queued-for-owner"
    DRY_RUN = "dry-run"
    ABORTED = "aborted"


class RemovalState(str, enum.Enum):
    """Per-synth pipeline state."""

    VALIDATING = "validating"
    CONFIRMING_SUPPLY = "confirming_supply"
    REMOVING_FROM_ISSUER = "removing_from_issuer"
    DEREGISTERING_AGGREGATOR = "deregistering_aggregator"
    RESUMING_STATUS = "resuming_status"
    DONE = "done"
    ABORTED = "aborted"


# ── Deployment schemas ───────────────────────────────────────────────────────


class DeploymentTarget(BaseModel):
    """One entry of ``deployment.json`` → ``targets``."""

    model_config = ConfigDict(extra="allow")

    address: str
    source: str
    name: str = ""


class DeploymentSource(BaseModel):
    """One entry of ``deployment.json`` → ``sources``."""

    model_config = ConfigDict(extra="allow")

    abi: list[dict[str, Any]] = Field(default_factory=list)


class SynthDescriptor(BaseModel):
    """One entry of ``synths.json``."""

    model_config = ConfigDict(extra="allow")

    name: str
    asset: str = ""


# ── Transaction schemas ──────────────────────────────────────────────────────


class GasParams(BaseModel):
    """Gas settings for a write. Fee values are in gwei."""

    gas_limit: int = 300_000
    max_fee_per_gas: str | None = None
    max_priority_fee_per_gas: str | None = None


class TxReceipt(BaseModel):
    """Confirmed transaction."""

    tx_hash: str
    status: bool = True
    block_number: int | None = None
    gas_used: int | None = None


class OwnerAction(BaseModel):
    """A privileged call recorded for later multisig execution."""

    key: str
    target: str
    address: str
    action: str
    data: str
    requested_by: str
    link: str = ""
    complete: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ── Run reports ──────────────────────────────────────────────────────────────


class StepResult(BaseModel):
    """Outcome of one guarded step."""

    step: RemovalState
    contract: str
    method: str
    outcome: StepOutcome
    tx_hash: str | None = None
    calldata: str | None = None
    observed: Any = None
    error: dict[str, Any] | None = None
    duplicate_owner_action: bool = False


class SynthReport(BaseModel):
    """What happened to one requested synth."""

    synth: str
    state: RemovalState = RemovalState.VALIDATING
    steps: list[StepResult] = Field(default_factory=list)
    mirror_updated: bool = False
    declined: bool = False
    error: dict[str, Any] | None = None

    def outcome_of(self, step: RemovalState) -> StepOutcome | None:
        for result in self.steps:
            if result.step == step:
                return result.outcome
        return None


class RemovalReport(BaseModel):
    """Result of a whole removal run."""

    run_id: str
    network: str
    dry_run: bool = False
    requested: list[str] = Field(default_factory=list)
    synths: list[SynthReport] = Field(default_factory=list)
    error: dict[str, Any] | None = None
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        if self.error is not None:
            return True
        return any(s.error is not None and not s.declined for s in self.synths)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0
