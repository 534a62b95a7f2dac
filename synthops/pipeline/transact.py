"""Guarded transactional step — read, skip if satisfied, write or queue.

One :class:`StepSpec` describes a single state-changing call:

    StepSpec(
        step=RemovalState.DEREGISTERING_AGGREGATOR,
        probe=ReadProbe(exchange_rates, "aggregators", (key,)),
        expected=expect_zero_address,
        write=WriteAction(exchange_rates, "removeAggregator", (key,), gas),
    )

:meth:`StepExecutor.execute` produces exactly one of: no on-chain effect
(``skipped`` / ``dry-run``), one confirmed transaction (``executed``), one
appended owner action (``queued-for-owner``), or a failure (``aborted``).
Nothing is retried here; running the step again is what makes it safe,
because the probe turns an already-applied change into ``skipped``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from synthops.chain.contracts import ContractHandle
from synthops.core.chains import NetworkConfig
from synthops.core.errors import ChainReadError, MissingSourceError, TransactionFailedError
from synthops.core.session import DeploymentSession
from synthops.core.types import (
    GasParams,
    OwnerAction,
    RemovalState,
    StepOutcome,
    StepResult,
    is_zero_address,
)

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], bool]


# ── Expected-state predicates ────────────────────────────────────────────────


@dataclass(frozen=True)
class Expectation:
    """A named ``predicate(read_result) -> already satisfied``."""

    description: str
    check: Predicate

    def __call__(self, value: Any) -> bool:
        return bool(self.check(value))


def _not_suspended(value: Any) -> bool:
    # synthSuspension returns (bool suspended, uint248 reason)
    if isinstance(value, dict):
        return not value.get("suspended", value.get("0"))
    return not value


expect_zero_address = Expectation("zero address", is_zero_address)
expect_not_suspended = Expectation("not suspended", _not_suspended)


def _describe(predicate: Predicate) -> str:
    if isinstance(predicate, Expectation):
        return predicate.description
    return getattr(predicate, "__name__", "custom")


# ── Step description ─────────────────────────────────────────────────────────


@dataclass
class ReadProbe:
    contract: ContractHandle
    method: str
    args: tuple[Any, ...] = ()


@dataclass
class WriteAction:
    contract: ContractHandle
    method: str
    args: tuple[Any, ...] = ()
    gas: GasParams = field(default_factory=GasParams)

    @property
    def action(self) -> str:
        return f"{self.method}({', '.join(str(a) for a in self.args)})"

    @property
    def key(self) -> str:
        return f"{self.contract.name}.{self.action}"


@dataclass
class StepSpec:
    step: RemovalState
    write: WriteAction
    probe: ReadProbe | None = None
    expected: Predicate | None = None


# ── Executor ─────────────────────────────────────────────────────────────────


class StepExecutor:
    """Runs guarded steps for one session and signer."""

    def __init__(
        self,
        session: DeploymentSession,
        signer_address: str,
        network: NetworkConfig,
        *,
        encode_abi: bool = False,
        dry_run: bool = False,
    ) -> None:
        self._session = session
        self._signer_address = signer_address
        self._network = network
        self._encode_abi = encode_abi
        self._dry_run = dry_run

    def execute(self, spec: StepSpec, synth: str) -> StepResult:
        write = spec.write
        log_extra = {"synth": synth, "step": spec.step.value, "contract": write.contract.name}
        result = StepResult(
            step=spec.step,
            contract=write.contract.name,
            method=write.method,
            outcome=StepOutcome.ABORTED,
        )

        try:
            # 1. Already in the target state?
            if spec.probe is not None and spec.expected is not None:
                probe = spec.probe
                observed = probe.contract.call(probe.method, *probe.args)
                result.observed = observed
                if spec.expected(observed):
                    logger.info(
                        "Nothing required for %s: %s.%s is %s",
                        write.key,
                        probe.contract.name,
                        probe.method,
                        observed,
                        extra={**log_extra, "outcome": StepOutcome.SKIPPED.value},
                    )
                    result.outcome = StepOutcome.SKIPPED
                    return result

            # 2. Who may write?
            owner = write.contract.owner()
            is_owner = owner.lower() == self._signer_address.lower()

            if self._encode_abi or not is_owner:
                result.calldata = write.contract.encode(write.method, *write.args)

            if not is_owner:
                return self._queue(spec, result, owner, log_extra)

            # 3. Authorized: submit and wait.
            if self._dry_run:
                logger.info(
                    "Would execute %s as owner %s",
                    write.key,
                    owner,
                    extra={**log_extra, "outcome": StepOutcome.DRY_RUN.value},
                )
                result.outcome = StepOutcome.DRY_RUN
                return result

            if result.calldata:
                logger.info(
                    "Call data for %s at %s: %s",
                    write.key,
                    write.contract.address,
                    result.calldata,
                    extra=log_extra,
                )

            receipt = write.contract.transact(write.method, *write.args, gas=write.gas)
            result.tx_hash = receipt.tx_hash
            result.outcome = StepOutcome.EXECUTED
            logger.info(
                "Successfully completed %s in %s",
                write.key,
                self._network.tx_link(receipt.tx_hash),
                extra={**log_extra, "tx_hash": receipt.tx_hash, "outcome": result.outcome.value},
            )
            return result

        except TransactionFailedError as exc:
            result.tx_hash = exc.tx_hash
            result.error = self._failure(exc, spec, synth, result)
        except (ChainReadError, MissingSourceError) as exc:
            result.error = self._failure(exc, spec, synth, result)

        logger.error(
            "%s failed: %s",
            write.key,
            result.error["message"] if result.error else "unknown error",
            extra={**log_extra, "outcome": StepOutcome.ABORTED.value},
        )
        return result

    def _queue(
        self,
        spec: StepSpec,
        result: StepResult,
        owner: str,
        log_extra: dict[str, Any],
    ) -> StepResult:
        write = spec.write
        logger.info(
            "Account %s is not owner %s of %s",
            self._signer_address,
            owner,
            write.contract.name,
            extra=log_extra,
        )
        if self._dry_run:
            logger.info(
                "Would append owner action %s",
                write.key,
                extra={**log_extra, "outcome": StepOutcome.DRY_RUN.value},
            )
            result.outcome = StepOutcome.DRY_RUN
            return result

        action = OwnerAction(
            key=write.key,
            target=write.contract.name,
            address=write.contract.address,
            action=write.action,
            data=result.calldata or "",
            requested_by=self._signer_address,
            link=self._network.address_link(write.contract.address),
        )
        result.duplicate_owner_action = self._session.append_owner_action(action)
        result.outcome = StepOutcome.QUEUED_FOR_OWNER
        logger.warning(
            "Queued owner action %s (to: %s, data: %s)",
            write.key,
            write.contract.address,
            action.data,
            extra={**log_extra, "outcome": result.outcome.value},
        )
        return result

    @staticmethod
    def _failure(exc: Exception, spec: StepSpec, synth: str, result: StepResult) -> dict[str, Any]:
        details: dict[str, Any] = {
            "synth": synth,
            "step": spec.step.value,
            "action": spec.write.key,
        }
        if spec.expected is not None:
            details["expected"] = _describe(spec.expected)
            details["observed"] = result.observed
        if result.tx_hash:
            details["tx_hash"] = result.tx_hash
        code = getattr(exc, "code", None)
        extra_details = getattr(exc, "details", {}) or {}
        return {
            "code": code.value if code is not None else "TRANSACTION_FAILED",
            "message": str(exc),
            "details": {**extra_details, **details},
        }
