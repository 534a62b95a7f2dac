"""Removal orchestrator — decommissions synths one at a time.

Per synth flow:
1. VALIDATING: deployed Synth address must match ``Synthetix.synths(key)``
2. CONFIRMING_SUPPLY: non-zero supply needs explicit operator consent
3. REMOVING_FROM_ISSUER: ``Issuer.removeSynth``; the config mirror is
   updated and persisted in lock-step with this step only
4. DEREGISTERING_AGGREGATOR: ``ExchangeRates.removeAggregator`` unless unset
5. RESUMING_STATUS: ``SystemStatus.resumeSynth`` unless not suspended
6. DONE

Batch preconditions (unknown or protected synth, unresolvable contract) are
checked before any synth enters the pipeline. An address mismatch aborts the
whole run. A declined confirmation aborts only that synth. A failed step
aborts the run and leaves the persisted documents as they were before it.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Callable, Protocol

from synthops.chain.contracts import ContractHandle
from synthops.core.chains import NetworkConfig
from synthops.core.errors import (
    AddressMismatchError,
    ChainReadError,
    ConsentDeclined,
    PreconditionError,
    ProtectedSynthError,
    UnknownSynthError,
)
from synthops.core.session import DeploymentSession
from synthops.core.types import (
    DEPLOYMENT_FILENAME,
    GasParams,
    RemovalReport,
    RemovalState,
    StepOutcome,
    StepResult,
    SynthReport,
    is_zero_address,
    to_bytes32,
)
from synthops.pipeline.transact import (
    ReadProbe,
    StepExecutor,
    StepSpec,
    WriteAction,
    expect_not_suspended,
    expect_zero_address,
)

logger = logging.getLogger(__name__)

ConfirmationGate = Callable[[str], bool]

CORE_CONTRACTS = ("Synthetix", "Issuer", "ExchangeRates", "SystemStatus")


class ContractResolver(Protocol):
    def get(self, name: str) -> ContractHandle: ...


def format_units(amount: int, decimals: int = 18) -> str:
    """Render a fixed-point integer the way ``formatEther`` does."""
    value = Decimal(amount) / (Decimal(10) ** decimals)
    text = format(value.normalize(), "f")
    return text if "." in text else f"{text}.0"


class RemovalOrchestrator:
    """Runs the removal state machine over a list of currency keys."""

    def __init__(
        self,
        session: DeploymentSession,
        contracts: ContractResolver,
        signer_address: str,
        network: NetworkConfig,
        gas: GasParams,
        confirm: ConfirmationGate,
        *,
        dry_run: bool = False,
        yes: bool = False,
        base_synth: str = "sUSD",
        protected_synths: tuple[str, ...] | list[str] = ("sUSD",),
    ) -> None:
        self._session = session
        self._contracts = contracts
        self._signer_address = signer_address
        self._network = network
        self._gas = gas
        self._confirm = confirm
        self._dry_run = dry_run
        self._yes = yes
        self._base_synth = base_synth
        self._protected = set(protected_synths) | {base_synth}
        self._executor = StepExecutor(
            session,
            signer_address,
            network,
            encode_abi=network.is_mainnet,
            dry_run=dry_run,
        )

    # ── Run ──────────────────────────────────────────────────────────────────

    def run(self, synths_to_remove: list[str], run_id: str | None = None) -> RemovalReport:
        report = RemovalReport(
            run_id=run_id or str(uuid.uuid4()),
            network=self._network.name,
            dry_run=self._dry_run,
            requested=list(synths_to_remove),
        )

        if not synths_to_remove:
            logger.info("No synths provided. Please use --synths-to-remove option")
            return report

        try:
            self._validate_batch(synths_to_remove)
        except PreconditionError as exc:
            logger.error("%s", exc.message, extra={"synth": exc.details.get("synth")})
            report.error = exc.to_dict()
            return report

        logger.info("Using account %s", self._signer_address)
        logger.info(
            "Gas: max fee %s gwei, priority fee %s gwei, limit %d",
            self._gas.max_fee_per_gas,
            self._gas.max_priority_fee_per_gas,
            self._gas.gas_limit,
        )
        logger.info("Dry-run: %s", "yes" if self._dry_run else "no")

        if not self._yes:
            prompt = (
                f"WARNING: This action will remove the following synths from the Synthetix "
                f"contract on {self._network.name}:\n- " + "\n- ".join(synths_to_remove)
            )
            if not self._confirm(prompt):
                logger.info("Operation cancelled")
                report.cancelled = True
                return report

        for currency_key in synths_to_remove:
            synth_report = SynthReport(synth=currency_key)
            report.synths.append(synth_report)
            try:
                self._remove_synth(currency_key, synth_report)
            except ConsentDeclined as exc:
                logger.info("Operation cancelled for %s", currency_key, extra={"synth": currency_key})
                synth_report.state = RemovalState.ABORTED
                synth_report.declined = True
                synth_report.error = exc.to_dict()
                continue
            except (PreconditionError, ChainReadError) as exc:
                logger.error("%s", exc.message, extra={"synth": currency_key})
                synth_report.state = RemovalState.ABORTED
                synth_report.error = exc.to_dict()
                report.error = exc.to_dict()
                break

            if synth_report.state is RemovalState.ABORTED:
                report.error = synth_report.error
                break

        return report

    # ── Validation ───────────────────────────────────────────────────────────

    def _validate_batch(self, synths_to_remove: list[str]) -> None:
        for currency_key in synths_to_remove:
            if currency_key in self._protected:
                raise ProtectedSynthError(
                    f"Synth {currency_key} cannot be removed",
                    details={"synth": currency_key},
                )
            if not self._session.has_synth(currency_key) and (
                self._session.ledger_entry(currency_key) is None
            ):
                raise UnknownSynthError(
                    f"Synth {currency_key} not found!",
                    details={"synth": currency_key},
                )

        # every contract we will touch must resolve to an address with an ABI
        for name in CORE_CONTRACTS:
            self._contracts.get(name)
        for currency_key in synths_to_remove:
            if self._session.has_synth(currency_key):
                self._contracts.get(f"Synth{currency_key}")

    def _check_registered_address(self, currency_key: str) -> bool:
        """Compare the local Synth address with the on-chain registry.

        Returns True when the registry already shows the synth as removed
        (e.g. a queued owner action was executed since the last run).
        """
        synth = self._contracts.get(f"Synth{currency_key}")
        registered = self._contracts.get("Synthetix").call("synths", to_bytes32(currency_key))

        if str(registered).lower() == synth.address.lower():
            return False
        if is_zero_address(registered):
            logger.warning(
                "Synth %s is no longer registered in Synthetix; reconciling local documents",
                currency_key,
                extra={"synth": currency_key},
            )
            return True
        raise AddressMismatchError(
            f"Synth address in Synthetix for {currency_key} is different from the local "
            f"{DEPLOYMENT_FILENAME} of {self._network.name}",
            details={"synth": currency_key, "deployed": registered, "local": synth.address},
        )

    def _confirm_supply(self, currency_key: str) -> None:
        synth = self._contracts.get(f"Synth{currency_key}")
        total_supply = int(synth.call("totalSupply"))
        if total_supply == 0:
            return

        value = self._contracts.get("ExchangeRates").call(
            "effectiveValue",
            to_bytes32(currency_key),
            total_supply,
            to_bytes32(self._base_synth),
        )
        prompt = (
            f"Synth{currency_key}.totalSupply is non-zero: {format_units(total_supply)} "
            f"which is ${format_units(int(value))}\n"
            "THIS WILL DEPRECATE THE SYNTH BY ITS PROXY. ARE YOU SURE???"
        )
        if not self._confirm(prompt):
            raise ConsentDeclined(
                f"Removal of {currency_key} declined at supply confirmation",
                details={"synth": currency_key, "total_supply": total_supply},
            )

    # ── Per-synth pipeline ───────────────────────────────────────────────────

    def _remove_synth(self, currency_key: str, report: SynthReport) -> None:
        key = to_bytes32(currency_key)
        report.state = RemovalState.VALIDATING

        # Only in the ledger: issuer removal already happened in an earlier run.
        resuming = not self._session.has_synth(currency_key)
        already_removed = resuming or self._check_registered_address(currency_key)

        if not already_removed:
            report.state = RemovalState.CONFIRMING_SUPPLY
            self._confirm_supply(currency_key)

        synthetix = self._contracts.get("Synthetix")
        issuer = self._contracts.get("Issuer")
        exchange_rates = self._contracts.get("ExchangeRates")
        system_status = self._contracts.get("SystemStatus")

        specs = [
            StepSpec(
                step=RemovalState.REMOVING_FROM_ISSUER,
                probe=ReadProbe(synthetix, "synths", (key,)),
                expected=expect_zero_address,
                write=WriteAction(issuer, "removeSynth", (key,), self._gas),
            ),
            StepSpec(
                step=RemovalState.DEREGISTERING_AGGREGATOR,
                probe=ReadProbe(exchange_rates, "aggregators", (key,)),
                expected=expect_zero_address,
                write=WriteAction(exchange_rates, "removeAggregator", (key,), self._gas),
            ),
            StepSpec(
                step=RemovalState.RESUMING_STATUS,
                probe=ReadProbe(system_status, "synthSuspension", (key,)),
                expected=expect_not_suspended,
                write=WriteAction(system_status, "resumeSynth", (key,), self._gas),
            ),
        ]

        for spec in specs:
            report.state = spec.step
            result = self._executor.execute(spec, currency_key)
            report.steps.append(result)

            if result.outcome is StepOutcome.ABORTED:
                self._session.discard()
                report.state = RemovalState.ABORTED
                report.error = result.error
                return

            if spec.step is RemovalState.REMOVING_FROM_ISSUER:
                self._after_issuer_step(currency_key, result, report)
            else:
                self._record(currency_key, result)

        report.state = RemovalState.DONE
        logger.info(
            "Finished %s: %s",
            currency_key,
            ", ".join(f"{r.method}={r.outcome.value}" for r in report.steps),
            extra={"synth": currency_key},
        )

    def _after_issuer_step(self, currency_key: str, result: StepResult, report: SynthReport) -> None:
        """Mirror the issuer removal locally once the chain confirms it."""
        if self._dry_run or result.outcome not in (StepOutcome.EXECUTED, StepOutcome.SKIPPED):
            return
        if self._session.has_synth(currency_key):
            removed = self._session.remove_synth(currency_key)
            logger.info(
                "Removing %s from local deployment documents",
                ", ".join(removed) or currency_key,
                extra={"synth": currency_key, "step": result.step.value},
            )
            report.mirror_updated = True
        self._record(currency_key, result)

    def _record(self, currency_key: str, result: StepResult) -> None:
        if self._dry_run:
            return
        self._session.record_step(currency_key, result.step, result.outcome)
        if self._session.dirty:
            self._session.commit()

