"""Deployment session — the in-memory config mirror for one removal run.

The three deployment documents (``config.json``, ``deployment.json`` and
``synths.json``) plus the owner-action queue and the removal ledger are read
once when the session is opened. Mutations happen on working copies and only
reach disk through :meth:`DeploymentSession.commit`, which the orchestrator
calls right after an on-chain change is confirmed. :meth:`discard` resets the
working copies to the last committed state.

Usage:
    session = DeploymentSession.load(Path("publish/deployed/goerli"))
    session.remove_synth("sETH")
    session.commit()
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from synthops.core.errors import MissingSourceError, NetworkError, ReadOnlySessionError
from synthops.core.types import (
    CONFIG_FILENAME,
    DEPLOYMENT_FILENAME,
    OWNER_ACTIONS_FILENAME,
    REMOVAL_LEDGER_FILENAME,
    SYNTHS_FILENAME,
    DeploymentSource,
    DeploymentTarget,
    OwnerAction,
    RemovalState,
    StepOutcome,
    SynthDescriptor,
    synth_contract_names,
)

logger = logging.getLogger(__name__)

REQUIRED_FILES = (CONFIG_FILENAME, DEPLOYMENT_FILENAME, SYNTHS_FILENAME)


def stringify(value: Any) -> str:
    """Serialise a document the way the deployment tooling writes it."""
    return json.dumps(value, indent="\t", ensure_ascii=False, default=str) + "\n"


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    return json.loads(path.read_text(encoding="utf-8"))


def _write_documents(documents: dict[Path, Any]) -> None:
    """Replace several documents together.

    Every document is serialised to a temp file beside its target first; only
    when all of them are written are the temp files renamed into place. A
    failure while staging leaves every target untouched.
    """
    staged: list[tuple[str, Path]] = []
    try:
        for path, value in documents.items():
            fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
            staged.append((tmp, path))
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(stringify(value))
    except BaseException:
        for tmp, _ in staged:
            Path(tmp).unlink(missing_ok=True)
        raise

    for tmp, path in staged:
        os.replace(tmp, path)


def _write_json(path: Path, value: Any) -> None:
    _write_documents({path: value})


def ensure_deployment_path(deployment_path: Path) -> None:
    """Raise unless ``deployment_path`` holds the required documents."""
    if not deployment_path.is_dir():
        raise NetworkError(
            f"Deployment path {deployment_path} does not exist",
            details={"deployment_path": str(deployment_path)},
        )
    missing = [name for name in REQUIRED_FILES if not (deployment_path / name).exists()]
    if missing:
        raise NetworkError(
            f"Deployment path {deployment_path} is missing {', '.join(missing)}",
            details={"deployment_path": str(deployment_path), "missing": missing},
        )


def _normalise_owner_actions(raw: Any) -> tuple[list[dict[str, Any]], bool]:
    """Return the queue as records plus whether the file was keyed by action."""
    if isinstance(raw, dict):
        return [{"key": key, **entry} for key, entry in raw.items()], True
    return list(raw or []), False


def _serialise_owner_actions(actions: list[dict[str, Any]], keyed: bool) -> Any:
    if not keyed:
        return actions
    return {
        entry["key"]: {name: value for name, value in entry.items() if name != "key"}
        for entry in actions
    }


class DeploymentSession:
    """Mutable, explicitly committed view of one deployment directory."""

    def __init__(
        self,
        deployment_path: Path,
        config: dict[str, Any],
        deployment: dict[str, Any],
        synths: list[dict[str, Any]],
        owner_actions: list[dict[str, Any]] | None = None,
        ledger: dict[str, Any] | None = None,
        read_only: bool = False,
        owner_actions_keyed: bool = False,
    ) -> None:
        self.deployment_path = deployment_path
        self.read_only = read_only
        self.owner_actions_keyed = owner_actions_keyed
        self._committed: dict[str, Any] = {
            "config": config,
            "deployment": deployment,
            "synths": synths,
            "ledger": ledger or {},
        }
        self._owner_actions = owner_actions or []
        self.discard()

    @classmethod
    def load(cls, deployment_path: Path, read_only: bool = False) -> DeploymentSession:
        ensure_deployment_path(deployment_path)
        owner_actions, keyed = _normalise_owner_actions(
            _read_json(deployment_path / OWNER_ACTIONS_FILENAME, [])
        )
        return cls(
            deployment_path=deployment_path,
            config=_read_json(deployment_path / CONFIG_FILENAME, {}),
            deployment=_read_json(deployment_path / DEPLOYMENT_FILENAME, {}),
            synths=_read_json(deployment_path / SYNTHS_FILENAME, []),
            owner_actions=owner_actions,
            ledger=_read_json(deployment_path / REMOVAL_LEDGER_FILENAME, {}),
            read_only=read_only,
            owner_actions_keyed=keyed,
        )

    # ── Working copies ───────────────────────────────────────────────────────

    def discard(self) -> None:
        """Drop uncommitted changes."""
        self.config: dict[str, Any] = copy.deepcopy(self._committed["config"])
        self.deployment: dict[str, Any] = copy.deepcopy(self._committed["deployment"])
        self.synths: list[dict[str, Any]] = copy.deepcopy(self._committed["synths"])
        self.ledger: dict[str, Any] = copy.deepcopy(self._committed["ledger"])

    @property
    def dirty(self) -> bool:
        return (
            self.config != self._committed["config"]
            or self.deployment != self._committed["deployment"]
            or self.synths != self._committed["synths"]
            or self.ledger != self._committed["ledger"]
        )

    @property
    def owner_actions(self) -> list[dict[str, Any]]:
        return list(self._owner_actions)

    # ── Lookups ──────────────────────────────────────────────────────────────

    def synth_names(self) -> list[str]:
        return [SynthDescriptor(**entry).name for entry in self.synths]

    def has_synth(self, currency_key: str) -> bool:
        return currency_key in self.synth_names()

    def ledger_entry(self, currency_key: str) -> dict[str, Any] | None:
        return self.ledger.get(currency_key)

    def target(self, contract: str) -> DeploymentTarget:
        raw = self.deployment.get("targets", {}).get(contract)
        if raw is None:
            raise MissingSourceError(
                f"No deployment target for {contract} in {DEPLOYMENT_FILENAME}",
                details={"contract": contract},
            )
        return DeploymentTarget(**raw)

    def abi_for(self, contract: str) -> list[dict[str, Any]]:
        """Return the ABI behind a deployment target."""
        target = self.target(contract)
        raw = self.deployment.get("sources", {}).get(target.source)
        if raw is None:
            raise MissingSourceError(
                f"Source {target.source} for {contract} not found in {DEPLOYMENT_FILENAME}",
                details={"contract": contract, "source": target.source},
            )
        source = DeploymentSource(**raw)
        if not source.abi:
            raise MissingSourceError(
                f"Source {target.source} for {contract} has no ABI",
                details={"contract": contract, "source": target.source},
            )
        return source.abi

    # ── Mutations ────────────────────────────────────────────────────────────

    def remove_synth(self, currency_key: str) -> list[str]:
        """Drop a synth's contracts and registry entry from the working copies.

        Returns the contract names that were present and removed.
        """
        removed: list[str] = []
        targets = self.deployment.get("targets", {})
        for name in synth_contract_names(currency_key):
            present = False
            if name in self.config:
                del self.config[name]
                present = True
            if name in targets:
                del targets[name]
                present = True
            if present:
                removed.append(name)

        self.synths = [entry for entry in self.synths if entry.get("name") != currency_key]
        self.ledger.setdefault(
            currency_key,
            {"removed_at": datetime.now(timezone.utc).isoformat(), "steps": {}},
        )
        return removed

    def record_step(self, currency_key: str, step: RemovalState, outcome: StepOutcome) -> None:
        entry = self.ledger.get(currency_key)
        if entry is None:
            return
        steps = entry.setdefault("steps", {})
        # A re-run that finds the step satisfied keeps the original outcome.
        if outcome is StepOutcome.SKIPPED and steps.get(step.value) == StepOutcome.EXECUTED.value:
            return
        steps[step.value] = outcome.value

    def append_owner_action(self, action: OwnerAction) -> bool:
        """Append to the owner-action queue and flush it.

        Returns True when a pending action with the same key was already
        queued. A list-shaped queue gets the new record appended regardless;
        a queue keyed by action (the shape is kept as loaded) can hold one
        record per key, so the new record replaces the old one.
        """
        if self.read_only:
            raise ReadOnlySessionError(
                "Cannot queue owner actions in a read-only session",
                details={"key": action.key},
            )
        duplicate = any(
            entry.get("key") == action.key and not entry.get("complete")
            for entry in self._owner_actions
        )
        if duplicate:
            logger.warning(
                "Owner action %s is already pending; it may not have been executed yet",
                action.key,
            )
        if self.owner_actions_keyed:
            self._owner_actions = [e for e in self._owner_actions if e.get("key") != action.key]
        self._owner_actions.append(action.model_dump(mode="json"))
        _write_json(
            self.deployment_path / OWNER_ACTIONS_FILENAME,
            _serialise_owner_actions(self._owner_actions, self.owner_actions_keyed),
        )
        return duplicate

    def commit(self) -> None:
        """Persist the working copies and make them the committed state.

        All four documents are staged before any is replaced, so a failure
        while writing leaves the files and the committed state as they were.
        """
        if self.read_only:
            raise ReadOnlySessionError(
                "Refusing to persist a read-only session",
                details={"deployment_path": str(self.deployment_path)},
            )
        _write_documents(
            {
                self.deployment_path / CONFIG_FILENAME: self.config,
                self.deployment_path / DEPLOYMENT_FILENAME: self.deployment,
                self.deployment_path / SYNTHS_FILENAME: self.synths,
                self.deployment_path / REMOVAL_LEDGER_FILENAME: self.ledger,
            }
        )
        self._committed = {
            "config": copy.deepcopy(self.config),
            "deployment": copy.deepcopy(self.deployment),
            "synths": copy.deepcopy(self.synths),
            "ledger": copy.deepcopy(self.ledger),
        }
        logger.debug("Committed deployment documents to %s", self.deployment_path)
