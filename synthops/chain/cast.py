"""Thin wrapper around Foundry's ``cast`` for reads, writes and encoding.

All chain traffic goes through one :class:`CastRunner` bound to an RPC URL:

    runner = CastRunner("http://127.0.0.1:8545")
    runner.call(address, "owner()(address)")
    runner.calldata("removeSynth(bytes32)", to_bytes32("sETH"))
    runner.send(address, "removeSynth(bytes32)", [key], signer=signer, gas=gas)

``cast send`` blocks until the transaction is mined (or ``--timeout``
expires), which gives the submit-and-wait semantics the steps rely on.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from synthops.core.errors import ChainReadError, SynthOpsError, TransactionFailedError
from synthops.core.types import GasParams, TxReceipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Signer:
    """The account writes are sent from.

    Without a private key the account is used as an unlocked sender, which
    only works against a fork or a local node.
    """

    address: str
    private_key: str | None = None

    @property
    def unlocked(self) -> bool:
        return not self.private_key

    def __repr__(self) -> str:
        return f"Signer(address={self.address!r}, unlocked={self.unlocked})"


def _format_arg(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _redact(cmd: list[str]) -> list[str]:
    out = list(cmd)
    for i, arg in enumerate(out[:-1]):
        if arg == "--private-key":
            out[i + 1] = "****"
    return out


def _parse_int(token: str) -> int:
    token = token.strip()
    if token.startswith("0x"):
        return int(token, 16)
    return int(token, 10)


def parse_output(raw: str, output_types: list[str]) -> list[Any]:
    """Decode ``cast call`` stdout (one value per line) into Python values."""
    lines = [line.strip() for line in raw.strip().splitlines() if line.strip()]
    if len(lines) < len(output_types):
        raise ChainReadError(
            f"Expected {len(output_types)} values from cast, got {len(lines)}",
            details={"output": raw},
        )
    values: list[Any] = []
    for line, abi_type in zip(lines, output_types):
        # Newer cast versions append a human hint: "1000000000000000000 [1e18]"
        token = line.split(" ")[0]
        if abi_type.startswith(("uint", "int")):
            values.append(_parse_int(token))
        elif abi_type == "bool":
            values.append(token.lower() == "true")
        else:
            values.append(token)
    return values


class CastRunner:
    """Runs ``cast`` subcommands against one RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        foundry_bin_path: str | None = None,
        timeout_seconds: int = 600,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout_seconds = timeout_seconds
        self._binary = self._resolve_binary(foundry_bin_path)

    @staticmethod
    def _resolve_binary(foundry_bin_path: str | None) -> str:
        if foundry_bin_path:
            candidate = Path(foundry_bin_path) / "cast"
            if candidate.exists():
                return str(candidate)
        return shutil.which("cast") or "cast"

    def _run(
        self,
        args: list[str],
        error_cls: type[SynthOpsError] = ChainReadError,
    ) -> subprocess.CompletedProcess:
        """Run ``cast``; a missing binary or a hung process raises ``error_cls``."""
        cmd = [self._binary, *args]
        logger.debug("Running %s", " ".join(_redact(cmd)))
        try:
            return subprocess.run(
                cmd,
                check=False,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout_seconds + 30,
            )
        except FileNotFoundError as exc:
            raise error_cls(
                f"cast binary not found at {self._binary}",
                details={"command": args[0], "binary": self._binary},
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise error_cls(
                f"cast {args[0]} timed out after {exc.timeout}s",
                details={"command": args[0], "timeout": exc.timeout},
            ) from exc

    @staticmethod
    def _detail(proc: subprocess.CompletedProcess) -> str:
        stderr = proc.stderr.strip() if proc.stderr else ""
        stdout = proc.stdout.strip() if proc.stdout else ""
        return stderr or stdout or "command failed"

    # ── Reads ────────────────────────────────────────────────────────────────

    def call(self, to: str, signature: str, args: list[Any] | None = None) -> str:
        proc = self._run(
            ["call", to, signature, *[_format_arg(a) for a in args or []], "--rpc-url", self.rpc_url]
        )
        if proc.returncode != 0:
            raise ChainReadError(
                f"cast call {signature} on {to} failed: {self._detail(proc)}",
                details={"to": to, "signature": signature},
            )
        return proc.stdout or ""

    def calldata(self, signature: str, args: list[Any] | None = None) -> str:
        proc = self._run(["calldata", signature, *[_format_arg(a) for a in args or []]])
        if proc.returncode != 0:
            raise ChainReadError(
                f"cast calldata {signature} failed: {self._detail(proc)}",
                details={"signature": signature},
            )
        return (proc.stdout or "").strip()

    def wallet_address(self, private_key: str) -> str:
        proc = self._run(["wallet", "address", "--private-key", private_key])
        if proc.returncode != 0:
            raise ChainReadError("Could not derive signer address from private key")
        return (proc.stdout or "").strip()

    # ── Writes ───────────────────────────────────────────────────────────────

    def send(
        self,
        to: str,
        signature: str,
        args: list[Any] | None = None,
        *,
        signer: Signer,
        gas: GasParams,
    ) -> TxReceipt:
        """Submit a transaction and wait for its receipt."""
        cmd = ["send", to, signature, *[_format_arg(a) for a in args or []]]
        cmd += ["--rpc-url", self.rpc_url, "--json", "--timeout", str(self.timeout_seconds)]
        if signer.unlocked:
            cmd += ["--unlocked", "--from", signer.address]
        else:
            cmd += ["--private-key", signer.private_key]  # type: ignore[list-item]
        cmd += ["--gas-limit", str(gas.gas_limit)]
        if gas.max_fee_per_gas:
            cmd += ["--gas-price", f"{gas.max_fee_per_gas}gwei"]
        if gas.max_priority_fee_per_gas:
            cmd += ["--priority-gas-price", f"{gas.max_priority_fee_per_gas}gwei"]

        proc = self._run(cmd, TransactionFailedError)
        if proc.returncode != 0:
            raise TransactionFailedError(
                f"cast send {signature} to {to} failed: {self._detail(proc)}",
                details={"to": to, "signature": signature},
            )
        return self._parse_receipt(proc.stdout or "", to=to, signature=signature)

    @staticmethod
    def _parse_receipt(out: str, *, to: str, signature: str) -> TxReceipt:
        try:
            data = json.loads(out)
        except json.JSONDecodeError as exc:
            raise TransactionFailedError(
                f"Unreadable receipt from cast send: {out[:200]}",
                details={"to": to, "signature": signature},
            ) from exc

        tx_hash = data.get("transactionHash") or data.get("hash") or ""
        status_raw = str(data.get("status", "0x1"))
        succeeded = _parse_int(status_raw) == 1 if status_raw else True
        receipt = TxReceipt(
            tx_hash=tx_hash,
            status=succeeded,
            block_number=_parse_int(str(data["blockNumber"])) if data.get("blockNumber") else None,
            gas_used=_parse_int(str(data["gasUsed"])) if data.get("gasUsed") else None,
        )
        if not receipt.status:
            raise TransactionFailedError(
                f"Transaction {tx_hash} reverted",
                details={"to": to, "signature": signature},
                tx_hash=tx_hash,
            )
        return receipt
