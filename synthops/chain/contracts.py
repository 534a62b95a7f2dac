"""Contract handles resolved from the deployment record.

A handle knows its name, address and ABI. Function signatures passed to
``cast`` are built from the ABI, so a target whose source carries no ABI
cannot be called at all (``MissingSourceError`` is raised at resolution).
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from synthops.chain.cast import CastRunner, Signer, parse_output
from synthops.core.errors import ChainReadError, MissingSourceError, SignerError
from synthops.core.session import DeploymentSession
from synthops.core.types import GasParams, TxReceipt

logger = logging.getLogger(__name__)


class ContractHandle(Protocol):
    """What the transactional steps need from a contract."""

    name: str
    address: str

    def call(self, method: str, *args: Any) -> Any: ...

    def owner(self) -> str: ...

    def encode(self, method: str, *args: Any) -> str: ...

    def transact(self, method: str, *args: Any, gas: GasParams) -> TxReceipt: ...


def _canonical_type(param: dict[str, Any]) -> str:
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(_canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def find_function(abi: list[dict[str, Any]], method: str, arg_count: int) -> dict[str, Any]:
    """Pick the ABI entry for ``method`` taking ``arg_count`` arguments."""
    candidates = [
        entry
        for entry in abi
        if entry.get("type", "function") == "function" and entry.get("name") == method
    ]
    for entry in candidates:
        if len(entry.get("inputs", [])) == arg_count:
            return entry
    raise MissingSourceError(
        f"ABI has no function {method} with {arg_count} argument(s)",
        details={"method": method, "arg_count": arg_count},
    )


def function_signature(entry: dict[str, Any], with_outputs: bool = False) -> str:
    inputs = ",".join(_canonical_type(p) for p in entry.get("inputs", []))
    signature = f"{entry['name']}({inputs})"
    if with_outputs:
        outputs = ",".join(_canonical_type(p) for p in entry.get("outputs", []))
        signature += f"({outputs})"
    return signature


class CastContract:
    """Contract handle backed by ``cast``."""

    def __init__(
        self,
        name: str,
        address: str,
        abi: list[dict[str, Any]],
        runner: CastRunner,
        signer: Signer,
    ) -> None:
        self.name = name
        self.address = address
        self.abi = abi
        self._runner = runner
        self._signer = signer

    def __repr__(self) -> str:
        return f"CastContract({self.name} @ {self.address})"

    def call(self, method: str, *args: Any) -> Any:
        """Read-only call.

        A single output is returned as a scalar. Several outputs come back as
        a dict keyed by output name (or position when unnamed).
        """
        entry = find_function(self.abi, method, len(args))
        outputs = entry.get("outputs", [])
        raw = self._runner.call(self.address, function_signature(entry, with_outputs=True), list(args))
        values = parse_output(raw, [_canonical_type(o) for o in outputs])
        if len(outputs) == 1:
            return values[0]
        return {(o.get("name") or str(i)): v for i, (o, v) in enumerate(zip(outputs, values))}

    def owner(self) -> str:
        try:
            return str(self.call("owner"))
        except MissingSourceError as exc:
            raise ChainReadError(
                f"{self.name} does not expose owner()",
                details={"contract": self.name},
            ) from exc

    def encode(self, method: str, *args: Any) -> str:
        entry = find_function(self.abi, method, len(args))
        return self._runner.calldata(function_signature(entry), list(args))

    def transact(self, method: str, *args: Any, gas: GasParams) -> TxReceipt:
        entry = find_function(self.abi, method, len(args))
        return self._runner.send(
            self.address,
            function_signature(entry),
            list(args),
            signer=self._signer,
            gas=gas,
        )


class ContractAccessor:
    """Resolves contract names to handles bound to the run's signer."""

    def __init__(self, session: DeploymentSession, runner: CastRunner, signer: Signer) -> None:
        self._session = session
        self._runner = runner
        self.signer = signer
        self._cache: dict[str, CastContract] = {}

    def get(self, name: str) -> CastContract:
        if name not in self._cache:
            target = self._session.target(name)
            abi = self._session.abi_for(name)
            self._cache[name] = CastContract(name, target.address, abi, self._runner, self.signer)
            logger.debug("Resolved %s at %s", name, target.address)
        return self._cache[name]


def resolve_signer(
    runner: CastRunner,
    private_key: str | None,
    owner_address: str | None,
) -> Signer:
    """Build the run's signer from a private key or an unlocked owner address."""
    if private_key:
        return Signer(address=runner.wallet_address(private_key), private_key=private_key)
    if not owner_address:
        raise SignerError(
            "No private key given and no owner address configured for an unlocked signer",
            details={"hint": "set SYNTHOPS_PRIVATE_KEY or SYNTHOPS_OWNER_ADDRESS"},
        )
    return Signer(address=owner_address)
