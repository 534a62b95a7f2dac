"""Shared fixtures for the synthops test suite.

``FakeChain`` holds the on-chain state the removal touches (synth registry,
aggregators, suspensions, supplies). ``FakeContract`` handles read and write
against it the way the cast-backed handles would, so the orchestrator and
the step executor run end to end without a node.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from synthops.core.chains import NETWORKS, NetworkConfig
from synthops.core.errors import ChainReadError, TransactionFailedError
from synthops.core.session import DeploymentSession
from synthops.core.types import ZERO_ADDRESS, GasParams, TxReceipt, to_bytes32
from synthops.pipeline.orchestrator import RemovalOrchestrator


def addr(n: int) -> str:
    return "0x" + f"{n:040x}"


OWNER = addr(0xA11CE)
STRANGER = addr(0xB0B)

CORE_ADDRESSES = {
    "Synthetix": addr(1),
    "Issuer": addr(2),
    "ExchangeRates": addr(3),
    "SystemStatus": addr(4),
}

SYNTH_ADDRESSES = {
    "sUSD": {"Proxy": addr(0x10), "TokenState": addr(0x11), "Synth": addr(0x12)},
    "sETH": {"Proxy": addr(0x20), "TokenState": addr(0x21), "Synth": addr(0x22)},
    "sBTC": {"Proxy": addr(0x30), "TokenState": addr(0x31), "Synth": addr(0x32)},
}


# ── ABIs ─────────────────────────────────────────────────────────────────────


def _fn(name: str, inputs: list[str], outputs: list[str], mutability: str = "view") -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(inputs)],
        "outputs": [{"name": "", "type": t} for t in outputs],
        "stateMutability": mutability,
    }


OWNED_ABI = [_fn("owner", [], ["address"])]

ABIS: dict[str, list[dict[str, Any]]] = {
    "Synthetix": OWNED_ABI + [_fn("synths", ["bytes32"], ["address"])],
    "Issuer": OWNED_ABI + [_fn("removeSynth", ["bytes32"], [], "nonpayable")],
    "ExchangeRates": OWNED_ABI
    + [
        _fn("aggregators", ["bytes32"], ["address"]),
        _fn("removeAggregator", ["bytes32"], [], "nonpayable"),
        _fn("effectiveValue", ["bytes32", "uint256", "bytes32"], ["uint256"]),
    ],
    "SystemStatus": OWNED_ABI
    + [
        {
            "type": "function",
            "name": "synthSuspension",
            "inputs": [{"name": "", "type": "bytes32"}],
            "outputs": [
                {"name": "suspended", "type": "bool"},
                {"name": "reason", "type": "uint248"},
            ],
            "stateMutability": "view",
        },
        _fn("resumeSynth", ["bytes32"], [], "nonpayable"),
    ],
    "MultiCollateralSynth": OWNED_ABI + [_fn("totalSupply", [], ["uint256"])],
    "ProxyERC20": OWNED_ABI,
    "TokenState": OWNED_ABI,
}


# ── Fake chain ───────────────────────────────────────────────────────────────


class FakeChain:
    """In-memory stand-in for the four core contracts and the synths."""

    def __init__(self, owner: str = OWNER) -> None:
        self.owner = owner
        self.registry: dict[str, str] = {
            to_bytes32(key): contracts["Synth"] for key, contracts in SYNTH_ADDRESSES.items()
        }
        self.aggregators: dict[str, str] = {
            to_bytes32(key): addr(0x100 + i) for i, key in enumerate(SYNTH_ADDRESSES)
        }
        self.suspended: dict[str, bool] = {to_bytes32(key): True for key in SYNTH_ADDRESSES}
        self.supply: dict[str, int] = {key: 0 for key in SYNTH_ADDRESSES}
        self.rate = 2
        self.failing: set[str] = set()
        self.unreadable: set[str] = set()
        self.txs: list[str] = []
        self.reads: list[str] = []

    def read(self, contract: str, method: str, args: tuple[Any, ...]) -> Any:
        call = f"{contract}.{method}"
        self.reads.append(call)
        if call in self.unreadable:
            raise ChainReadError(f"execution reverted: {call}")
        if method == "owner":
            return self.owner
        if call == "Synthetix.synths":
            return self.registry.get(args[0], ZERO_ADDRESS)
        if call == "ExchangeRates.aggregators":
            return self.aggregators.get(args[0], ZERO_ADDRESS)
        if call == "ExchangeRates.effectiveValue":
            return args[1] * self.rate
        if call == "SystemStatus.synthSuspension":
            return {"suspended": self.suspended.get(args[0], False), "reason": 0}
        if contract.startswith("Synth") and method == "totalSupply":
            return self.supply[contract[len("Synth"):]]
        raise ChainReadError(f"unknown read {call}")

    def write(self, contract: str, method: str, args: tuple[Any, ...]) -> TxReceipt:
        call = f"{contract}.{method}"
        tx_hash = "0x" + f"{len(self.txs) + 1:064x}"
        if call in self.failing:
            raise TransactionFailedError(
                f"Transaction {tx_hash} reverted",
                details={"to": contract},
                tx_hash=tx_hash,
            )
        self.txs.append(call)
        if call == "Issuer.removeSynth":
            self.registry[args[0]] = ZERO_ADDRESS
        elif call == "ExchangeRates.removeAggregator":
            self.aggregators[args[0]] = ZERO_ADDRESS
        elif call == "SystemStatus.resumeSynth":
            self.suspended[args[0]] = False
        return TxReceipt(tx_hash=tx_hash, block_number=len(self.txs))


class FakeContract:
    def __init__(self, name: str, address: str, chain: FakeChain) -> None:
        self.name = name
        self.address = address
        self._chain = chain

    def call(self, method: str, *args: Any) -> Any:
        return self._chain.read(self.name, method, args)

    def owner(self) -> str:
        return str(self.call("owner"))

    def encode(self, method: str, *args: Any) -> str:
        selector = method.encode().hex()[:8].ljust(8, "0")
        return "0x" + selector + "".join(str(a)[2:] for a in args)

    def transact(self, method: str, *args: Any, gas: GasParams) -> TxReceipt:
        return self._chain.write(self.name, method, args)


class FakeResolver:
    """Resolves names through the session so missing targets fail as in production."""

    def __init__(self, session: DeploymentSession, chain: FakeChain) -> None:
        self._session = session
        self._chain = chain

    def get(self, name: str) -> FakeContract:
        target = self._session.target(name)
        self._session.abi_for(name)
        return FakeContract(name, target.address, self._chain)


class ScriptedGate:
    """Confirmation gate that records prompts and answers from a script."""

    def __init__(self, *answers: bool, default: bool = True) -> None:
        self.answers = list(answers)
        self.default = default
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        if self.answers:
            return self.answers.pop(0)
        return self.default


# ── Deployment directory ─────────────────────────────────────────────────────


def write_deployment(path: Path, synths: tuple[str, ...] = ("sUSD", "sETH", "sBTC")) -> Path:
    """Write config.json, deployment.json and synths.json for ``synths``."""
    path.mkdir(parents=True, exist_ok=True)
    config: dict[str, Any] = {name: {"deploy": False} for name in CORE_ADDRESSES}
    targets: dict[str, Any] = {
        name: {"name": name, "address": address, "source": name}
        for name, address in CORE_ADDRESSES.items()
    }
    for key in synths:
        contracts = SYNTH_ADDRESSES[key]
        for prefix, source in (
            ("Proxy", "ProxyERC20"),
            ("TokenState", "TokenState"),
            ("Synth", "MultiCollateralSynth"),
        ):
            name = f"{prefix}{key}"
            config[name] = {"deploy": False}
            targets[name] = {"name": name, "address": contracts[prefix], "source": source}

    deployment = {
        "targets": targets,
        "sources": {name: {"bytecode": "0x", "abi": abi} for name, abi in ABIS.items()},
    }
    registry = [{"name": key, "asset": key[1:]} for key in synths]

    (path / "config.json").write_text(json.dumps(config, indent="\t") + "\n")
    (path / "deployment.json").write_text(json.dumps(deployment, indent="\t") + "\n")
    (path / "synths.json").write_text(json.dumps(registry, indent="\t") + "\n")
    return path


def read_doc(path: Path, name: str) -> Any:
    return json.loads((path / name).read_text())


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def deployment_dir(tmp_path: Path) -> Path:
    return write_deployment(tmp_path / "publish" / "deployed" / "goerli")


@pytest.fixture
def session(deployment_dir: Path) -> DeploymentSession:
    return DeploymentSession.load(deployment_dir)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def goerli() -> NetworkConfig:
    return NETWORKS["goerli"]


@pytest.fixture
def gas() -> GasParams:
    return GasParams(gas_limit=300_000, max_priority_fee_per_gas="1")


@pytest.fixture
def make_orchestrator(
    chain: FakeChain,
    goerli: NetworkConfig,
    gas: GasParams,
) -> Callable[..., RemovalOrchestrator]:
    """Factory: ``make_orchestrator(session, signer=..., confirm=..., dry_run=...)``."""

    def _make(
        session: DeploymentSession,
        *,
        signer: str = OWNER,
        confirm: Callable[[str], bool] | None = None,
        network: NetworkConfig | None = None,
        dry_run: bool = False,
        yes: bool = True,
    ) -> RemovalOrchestrator:
        return RemovalOrchestrator(
            session,
            FakeResolver(session, chain),
            signer,
            network or goerli,
            gas,
            confirm or ScriptedGate(),
            dry_run=dry_run,
            yes=yes,
        )

    return _make
