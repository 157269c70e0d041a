from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, List, Optional, Sequence, Union

import pytest

from config.chains import JUNGLE4_CHAIN_ID
from execution.chain_client import PLACEHOLDER_ACTOR, PLACEHOLDER_PERMISSION, ChainClient
from execution.confirmation import PromptArgs, PromptResult, UserInterface
from execution.errors import PromptCancelled
from execution.failure_classifier import (
    CPU_USAGE_EXCEEDED,
    NET_USAGE_EXCEEDED,
    RAM_USAGE_EXCEEDED,
    SimulationFailure,
)
from execution.models import AccountResources, Action, PermissionLevel, Transaction
from execution.resource_pricing import ResourcePricing

SIGNER = PermissionLevel("wharfkit1125", "test")

# Fake market: prices per unit of native token
RAM_PRICE_PER_BYTE = Decimal("0.0001")
CPU_PRICE_PER_US = Decimal("0.00001")
NET_PRICE_PER_BYTE = Decimal("0.000001")


def net_failure(net_usage: int) -> SimulationFailure:
    return SimulationFailure(NET_USAGE_EXCEEDED, {"net_usage": net_usage})


def cpu_failure(billed: int, billable: int = 0) -> SimulationFailure:
    return SimulationFailure(CPU_USAGE_EXCEEDED, {"billed_cpu_us": billed, "billable_cpu_us": billable})


def ram_failure(needed: int, available: int, account: str = "wharfkit1125") -> SimulationFailure:
    return SimulationFailure(
        RAM_USAGE_EXCEEDED,
        {"account": account, "needed_bytes": needed, "available_bytes": available},
    )


def make_transfer() -> Transaction:
    placeholder = PermissionLevel(PLACEHOLDER_ACTOR, PLACEHOLDER_PERMISSION)
    return Transaction(
        actions=(
            Action(
                account="eosio.token",
                name="transfer",
                authorization=(placeholder,),
                data={
                    "from": PLACEHOLDER_ACTOR,
                    "to": "wharfkittest",
                    "quantity": "0.0001 EOS",
                    "memo": "autocorrect test",
                },
            ),
        ),
        chain_id=JUNGLE4_CHAIN_ID,
    )


class FakeChainClient(ChainClient):
    """Replays scripted simulation results; the last entry repeats forever."""

    def __init__(
        self,
        results: Sequence[Optional[SimulationFailure]] = (None,),
        account: Optional[AccountResources] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.results = list(results)
        self.account = account or AccountResources("wharfkit1125", ram_quota=100_000, ram_usage=1_000)
        self.gate = gate
        self.simulated: List[Transaction] = []
        self.account_calls = 0

    async def compute_transaction(self, transaction: Transaction) -> Optional[SimulationFailure]:
        if self.gate is not None:
            await self.gate.wait()
        self.simulated.append(transaction)
        index = min(len(self.simulated) - 1, len(self.results) - 1)
        return self.results[index]

    async def get_account(self, account_name: str) -> AccountResources:
        self.account_calls += 1
        return self.account


class FakePricing(ResourcePricing):
    def __init__(self):
        self.sample_calls = 0
        self.sample_accounts: List[str] = []

    async def sample_usage(self) -> Any:
        self.sample_calls += 1
        return {"sample": self.sample_calls}

    async def ram_price_per(self, ram_bytes: int) -> Decimal:
        return RAM_PRICE_PER_BYTE * ram_bytes

    async def cpu_price_per(self, sample: Any, cpu_us: int) -> Decimal:
        return CPU_PRICE_PER_US * cpu_us

    async def net_price_per(self, sample: Any, net_bytes: int) -> Decimal:
        return NET_PRICE_PER_BYTE * net_bytes

    async def cpu_frac(self, sample: Any, cpu_us: int) -> int:
        return cpu_us * 1000

    async def net_frac(self, sample: Any, net_bytes: int) -> int:
        return net_bytes * 1000


# A scripted prompt behaviour: a PromptResult, an exception to raise, "hang",
# or AfterYield(...) to give the event loop one turn before answering
Behaviour = Union[PromptResult, BaseException, str, "AfterYield"]


@dataclass(frozen=True)
class AfterYield:
    behaviour: Union[PromptResult, BaseException]


class FakeUI(UserInterface):
    """Prompt surface answering each prompt from a script, in order."""

    def __init__(self, *behaviours: Behaviour):
        super().__init__()
        self.behaviours = list(behaviours)
        self.prompts: List[PromptArgs] = []

    async def prompt(self, args: PromptArgs) -> PromptResult:
        self.prompts.append(args)
        behaviour = self.behaviours.pop(0) if self.behaviours else "hang"
        if isinstance(behaviour, AfterYield):
            await asyncio.sleep(0)
            behaviour = behaviour.behaviour
        if behaviour == "hang":
            await asyncio.Event().wait()
        if isinstance(behaviour, BaseException):
            raise behaviour
        return behaviour


@pytest.fixture
def pricing() -> FakePricing:
    return FakePricing()


@pytest.fixture
def pricing_factory(pricing: FakePricing) -> Callable[[str], FakePricing]:
    def factory(sample_account: str) -> FakePricing:
        pricing.sample_accounts.append(sample_account)
        return pricing
    return factory


@pytest.fixture
def transfer() -> Transaction:
    return make_transfer()


@pytest.fixture
def cancelled() -> PromptCancelled:
    return PromptCancelled("user cancelled")
