"""
Transaction Auto-Correction Loop

Simulate -> classify -> estimate -> synthesize -> re-simulate, until the
transaction simulates cleanly, hits a shortage it cannot fix, or trips the
iteration bound.

HARD RULES:
- Session state is created per correct() call and never shared
- Every correction re-simulates (a powerup can need incidental RAM)
- Exceeding max_iterations raises; it never fails open
- Unclassified failures follow AutoCorrectConfig.unknown_failure_policy
- All state transitions logged with iteration and reason
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from config.chains import ChainConfig, ChainFeature
from config.runtime_schema import UNKNOWN_FAILURE_RAISE, AutoCorrectConfig
from execution.action_builder import build_buyrambytes_action, build_powerup_action, prepend
from execution.chain_client import ChainClient, TransactionResolver
from execution.errors import (
    SETTLED_CLEAN,
    SETTLED_NO_PROFILE,
    SETTLED_UNKNOWN_FAILURE,
    SETTLED_UNSUPPORTED,
    TooManyIterationsError,
    UnhandledSimulationFailure,
)
from execution.failure_classifier import Shortage, ShortageKind, classify
from execution.models import AccountResources, Asset, PermissionLevel, Transaction
from execution.resource_pricing import CostEstimator, PricingFactory

logger = logging.getLogger(__name__)

# Feature needed to correct each shortage kind
REQUIRED_FEATURE = {
    ShortageKind.NET: ChainFeature.POWER_UP,
    ShortageKind.CPU: ChainFeature.POWER_UP,
    ShortageKind.RAM: ChainFeature.BUY_RAM,
}


class CorrectionState(Enum):
    """Correction loop states."""
    SIMULATING = "SIMULATING"
    CLASSIFYING = "CLASSIFYING"
    CORRECTING = "CORRECTING"
    SETTLED = "SETTLED"


@dataclass
class CorrectionSession:
    """
    Mutable state for one correction invocation.

    Attributes:
        transaction: Working candidate (original plus prepended purchases).
        estimator: Session-scoped cost estimator (owns the usage sample cache).
        chain: Capability profile of the active chain.
        account: Signer RAM accounting, fetched on first need.
        price: Accumulated cost, None until something is bought.
        resources: Resource labels bought, in purchase order.
        iterations: Simulations attempted so far.
        state: Current loop state.
    """
    transaction: Transaction
    estimator: Optional[CostEstimator]
    chain: Optional[ChainConfig]
    account: Optional[AccountResources] = None
    price: Optional[Asset] = None
    resources: List[str] = field(default_factory=list)
    iterations: int = 0
    state: CorrectionState = CorrectionState.SIMULATING

    def add_cost(self, cost: Asset) -> None:
        self.price = cost if self.price is None else self.price + cost


@dataclass(frozen=True)
class CorrectionResult:
    """
    Outcome of a settled correction session.

    Attributes:
        transaction: Final candidate (the input itself if nothing was bought).
        price: Total estimated cost, None if nothing was bought.
        resources: Deduplicated resource labels, in purchase order.
        iterations: Simulations attempted.
        settle_reason: One of the SETTLED_* constants.
    """
    transaction: Transaction
    price: Optional[Asset]
    resources: Tuple[str, ...]
    iterations: int
    settle_reason: str

    @property
    def resource_label(self) -> str:
        """User-facing label, e.g. "CPU/NET/RAM"."""
        return "/".join(self.resources)


def log_transition(
    session: CorrectionSession,
    new_state: CorrectionState,
    reason: str,
) -> None:
    """Move the session to a new state and log it."""
    old_state = session.state
    session.state = new_state
    logger.info(
        f"[autocorrect] Iteration {session.iterations}: "
        f"{old_state.value} -> {new_state.value} (reason: {reason})"
    )


class TransactionCorrector:
    """
    Runs the correction loop against a simulator, resolver and pricing service.

    The corrector itself holds only collaborators and configuration; all
    per-transaction state lives in a CorrectionSession built inside correct().
    """

    def __init__(
        self,
        client: ChainClient,
        resolver: TransactionResolver,
        pricing_factory: PricingFactory,
        config: Optional[AutoCorrectConfig] = None,
    ):
        self.client = client
        self.resolver = resolver
        self.pricing_factory = pricing_factory
        self.config = config or AutoCorrectConfig()

    async def correct(
        self,
        transaction: Transaction,
        chain: Optional[ChainConfig],
        *,
        ui_available: bool = True,
    ) -> CorrectionResult:
        """Correct a transaction until it settles.

        Args:
            transaction: Candidate to correct; never mutated.
            chain: Capability profile, None if the chain is not configured.
            ui_available: Whether a prompt surface exists to confirm fees.

        Returns:
            CorrectionResult describing the final candidate and its cost.

        Raises:
            TooManyIterationsError: If the bound is exceeded.
            UnhandledSimulationFailure: Under the "raise" unknown-failure policy.
        """
        estimator = None
        if chain is not None:
            estimator = CostEstimator(self.pricing_factory(chain.sample_account), chain.symbol, self.config)
        session = CorrectionSession(transaction=transaction, estimator=estimator, chain=chain)

        while True:
            session.iterations += 1
            if session.iterations > self.config.max_iterations:
                logger.error(
                    f"[autocorrect] Iteration bound exceeded "
                    f"({session.iterations} > {self.config.max_iterations})"
                )
                raise TooManyIterationsError(session.iterations, self.config.max_iterations)

            if chain is None:
                return self._settle(session, SETTLED_NO_PROFILE)
            if not ui_available:
                return self._settle(session, SETTLED_UNSUPPORTED)

            resolved = await self.resolver.resolve(session.transaction)
            failure = await self.client.compute_transaction(resolved.transaction)
            if failure is None:
                return self._settle(session, SETTLED_CLEAN)

            log_transition(session, CorrectionState.CLASSIFYING, failure.name)
            shortage = classify(failure)
            if shortage is not None and shortage.shortfall <= 0:
                # Recognized failure with nothing to buy; the raise policy covers unclassified ones only
                logger.warning(
                    f"[autocorrect] Malformed {shortage.kind.label} shortage "
                    f"(shortfall {shortage.shortfall}), leaving transaction unchanged"
                )
                return self._settle(session, SETTLED_UNKNOWN_FAILURE)
            if shortage is None:
                if self.config.unknown_failure_policy == UNKNOWN_FAILURE_RAISE:
                    raise UnhandledSimulationFailure(failure)
                logger.warning(f"[autocorrect] Ignoring unclassified failure {failure.name}")
                return self._settle(session, SETTLED_UNKNOWN_FAILURE)

            feature = REQUIRED_FEATURE[shortage.kind]
            if not chain.supports(feature):
                logger.warning(
                    f"[autocorrect] {shortage.kind.label} shortage needs {feature.value}, "
                    f"not supported on this chain"
                )
                return self._settle(session, SETTLED_UNSUPPORTED)

            log_transition(session, CorrectionState.CORRECTING, shortage.kind.value)
            if shortage.kind is ShortageKind.RAM:
                await self._buy_ram(session, resolved.signer, shortage)
            else:
                await self._powerup(session, resolved.signer, shortage)
            log_transition(session, CorrectionState.SIMULATING, "re-simulate")

    def _settle(self, session: CorrectionSession, reason: str) -> CorrectionResult:
        log_transition(session, CorrectionState.SETTLED, reason)
        return CorrectionResult(
            transaction=session.transaction,
            price=session.price,
            resources=tuple(dict.fromkeys(session.resources)),
            iterations=session.iterations,
            settle_reason=reason,
        )

    async def _buy_ram(
        self,
        session: CorrectionSession,
        signer: PermissionLevel,
        shortage: Shortage,
    ) -> None:
        ram_bytes = session.estimator.scale(shortage.shortfall)
        price = await session.estimator.estimate_ram(ram_bytes)

        session.transaction = prepend(session.transaction, build_buyrambytes_action(signer, ram_bytes))
        session.add_cost(price)
        session.resources.append(ShortageKind.RAM.label)
        logger.info(f"[autocorrect] Prepended buyrambytes {ram_bytes} bytes for {signer.actor} ({price})")

    async def _powerup(
        self,
        session: CorrectionSession,
        signer: PermissionLevel,
        shortage: Shortage,
    ) -> None:
        needed = session.estimator.scale(shortage.shortfall)
        cpu_us = needed if shortage.kind is ShortageKind.CPU else 0
        net_bytes = needed if shortage.kind is ShortageKind.NET else 0

        quote = await session.estimator.estimate_powerup(cpu_us, net_bytes)
        action = build_powerup_action(
            signer,
            cpu_frac=quote.cpu_frac,
            net_frac=quote.net_frac,
            max_payment=quote.price,
            days=self.config.powerup_days,
        )
        candidate = prepend(session.transaction, action)
        session.add_cost(quote.price)
        session.resources.extend([ShortageKind.CPU.label, ShortageKind.NET.label])
        logger.info(
            f"[autocorrect] Prepended powerup cpu={quote.cpu_us}us net={quote.net_bytes}b "
            f"for {signer.actor} ({quote.price})"
        )

        # The powerup itself consumes RAM; top up first if headroom is short
        if session.account is None:
            session.account = await self.client.get_account(signer.actor)
        ram_bytes = self.config.powerup_ram_bytes
        if session.account.ram_headroom < ram_bytes:
            ram_price = await session.estimator.estimate_ram(ram_bytes)
            candidate = prepend(candidate, build_buyrambytes_action(signer, ram_bytes))
            session.account = session.account.with_extra_quota(ram_bytes)
            session.add_cost(ram_price)
            session.resources.append(ShortageKind.RAM.label)
            logger.info(
                f"[autocorrect] Headroom {session.account.ram_headroom - ram_bytes}b "
                f"below {ram_bytes}b, prepended buyrambytes {ram_bytes} bytes ({ram_price})"
            )

        session.transaction = candidate
