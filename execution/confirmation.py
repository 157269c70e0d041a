"""
Confirmation Coordinator

Pre-signing hook that runs the correction loop behind a "checking" notice
and asks the user to accept the fee before releasing a corrected transaction.

Flow:
1. Show "Checking transaction" notice (non-blocking)
2. Race the notice against the correction loop
3. If anything was bought, prompt "Accept Transaction Fee?"
4. Accept -> corrected transaction; decline -> original transaction

HARD RULES:
- PromptCancelled from either prompt propagates, never becomes "unchanged"
- A plain decline returns the ORIGINAL transaction
- Clean transactions pass through with no fee prompt
- Registration without a prompt surface fails fast
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from config.chains import DEFAULT_CHAINS, ChainConfig
from config.runtime_schema import AutoCorrectConfig
from execution.autocorrect import CorrectionResult, TransactionCorrector
from execution.chain_client import ChainClient, PlaceholderResolver, TransactionResolver
from execution.errors import UIRequiredError
from execution.models import Asset, PermissionLevel, Transaction
from execution.resource_pricing import PricingFactory

logger = logging.getLogger(__name__)

PLUGIN_ID = "transact-plugin-autocorrect"

DEFAULT_TRANSLATIONS: Mapping[str, Mapping[str, str]] = MappingProxyType({
    "en": MappingProxyType({
        "checking": "Checking transaction",
        "fee.title": "Accept Transaction Fee?",
        "fee.body": (
            "Additional resources ({{resource}}) are required for your account to perform "
            "this transaction. Would you like to automatically purchase these resources "
            "from the network and proceed?"
        ),
        "fee.cost": "Cost of {{resource}}",
    }),
})


class PromptResult(Enum):
    """How a prompt was resolved (cancellation raises instead)."""
    ACCEPTED = "accepted"
    DECLINED = "declined"


class ConfirmationOutcome(Enum):
    """What the hook did with the transaction."""
    UNCHANGED = "unchanged"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class HookType(Enum):
    BEFORE_SIGN = "before_sign"


@dataclass(frozen=True)
class PromptElement:
    """One element of a prompt (e.g. an asset display or accept button)."""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PromptArgs:
    title: str
    body: str = ""
    elements: Tuple[PromptElement, ...] = ()


class Translator:
    """Looks up prompt strings with {{name}} interpolation."""

    def __init__(self, strings: Mapping[str, str]):
        self.strings = strings

    def __call__(self, key: str, default: str, **params: Any) -> str:
        text = self.strings.get(key, default)
        for name, value in params.items():
            text = text.replace("{{" + name + "}}", str(value))
        return text


class UserInterface(ABC):
    """
    Abstract prompt surface.

    prompt() resolves to ACCEPTED or DECLINED and raises PromptCancelled when
    the user cancels. Any timeout policy belongs to the implementation.
    """

    language: str = "en"

    def __init__(self):
        self._translations: Dict[str, Mapping[str, Mapping[str, str]]] = {}

    @abstractmethod
    async def prompt(self, args: PromptArgs) -> PromptResult:
        ...

    def add_translations(self, namespace: str, translations: Mapping[str, Mapping[str, str]]) -> None:
        self._translations[namespace] = translations

    def get_translate(self, namespace: str) -> Translator:
        translations = self._translations.get(namespace, {})
        return Translator(translations.get(self.language, {}))


HookFn = Callable[[Transaction, "TransactContext"], Awaitable["HookResponse"]]


@dataclass
class TransactContext:
    """
    Everything a hook needs from the surrounding transact pipeline.

    Attributes:
        chain_id: Active chain id.
        permission_level: Session signer.
        client: Chain API (simulation + account lookup).
        pricing_factory: Builds a pricing client for a sample account.
        ui: Prompt surface, if any.
        resolver: Placeholder resolver (defaults to the session signer).
        chains: Chain capability profiles.
        config: Correction tunables.
    """
    chain_id: str
    permission_level: PermissionLevel
    client: ChainClient
    pricing_factory: PricingFactory
    ui: Optional[UserInterface] = None
    resolver: Optional[TransactionResolver] = None
    chains: Mapping[str, ChainConfig] = field(default_factory=lambda: DEFAULT_CHAINS)
    config: AutoCorrectConfig = field(default_factory=AutoCorrectConfig)
    hooks: Dict[HookType, List[HookFn]] = field(default_factory=dict)

    def __post_init__(self):
        if self.resolver is None:
            self.resolver = PlaceholderResolver(self.permission_level)

    def add_hook(self, hook_type: HookType, hook: HookFn) -> None:
        self.hooks.setdefault(hook_type, []).append(hook)


@dataclass(frozen=True)
class HookResponse:
    """
    Attributes:
        request: Transaction to continue the pipeline with.
        outcome: What the hook did.
        result: Correction result, if the loop ran to completion.
    """
    request: Transaction
    outcome: ConfirmationOutcome = ConfirmationOutcome.UNCHANGED
    result: Optional[CorrectionResult] = None


class AutoCorrectPlugin:
    """
    Transact plugin that buys missing RAM/CPU/NET before signing.

    Usage:
        plugin = AutoCorrectPlugin()
        plugin.register(context)
        response = await plugin.run(tx, context)
    """

    id = PLUGIN_ID

    def __init__(self, translations: Mapping[str, Mapping[str, str]] = DEFAULT_TRANSLATIONS):
        self.translations = translations

    def register(self, context: TransactContext) -> None:
        """Attach run() as a before_sign hook.

        Raises:
            UIRequiredError: If the context has no prompt surface.
        """
        if context.ui is None:
            raise UIRequiredError("The AutoCorrectPlugin requires a UI to be present.")
        context.ui.add_translations(self.id, self.translations)
        context.add_hook(HookType.BEFORE_SIGN, self.run)

    async def run(self, request: Transaction, context: TransactContext) -> HookResponse:
        """Correct and confirm `request`; always returns a transaction.

        Raises:
            PromptCancelled: If the user cancels either prompt.
            TooManyIterationsError: If the correction loop trips its bound.
        """
        if context.ui is None:
            return HookResponse(request=request)

        chain = context.chains.get(context.chain_id)
        if chain is None:
            logger.info(f"[confirm] No profile for chain {context.chain_id[:12]}, skipping")
            return HookResponse(request=request)

        t = context.ui.get_translate(self.id)
        corrector = TransactionCorrector(
            client=context.client,
            resolver=context.resolver,
            pricing_factory=context.pricing_factory,
            config=context.config,
        )

        checking = asyncio.ensure_future(
            context.ui.prompt(PromptArgs(title=t("checking", "Checking transaction")))
        )
        correcting = asyncio.ensure_future(corrector.correct(request, chain))
        try:
            result = await self._race(checking, correcting)
        finally:
            await self._cancel_pending(checking, correcting)

        if result is None:
            logger.info("[confirm] Checking notice dismissed before correction finished")
            return HookResponse(request=request, outcome=ConfirmationOutcome.DECLINED)

        if result.transaction is request and result.price is None:
            return HookResponse(request=request, result=result)

        resources = result.resource_label
        answer = await context.ui.prompt(self._fee_prompt(t, resources, result.price))
        if answer is PromptResult.ACCEPTED:
            logger.info(f"[confirm] Fee {result.price} for {resources} accepted")
            return HookResponse(
                request=result.transaction,
                outcome=ConfirmationOutcome.ACCEPTED,
                result=result,
            )

        logger.info(f"[confirm] Fee {result.price} for {resources} declined, returning original")
        return HookResponse(request=request, outcome=ConfirmationOutcome.DECLINED, result=result)

    async def _race(
        self,
        checking: "asyncio.Future[PromptResult]",
        correcting: "asyncio.Future[CorrectionResult]",
    ) -> Optional[CorrectionResult]:
        """First settled wins; a finished correction takes precedence on ties.

        Returns:
            The correction result, or None if the notice was dismissed first.
        """
        done, _ = await asyncio.wait({checking, correcting}, return_when=asyncio.FIRST_COMPLETED)
        if correcting in done:
            return correcting.result()
        # Raises PromptCancelled if the user cancelled the notice
        checking.result()
        return None

    async def _cancel_pending(self, *tasks: asyncio.Future) -> None:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
        # Mark losing results as retrieved; the winner's outcome was already consumed
        for task in tasks:
            if not task.cancelled():
                task.exception()

    def _fee_prompt(self, t: Translator, resources: str, price: Optional[Asset]) -> PromptArgs:
        return PromptArgs(
            title=t("fee.title", "Accept Transaction Fee?"),
            body=t(
                "fee.body",
                DEFAULT_TRANSLATIONS["en"]["fee.body"],
                resource=resources,
            ),
            elements=(
                PromptElement(
                    type="asset",
                    data={
                        "label": t("fee.cost", "Cost of {{resource}}", resource=resources),
                        "value": price,
                    },
                ),
                PromptElement(type="accept"),
            ),
        )
