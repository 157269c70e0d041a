from __future__ import annotations

import asyncio

import pytest

from config.chains import DEFAULT_CHAINS, JUNGLE4_CHAIN_ID, ChainConfig, ChainFeature
from execution.confirmation import (
    AutoCorrectPlugin,
    ConfirmationOutcome,
    HookType,
    PromptResult,
    TransactContext,
)
from execution.errors import PromptCancelled, TooManyIterationsError, UIRequiredError
from execution.models import AccountResources, Asset, Symbol

from conftest import SIGNER, AfterYield, FakeChainClient, FakeUI, cpu_failure, net_failure, ram_failure

EOS = Symbol.from_string("4,EOS")


def make_context(client, pricing_factory, ui, **kwargs) -> TransactContext:
    return TransactContext(
        chain_id=kwargs.pop("chain_id", JUNGLE4_CHAIN_ID),
        permission_level=SIGNER,
        client=client,
        pricing_factory=pricing_factory,
        ui=ui,
        **kwargs,
    )


def test_register_requires_ui(pricing_factory):
    context = make_context(FakeChainClient(), pricing_factory, ui=None)
    with pytest.raises(UIRequiredError):
        AutoCorrectPlugin().register(context)


def test_register_adds_before_sign_hook(pricing_factory):
    plugin = AutoCorrectPlugin()
    context = make_context(FakeChainClient(), pricing_factory, ui=FakeUI())
    plugin.register(context)

    assert context.hooks[HookType.BEFORE_SIGN] == [plugin.run]


def test_context_defaults_to_known_chains(pricing_factory):
    context = make_context(FakeChainClient(), pricing_factory, ui=FakeUI())

    assert context.chains is DEFAULT_CHAINS
    assert context.chains[JUNGLE4_CHAIN_ID].supports(ChainFeature.POWER_UP)


@pytest.mark.asyncio
async def test_clean_transaction_skips_fee_prompt(transfer, pricing_factory):
    ui = FakeUI("hang")
    context = make_context(FakeChainClient([None]), pricing_factory, ui)

    response = await AutoCorrectPlugin().run(transfer, context)

    assert response.request is transfer
    assert response.outcome is ConfirmationOutcome.UNCHANGED
    assert [p.title for p in ui.prompts] == ["Checking transaction"]


@pytest.mark.asyncio
async def test_accepted_fee_returns_corrected_transaction(transfer, pricing_factory):
    ui = FakeUI("hang", PromptResult.ACCEPTED)
    context = make_context(FakeChainClient([ram_failure(1000, 600), None]), pricing_factory, ui)

    response = await AutoCorrectPlugin().run(transfer, context)

    assert response.outcome is ConfirmationOutcome.ACCEPTED
    assert [a.name for a in response.request.actions] == ["buyrambytes", "transfer"]
    assert len(ui.prompts) == 2

    fee = ui.prompts[1]
    assert fee.title == "Accept Transaction Fee?"
    assert "(RAM)" in fee.body
    asset, accept = fee.elements
    assert asset.type == "asset"
    assert asset.data["label"] == "Cost of RAM"
    assert asset.data["value"] == Asset.from_value("0.06", EOS)
    assert accept.type == "accept"


@pytest.mark.asyncio
async def test_fee_prompt_names_deduplicated_resources(transfer, pricing_factory):
    ui = FakeUI("hang", PromptResult.ACCEPTED)
    low_headroom = AccountResources("wharfkit1125", ram_quota=1000, ram_usage=900)
    client = FakeChainClient([net_failure(50), ram_failure(1000, 600), None], account=low_headroom)
    context = make_context(client, pricing_factory, ui)

    response = await AutoCorrectPlugin().run(transfer, context)

    assert response.result.resource_label == "CPU/NET/RAM"
    assert ui.prompts[1].elements[0].data["label"] == "Cost of CPU/NET/RAM"


@pytest.mark.asyncio
async def test_declined_fee_returns_original(transfer, pricing_factory):
    ui = FakeUI("hang", PromptResult.DECLINED)
    context = make_context(FakeChainClient([ram_failure(1000, 600), None]), pricing_factory, ui)

    response = await AutoCorrectPlugin().run(transfer, context)

    assert response.request is transfer
    assert response.outcome is ConfirmationOutcome.DECLINED
    assert response.result.price is not None


@pytest.mark.asyncio
async def test_cancelled_fee_prompt_propagates(transfer, pricing_factory, cancelled):
    ui = FakeUI("hang", cancelled)
    context = make_context(FakeChainClient([ram_failure(1000, 600), None]), pricing_factory, ui)

    with pytest.raises(PromptCancelled):
        await AutoCorrectPlugin().run(transfer, context)


@pytest.mark.asyncio
async def test_cancelled_checking_notice_propagates(transfer, pricing_factory, cancelled):
    gate = asyncio.Event()
    client = FakeChainClient([ram_failure(1000, 600), None], gate=gate)
    ui = FakeUI(cancelled)
    context = make_context(client, pricing_factory, ui)

    with pytest.raises(PromptCancelled):
        await AutoCorrectPlugin().run(transfer, context)

    assert client.simulated == []
    assert len(ui.prompts) == 1


@pytest.mark.asyncio
async def test_dismissed_checking_notice_returns_original(transfer, pricing_factory):
    gate = asyncio.Event()
    client = FakeChainClient([ram_failure(1000, 600), None], gate=gate)
    ui = FakeUI(PromptResult.DECLINED)
    context = make_context(client, pricing_factory, ui)

    response = await AutoCorrectPlugin().run(transfer, context)

    assert response.request is transfer
    assert response.outcome is ConfirmationOutcome.DECLINED
    assert response.result is None
    assert client.simulated == []


@pytest.mark.parametrize(
    "notice",
    [PromptResult.DECLINED, PromptCancelled("user cancelled")],
    ids=["declined", "cancelled"],
)
@pytest.mark.asyncio
async def test_finished_correction_wins_over_late_notice(transfer, pricing_factory, notice):
    client = FakeChainClient([ram_failure(1000, 600), None])
    ui = FakeUI(AfterYield(notice), PromptResult.ACCEPTED)
    context = make_context(client, pricing_factory, ui)

    response = await AutoCorrectPlugin().run(transfer, context)

    assert response.outcome is ConfirmationOutcome.ACCEPTED
    assert [a.name for a in response.request.actions] == ["buyrambytes", "transfer"]
    assert [p.title for p in ui.prompts] == ["Checking transaction", "Accept Transaction Fee?"]


@pytest.mark.asyncio
async def test_unsupported_shortage_issues_no_fee_prompt(transfer, pricing_factory):
    ram_only = {
        JUNGLE4_CHAIN_ID: ChainConfig(
            features=frozenset({ChainFeature.BUY_RAM}),
            sample_account="eosmechanics",
            symbol=EOS,
        )
    }
    ui = FakeUI("hang")
    context = make_context(FakeChainClient([cpu_failure(1000)]), pricing_factory, ui, chains=ram_only)

    response = await AutoCorrectPlugin().run(transfer, context)

    assert response.request is transfer
    assert response.outcome is ConfirmationOutcome.UNCHANGED
    assert len(ui.prompts) == 1


@pytest.mark.asyncio
async def test_unknown_chain_returns_request_without_prompts(transfer, pricing_factory):
    ui = FakeUI()
    client = FakeChainClient([ram_failure(1000, 600)])
    context = make_context(client, pricing_factory, ui, chain_id="00" * 32)

    response = await AutoCorrectPlugin().run(transfer, context)

    assert response.request is transfer
    assert ui.prompts == []
    assert client.simulated == []


@pytest.mark.asyncio
async def test_iteration_bound_surfaces_as_error(transfer, pricing_factory):
    ui = FakeUI("hang")
    context = make_context(FakeChainClient([net_failure(50)]), pricing_factory, ui)

    with pytest.raises(TooManyIterationsError):
        await AutoCorrectPlugin().run(transfer, context)
    assert len(ui.prompts) == 1


@pytest.mark.asyncio
async def test_each_run_starts_a_fresh_session(transfer, pricing_factory):
    plugin = AutoCorrectPlugin()
    client = FakeChainClient([ram_failure(1000, 600), None])
    ui = FakeUI("hang", PromptResult.ACCEPTED, "hang")
    context = make_context(client, pricing_factory, ui)

    first = await plugin.run(transfer, context)
    client.results = [None]
    client.simulated = []
    second = await plugin.run(transfer, context)

    assert first.outcome is ConfirmationOutcome.ACCEPTED
    assert second.outcome is ConfirmationOutcome.UNCHANGED
    assert second.request is transfer
    assert second.result.price is None
    assert len(ui.prompts) == 3


@pytest.mark.asyncio
async def test_registered_translations_are_used(transfer, pricing_factory):
    translations = {
        "en": {
            "checking": "Verifying",
            "fee.title": "Pay network fee?",
        }
    }
    plugin = AutoCorrectPlugin(translations=translations)
    ui = FakeUI("hang", PromptResult.ACCEPTED)
    context = make_context(FakeChainClient([ram_failure(1000, 600), None]), pricing_factory, ui)
    plugin.register(context)

    await plugin.run(transfer, context)

    assert ui.prompts[0].title == "Verifying"
    assert ui.prompts[1].title == "Pay network fee?"
    assert ui.prompts[1].elements[0].data["label"] == "Cost of RAM"
