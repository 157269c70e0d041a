"""config/chains.py

Per-chain capability profiles.

A profile says which corrective purchases a chain supports, which account to
sample for resource pricing, and the chain's native token symbol. The table
is read-only; chains without an entry are never corrected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping, Union

import yaml

from execution.models import Symbol

logger = logging.getLogger(__name__)


class ChainFeature(Enum):
    """Corrective features a chain may support."""
    # eosio::buyrambytes
    BUY_RAM = "buy_ram"
    # eosio::powerup
    POWER_UP = "power_up"


@dataclass(frozen=True)
class ChainConfig:
    """
    Capability profile for one chain.

    Attributes:
        features: Supported corrective features.
        sample_account: Busy account whose usage is sampled for pricing.
        symbol: Native token symbol used for fees.
    """
    features: FrozenSet[ChainFeature]
    sample_account: str
    symbol: Symbol

    def supports(self, feature: ChainFeature) -> bool:
        return feature in self.features


EOS_CHAIN_ID = "aca376f206b8fc25a6ed44dbdc66547c36c6c33e3a119ffbeaef943642f0e906"
JUNGLE4_CHAIN_ID = "73e4385a2708e6d7048834fbc1079f2fabb17b3c125b146af438971e90716c4d"
WAX_CHAIN_ID = "1064487b3cd1a897ce03ae5b6a865651747e2e152090f99c1d19d44e01aea5a4"

DEFAULT_CHAINS: Mapping[str, ChainConfig] = MappingProxyType({
    EOS_CHAIN_ID: ChainConfig(
        features=frozenset({ChainFeature.BUY_RAM, ChainFeature.POWER_UP}),
        sample_account="teamgreymass",
        symbol=Symbol.from_string("4,EOS"),
    ),
    JUNGLE4_CHAIN_ID: ChainConfig(
        features=frozenset({ChainFeature.BUY_RAM, ChainFeature.POWER_UP}),
        sample_account="eosmechanics",
        symbol=Symbol.from_string("4,EOS"),
    ),
    WAX_CHAIN_ID: ChainConfig(
        features=frozenset({ChainFeature.BUY_RAM, ChainFeature.POWER_UP}),
        sample_account="boost.wax",
        symbol=Symbol.from_string("8,WAX"),
    ),
})


def parse_chain(chain_id: str, raw: Mapping[str, Any]) -> ChainConfig:
    """Build a ChainConfig from a YAML mapping."""
    if not isinstance(raw, Mapping):
        raise ValueError(f"Chain {chain_id}: profile must be a mapping")

    features = []
    for name in raw.get("features", []):
        try:
            features.append(ChainFeature(name))
        except ValueError:
            raise ValueError(f"Chain {chain_id}: unknown feature {name!r}")

    sample_account = raw.get("sample_account")
    if not sample_account:
        raise ValueError(f"Chain {chain_id}: sample_account is required")

    symbol = raw.get("symbol")
    if not symbol:
        raise ValueError(f"Chain {chain_id}: symbol is required")

    return ChainConfig(
        features=frozenset(features),
        sample_account=str(sample_account),
        symbol=Symbol.from_string(str(symbol)),
    )


def load_chains(path: Union[str, Path]) -> Mapping[str, ChainConfig]:
    """Load chain profiles from the `chains:` section of a YAML file.

    Example:
        chains:
          73e4385a...6c4d:
            features: [buy_ram, power_up]
            sample_account: eosmechanics
            symbol: "4,EOS"
    """
    with open(path, "r") as f:
        raw_data = yaml.safe_load(f)

    if not isinstance(raw_data, dict):
        raise ValueError("Config root must be a dictionary")

    chains_raw = raw_data.get("chains", {})
    if not isinstance(chains_raw, dict):
        raise ValueError("chains must be a mapping of chain id to profile")

    chains = {str(chain_id): parse_chain(str(chain_id), raw) for chain_id, raw in chains_raw.items()}
    logger.info(f"[config] Loaded {len(chains)} chain profiles from {path}")
    return MappingProxyType(chains)
