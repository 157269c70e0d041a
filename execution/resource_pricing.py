"""execution/resource_pricing.py

Resource pricing interface and the per-session cost estimator.

The pricing service itself (RAM market, powerup state, usage sampling) is an
external collaborator; this module only defines its contract and the thin
estimator the correction loop talks to.

Design goals:
- One usage sample per correction session, fetched lazily
- Safety multiplier applied to every shortfall
- Powerup floors so tiny rentals do not thrash on pricing granularity
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional

from config.runtime_schema import AutoCorrectConfig
from execution.models import Asset, Symbol

logger = logging.getLogger(__name__)

# Opaque snapshot of network usage produced by the pricing service
UsageSample = Any


class ResourcePricing(ABC):
    """Abstract pricing collaborator.

    Prices are returned as decimal amounts of the chain's native token.
    Fractions are protocol-native powerup fractions.
    """

    @abstractmethod
    async def sample_usage(self) -> UsageSample:
        """Sample recent usage of the chain's sample account (expensive)."""
        ...

    @abstractmethod
    async def ram_price_per(self, ram_bytes: int) -> Decimal:
        """Price of buying `ram_bytes` of RAM at the current market."""
        ...

    @abstractmethod
    async def cpu_price_per(self, sample: UsageSample, cpu_us: int) -> Decimal:
        """Price of renting `cpu_us` microseconds of CPU."""
        ...

    @abstractmethod
    async def net_price_per(self, sample: UsageSample, net_bytes: int) -> Decimal:
        """Price of renting `net_bytes` bytes of NET."""
        ...

    @abstractmethod
    async def cpu_frac(self, sample: UsageSample, cpu_us: int) -> int:
        """Express `cpu_us` as a fraction of the CPU powerup pool."""
        ...

    @abstractmethod
    async def net_frac(self, sample: UsageSample, net_bytes: int) -> int:
        """Express `net_bytes` as a fraction of the NET powerup pool."""
        ...


# Builds a pricing client for a chain's sample account
PricingFactory = Callable[[str], ResourcePricing]


@dataclass(frozen=True)
class PowerupQuote:
    """
    Priced powerup rental.

    Attributes:
        cpu_us: CPU to rent after floors.
        net_bytes: NET to rent after floors.
        cpu_frac: CPU as a powerup fraction.
        net_frac: NET as a powerup fraction.
        price: Total price, also used as max_payment.
    """
    cpu_us: int
    net_bytes: int
    cpu_frac: int
    net_frac: int
    price: Asset


class CostEstimator:
    """
    Converts resource quantities into native-token costs for one session.

    A new estimator is built for every correction session so the cached
    usage sample never outlives it.
    """

    def __init__(self, pricing: ResourcePricing, symbol: Symbol, config: AutoCorrectConfig):
        self.pricing = pricing
        self.symbol = symbol
        self.config = config
        self._sample: Optional[UsageSample] = None
        self.sample_fetches = 0

    def scale(self, shortfall: int) -> int:
        """Apply the safety multiplier to a raw shortfall."""
        return int(math.ceil(shortfall * self.config.resource_multiplier))

    async def usage_sample(self) -> UsageSample:
        if self._sample is None:
            self._sample = await self.pricing.sample_usage()
            self.sample_fetches += 1
            logger.debug("[pricing] Fetched usage sample")
        return self._sample

    async def estimate_ram(self, ram_bytes: int) -> Asset:
        """Price a RAM purchase of exactly `ram_bytes`."""
        price = await self.pricing.ram_price_per(ram_bytes)
        asset = Asset.from_value(price, self.symbol)
        logger.info(f"[pricing] RAM {ram_bytes} bytes -> {asset}")
        return asset

    async def estimate_powerup(self, cpu_us: int, net_bytes: int) -> PowerupQuote:
        """Price a powerup, raising each dimension to its floor first."""
        cpu_us = max(cpu_us, self.config.min_cpu_us)
        net_bytes = max(net_bytes, self.config.min_net_bytes)

        sample = await self.usage_sample()
        cpu_price = await self.pricing.cpu_price_per(sample, cpu_us)
        net_price = await self.pricing.net_price_per(sample, net_bytes)
        price = Asset.from_value(Decimal(str(cpu_price)) + Decimal(str(net_price)), self.symbol)

        quote = PowerupQuote(
            cpu_us=cpu_us,
            net_bytes=net_bytes,
            cpu_frac=await self.pricing.cpu_frac(sample, cpu_us),
            net_frac=await self.pricing.net_frac(sample, net_bytes),
            price=price,
        )
        logger.info(f"[pricing] Powerup cpu={cpu_us}us net={net_bytes}b -> {price}")
        return quote
