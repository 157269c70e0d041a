"""execution/models.py

Data models for transaction candidates and the resources they consume.

Transactions are immutable: corrections always build a new candidate with
prepend_action() and never touch the original.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class PermissionLevel:
    """Account authority that signs an action.

    Attributes:
        actor: Account name.
        permission: Permission name on that account (e.g. "active").
    """
    actor: str
    permission: str

    @classmethod
    def from_string(cls, value: str) -> "PermissionLevel":
        """Parse "actor@permission"."""
        actor, sep, permission = value.partition("@")
        if not sep or not actor or not permission:
            raise ValueError(f"Invalid permission level: {value!r}")
        return cls(actor=actor, permission=permission)

    def to_dict(self) -> Dict[str, str]:
        return {"actor": self.actor, "permission": self.permission}

    def __str__(self) -> str:
        return f"{self.actor}@{self.permission}"


@dataclass(frozen=True)
class Symbol:
    """Token symbol with its decimal precision (e.g. 4,EOS)."""
    precision: int
    code: str

    def __post_init__(self):
        if not 0 <= self.precision <= 18:
            raise ValueError(f"Symbol precision out of range: {self.precision}")
        if not self.code or not self.code.isupper():
            raise ValueError(f"Invalid symbol code: {self.code!r}")

    @classmethod
    def from_string(cls, value: str) -> "Symbol":
        """Parse "precision,CODE"."""
        precision, sep, code = value.partition(",")
        if not sep:
            raise ValueError(f"Invalid symbol: {value!r}")
        return cls(precision=int(precision), code=code.strip())

    def __str__(self) -> str:
        return f"{self.precision},{self.code}"


@dataclass(frozen=True)
class Asset:
    """Currency amount held as integer units of the symbol's precision.

    Integer units avoid float drift when summing purchase prices across
    correction iterations.
    """
    units: int
    symbol: Symbol

    @classmethod
    def from_value(cls, value: Union[Decimal, float, int, str], symbol: Symbol) -> "Asset":
        """Build an asset from a decimal amount, rounding to the symbol precision."""
        scaled = Decimal(str(value)) * (Decimal(10) ** symbol.precision)
        units = int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))
        return cls(units=units, symbol=symbol)

    @classmethod
    def zero(cls, symbol: Symbol) -> "Asset":
        return cls(units=0, symbol=symbol)

    @property
    def value(self) -> Decimal:
        return Decimal(self.units) / (Decimal(10) ** self.symbol.precision)

    def __add__(self, other: "Asset") -> "Asset":
        if not isinstance(other, Asset):
            return NotImplemented
        if other.symbol != self.symbol:
            raise ValueError(f"Cannot add {other.symbol} to {self.symbol}")
        return Asset(units=self.units + other.units, symbol=self.symbol)

    def __str__(self) -> str:
        return f"{self.value:.{self.symbol.precision}f} {self.symbol.code}"


@dataclass(frozen=True)
class Action:
    """Single contract call inside a transaction.

    Attributes:
        account: Contract account the action targets.
        name: Action name on that contract.
        authorization: Permission levels that authorize the action.
        data: Action payload (a mapping, or a payload object with to_dict()).
    """
    account: str
    name: str
    authorization: Tuple[PermissionLevel, ...]
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        return {
            "account": self.account,
            "name": self.name,
            "authorization": [a.to_dict() for a in self.authorization],
            "data": data,
        }


@dataclass(frozen=True)
class Transaction:
    """Ordered actions plus header metadata.

    Attributes:
        actions: Actions in execution order.
        expiration: ISO-8601 expiration timestamp, if already set.
        ref_block_num: TAPoS reference block number.
        ref_block_prefix: TAPoS reference block prefix.
        chain_id: Chain the transaction targets.
    """
    actions: Tuple[Action, ...]
    expiration: Optional[str] = None
    ref_block_num: int = 0
    ref_block_prefix: int = 0
    chain_id: Optional[str] = None
    max_net_usage_words: int = 0
    max_cpu_usage_ms: int = 0
    delay_sec: int = 0

    def __post_init__(self):
        # Accept lists from callers but store a tuple so candidates stay immutable
        if not isinstance(self.actions, tuple):
            object.__setattr__(self, "actions", tuple(self.actions))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expiration": self.expiration,
            "ref_block_num": self.ref_block_num,
            "ref_block_prefix": self.ref_block_prefix,
            "max_net_usage_words": self.max_net_usage_words,
            "max_cpu_usage_ms": self.max_cpu_usage_ms,
            "delay_sec": self.delay_sec,
            "context_free_actions": [],
            "actions": [a.to_dict() for a in self.actions],
            "transaction_extensions": [],
        }


def prepend_action(transaction: Transaction, action: Action) -> Transaction:
    """Return a new transaction with `action` placed before all existing actions."""
    return replace(transaction, actions=(action,) + transaction.actions)


@dataclass(frozen=True)
class AccountResources:
    """RAM accounting for one account, as reported by get_account."""
    account_name: str
    ram_quota: int
    ram_usage: int

    @property
    def ram_headroom(self) -> int:
        return self.ram_quota - self.ram_usage

    def with_extra_quota(self, extra_bytes: int) -> "AccountResources":
        return replace(self, ram_quota=self.ram_quota + extra_bytes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AccountResources":
        """Deserialize from a get_account response body."""
        return cls(
            account_name=str(data["account_name"]),
            ram_quota=int(data.get("ram_quota", 0)),
            ram_usage=int(data.get("ram_usage", 0)),
        )


@dataclass(frozen=True)
class ResolvedTransaction:
    """Transaction with all placeholders filled in, plus the signer it resolved to."""
    transaction: Transaction
    signer: PermissionLevel
