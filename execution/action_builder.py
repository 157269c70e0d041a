"""execution/action_builder.py

Pure logic for building resource purchase actions.

Purchases are always self-paid: the signer is both payer and receiver, and
the action carries the signer's authorization. The new action goes first so
it executes before the actions it unblocks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from execution.models import Action, Asset, PermissionLevel, Transaction, prepend_action

SYSTEM_CONTRACT = "eosio"


@dataclass(frozen=True)
class Buyrambytes:
    """eosio::buyrambytes payload.

    Attributes:
        payer: Account paying for the RAM.
        receiver: Account receiving the RAM.
        bytes: Number of bytes to buy.
    """
    payer: str
    receiver: str
    bytes: int

    def __post_init__(self):
        if self.bytes <= 0:
            raise ValueError(f"bytes must be positive, got {self.bytes}")

    def to_dict(self) -> Dict[str, Any]:
        return {"payer": self.payer, "receiver": self.receiver, "bytes": self.bytes}


@dataclass(frozen=True)
class Powerup:
    """eosio::powerup payload.

    Attributes:
        payer: Account paying for the rental.
        receiver: Account receiving CPU/NET.
        days: Rental duration.
        net_frac: NET as a fraction of the pool.
        cpu_frac: CPU as a fraction of the pool.
        max_payment: Upper bound the contract may charge.
    """
    payer: str
    receiver: str
    days: int
    net_frac: int
    cpu_frac: int
    max_payment: Asset

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payer": self.payer,
            "receiver": self.receiver,
            "days": self.days,
            "net_frac": self.net_frac,
            "cpu_frac": self.cpu_frac,
            "max_payment": str(self.max_payment),
        }


def build_buyrambytes_action(signer: PermissionLevel, ram_bytes: int) -> Action:
    """Build a self-paid RAM purchase of `ram_bytes`."""
    return Action(
        account=SYSTEM_CONTRACT,
        name="buyrambytes",
        authorization=(signer,),
        data=Buyrambytes(payer=signer.actor, receiver=signer.actor, bytes=ram_bytes),
    )


def build_powerup_action(
    signer: PermissionLevel,
    cpu_frac: int,
    net_frac: int,
    max_payment: Asset,
    days: int = 1,
) -> Action:
    """Build a self-paid CPU/NET rental."""
    return Action(
        account=SYSTEM_CONTRACT,
        name="powerup",
        authorization=(signer,),
        data=Powerup(
            payer=signer.actor,
            receiver=signer.actor,
            days=days,
            net_frac=net_frac,
            cpu_frac=cpu_frac,
            max_payment=max_payment,
        ),
    )


def prepend(transaction: Transaction, action: Action) -> Transaction:
    """Place `action` first in a new transaction; the input is left untouched."""
    return prepend_action(transaction, action)
