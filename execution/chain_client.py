"""execution/chain_client.py

Chain API access for the correction loop.

- ChainClient: abstract simulator + account lookup
- HttpChainClient: aiohttp implementation against /v1/chain endpoints
- PlaceholderResolver: fills signer placeholders before simulation

Design goals:
- No private keys: transactions are only dry-run, never signed or pushed
- Shortage failures come back as structured SimulationFailure values
- Transport failures raise ChainClientError and are never retried here
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, Optional

import aiohttp

from execution.errors import ChainClientError
from execution.failure_classifier import SimulationFailure, failure_from_response
from execution.models import (
    AccountResources,
    Action,
    PermissionLevel,
    ResolvedTransaction,
    Transaction,
)

logger = logging.getLogger(__name__)

# Signing-request placeholders
PLACEHOLDER_ACTOR = "............1"
PLACEHOLDER_PERMISSION = "............2"


class ChainClient(ABC):
    """Abstract chain API used by the correction loop."""

    @abstractmethod
    async def compute_transaction(self, transaction: Transaction) -> Optional[SimulationFailure]:
        """Dry-run a transaction.

        Returns:
            None on success, otherwise the structured failure.
        """
        ...

    @abstractmethod
    async def get_account(self, account_name: str) -> AccountResources:
        """Fetch RAM quota and usage for an account."""
        ...


class TransactionResolver(ABC):
    """Turns a candidate with placeholders into a concrete transaction."""

    @abstractmethod
    async def resolve(self, transaction: Transaction) -> ResolvedTransaction:
        ...


class PlaceholderResolver(TransactionResolver):
    """Replaces actor/permission placeholders with the session's permission level."""

    def __init__(self, permission_level: PermissionLevel):
        self.permission_level = permission_level

    def _resolve_level(self, level: PermissionLevel) -> PermissionLevel:
        actor = self.permission_level.actor if level.actor == PLACEHOLDER_ACTOR else level.actor
        if level.permission == PLACEHOLDER_PERMISSION:
            permission = self.permission_level.permission
        else:
            permission = level.permission
        return PermissionLevel(actor=actor, permission=permission)

    def _resolve_action(self, action: Action) -> Action:
        data = action.data
        if isinstance(data, dict):
            data = {k: (self.permission_level.actor if v == PLACEHOLDER_ACTOR else v) for k, v in data.items()}
        return replace(
            action,
            authorization=tuple(self._resolve_level(a) for a in action.authorization),
            data=data,
        )

    async def resolve(self, transaction: Transaction) -> ResolvedTransaction:
        resolved = replace(
            transaction,
            actions=tuple(self._resolve_action(a) for a in transaction.actions),
        )
        return ResolvedTransaction(transaction=resolved, signer=self.permission_level)


class HttpChainClient(ChainClient):
    """
    Chain client for Antelope HTTP API nodes.

    Usage:
        async with HttpChainClient("https://jungle4.greymass.com") as client:
            failure = await client.compute_transaction(tx)
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session
        self._owns_session = False

    async def __aenter__(self):
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
            self._owns_session = False

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> tuple:
        """POST to a chain endpoint.

        Returns:
            (status, parsed JSON body)
        """
        if self.session is None:
            raise RuntimeError("HttpChainClient session not initialized. Use async context manager.")

        url = f"{self.url}{endpoint}"
        try:
            async with self.session.post(url, json=payload) as response:
                try:
                    body = await response.json(content_type=None)
                except (ValueError, aiohttp.ContentTypeError) as e:
                    text = await response.text()
                    raise ChainClientError(
                        f"Invalid JSON from {endpoint}: {e}: {text[:200]}",
                        status=response.status,
                    )
                return response.status, body
        except asyncio.TimeoutError:
            logger.error(f"[chain_client] Timeout calling {endpoint}")
            raise ChainClientError(f"Timeout calling {endpoint}")
        except aiohttp.ClientError as e:
            logger.error(f"[chain_client] Request to {endpoint} failed: {e}")
            raise ChainClientError(f"Request failed to {endpoint}: {e}")

    async def compute_transaction(self, transaction: Transaction) -> Optional[SimulationFailure]:
        status, body = await self._post(
            "/v1/chain/compute_transaction",
            {"transaction": transaction.to_dict()},
        )

        if not isinstance(body, dict):
            raise ChainClientError("Unexpected compute_transaction response", status=status)

        failure = failure_from_response(body)
        if failure is not None:
            logger.info(f"[chain_client] Simulation failed: {failure.name}")
            return failure

        if status >= 400:
            raise ChainClientError(f"HTTP {status} from compute_transaction", status=status)

        return None

    async def get_account(self, account_name: str) -> AccountResources:
        status, body = await self._post("/v1/chain/get_account", {"account_name": account_name})
        if status >= 400 or not isinstance(body, dict):
            raise ChainClientError(f"HTTP {status} from get_account({account_name})", status=status)
        try:
            return AccountResources.from_dict(body)
        except (KeyError, TypeError, ValueError) as e:
            raise ChainClientError(f"Malformed get_account response: {e}", status=status)
