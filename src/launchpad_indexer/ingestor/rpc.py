"""Solana JSON-RPC client with rate limiting, caching and a round-robin pool.

This module provides the ledger access used by the sync workers:
- Signature listing for a program address (paginated, newest-first)
- jsonParsed transaction fetches
- Redis caching of confirmed transactions, which never change
- Token-bucket rate limiting per endpoint
- ``RpcPool`` for round-robin read distribution across endpoints
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from redis.asyncio import Redis
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey
from solders.signature import Signature

from launchpad_indexer.ingestor.models import RawTransaction

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 24 * 3600
DEFAULT_MAX_REQUESTS_PER_SECOND = 10
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT = 30.0

T = TypeVar("T")


class LedgerClientError(Exception):
    """Base exception for ledger client errors."""


class TransientNetworkError(LedgerClientError):
    """Raised when an RPC call fails in a way worth retrying."""


class TransactionNotFoundError(LedgerClientError):
    """Raised when the node has no record of a signature (yet)."""


class LedgerClient(Protocol):
    """Ledger capabilities the workers depend on."""

    async def list_signatures(
        self,
        program_id: str,
        *,
        before: str | None = None,
        until: str | None = None,
        limit: int = 1000,
    ) -> list[str]: ...

    async def fetch_transaction(self, signature: str) -> RawTransaction | None: ...


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> RateLimiter:
        """Create a rate limiter with specified max requests per second."""
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class SolanaLedgerClient:
    """One Solana JSON-RPC endpoint.

    Example:
        ```python
        client = SolanaLedgerClient("https://api.mainnet-beta.solana.com")
        sigs = await client.list_signatures(program_id, limit=100)
        tx = await client.fetch_transaction(sigs[0])
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        redis: Redis | None = None,
        commitment: str = "confirmed",
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        client: AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            rpc_url: JSON-RPC endpoint URL.
            redis: Optional Redis client for caching fetched transactions.
            commitment: Commitment level for reads.
            cache_ttl_seconds: Cache TTL in seconds.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Attempts for signature listing.
            retry_delay_seconds: Initial delay between listing retries.
            timeout: HTTP timeout in seconds.
            client: Preconfigured AsyncClient (tests).
        """
        self._rpc_url = rpc_url
        self._redis = redis
        self._commitment = Commitment(commitment)
        self._cache_ttl = cache_ttl_seconds
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._client = client or AsyncClient(rpc_url, commitment=self._commitment, timeout=timeout)
        self._rate_limiter = RateLimiter.create(max_requests_per_second)
        self._cache_prefix = "solana:"

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    def _cache_key(self, key_type: str, value: str) -> str:
        return f"{self._cache_prefix}{key_type}:{value}"

    async def _get_cached(self, key: str) -> str | None:
        if not self._redis:
            return None
        try:
            value = await self._redis.get(key)
            if isinstance(value, bytes):
                return value.decode()
            return str(value) if value is not None else None
        except Exception as e:
            logger.warning("Cache get failed: %s", e)
            return None

    async def _set_cached(self, key: str, value: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, value, ex=self._cache_ttl)
        except Exception as e:
            logger.warning("Cache set failed: %s", e)

    async def _call(self, name: str, func: Callable[[], Awaitable[T]]) -> T:
        await self._rate_limiter.acquire()
        try:
            return await func()
        except (SolanaRpcException, RPCException, OSError, TimeoutError) as e:
            raise TransientNetworkError(f"RPC call {name} failed on {self._rpc_url}: {e}") from e

    async def _execute_with_retry(self, name: str, func: Callable[[], Awaitable[T]]) -> T:
        last_error: Exception | None = None
        delay = self._retry_delay
        for attempt in range(self._max_retries):
            try:
                return await self._call(name, func)
            except TransientNetworkError as e:
                last_error = e
                logger.warning(
                    "RPC %s failed (attempt %d/%d): %s",
                    name,
                    attempt + 1,
                    self._max_retries,
                    e,
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(delay)
                    delay *= 2
        raise TransientNetworkError(f"RPC call {name} failed after all retries: {last_error}")

    async def list_signatures(
        self,
        program_id: str,
        *,
        before: str | None = None,
        until: str | None = None,
        limit: int = 1000,
    ) -> list[str]:
        """List signatures mentioning ``program_id``, newest first.

        Args:
            program_id: Program address.
            before: Only signatures older than this one.
            until: Stop when this signature is reached (exclusive).
            limit: Page size (max 1000).
        """
        response = await self._execute_with_retry(
            "getSignaturesForAddress",
            lambda: self._client.get_signatures_for_address(
                Pubkey.from_string(program_id),
                before=Signature.from_string(before) if before else None,
                until=Signature.from_string(until) if until else None,
                limit=limit,
                commitment=self._commitment,
            ),
        )
        return [str(item.signature) for item in response.value]

    async def fetch_transaction(self, signature: str) -> RawTransaction | None:
        """Fetch one transaction in jsonParsed form.

        Returns:
            The parsed transaction, or None if the node does not know it.

        Raises:
            TransientNetworkError: On transport or JSON-RPC failure.
        """
        cache_key = self._cache_key("tx", signature)
        cached = await self._get_cached(cache_key)
        if cached is not None:
            return RawTransaction.from_rpc_json(signature, json.loads(cached))

        response = await self._call(
            "getTransaction",
            lambda: self._client.get_transaction(
                Signature.from_string(signature),
                encoding="jsonParsed",
                commitment=self._commitment,
                max_supported_transaction_version=0,
            ),
        )
        if response.value is None:
            return None

        payload: dict[str, Any] = json.loads(response.to_json())
        result = payload.get("result", payload)
        if not result:
            return None

        await self._set_cached(cache_key, json.dumps(result))
        return RawTransaction.from_rpc_json(signature, result)

    async def health_check(self) -> bool:
        """Check if the endpoint answers."""
        try:
            await self._call("getSlot", lambda: self._client.get_slot())
            return True
        except TransientNetworkError:
            return False

    async def aclose(self) -> None:
        try:
            await self._client.close()
        except Exception as e:
            logger.warning("Failed to close RPC client session: %s", e)


class RpcPool:
    """Round-robin pool of ledger clients.

    Used to spread read load only; callers still process results
    sequentially.
    """

    def __init__(self, clients: Sequence[LedgerClient]) -> None:
        if not clients:
            raise ValueError("RpcPool needs at least one client")
        self._clients = tuple(clients)
        self._next_index = 0

    @classmethod
    def from_urls(cls, urls: Sequence[str], **kwargs: Any) -> RpcPool:
        return cls([SolanaLedgerClient(url, **kwargs) for url in urls])

    def __len__(self) -> int:
        return len(self._clients)

    def next(self) -> LedgerClient:
        """Return the next client in rotation."""
        client = self._clients[self._next_index]
        self._next_index = (self._next_index + 1) % len(self._clients)
        return client

    async def health_check(self) -> dict[str, bool]:
        results: dict[str, bool] = {}
        for i, client in enumerate(self._clients):
            check = getattr(client, "health_check", None)
            url = getattr(client, "rpc_url", str(i))
            results[url] = bool(await check()) if callable(check) else True
        return results

    async def aclose(self) -> None:
        for client in self._clients:
            close = getattr(client, "aclose", None)
            if callable(close):
                await close()
