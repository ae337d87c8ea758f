"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import pytest
from base58 import b58encode
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from launchpad_indexer.codec.decoder import Decoder
from launchpad_indexer.codec.layout import EnumValue
from launchpad_indexer.ingestor.models import RawTransaction
from launchpad_indexer.ingestor.rpc import TransientNetworkError
from launchpad_indexer.storage.database import DatabaseManager
from launchpad_indexer.storage.models import Base

PROGRAM_ID = "LanMV9sAd7wArD4vJFi2qDdfnVhFxYSUg6eADduJ3uj"
SYSTEM_PROGRAM = "11111111111111111111111111111111"
TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
WSOL_MINT = "So11111111111111111111111111111111111111112"

FIXTURE_SIGNATURE = "4EEjxchJQhYtrfDBckUTt5PEXwuRsYbsMuBFHDtmGo6ECgrgDNQCcq5AernFHn5kTZwNKndjDxxABPNdZcoztqAq"
POOL_STATE = "ECnREgF2Lrn8LRFV948X18EQfJidgBJSmkv4zZYZ8Wv3"
CREATOR = "AyemPFVkNarEB1ThjYsctH4NLjFzdiXT3zWVviB9LFFN"
CONFIG = "6s1xP3hpbAfFoNtUNF8mfHsjr2Bd97JxFJRWLbL6aHuX"
PLATFORM_CONFIG = "FfYek5vEz23cMkWsdJwG2oa6EphsvXSHrGpdALN4g6W1"
BASE_MINT = "CatBobaMint1111111111111111111111111111111"
FIXTURE_URI = "https://ipfs.io/ipfs/bafkreihe2utpkvnjd2xcxjdbdgeqhwsolc4bp5uuncw2qn2dryp6x4ptyu"


class ChainFactory:
    """Builds jsonParsed ``getTransaction`` results for the launchpad program."""

    def __init__(self, decoder: Decoder) -> None:
        self.decoder = decoder

    def pool_create_payload(
        self,
        *,
        pool_state: str = POOL_STATE,
        name: str = "Cat wif Boba",
        symbol: str = "CatBoba",
    ) -> dict[str, Any]:
        return {
            "pool_state": pool_state,
            "creator": CREATOR,
            "config": CONFIG,
            "base_mint_param": {"decimals": 6, "name": name, "symbol": symbol, "uri": FIXTURE_URI},
            "curve_param": EnumValue(
                "Constant",
                {
                    "data": {
                        "supply": 1_000_000_000_000_000,
                        "total_base_sell": 800_000_000_000_000,
                        "total_quote_fund_raising": 85_000_000_000,
                        "migrate_type": 1,
                    }
                },
            ),
            "vesting_param": {"total_locked_amount": 0, "cliff_period": 0, "unlock_period": 0},
        }

    def trade_payload(
        self,
        *,
        amount_in: int = 1_000_000_000,
        amount_out: int = 35_000_000_000_000,
        direction: str = "Buy",
        pool_status: str = "Fund",
        virtual_base: int = 1_073_025_605_596_382,
        virtual_quote: int = 30_000_852_951,
        real_base_after: int = 35_000_000_000_000,
        real_quote_after: int = 1_000_000_000,
    ) -> dict[str, Any]:
        return {
            "pool_state": POOL_STATE,
            "total_base_sell": 800_000_000_000_000,
            "virtual_base": virtual_base,
            "virtual_quote": virtual_quote,
            "real_base_before": 0,
            "real_quote_before": 0,
            "real_base_after": real_base_after,
            "real_quote_after": real_quote_after,
            "amount_in": amount_in,
            "amount_out": amount_out,
            "protocol_fee": 2_500_000,
            "platform_fee": 10_000_000,
            "share_fee": 0,
            "trade_direction": direction,
            "pool_status": pool_status,
        }

    @staticmethod
    def initialize_accounts(mint: str = BASE_MINT, platform_config: str = PLATFORM_CONFIG) -> list[str]:
        return [
            CREATOR,  # payer
            CREATOR,
            CONFIG,
            platform_config,
            "WLHv2UAZm6z4KyaaELi5pjdbJh6RESMva1Rnn8pJVVh",
            POOL_STATE,
            mint,
            WSOL_MINT,
            "BaseVau1t111111111111111111111111111111111",
            "QuoteVau1t11111111111111111111111111111111",
            "Metadata111111111111111111111111111111111",
            TOKEN_PROGRAM,
            TOKEN_PROGRAM,
            "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s",
            SYSTEM_PROGRAM,
            "SysvarRent111111111111111111111111111111111",
            "2DPAtwB8L12vrMRExbLuyGnC7n2J5LNoZQSejeQGpwkr",
            PROGRAM_ID,
        ]

    @staticmethod
    def trade_accounts(
        mint: str = BASE_MINT,
        payer: str = "Trader1111111111111111111111111111111111111",
        platform_config: str = PLATFORM_CONFIG,
    ) -> list[str]:
        return [
            payer,
            "WLHv2UAZm6z4KyaaELi5pjdbJh6RESMva1Rnn8pJVVh",
            CONFIG,
            platform_config,
            POOL_STATE,
            "UserBase11111111111111111111111111111111111",
            "UserQuote1111111111111111111111111111111111",
            "BaseVau1t111111111111111111111111111111111",
            "QuoteVau1t11111111111111111111111111111111",
            mint,
            WSOL_MINT,
            TOKEN_PROGRAM,
            TOKEN_PROGRAM,
            "2DPAtwB8L12vrMRExbLuyGnC7n2J5LNoZQSejeQGpwkr",
            PROGRAM_ID,
        ]

    def program_ix(self, name: str, args: dict[str, Any], accounts: list[str], *, stack_height: int = 1) -> dict[str, Any]:
        data = self.decoder.encode_instruction(name, args)
        return {
            "programId": PROGRAM_ID,
            "accounts": accounts,
            "data": b58encode(data).decode(),
            "stackHeight": stack_height,
        }

    def event_ix(self, name: str, payload: dict[str, Any], *, stack_height: int = 2) -> dict[str, Any]:
        data = self.decoder.encode_event(name, payload)
        return {
            "programId": PROGRAM_ID,
            "accounts": ["2DPAtwB8L12vrMRExbLuyGnC7n2J5LNoZQSejeQGpwkr"],
            "data": b58encode(data).decode(),
            "stackHeight": stack_height,
        }

    @staticmethod
    def parsed_ix(program: str = "system", program_id: str = SYSTEM_PROGRAM, *, stack_height: int = 2) -> dict[str, Any]:
        return {
            "program": program,
            "programId": program_id,
            "parsed": {"type": "transfer", "info": {"lamports": 5000}},
            "stackHeight": stack_height,
        }

    def initialize_ix(self, **kwargs: Any) -> dict[str, Any]:
        payload = self.pool_create_payload()
        return self.program_ix(
            "initialize",
            {
                "base_mint_param": payload["base_mint_param"],
                "curve_param": payload["curve_param"],
                "vesting_param": payload["vesting_param"],
            },
            self.initialize_accounts(**kwargs),
        )

    def buy_ix(self, *, amount_in: int = 1_000_000_000, stack_height: int = 1, **kwargs: Any) -> dict[str, Any]:
        return self.program_ix(
            "buy_exact_in",
            {"amount_in": amount_in, "minimum_amount_out": 1, "share_fee_rate": 0},
            self.trade_accounts(**kwargs),
            stack_height=stack_height,
        )

    @staticmethod
    def rpc_result(
        signature: str,
        *,
        slot: int,
        block_time: int | None,
        instructions: list[dict[str, Any]],
        inner: dict[int, list[dict[str, Any]]] | None = None,
        err: Any = None,
    ) -> dict[str, Any]:
        return {
            "slot": slot,
            "blockTime": block_time,
            "transaction": {
                "signatures": [signature],
                "message": {"instructions": instructions},
            },
            "meta": {
                "err": err,
                "innerInstructions": [
                    {"index": index, "instructions": group} for index, group in sorted((inner or {}).items())
                ],
            },
        }

    def launch_transaction(
        self,
        signature: str = FIXTURE_SIGNATURE,
        *,
        slot: int = 330_000_000,
        block_time: int | None = 1_744_000_000,
        mint: str = BASE_MINT,
        err: Any = None,
    ) -> RawTransaction:
        """Pool creation followed by the creator's first buy, both top-level."""
        result = self.rpc_result(
            signature,
            slot=slot,
            block_time=block_time,
            instructions=[
                self.parsed_ix("compute-budget", "ComputeBudget111111111111111111111111111111", stack_height=1),
                self.initialize_ix(mint=mint),
                self.buy_ix(mint=mint, payer=CREATOR),
            ],
            inner={
                1: [self.parsed_ix(), self.event_ix("PoolCreateEvent", self.pool_create_payload())],
                2: [
                    self.parsed_ix("spl-token", TOKEN_PROGRAM),
                    self.event_ix("TradeEvent", self.trade_payload()),
                ],
            },
            err=err,
        )
        return RawTransaction.from_rpc_json(signature, result)

    def trade_transaction(
        self,
        signature: str,
        *,
        slot: int,
        block_time: int | None = 1_744_000_000,
        mint: str = BASE_MINT,
        err: Any = None,
        **payload: Any,
    ) -> RawTransaction:
        """A single top-level buy or sell with its event."""
        result = self.rpc_result(
            signature,
            slot=slot,
            block_time=block_time,
            instructions=[self.buy_ix(mint=mint)],
            inner={0: [self.parsed_ix("spl-token", TOKEN_PROGRAM), self.event_ix("TradeEvent", self.trade_payload(**payload))]},
            err=err,
        )
        return RawTransaction.from_rpc_json(signature, result)

    def routed_trade_transaction(self, signature: str, *, slot: int, mint: str = BASE_MINT) -> RawTransaction:
        """A buy composed by an aggregator: the launchpad instruction is itself inner."""
        aggregator = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
        result = self.rpc_result(
            signature,
            slot=slot,
            block_time=1_744_000_100,
            instructions=[{"programId": aggregator, "accounts": [], "data": b58encode(b"\x01\x02").decode()}],
            inner={
                0: [
                    self.parsed_ix("spl-token", TOKEN_PROGRAM),
                    self.buy_ix(mint=mint, stack_height=2),
                    self.event_ix("TradeEvent", self.trade_payload(), stack_height=3),
                    self.parsed_ix("spl-token", TOKEN_PROGRAM),
                ]
            },
        )
        return RawTransaction.from_rpc_json(signature, result)


class FakeLedger:
    """In-memory ledger: newest-first signature history plus fetchable transactions."""

    def __init__(self, history: list[str] | None = None) -> None:
        self.history = list(history or [])
        self.transactions: dict[str, RawTransaction] = {}
        self.failures: dict[str, int] = {}
        self.list_calls: list[dict[str, Any]] = []
        self.fetch_calls: list[str] = []

    def add(self, tx: RawTransaction) -> None:
        self.transactions[tx.signature] = tx

    async def list_signatures(
        self,
        program_id: str,
        *,
        before: str | None = None,
        until: str | None = None,
        limit: int = 1000,
    ) -> list[str]:
        self.list_calls.append({"program_id": program_id, "before": before, "until": until, "limit": limit})
        signatures = self.history
        if before is not None:
            if before not in signatures:
                return []
            signatures = signatures[signatures.index(before) + 1 :]
        page: list[str] = []
        for signature in signatures:
            if signature == until or len(page) == limit:
                break
            page.append(signature)
        return page

    async def fetch_transaction(self, signature: str) -> RawTransaction | None:
        self.fetch_calls.append(signature)
        remaining = self.failures.get(signature, 0)
        if remaining:
            self.failures[signature] = remaining - 1
            raise TransientNetworkError(f"simulated failure for {signature}")
        return self.transactions.get(signature)


@pytest.fixture(scope="session")
def decoder() -> Decoder:
    """Decoder for the bundled launchpad IDL."""
    return Decoder.default()


@pytest.fixture
def chain(decoder: Decoder) -> ChainFactory:
    return ChainFactory(decoder)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def ledger_factory() -> type[FakeLedger]:
    return FakeLedger


@pytest.fixture
async def async_engine():
    """Create an async SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncIterator[AsyncSession]:
    """Create an async session for testing."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def db(tmp_path) -> AsyncIterator[DatabaseManager]:
    """File-backed database shared by several sessions."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}")
    await manager.init_schema_async()
    yield manager
    await manager.dispose_async()
