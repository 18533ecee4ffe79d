"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO I/O ALLOWED.

All unit tests should be completely isolated from:
- Network (RPC, HTTP, bundle relay)
- The DLMM bridge process
- File system (except tmp_path)
"""

import itertools

import pytest
from unittest.mock import AsyncMock, MagicMock

from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from src.shared.infrastructure.chain_gateway import BlockhashLease, TransactionOutcome
from tests.unit.helpers import make_template


# ============================================================================
# AUTOUSE: ENFORCE I/O ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Automatically disable all network I/O for unit tests.
    Any test that accidentally tries to make a network call will fail.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Unit tests must be pure logic with no external dependencies. "
            "Use integration tests for network-dependent code."
        )

    monkeypatch.setattr("httpx.AsyncClient.get", block_network)
    monkeypatch.setattr("httpx.AsyncClient.post", block_network)


# ============================================================================
# WALLET / TRANSACTION FIXTURES
# ============================================================================


@pytest.fixture
def keypair():
    return Keypair()


@pytest.fixture
def template_factory(keypair):
    return lambda: make_template(keypair)


# ============================================================================
# HTTP FIXTURES
# ============================================================================


@pytest.fixture
def mock_http():
    client = MagicMock()
    client.get = AsyncMock()
    client.post = AsyncMock()
    return client


# ============================================================================
# LEDGER FIXTURES
# ============================================================================


@pytest.fixture
def fake_gateway():
    """
    ChainGateway double. Each latest_blockhash() call hands out a new,
    strictly newer lease; outcomes default to "landed OK".
    """
    heights = itertools.count(1_000, 150)
    gateway = MagicMock()
    gateway.leases = []

    async def latest_blockhash():
        lease = BlockhashLease(blockhash=Hash.new_unique(), last_valid_block_height=next(heights))
        gateway.leases.append(lease)
        return lease

    async def get_transaction_outcome(signature):
        return TransactionOutcome(signature=signature, slot=42)

    gateway.latest_blockhash = AsyncMock(side_effect=latest_blockhash)
    gateway.is_expired = AsyncMock(return_value=False)
    gateway.send_raw_transaction = AsyncMock(side_effect=lambda raw: str(VersionedTransaction.from_bytes(raw).signatures[0]))
    gateway.confirm_transaction = AsyncMock(return_value=None)
    gateway.get_transaction_outcome = AsyncMock(side_effect=get_transaction_outcome)
    gateway.get_balance = AsyncMock(return_value=0)
    gateway.get_token_balance = AsyncMock(return_value=0)
    return gateway
