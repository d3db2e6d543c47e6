"""
Pytest fixtures for the offer viewer tests. Everything runs against in-memory
fakes; no RPC node, registry or wallet is needed.
"""

import pytest

from fakes import (
    BUYER,
    FakeChain,
    FakeGateway,
    FakeSigner,
    PROPERTY,
    SELLER,
    USDC,
    YAM,
    ZERO,
)
from yamview.chain.gateway import ChainGateway


@pytest.fixture
def chain():
    """A chain with offer #7 (26.031567 property tokens at 2 USDC) out of 10."""
    fake = FakeChain()
    fake.on(YAM, "getOfferCount", 10)
    fake.on(YAM, "showOffer", lambda offer_id: (
        [PROPERTY, USDC, SELLER, ZERO, 2_000000, 26_031567000000000000]
        if offer_id == 7 else [ZERO, ZERO, ZERO, ZERO, 0, 0]
    ))
    fake.on(PROPERTY, "decimals", 18)
    fake.on(USDC, "decimals", 6)
    fake.on(USDC, "allowance", 0)
    fake.on(USDC, "balanceOf", 600_000000)
    return fake


@pytest.fixture
def gateway(chain):
    return ChainGateway(chain, YAM, 100)


@pytest.fixture
def signer():
    return FakeSigner(BUYER)


@pytest.fixture
def fake_gateway():
    return FakeGateway(allowance=0, balance=600_000000)
