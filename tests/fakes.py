"""
In-memory stand-ins for the chain, the registry and the signer.
Enough of the AsyncWeb3 contract surface for ChainGateway to run unmodified.
"""

import asyncio

from yamview.errors import TransactionRejected, UpstreamRegistryError
from yamview.offers.models import EnrichedOffer
from yamview.tokens.models import TokenMetadata

YAM = "0xc759aa7f9dd9720a1502c104dae4f9852bb17c14"
USDC = "0xddafbb505ad214d7b80b1f830fccc89b60fb7a83"
WXDAI = "0xe91d153e0b41518a2ce8dd3d7944fa863463a97d"
PROPERTY = "0x8f7ba8ab6a7f9b9e1e38d6b3e7ab1c2d3e4f5a6b"
OTHER_TOKEN = "0x4a5b6c7d8e9f0a1b2c3d4e5f60718293a4b5c6d7"
SELLER = "0x2222222222222222222222222222222222222222"
BUYER = "0x3333333333333333333333333333333333333333"
ZERO = "0x0000000000000000000000000000000000000000"


# ----------------------------------------------------------------------
# web3
# ----------------------------------------------------------------------

class FakeCall:
    def __init__(self, chain, address, name, args):
        self.chain = chain
        self.address = address
        self.name = name
        self.args = args

    async def call(self):
        self.chain.calls.append((self.address.lower(), self.name, self.args))
        key = (self.address.lower(), self.name)
        if key not in self.chain.handlers:
            raise ConnectionError(f"no node answer for {self.name}")
        handler = self.chain.handlers[key]
        result = handler(*self.args) if callable(handler) else handler
        if isinstance(result, Exception):
            raise result
        return result

    async def estimate_gas(self, tx):
        if self.chain.estimate_error is not None:
            raise self.chain.estimate_error
        return 50_000

    async def build_transaction(self, tx):
        built = dict(tx)
        built.update({"to": self.address, "data": (self.name, self.args)})
        return built


class _Functions:
    def __init__(self, chain, address):
        self._chain = chain
        self._address = address

    def __getattr__(self, name):
        return lambda *args: FakeCall(self._chain, self._address, name, args)


class FakeContract:
    def __init__(self, chain, address):
        self.address = address
        self.functions = _Functions(chain, address)


class FakeEth:
    def __init__(self, chain):
        self._chain = chain

    def contract(self, address, abi):
        return FakeContract(self._chain, address)

    async def wait_for_transaction_receipt(self, tx_hash):
        return self._chain.receipts.get(tx_hash, {"status": 1, "gasUsed": 42_000})


class FakeChain:
    """handlers: (lowercase address, function name) → value, exception, or callable."""

    def __init__(self):
        self.handlers = {}
        self.calls = []
        self.receipts = {}
        self.estimate_error = None
        self.eth = FakeEth(self)

    def on(self, address, name, result):
        self.handlers[(address.lower(), name)] = result

    def count(self, name) -> int:
        return sum(1 for _addr, fn, _args in self.calls if fn == name)


# ----------------------------------------------------------------------
# Signer
# ----------------------------------------------------------------------

class FakeSigner:
    def __init__(self, address=BUYER, connected=True, reject=False):
        self._address = address
        self.is_connected = connected
        self.reject = reject
        self.nonce = 0
        self.sent = []

    @property
    def address(self):
        return self._address if self.is_connected else None

    async def get_nonce(self):
        nonce = self.nonce
        self.nonce += 1
        return nonce

    async def send_transaction(self, tx):
        if self.reject:
            raise TransactionRejected("User rejected the request")
        self.sent.append(tx)
        return bytes([len(self.sent)]) * 32


# ----------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------

def token_record(address, short_name="RealToken 42 Main St", price=50.0, rent=450.0, supply=1000):
    return {
        "uuid": address,
        "gnosisContract": address,
        "shortName": short_name,
        "fullName": f"{short_name}, Detroit MI 48000",
        "tokenPrice": price,
        "netRentYear": rent,
        "totalTokens": supply,
        "imageLink": ["https://realt.co/img.jpg"],
        "marketplaceLink": "https://realt.co/product/42-main",
        "rentStartDate": {"date": "2023-01-01 00:00:00.000000", "timezone": "UTC"},
    }


class FakeRegistrySource:
    """Counts fetches; `gate` (an asyncio.Event) holds fetches open until set."""

    def __init__(self, records=None, error=None):
        self.records = list(records or [])
        self.error = error
        self.calls = 0
        self.gate = None
        self.closed = False

    async def fetch_tokens(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.error is not None:
            raise UpstreamRegistryError(self.error)
        out = {}
        for record in self.records:
            meta = TokenMetadata.from_record(record)
            out[meta.key] = meta
        return out

    async def close(self):
        self.closed = True


class FakeRegistry:
    """The lookup() side of TokenRegistryCache, backed by a dict."""

    def __init__(self, entries=None, error=None):
        self.entries = {k.lower(): v for k, v in (entries or {}).items()}
        self.error = error
        self.lookups = []

    async def lookup(self, address):
        self.lookups.append(address)
        if self.error is not None:
            raise self.error
        return self.entries.get(address.lower())


# ----------------------------------------------------------------------
# Purchase collaborators
# ----------------------------------------------------------------------

class FakeTx:
    def __init__(self, label, error=None, gate=None, on_confirm=None):
        self.label = label
        self.error = error
        self.gate = gate
        self.on_confirm = on_confirm
        self.hash_hex = "0x" + "ab" * 32

    async def wait(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.on_confirm is not None:
            self.on_confirm()
        return {"status": 1}


class FakeGateway:
    """Allowance/balance store; a confirmed approve sets the allowance."""

    def __init__(self, allowance=0, balance=0):
        self.allowance = allowance
        self.balance = balance
        self.reads = 0
        self.approvals = []
        self.buys = []
        self.approve_error = None
        self.approve_submit_error = None
        self.buy_error = None
        self.buy_submit_error = None
        self.gate = None

    async def fetch_allowance_and_balance(self, owner, spender, token):
        self.reads += 1
        return self.allowance, self.balance

    async def submit_approve(self, token, spender, amount, signer):
        if self.approve_submit_error is not None:
            raise self.approve_submit_error
        self.approvals.append((token, spender, amount))

        def confirm():
            self.allowance = amount
        return FakeTx("approve", self.approve_error, self.gate, confirm)

    async def submit_buy(self, offer_id, price, amount, signer):
        if self.buy_submit_error is not None:
            raise self.buy_submit_error
        self.buys.append((offer_id, price, amount))
        return FakeTx(f"buy #{offer_id}", self.buy_error, self.gate)


def make_offer(**overrides) -> EnrichedOffer:
    """Offer #7: 26.031567 tokens at 2 USDC."""
    fields = dict(
        offer_id=7,
        chain="gnosis",
        status="active",
        seller=SELLER,
        price="2.00",
        amount="26.031567",
        reverse_price="0.50",
        sell_token=PROPERTY,
        sell_symbol="RealToken 42 Main St",
        sell_decimals=18,
        pay_token=USDC,
        pay_symbol="USDC",
        pay_decimals=6,
        price_symbol="USDC",
        token_details=None,
        price_raw=2_000000,
        amount_raw=26_031567000000000000,
    )
    fields.update(overrides)
    return EnrichedOffer(**fields)
