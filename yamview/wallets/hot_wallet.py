"""
Hot Wallet — private-key signer implementing the wallet collaborator contract:
connection state, a signing capability bound to one address, connect/disconnect.
A refusal to sign (wrong chain, malformed transaction) raises TransactionRejected.

The purchase flow only ever has one transaction in flight (PurchaseOrchestrator
refuses new actions while one is pending), so a local nonce counter is safe.
"""

import asyncio
from typing import Optional

from eth_account import Account
from web3 import AsyncWeb3

from yamview.errors import TransactionRejected, WalletNotConnected

PRIORITY_FEE_WEI = 1_000_000_000       # 1 gwei tip, typical on Gnosis
FALLBACK_GAS_PRICE = 2_000_000_000     # 2 gwei if fee history is unavailable


class NonceManager:
    """Local nonce tracker. Syncs from chain on first use and after errors."""

    def __init__(self):
        self._local_nonce: Optional[int] = None
        self._lock = asyncio.Lock()

    async def get_nonce(self, w3: AsyncWeb3, address: str) -> int:
        async with self._lock:
            if self._local_nonce is None:
                self._local_nonce = await w3.eth.get_transaction_count(address, "pending")
            nonce = self._local_nonce
            self._local_nonce += 1
            return nonce

    async def reset(self):
        async with self._lock:
            self._local_nonce = None


class HotWallet:
    """Single-key wallet. Signs locally, broadcasts raw transactions."""

    def __init__(self, private_key: str, w3: AsyncWeb3, chain_id: Optional[int] = None):
        self._private_key = private_key
        self.w3 = w3
        self.chain_id = chain_id
        self.account = None
        self.nonce_mgr = NonceManager()
        # Metrics
        self._tx_count: int = 0
        self._tx_failures: int = 0

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.account is not None

    @property
    def address(self) -> Optional[str]:
        return self.account.address if self.account else None

    def connect(self) -> str:
        if self.account is None:
            self.account = Account.from_key(self._private_key)
            print(f"[WALLET] Connected {self.account.address}")
        return self.account.address

    def disconnect(self):
        if self.account is not None:
            print(f"[WALLET] Disconnected {self.account.address}")
        self.account = None

    def _require_account(self):
        if self.account is None:
            raise WalletNotConnected("Wallet is not connected")
        return self.account

    # ------------------------------------------------------------------
    # Signing + sending
    # ------------------------------------------------------------------

    async def get_nonce(self) -> int:
        account = self._require_account()
        return await self.nonce_mgr.get_nonce(self.w3, account.address)

    async def fee_params(self) -> dict:
        """EIP-1559 fees when the chain reports a base fee, legacy gasPrice otherwise."""
        try:
            latest = await self.w3.eth.get_block("latest")
            base_fee = latest.get("baseFeePerGas", 0)
            if base_fee:
                return {
                    "maxFeePerGas": base_fee * 2 + PRIORITY_FEE_WEI,
                    "maxPriorityFeePerGas": PRIORITY_FEE_WEI,
                }
            return {"gasPrice": await self.w3.eth.gas_price}
        except Exception as e:
            print(f"[WALLET] Fee estimation failed: {e}")
            return {"gasPrice": FALLBACK_GAS_PRICE}

    async def send_transaction(self, tx_dict: dict):
        """Sign and broadcast. Returns the tx hash; waiting is the caller's job."""
        account = self._require_account()
        if "gasPrice" not in tx_dict and "maxFeePerGas" not in tx_dict:
            tx_dict.update(await self.fee_params())

        try:
            signed = self._sign(account, tx_dict)
        except TransactionRejected:
            await self.nonce_mgr.reset()
            raise
        try:
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception:
            self._tx_failures += 1
            # Nonce may not have been consumed; re-read it next time
            await self.nonce_mgr.reset()
            raise
        self._tx_count += 1
        return tx_hash

    def _sign(self, account, tx_dict: dict):
        """Refusals surface as TransactionRejected; nothing is broadcast."""
        tx_chain = tx_dict.get("chainId")
        if self.chain_id is not None and tx_chain is not None and int(tx_chain) != self.chain_id:
            raise TransactionRejected(f"Refusing to sign for chain {tx_chain} (wallet is on {self.chain_id})")
        try:
            return account.sign_transaction(tx_dict)
        except (TypeError, ValueError) as e:
            raise TransactionRejected(f"Refusing to sign malformed transaction: {e}") from e

    def metrics(self) -> dict:
        return {
            "address": self.address,
            "tx_count": self._tx_count,
            "tx_failures": self._tx_failures,
        }

    def __repr__(self):
        return f"HotWallet({self.address or 'disconnected'})"
