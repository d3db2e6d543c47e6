"""
Chain Gateway — async RPC accessor for the YAM offer contract and ERC-20 tokens.

Reads: getOfferCount / showOffer, decimals / name / symbol / allowance / balanceOf.
Writes: approve, buy — built here, signed by the wallet collaborator, returned as
a TxHandle the caller awaits. No retries: a failed submission is surfaced.
"""

import asyncio
import json
from typing import Optional, Tuple

from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError

from yamview.errors import OfferNotFound, TransientRpcError, TransactionReverted
from yamview.offers.models import RawOffer

# Minimal ABIs inlined (no external JSON files)
YAM_ABI = json.loads('[{"inputs":[],"name":"getOfferCount","outputs":[{"type":"uint256"}],"stateMutability":"view","type":"function"},{"inputs":[{"type":"uint256"}],"name":"showOffer","outputs":[{"type":"address"},{"type":"address"},{"type":"address"},{"type":"address"},{"type":"uint256"},{"type":"uint256"}],"stateMutability":"view","type":"function"},{"inputs":[{"type":"uint256","name":"offerId"},{"type":"uint256","name":"price"},{"type":"uint256","name":"amount"}],"name":"buy","outputs":[],"stateMutability":"nonpayable","type":"function"}]')

ERC20_ABI = json.loads('[{"inputs":[{"type":"address"},{"type":"uint256"}],"name":"approve","outputs":[{"type":"bool"}],"stateMutability":"nonpayable","type":"function"},{"inputs":[{"type":"address"},{"type":"address"}],"name":"allowance","outputs":[{"type":"uint256"}],"stateMutability":"view","type":"function"},{"inputs":[{"type":"address"}],"name":"balanceOf","outputs":[{"type":"uint256"}],"stateMutability":"view","type":"function"},{"inputs":[],"name":"decimals","outputs":[{"type":"uint8"}],"stateMutability":"view","type":"function"},{"inputs":[],"name":"name","outputs":[{"type":"string"}],"stateMutability":"view","type":"function"},{"inputs":[],"name":"symbol","outputs":[{"type":"string"}],"stateMutability":"view","type":"function"}]')

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEFAULT_DECIMALS = 18
APPROVE_GAS_FALLBACK = 100_000
BUY_GAS_FALLBACK = 300_000


def revert_reason(err: Exception) -> Optional[str]:
    """Structured revert reason of a web3 error, if the node gave one."""
    if isinstance(err, ContractLogicError):
        msg = getattr(err, "message", None) or str(err)
        return msg.replace("execution reverted:", "").strip() or None
    return None


class TxHandle:
    """A broadcast transaction. wait() returns only once it is mined successfully."""

    def __init__(self, w3: AsyncWeb3, tx_hash, label: str):
        self.w3 = w3
        self.tx_hash = tx_hash
        self.label = label

    @property
    def hash_hex(self) -> str:
        return Web3.to_hex(self.tx_hash)

    async def wait(self) -> dict:
        receipt = await self.w3.eth.wait_for_transaction_receipt(self.tx_hash)
        if receipt["status"] != 1:
            print(f"[GATEWAY] ⚠️  {self.label} reverted: {self.hash_hex}")
            raise TransactionReverted(tx_hash=self.hash_hex)
        print(f"[GATEWAY] ✅ {self.label} confirmed: {self.hash_hex} (gas {receipt.get('gasUsed')})")
        return receipt

    def __repr__(self):
        return f"TxHandle({self.label} {self.hash_hex})"


class ChainGateway:
    """Thin accessor over one chain's YAM contract and ERC-20 tokens."""

    def __init__(
        self,
        w3: AsyncWeb3,
        yam_address: str,
        chain_id: int,
        sell_slot: int = 0,
        pay_slot: int = 1,
    ):
        if {sell_slot, pay_slot} != {0, 1}:
            raise ValueError(f"token slots must be 0 and 1, got sell={sell_slot} pay={pay_slot}")
        self.w3 = w3
        self.chain_id = chain_id
        self.yam_address = Web3.to_checksum_address(yam_address)
        self.yam = w3.eth.contract(address=self.yam_address, abi=YAM_ABI)
        self.sell_slot = sell_slot
        self.pay_slot = pay_slot
        self._decimals_cache = {}
        # Metrics
        self._offer_reads = 0
        self._rpc_errors = 0
        self._tx_submitted = 0

    # ------------------------------------------------------------------
    # Offer reads
    # ------------------------------------------------------------------

    async def fetch_offer(self, offer_id) -> RawOffer:
        """Read one offer. Raises OfferNotFound or TransientRpcError."""
        offer_num = _parse_offer_id(offer_id)
        self._offer_reads += 1

        # Optional bounds check: not every deployment exposes getOfferCount
        try:
            offer_count = int(await self.yam.functions.getOfferCount().call())
        except Exception as e:
            print(f"[GATEWAY] getOfferCount unavailable ({e}) — continuing without bounds check")
        else:
            if offer_num >= offer_count:
                raise OfferNotFound(offer_id, f"only {offer_count} offers")

        try:
            data = await self.yam.functions.showOffer(offer_num).call()
        except ContractLogicError as e:
            raise OfferNotFound(offer_id, revert_reason(e) or "reverted") from e
        except Exception as e:
            self._rpc_errors += 1
            raise TransientRpcError(f"showOffer({offer_num}) failed: {e}") from e

        # [token0, token1, seller, buyer, price, amount]
        sell_token = data[self.sell_slot] or ZERO_ADDRESS
        pay_token = data[self.pay_slot] or ZERO_ADDRESS
        if sell_token.lower() == ZERO_ADDRESS and pay_token.lower() == ZERO_ADDRESS:
            raise OfferNotFound(offer_id, "empty offer slot")

        sell_decimals, pay_decimals = await asyncio.gather(
            self.get_decimals(sell_token),
            self.get_decimals(pay_token),
        )

        return RawOffer(
            offer_id=offer_num,
            sell_token=sell_token,
            pay_token=pay_token,
            seller=data[2] or ZERO_ADDRESS,
            buyer=data[3] or ZERO_ADDRESS,
            price_raw=int(data[4] or 0),
            amount_raw=int(data[5] or 0),
            sell_decimals=sell_decimals,
            pay_decimals=pay_decimals,
        )

    # ------------------------------------------------------------------
    # ERC-20 reads
    # ------------------------------------------------------------------

    async def get_decimals(self, token_address: str) -> int:
        """decimals(), defaulting to 18 on any failure. Never raises."""
        if not token_address or token_address.lower() == ZERO_ADDRESS:
            return DEFAULT_DECIMALS
        key = token_address.lower()
        cached = self._decimals_cache.get(key)
        if cached is not None:
            return cached
        try:
            decimals = int(await self._erc20(token_address).functions.decimals().call())
        except Exception as e:
            print(f"[GATEWAY] decimals() failed for {token_address[:10]}... ({e}) — using {DEFAULT_DECIMALS}")
            return DEFAULT_DECIMALS
        self._decimals_cache[key] = decimals
        return decimals

    async def token_name_and_symbol(self, token_address: str) -> Tuple[Optional[str], Optional[str]]:
        """name()/symbol(); either may be None independently."""
        if not token_address or token_address.lower() == ZERO_ADDRESS:
            return None, None
        try:
            contract = self._erc20(token_address)
        except ValueError:
            return None, None
        name, symbol = await asyncio.gather(
            contract.functions.name().call(),
            contract.functions.symbol().call(),
            return_exceptions=True,
        )
        return (
            name if isinstance(name, str) and name else None,
            symbol if isinstance(symbol, str) and symbol else None,
        )

    async def fetch_allowance_and_balance(self, owner: str, spender: str, token: str) -> Tuple[int, int]:
        """(allowance, balance). Any failure resets both to 0."""
        try:
            contract = self._erc20(token)
            owner_cs = Web3.to_checksum_address(owner)
            allowance, balance = await asyncio.gather(
                contract.functions.allowance(owner_cs, Web3.to_checksum_address(spender)).call(),
                contract.functions.balanceOf(owner_cs).call(),
            )
            return int(allowance), int(balance)
        except Exception as e:
            self._rpc_errors += 1
            print(f"[GATEWAY] allowance/balance read failed for {str(token)[:10]}...: {e}")
            return 0, 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def submit_approve(self, token: str, spender: str, amount: int, signer) -> TxHandle:
        if amount < 0:
            raise ValueError(f"approve: amount must be >= 0, got {amount}")
        fn = self._erc20(token).functions.approve(Web3.to_checksum_address(spender), amount)
        tx_hash = await self._send(fn, signer, APPROVE_GAS_FALLBACK)
        print(f"[GATEWAY] Approve sent: {token[:10]}... → {spender[:10]}... amount={amount}")
        return TxHandle(self.w3, tx_hash, "approve")

    async def submit_buy(self, offer_id: int, price: int, amount: int, signer) -> TxHandle:
        if amount <= 0:
            raise ValueError(f"buy: amount must be > 0, got {amount}")
        fn = self.yam.functions.buy(int(offer_id), int(price), int(amount))
        tx_hash = await self._send(fn, signer, BUY_GAS_FALLBACK)
        print(f"[GATEWAY] Buy sent: offer #{offer_id} price={price} amount={amount}")
        return TxHandle(self.w3, tx_hash, f"buy #{offer_id}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _erc20(self, token_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    async def _send(self, contract_fn, signer, gas_fallback: int):
        gas = await self._estimate_gas(contract_fn, signer.address, gas_fallback)
        params = {
            "from": signer.address,
            "gas": gas,
            "nonce": await signer.get_nonce(),
            "chainId": self.chain_id,
        }
        # Fees come from the signer when it prices them
        fee_params = getattr(signer, "fee_params", None)
        if fee_params is not None:
            params.update(await fee_params())
        tx = await contract_fn.build_transaction(params)
        tx_hash = await signer.send_transaction(tx)
        self._tx_submitted += 1
        return tx_hash

    async def _estimate_gas(self, contract_fn, sender: str, fallback: int) -> int:
        """Gas estimate with a 20% buffer. A revert during estimation is surfaced."""
        try:
            estimate = await contract_fn.estimate_gas({"from": sender})
            return int(estimate * 1.2)
        except ContractLogicError as e:
            raise TransactionReverted(reason=revert_reason(e)) from e
        except Exception:
            return fallback

    def metrics(self) -> dict:
        return {
            "offer_reads": self._offer_reads,
            "rpc_errors": self._rpc_errors,
            "tx_submitted": self._tx_submitted,
            "decimals_cached": len(self._decimals_cache),
        }


def _parse_offer_id(offer_id) -> int:
    if isinstance(offer_id, bool):
        raise OfferNotFound(offer_id, "invalid id")
    try:
        offer_num = int(str(offer_id).strip())
    except (TypeError, ValueError):
        raise OfferNotFound(offer_id, "invalid id") from None
    if offer_num < 0:
        raise OfferNotFound(offer_id, "invalid id")
    return offer_num
