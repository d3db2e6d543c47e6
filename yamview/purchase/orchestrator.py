"""
Purchase Orchestrator — approve → buy state machine for one offer.

    idle ──open──▶ checking_allowance ──approve──▶ approving ──confirmed──▶ checking_allowance
                          │                            │
                          └──buy──▶ awaiting_confirmation ──confirmed──▶ succeeded
                                                       │
                                any error ─────────────┴──▶ failed(reason)

    succeeded / failed ──dismiss──▶ idle

Rules:
  - approving / awaiting_confirmation reject every user action (PurchaseBusy)
  - after an approval the allowance is re-read; buy is never assumed safe
  - succeeded only after the receipt is in, not on broadcast
  - a success triggers a re-fetch of the offer (remaining amount dropped)
  - a cancelled approve or buy ends in failed, so dismiss and retry stay available
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

from yamview.chain.gateway import revert_reason
from yamview.errors import (
    PurchaseBusy,
    TransactionRejected,
    TransactionReverted,
    WalletNotConnected,
)
from yamview.offers.models import EnrichedOffer
from yamview.purchase.amounts import (
    PRECISION,
    effective_precision,
    format_units,
    max_purchasable,
    parse_amount,
    parse_units,
    required_pay_amount,
)

IDLE = "idle"
CHECKING_ALLOWANCE = "checking_allowance"
APPROVING = "approving"
AWAITING_CONFIRMATION = "awaiting_confirmation"
SUCCEEDED = "succeeded"
FAILED = "failed"

IN_FLIGHT_STATES = (APPROVING, AWAITING_CONFIRMATION)
TERMINAL_STATES = (SUCCEEDED, FAILED)

GENERIC_ERROR = "An unknown error occurred"
REJECTED_MESSAGE = "Transaction rejected in wallet"
CANCELLED_MESSAGE = "Stopped waiting for the transaction; check the wallet before retrying"
_REJECTION_MARKERS = ("user rejected", "user denied", "rejected by user", "4001")


def describe_failure(action: str, err: Exception) -> str:
    """Human-readable failure: revert reason first, then the error text."""
    if isinstance(err, TransactionRejected):
        message = REJECTED_MESSAGE
    elif isinstance(err, TransactionReverted) and err.reason:
        message = err.reason
    else:
        message = revert_reason(err)
        if not message:
            text = str(err).strip()
            if any(marker in text.lower() for marker in _REJECTION_MARKERS):
                message = REJECTED_MESSAGE
            else:
                message = text or GENERIC_ERROR
    return f"{action}: {message}"


class PurchaseOrchestrator:
    """Owns the PurchaseState of one buy attempt on one offer."""

    def __init__(
        self,
        gateway,
        offer: EnrichedOffer,
        signer,
        spender: str,
        offer_loader: Optional[Callable[[int], Awaitable[EnrichedOffer]]] = None,
        precision: int = PRECISION,
    ):
        self.gateway = gateway
        self.offer = offer
        self.signer = signer
        self.spender = spender
        self.offer_loader = offer_loader
        self.precision = precision

        self.state = IDLE
        self.error: Optional[str] = None
        self.amount: str = ""
        self.allowance: int = 0
        self.balance: int = 0
        self.last_tx = None
        self.refreshed_offer: Optional[EnrichedOffer] = None
        self.history: List[Tuple[str, str]] = []
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self.state in IN_FLIGHT_STATES or self._lock.locked()

    def _transition(self, new_state: str, reason: Optional[str] = None):
        old = self.state
        self.state = new_state
        self.error = reason if new_state == FAILED else None
        self.history.append((old, new_state))
        suffix = f" ({reason})" if reason else ""
        print(f"[PURCHASE] Offer #{self.offer.offer_id}: {old} → {new_state}{suffix}")

    def _guard(self, action: str):
        if self.busy:
            raise PurchaseBusy(f"Cannot {action} while {self.state}")

    def _require_state(self, action: str, *states: str):
        if self.state not in states:
            raise RuntimeError(f"Cannot {action} from state '{self.state}'")

    def _require_signer(self) -> str:
        if self.signer is None or not self.signer.is_connected:
            raise WalletNotConnected("Please connect your wallet")
        return self.signer.address

    def _reset(self):
        self.amount = ""
        self.allowance = 0
        self.balance = 0
        self.last_tx = None
        self.error = None

    # ------------------------------------------------------------------
    # Modal lifecycle
    # ------------------------------------------------------------------

    async def open(self):
        """idle → checking_allowance; reads allowance and balance. Re-opening retries."""
        self._guard("open")
        if self.state in TERMINAL_STATES:
            self.dismiss()
        self._require_signer()
        async with self._lock:
            if self.state == IDLE:
                self._transition(CHECKING_ALLOWANCE)
            await self._refresh_balances()

    def dismiss(self):
        """Close the modal. Never while a transaction is pending."""
        self._guard("dismiss")
        if self.state != IDLE:
            self._transition(IDLE)
        self._reset()

    def load_offer(self, offer: EnrichedOffer):
        """A new offer resets the purchase state."""
        self.dismiss()
        self.offer = offer
        self.refreshed_offer = None

    async def _refresh_balances(self):
        owner = self._require_signer()
        self.allowance, self.balance = await self.gateway.fetch_allowance_and_balance(
            owner, self.spender, self.offer.pay_token,
        )

    # ------------------------------------------------------------------
    # Amount edits
    # ------------------------------------------------------------------

    def set_amount(self, text) -> str:
        self._guard("edit the amount")
        self.amount = str(text).strip()
        return self.amount

    def max_amount(self) -> str:
        """Largest amount the current balance affords, capped by the offer's remaining amount."""
        precision = effective_precision(self.offer.sell_decimals, self.precision)
        fixed = max_purchasable(
            self.balance, self.offer.price_raw, self.offer.amount_raw,
            self.offer.sell_decimals, precision,
        )
        return format_units(fixed, precision)

    def set_max_amount(self) -> str:
        self._guard("edit the amount")
        self.amount = self.max_amount()
        return self.amount

    def required_amount(self) -> int:
        """Pay-token units the current amount costs."""
        return required_pay_amount(self.amount, self.offer.price_raw)

    @property
    def needs_approval(self) -> bool:
        return self.allowance < self.required_amount()

    def _validated_amount_raw(self) -> int:
        """Sell-token units of the current amount. ValueError / PrecisionFault on bad input."""
        if not self.amount or parse_amount(self.amount) <= 0:
            raise ValueError("Please enter a valid amount")
        amount_raw = parse_units(self.amount, self.offer.sell_decimals)
        if amount_raw > self.offer.amount_raw:
            raise ValueError("Amount exceeds available quantity")
        return amount_raw

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def submit(self) -> str:
        """The single "buy" button: approve if the allowance is short, else buy."""
        self._guard("submit")
        self._require_state("submit", CHECKING_ALLOWANCE)
        self._validated_amount_raw()
        async with self._lock:
            await self._refresh_balances()
        if self.needs_approval:
            return await self.approve()
        return await self.buy()

    async def approve(self) -> str:
        """checking_allowance → approving → (confirmed) checking_allowance."""
        self._guard("approve")
        self._require_state("approve", CHECKING_ALLOWANCE)
        self._require_signer()
        self._validated_amount_raw()
        required = self.required_amount()

        async with self._lock:
            self._transition(APPROVING)
            try:
                self.last_tx = await self.gateway.submit_approve(
                    self.offer.pay_token, self.spender, required, self.signer,
                )
                await self.last_tx.wait()
            except asyncio.CancelledError:
                self._transition(FAILED, f"Error approving token: {CANCELLED_MESSAGE}")
                raise
            except Exception as e:
                print(f"[PURCHASE] Error approving token: {e}")
                self._transition(FAILED, describe_failure("Error approving token", e))
                return self.state

            # Never straight to buy: the allowance is re-read
            self._transition(CHECKING_ALLOWANCE)
            await self._refresh_balances()
        return self.state

    async def buy(self) -> str:
        """checking_allowance → awaiting_confirmation → succeeded, then re-fetch the offer."""
        self._guard("buy")
        self._require_state("buy", CHECKING_ALLOWANCE)
        self._require_signer()
        amount_raw = self._validated_amount_raw()
        if self.needs_approval:
            raise ValueError("Allowance too low — approve the payment token first")

        async with self._lock:
            self._transition(AWAITING_CONFIRMATION)
            try:
                self.last_tx = await self.gateway.submit_buy(
                    self.offer.offer_id, self.offer.price_raw, amount_raw, self.signer,
                )
                await self.last_tx.wait()
            except asyncio.CancelledError:
                self._transition(FAILED, f"Error buying token: {CANCELLED_MESSAGE}")
                raise
            except Exception as e:
                print(f"[PURCHASE] Error buying token: {e}")
                self._transition(FAILED, describe_failure("Error buying token", e))
                return self.state

            self._transition(SUCCEEDED)
            await self._refetch_offer()
        return self.state

    async def _refetch_offer(self):
        if self.offer_loader is None:
            return
        try:
            self.refreshed_offer = await self.offer_loader(self.offer.offer_id)
        except Exception as e:
            # Purchase already confirmed; state stays succeeded
            print(f"[PURCHASE] ⚠️  Re-fetching offer #{self.offer.offer_id} failed: {e}")
            return
        self.offer = self.refreshed_offer

    def summary(self) -> dict:
        return {
            "offer_id": self.offer.offer_id,
            "state": self.state,
            "error": self.error,
            "amount": self.amount,
            "allowance": self.allowance,
            "balance": self.balance,
            "last_tx": self.last_tx.hash_hex if hasattr(self.last_tx, "hash_hex") else None,
        }
