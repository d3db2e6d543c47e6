"""
Error kinds surfaced by the offer viewer core.

Lookup failures (decimals, metadata, registry refresh) are absorbed where they
happen; these are the ones that reach a caller.
"""

from typing import Optional


class YamError(Exception):
    """Base class for all offer viewer errors."""


class OfferNotFound(YamError):
    """Offer id out of range, or the contract deterministically says it does not exist."""

    def __init__(self, offer_id, detail: str = ""):
        self.offer_id = offer_id
        msg = f"Offer #{offer_id} not found"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class TransientRpcError(YamError):
    """Network/node failure; retried only by a fresh user-triggered reload."""


class UpstreamRegistryError(YamError):
    """Token registry unreachable, misconfigured, or returned an unusable payload."""


class PrecisionFault(YamError):
    """Amount has more decimal places than the token supports."""

    def __init__(self, amount: str, decimals: int):
        self.amount = amount
        self.decimals = decimals
        super().__init__(f"Amount {amount} has more than {decimals} decimal places")


class TransactionRejected(YamError):
    """The wallet declined to sign."""


class TransactionReverted(YamError):
    """Transaction mined with status 0, or the node reported a revert."""

    def __init__(self, reason: Optional[str] = None, tx_hash: Optional[str] = None):
        self.reason = reason
        self.tx_hash = tx_hash
        msg = f"Transaction reverted: {reason}" if reason else "Transaction reverted"
        if tx_hash:
            msg = f"{msg} ({tx_hash})"
        super().__init__(msg)


class WalletNotConnected(YamError):
    """A signer is required but the wallet is disconnected."""


class PurchaseBusy(YamError):
    """A transaction is in flight; user actions are disabled until it settles."""
