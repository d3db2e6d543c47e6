"""
RawOffer and EnrichedOffer — request-scoped views of one YAM offer.
"""

from dataclasses import dataclass
from typing import Optional

from yamview.tokens.models import TokenMetadata

STATUS_ACTIVE = "active"
STATUS_SOLD = "sold"
STATUS_CANCELLED = "cancelled"


@dataclass(frozen=True)
class RawOffer:
    """On-chain offer as returned by showOffer, plus resolved token decimals."""
    offer_id: int
    sell_token: str        # the asset being sold (property token)
    pay_token: str         # the settlement currency
    seller: str
    buyer: str             # zero address for public offers
    price_raw: int         # pay-token units per whole sell token
    amount_raw: int        # remaining sell-token units
    sell_decimals: int = 18
    pay_decimals: int = 18
    removed_at: Optional[int] = None


@dataclass(frozen=True)
class EnrichedOffer:
    """Display-ready offer. Derived fresh on every resolution, never mutated."""
    offer_id: int
    chain: str
    status: str
    seller: str

    # formatted figures
    price: str             # 2 decimals
    amount: str            # 6 decimals
    reverse_price: Optional[str]

    # token identity
    sell_token: str
    sell_symbol: str
    sell_decimals: int
    pay_token: str
    pay_symbol: Optional[str]
    pay_decimals: int
    price_symbol: str
    token_details: Optional[TokenMetadata]

    # raw units, kept for transaction building
    price_raw: int
    amount_raw: int

    # display-only comparisons (floats)
    reference_price_usd: Optional[float] = None
    price_diff: Optional[float] = None
    price_deviation_pct: Optional[float] = None
    official_yield_pct: Optional[float] = None
    offer_yield_pct: Optional[float] = None
    yield_diff: Optional[float] = None
    yield_diff_pct: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE
