"""
OfferService — one call to go from an offer id to an EnrichedOffer.
"""

import time

from yamview.offers.enrichment import enrich
from yamview.offers.models import EnrichedOffer
from yamview.tokens.stables import StableTable


class OfferService:
    """Wires ChainGateway + TokenRegistryCache + stablecoin table for one chain."""

    def __init__(self, gateway, registry, stables: StableTable, chain: str):
        self.gateway = gateway
        self.registry = registry
        self.stables = stables
        self.chain = chain
        # Metrics
        self._loads = 0
        self._load_errors = 0
        self._total_latency_ms = 0.0

    async def load_offer(self, offer_id) -> EnrichedOffer:
        """Fetch and enrich. OfferNotFound / TransientRpcError propagate to the caller."""
        t0 = time.monotonic()
        try:
            raw = await self.gateway.fetch_offer(offer_id)
            offer = await enrich(raw, self.registry, self.stables, self.gateway, self.chain)
        except Exception:
            self._load_errors += 1
            raise
        self._loads += 1
        self._total_latency_ms += (time.monotonic() - t0) * 1000
        print(f"[OFFER] #{offer.offer_id} {offer.sell_symbol}: {offer.amount} @ "
              f"{offer.price} {offer.price_symbol} ({offer.status})")
        return offer

    def metrics(self) -> dict:
        return {
            "loads": self._loads,
            "load_errors": self._load_errors,
            "avg_latency_ms": (self._total_latency_ms / self._loads) if self._loads else 0.0,
        }
