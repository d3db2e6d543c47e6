"""
YAM Offer Viewer — Entry point.
Wires config → RPC → gateway, registry cache, enrichment and the purchase flow.

Usage:
    python3 main.py --smoke                    # Connect + load cache, exit
    python3 main.py --offer 7                  # Show one enriched offer
    python3 main.py --offer 7 --max            # Max amount the wallet can buy
    python3 main.py --offer 7 --buy 250        # Approve if needed, then buy
    python3 main.py --refresh                  # Force a registry refresh
    python3 main.py --serve                    # Run the GET /token cache service
"""

import argparse
import asyncio
import sys

from web3 import AsyncWeb3, AsyncHTTPProvider

from yamview.config import (
    CHAIN,
    COMMUNITY_API_KEY,
    COMMUNITY_API_URI,
    PAY_TOKEN_SLOT,
    SELL_TOKEN_SLOT,
    SERVICE_HOST,
    SERVICE_PORT,
    TOKEN_CACHE_PATH,
    TOKEN_CACHE_SERVICE_URL,
    TOKEN_CACHE_TTL_HOURS,
    DEBUG,
    WALLET_PRIVATE_KEY,
    YAM_API_URL,
    chain_id,
    print_config_summary,
    rpc_url,
    yam_contract,
)
from yamview.chain.gateway import ChainGateway
from yamview.errors import OfferNotFound, PrecisionFault, TransientRpcError, YamError
from yamview.offers.models import EnrichedOffer
from yamview.offers.service import OfferService
from yamview.purchase.orchestrator import CHECKING_ALLOWANCE, FAILED, PurchaseOrchestrator
from yamview.server.app import run_service
from yamview.tokens.cache import TokenRegistryCache
from yamview.tokens.registry import CacheServiceClient, CommunityApiClient
from yamview.tokens.stables import StableTable
from yamview.tokens.store import SnapshotStore
from yamview.tokens.whitelist import check_whitelist_status
from yamview.wallets.hot_wallet import HotWallet


# ----------------------------------------------------------------------
# Wiring
# ----------------------------------------------------------------------

def build_cache(allow_service_source: bool = True) -> TokenRegistryCache:
    """Registry cache backed by the JSON store. The service itself always reads the community API."""
    if allow_service_source and TOKEN_CACHE_SERVICE_URL:
        source = CacheServiceClient(TOKEN_CACHE_SERVICE_URL)
        print(f"[INIT] Registry source: cache service {TOKEN_CACHE_SERVICE_URL}")
    else:
        source = CommunityApiClient(COMMUNITY_API_URI, COMMUNITY_API_KEY)
        print("[INIT] Registry source: community API")
    return TokenRegistryCache(
        source,
        store=SnapshotStore(TOKEN_CACHE_PATH),
        ttl_seconds=TOKEN_CACHE_TTL_HOURS * 3600,
    )


def build_gateway(w3: AsyncWeb3) -> ChainGateway:
    return ChainGateway(
        w3,
        yam_contract(),
        chain_id(),
        sell_slot=SELL_TOKEN_SLOT,
        pay_slot=PAY_TOKEN_SLOT,
    )


async def connect_rpc() -> AsyncWeb3:
    print(f"[RPC] Connecting to {CHAIN}...")
    w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url()))
    try:
        actual = await w3.eth.chain_id
        block = await w3.eth.block_number
    except Exception as e:
        print(f"[RPC] ❌ Failed to connect: {e}", file=sys.stderr)
        sys.exit(1)
    if actual != chain_id():
        print(f"[RPC] FATAL: expected chain_id {chain_id()}, got {actual}", file=sys.stderr)
        sys.exit(1)
    print(f"[RPC] ✅ {CHAIN} chain_id={actual} block_number={block}")
    return w3


def print_offer(offer: EnrichedOffer):
    print()
    print(f"  Offer #{offer.offer_id} on {offer.chain} [{offer.status}]")
    print(f"  Asset:        {offer.sell_symbol} ({offer.sell_token})")
    print(f"  Seller:       {offer.seller}")
    print(f"  Price:        {offer.price} {offer.price_symbol}")
    print(f"  Available:    {offer.amount}")
    if offer.reverse_price is not None:
        print(f"  Reverse:      {offer.reverse_price} per {offer.price_symbol}")
    if offer.reference_price_usd is not None:
        print(f"  Token price:  {offer.reference_price_usd:.2f} $")
    if offer.price_deviation_pct is not None:
        print(f"  Deviation:    {offer.price_diff:+.2f} ({offer.price_deviation_pct:+.2f}%)")
    if offer.official_yield_pct is not None:
        print(f"  Yield:        {offer.official_yield_pct:.2f}% official")
    if offer.offer_yield_pct is not None:
        line = f"  Offer yield:  {offer.offer_yield_pct:.2f}%"
        if offer.yield_diff is not None:
            line += f" ({offer.yield_diff:+.2f} pts"
            line += f", {offer.yield_diff_pct:+.2f}%)" if offer.yield_diff_pct is not None else ")"
        print(line)
    print()


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

async def smoke_test():
    """Smoke test: connect to RPC, load the persisted cache, exit."""
    print("=" * 50)
    print("  YAM Offer Viewer — Smoke Test")
    print("=" * 50)
    print()
    print_config_summary()
    print()

    w3 = await connect_rpc()
    gateway = build_gateway(w3)
    try:
        count = await gateway.yam.functions.getOfferCount().call()
        print(f"[GATEWAY] ✅ YAM contract reachable, {count} offers")
    except Exception as e:
        print(f"[GATEWAY] ⚠️  getOfferCount unavailable: {e}")

    snapshot = await SnapshotStore(TOKEN_CACHE_PATH).load()
    if snapshot is None:
        print("[CACHE] ⚠️  No persisted cache yet — run with --refresh")
    else:
        print(f"[CACHE] ✅ {len(snapshot)} tokens on disk")

    if WALLET_PRIVATE_KEY:
        wallet = HotWallet(WALLET_PRIVATE_KEY, w3, chain_id=chain_id())
        wallet.connect()

    print()
    print("=" * 50)
    print("  ✅ SMOKE TEST PASSED")
    print("=" * 50)


async def refresh_cache() -> int:
    cache = build_cache()
    try:
        snapshot = await cache.force_refresh()
    finally:
        await cache.source.close()
    if cache.last_error:
        print(f"[CACHE] ❌ Refresh failed: {cache.last_error}", file=sys.stderr)
        return 1
    print(f"[CACHE] ✅ {len(snapshot)} tokens, lastUpdated={snapshot.last_updated_ms}")
    return 0


async def show_offer(offer_id, buy_amount=None, show_max: bool = False) -> int:
    w3 = await connect_rpc()
    gateway = build_gateway(w3)
    cache = build_cache()
    service = OfferService(gateway, cache, StableTable(CHAIN), CHAIN)
    try:
        try:
            offer = await service.load_offer(offer_id)
        except OfferNotFound as e:
            print(f"[OFFER] ❌ {e}", file=sys.stderr)
            return 1
        except TransientRpcError as e:
            print(f"[OFFER] ❌ {e} — re-run to retry", file=sys.stderr)
            return 2
        print_offer(offer)

        if buy_amount is None and not show_max:
            return 0
        if not offer.is_active:
            print(f"[PURCHASE] ❌ Offer #{offer.offer_id} is {offer.status}", file=sys.stderr)
            return 1
        if not WALLET_PRIVATE_KEY:
            print("[PURCHASE] ❌ WALLET_PRIVATE_KEY is not set", file=sys.stderr)
            return 1

        wallet = HotWallet(WALLET_PRIVATE_KEY, w3, chain_id=chain_id())
        wallet.connect()
        purchase = PurchaseOrchestrator(
            gateway, offer, wallet, gateway.yam_address, offer_loader=service.load_offer,
        )
        await purchase.open()
        print(f"[PURCHASE] Balance {purchase.balance} / allowance {purchase.allowance} "
              f"({offer.price_symbol} units)")

        if show_max:
            print(f"[PURCHASE] Max amount: {purchase.max_amount()} {offer.sell_symbol}")
        if buy_amount is None:
            return 0
        return await _buy(purchase, wallet, buy_amount)
    finally:
        if DEBUG:
            print(f"[DEBUG] gateway={gateway.metrics()}")
            print(f"[DEBUG] cache={cache.metrics()}")
            print(f"[DEBUG] offers={service.metrics()}")
        await cache.source.close()


async def _buy(purchase: PurchaseOrchestrator, wallet: HotWallet, amount) -> int:
    if YAM_API_URL and not await check_whitelist_status(YAM_API_URL, wallet.address):
        print(f"[PURCHASE] ⚠️  {wallet.address} is not whitelisted — the buy may revert")

    purchase.set_amount(amount)
    try:
        print(f"[PURCHASE] Required: {purchase.required_amount()} units "
              f"({'approval needed' if purchase.needs_approval else 'allowance ok'})")
        state = await purchase.submit()
        if state == CHECKING_ALLOWANCE:
            # Approved; the second press buys (after the allowance was re-read)
            state = await purchase.submit()
    except (ValueError, PrecisionFault) as e:
        print(f"[PURCHASE] ❌ {e}", file=sys.stderr)
        return 1

    if state == FAILED:
        print(f"[PURCHASE] ❌ {purchase.error} — re-run to retry", file=sys.stderr)
        return 1
    if state == CHECKING_ALLOWANCE:
        print("[PURCHASE] ❌ Allowance still too low after approval — re-run to retry", file=sys.stderr)
        return 1

    print(f"[PURCHASE] ✅ Bought {purchase.amount} {purchase.offer.sell_symbol} ({purchase.summary()['last_tx']})")
    if purchase.refreshed_offer is not None:
        print_offer(purchase.refreshed_offer)
    return 0


def serve():
    print_config_summary()
    run_service(build_cache(allow_service_source=False), SERVICE_HOST, SERVICE_PORT)


def main():
    parser = argparse.ArgumentParser(description="YAM Offer Viewer")
    parser.add_argument("--smoke", action="store_true", help="Smoke test only (connect + exit)")
    parser.add_argument("--offer", help="Offer id to display")
    parser.add_argument("--buy", metavar="AMOUNT", help="Buy AMOUNT tokens of --offer")
    parser.add_argument("--max", action="store_true", help="Show the max amount the wallet can buy")
    parser.add_argument("--refresh", action="store_true", help="Force a token registry refresh")
    parser.add_argument("--serve", action="store_true", help="Run the GET /token cache service")
    args = parser.parse_args()

    if (args.buy is not None or args.max) and args.offer is None:
        parser.error("--buy and --max need --offer")

    try:
        if args.serve:
            serve()
            return
        if args.smoke:
            asyncio.run(smoke_test())
            return
        if args.refresh:
            sys.exit(asyncio.run(refresh_cache()))
        if args.offer is not None:
            sys.exit(asyncio.run(show_offer(args.offer, args.buy, args.max)))
        parser.print_help()
    except YamError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
