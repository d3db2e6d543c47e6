"""
YAM Offer Viewer Configuration — loads env vars, validates eagerly, fails fast.

Hardened with:
  - Address validation for contract addresses (rejects malformed 0x addresses)
  - Private key format check (64 hex chars) when a wallet key is set
  - URL validation for RPC / registry endpoints
  - Range validation for numeric params
  - Registry URL/key are optional here: their absence only breaks a refresh,
    never serving an already cached snapshot
"""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)

_WARNINGS: list = []  # collected during load, printed at summary


def _optional(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _validate_address(addr: str, label: str) -> str:
    """Validate an Ethereum address: 0x-prefixed, 42 chars, valid hex."""
    if not addr.startswith("0x") or len(addr) != 42:
        print(f"FATAL: {label} is not a valid address: {addr}", file=sys.stderr)
        sys.exit(1)
    try:
        int(addr, 16)
    except ValueError:
        print(f"FATAL: {label} contains invalid hex: {addr}", file=sys.stderr)
        sys.exit(1)
    return addr


def _validate_private_key(key: str, label: str) -> str:
    """Validate a private key: 64 hex chars (with or without 0x prefix)."""
    raw = key[2:] if key.startswith("0x") else key
    if len(raw) != 64:
        print(f"FATAL: {label} must be 64 hex chars (got {len(raw)})", file=sys.stderr)
        sys.exit(1)
    try:
        int(raw, 16)
    except ValueError:
        print(f"FATAL: {label} contains invalid hex", file=sys.stderr)
        sys.exit(1)
    return key


def _validate_url(url: str, label: str) -> str:
    """Validate a URL starts with http:// or https://."""
    if not url.startswith(("http://", "https://")):
        print(f"FATAL: {label} must start with http:// or https://: {url}", file=sys.stderr)
        sys.exit(1)
    return url


def _optional_url(name: str) -> str:
    url = _optional(name)
    if url:
        _validate_url(url, name)
    return url.rstrip("/")


def _int_range(name: str, raw: str, low: int, high: int) -> int:
    """Parse an int and clamp to [low, high] with a warning."""
    try:
        val = int(raw)
    except ValueError:
        print(f"FATAL: {name} must be an integer, got: {raw}", file=sys.stderr)
        sys.exit(1)
    if val < low or val > high:
        clamped = max(low, min(val, high))
        _WARNINGS.append(f"{name}={val} out of range [{low},{high}], clamped to {clamped}")
        return clamped
    return val


# === Chains ===
CHAIN_IDS = {"gnosis": 100, "ethereum": 1}

CHAIN: str = _optional("CHAIN", "gnosis").lower()
if CHAIN not in CHAIN_IDS:
    print(f"FATAL: CHAIN must be one of {sorted(CHAIN_IDS)}, got: {CHAIN}", file=sys.stderr)
    sys.exit(1)

RPC_URLS = {
    "gnosis": _validate_url(_optional("GNOSIS_RPC_URL", "https://rpc.gnosischain.com"), "GNOSIS_RPC_URL"),
    "ethereum": _validate_url(_optional("ETHEREUM_RPC_URL", "https://eth.llamarpc.com"), "ETHEREUM_RPC_URL"),
}

# === YAM offer contracts ===
YAM_CONTRACTS = {
    "gnosis": _validate_address(
        _optional("YAM_CONTRACT_GNOSIS", "0xC759AA7f9dd9720A1502c104DaE4F9852bb17C14"), "YAM_CONTRACT_GNOSIS"
    ),
    "ethereum": _validate_address(
        _optional("YAM_CONTRACT_ETHEREUM", "0x0E801D84Fa97b50751Dbf25036d067dCf18858bF"), "YAM_CONTRACT_ETHEREUM"
    ),
}

# showOffer returns (token0, token1, seller, buyer, price, amount); which of the
# two token slots is the sold asset was observed on Gnosis, not documented.
OFFER_SLOT_ORDER: str = _optional("OFFER_SLOT_ORDER", "sell,pay").replace(" ", "").lower()
if OFFER_SLOT_ORDER not in ("sell,pay", "pay,sell"):
    print(f"FATAL: OFFER_SLOT_ORDER must be 'sell,pay' or 'pay,sell', got: {OFFER_SLOT_ORDER}",
          file=sys.stderr)
    sys.exit(1)
SELL_TOKEN_SLOT: int = 0 if OFFER_SLOT_ORDER == "sell,pay" else 1
PAY_TOKEN_SLOT: int = 1 - SELL_TOKEN_SLOT

# === Token registry (RealToken community API) ===
COMMUNITY_API_URI: str = _optional_url("COMMUNITY_API_URI") or _optional_url("NEXT_PUBLIC_COMMUNITY_API_URI")
COMMUNITY_API_KEY: str = _optional("COMMUNITY_API_KEY")
TOKEN_CACHE_SERVICE_URL: str = _optional_url("TOKEN_CACHE_SERVICE_URL")
TOKEN_CACHE_PATH: Path = Path(_optional("TOKEN_CACHE_PATH", "data/tokens-cache.json"))
TOKEN_CACHE_TTL_HOURS: int = _int_range(
    "TOKEN_CACHE_TTL_HOURS", _optional("TOKEN_CACHE_TTL_HOURS", "24"), 1, 168
)

if not COMMUNITY_API_URI and not TOKEN_CACHE_SERVICE_URL:
    _WARNINGS.append("No COMMUNITY_API_URI or TOKEN_CACHE_SERVICE_URL — registry refresh will fail")
elif COMMUNITY_API_URI and not COMMUNITY_API_KEY:
    _WARNINGS.append("COMMUNITY_API_URI set without COMMUNITY_API_KEY — registry refresh will fail")

# === YAM GraphQL (whitelist lookups) ===
YAM_API_URL: str = _optional_url("YAM_API_URL") or _optional_url("NEXT_PUBLIC_API_URL")

# === Cache service ===
SERVICE_HOST: str = _optional("SERVICE_HOST", "0.0.0.0")
SERVICE_PORT: int = _int_range("SERVICE_PORT", _optional("SERVICE_PORT", "8080"), 1, 65535)

# === Wallet (optional, only needed for --buy) ===
WALLET_PRIVATE_KEY: str = _optional("WALLET_PRIVATE_KEY")
if WALLET_PRIVATE_KEY:
    _validate_private_key(WALLET_PRIVATE_KEY, "WALLET_PRIVATE_KEY")

LOG_LEVEL: str = _optional("LOG_LEVEL", "INFO").upper()
if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR"):
    _WARNINGS.append(f"Unknown LOG_LEVEL '{LOG_LEVEL}', defaulting to INFO")
    LOG_LEVEL = "INFO"
DEBUG: bool = LOG_LEVEL == "DEBUG"


def chain_id(chain: str = CHAIN) -> int:
    return CHAIN_IDS[chain]


def rpc_url(chain: str = CHAIN) -> str:
    return RPC_URLS[chain]


def yam_contract(chain: str = CHAIN) -> str:
    return YAM_CONTRACTS[chain]


def print_config_summary() -> None:
    """Print a non-sensitive config summary for startup verification."""
    print("--- YAM Viewer Config ---")
    print(f"  Chain:          {CHAIN} ({chain_id()})")
    print(f"  RPC:            {rpc_url()[:40]}...")
    print(f"  YAM contract:   {yam_contract()}")
    print(f"  Slot order:     {OFFER_SLOT_ORDER}")
    print(f"  Registry API:   {COMMUNITY_API_URI[:40] or '(unset)'}")
    # Show only the first chars of the API key
    _key_display = COMMUNITY_API_KEY[:10] + "..." if COMMUNITY_API_KEY else "(unset)"
    print(f"  Registry key:   {_key_display}")
    print(f"  Cache service:  {TOKEN_CACHE_SERVICE_URL or '(unset)'}")
    print(f"  Cache file:     {TOKEN_CACHE_PATH}")
    print(f"  Cache TTL:      {TOKEN_CACHE_TTL_HOURS}h")
    print(f"  Wallet:         {'configured' if WALLET_PRIVATE_KEY else '(unset)'}")
    print(f"  Log level:      {LOG_LEVEL}")
    if _WARNINGS:
        print(f"  ⚠️  {len(_WARNINGS)} config warning(s):")
        for w in _WARNINGS:
            print(f"    - {w}")
    print("-" * 25)
