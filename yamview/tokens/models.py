"""
TokenMetadata and CacheSnapshot — registry records and their persisted shape.

Registry payloads come in several shapes; the token address is taken from the
first non-empty field in ADDRESS_FIELDS. The order matches the payloads the
RealToken community API has served and must not be reshuffled without bumping
ADDRESS_FIELDS_VERSION.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

ADDRESS_FIELDS_VERSION = 1

ADDRESS_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("canonical", "tokenAddress"),
    ("generic", "address"),
    ("generic", "contractAddress"),
    ("ethereum", "ethereumContract"),
    ("xdai", "xDaiContract"),
    ("gnosis", "gnosisContract"),
)


def resolve_address(record: Mapping[str, Any]) -> Optional[str]:
    """First non-empty address field of a registry record, in ADDRESS_FIELDS order."""
    for _source, key in ADDRESS_FIELDS:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _number(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _strings(value) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value if v)
    return ()


@dataclass(frozen=True)
class TokenMetadata:
    """Human-readable metadata for one token, keyed by lowercase address."""
    address: str
    short_name: Optional[str] = None
    full_name: Optional[str] = None
    price_usd: Optional[float] = None
    net_rent_year_usd: Optional[float] = None
    total_supply: Optional[float] = None
    images: Tuple[str, ...] = ()
    external_links: Tuple[str, ...] = ()
    rent_start_date: Optional[str] = None

    @property
    def key(self) -> str:
        return self.address.lower()

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Optional["TokenMetadata"]:
        """Build from a registry payload or a cached record. None if no address."""
        address = resolve_address(record)
        if not address:
            return None
        rent_start = record.get("rentStartDate")
        if isinstance(rent_start, Mapping):
            rent_start = rent_start.get("date")
        return cls(
            address=address,
            short_name=record.get("shortName") or None,
            full_name=record.get("fullName") or None,
            price_usd=_number(record.get("tokenPrice")),
            net_rent_year_usd=_number(record.get("netRentYear")),
            total_supply=_number(record.get("totalTokens")),
            images=_strings(record.get("imageLink")),
            external_links=_strings(record.get("marketplaceLink")),
            rent_start_date=str(rent_start) if rent_start else None,
        )

    def to_record(self) -> dict:
        """Persistence-record shape (camelCase, optional fields omitted)."""
        record: Dict[str, Any] = {"tokenAddress": self.address}
        if self.short_name is not None:
            record["shortName"] = self.short_name
        if self.full_name is not None:
            record["fullName"] = self.full_name
        if self.price_usd is not None:
            record["tokenPrice"] = self.price_usd
        if self.net_rent_year_usd is not None:
            record["netRentYear"] = self.net_rent_year_usd
        if self.images:
            record["imageLink"] = list(self.images)
        if self.external_links:
            record["marketplaceLink"] = self.external_links[0]
        if self.total_supply is not None:
            record["totalTokens"] = self.total_supply
        if self.rent_start_date is not None:
            record["rentStartDate"] = {"date": self.rent_start_date}
        return record


@dataclass(frozen=True)
class CacheSnapshot:
    """Immutable registry snapshot. Readers hold a reference, refreshes swap it."""
    last_updated_ms: int
    entries: Mapping[str, TokenMetadata] = field(default_factory=dict)

    def get(self, address: str) -> Optional[TokenMetadata]:
        return self.entries.get(address.lower())

    def __len__(self) -> int:
        return len(self.entries)

    def to_record(self) -> dict:
        return {
            "lastUpdated": self.last_updated_ms,
            "tokens": {key: meta.to_record() for key, meta in self.entries.items()},
        }

    @classmethod
    def from_record(cls, record: Any) -> Optional["CacheSnapshot"]:
        """Parse a persisted record. Anything malformed yields None (a cache miss)."""
        if not isinstance(record, Mapping):
            return None
        last_updated = record.get("lastUpdated")
        tokens = record.get("tokens")
        if isinstance(last_updated, bool) or not isinstance(last_updated, (int, float)):
            return None
        if not isinstance(tokens, Mapping):
            return None
        return cls(int(last_updated), entries_from_tokens(tokens.values()))


def entries_from_tokens(tokens) -> Dict[str, TokenMetadata]:
    """Index registry records by lowercase address, skipping address-less ones."""
    entries: Dict[str, TokenMetadata] = {}
    for raw in tokens:
        if not isinstance(raw, Mapping):
            continue
        meta = TokenMetadata.from_record(raw)
        if meta is None:
            label = raw.get("shortName") or raw.get("symbol") or "unknown"
            print(f"[REGISTRY] ⚠️  Token without address: {label}")
            continue
        entries[meta.key] = meta
    return entries
