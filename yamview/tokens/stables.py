"""
Known settlement tokens per chain. Consulted before the registry or any RPC
read so that stablecoins never cost a lookup.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional


@dataclass(frozen=True)
class StablecoinEntry:
    symbol: str
    decimals: int
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.symbol


# Keys are lowercase addresses
STABLE_TOKENS: Dict[str, Dict[str, StablecoinEntry]] = {
    "gnosis": {
        "0xe91d153e0b41518a2ce8dd3d7944fa863463a97d": StablecoinEntry("WXDAI", 18, "Wrapped xDAI"),
        "0xddafbb505ad214d7b80b1f830fccc89b60fb7a83": StablecoinEntry("USDC", 6),
        "0x0ca4f5554dd9da6217d62d8df2816c82bba4157b": StablecoinEntry("armmv3WXDAI", 18),
        "0xed56f76e9cbc6a64b821e9c016eafbd3db5436d1": StablecoinEntry("armmv3USDC", 6),
    },
    "ethereum": {},
}


class StableTable:
    """Read-only view over one chain's stablecoin entries."""

    def __init__(self, chain: str, entries: Optional[Mapping[str, StablecoinEntry]] = None):
        self.chain = chain
        source = STABLE_TOKENS.get(chain, {}) if entries is None else entries
        self._entries = {addr.lower(): entry for addr, entry in source.items()}

    def get(self, address: Optional[str]) -> Optional[StablecoinEntry]:
        if not address:
            return None
        return self._entries.get(address.lower())

    def is_stable(self, address: Optional[str]) -> bool:
        return self.get(address) is not None

    def __len__(self) -> int:
        return len(self._entries)
