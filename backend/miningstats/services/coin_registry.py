"""Canonical per-coin metadata table.

Block time and block reward are maintained constants, not API data. They
drift with halvings and emission schedules, so every adapter reads them
from here (optionally overridden from config.yaml) instead of keeping its
own copy.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import UnsupportedCoin

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    """Upstream provider family used for live network stats."""
    NOWNODES_BLOCKBOOK = "nownodes-blockbook"
    NOWNODES_KASPA = "nownodes-kaspa"
    NOWNODES_MONERO = "nownodes-monero"
    NOWNODES_DIGIBYTE = "nownodes-digibyte"
    NERVOS_EXPLORER = "nervos-explorer"


class HashrateFormula(str, Enum):
    """Validated difficulty-to-hashrate relationships.

    The value doubles as the label stored next to an estimated hashrate.
    NONE means the coin has no validated formula; its hashrate is either
    reported by the provider or left at zero.
    """
    SHA256_STYLE = "difficulty*2^32/block_time"
    EQUIHASH = "difficulty*2^13/block_time"
    DIFFICULTY_PER_SECOND = "difficulty/block_time"
    NONE = "none"


@dataclass(frozen=True)
class CoinSpec:
    """Static metadata for one supported coin."""
    symbol: str
    name: str
    algorithm: str
    provider: Provider
    block_time: float  # seconds
    block_reward: float  # coins per block paid to miners
    hashrate_formula: HashrateFormula
    coingecko_id: str
    blockbook_host: Optional[str] = None

    @property
    def can_estimate_hashrate(self) -> bool:
        return self.hashrate_formula is not HashrateFormula.NONE


def _blockbook(symbol, name, algorithm, block_time, block_reward, formula, coingecko_id, host):
    return CoinSpec(
        symbol=symbol,
        name=name,
        algorithm=algorithm,
        provider=Provider.NOWNODES_BLOCKBOOK,
        block_time=block_time,
        block_reward=block_reward,
        hashrate_formula=formula,
        coingecko_id=coingecko_id,
        blockbook_host=host,
    )


# Values reviewed October 2026. Update on halvings (LTC 2027, BTC/BCH 2028)
# or through the ``coins`` section of config.yaml.
COIN_TABLE: Dict[str, CoinSpec] = {
    "BTC": _blockbook("BTC", "Bitcoin", "SHA-256", 600, 3.125,
                      HashrateFormula.SHA256_STYLE, "bitcoin", "btcbook.nownodes.io"),
    "BCH": _blockbook("BCH", "Bitcoin Cash", "SHA-256", 600, 3.125,
                      HashrateFormula.SHA256_STYLE, "bitcoin-cash", "bchbook.nownodes.io"),
    "LTC": _blockbook("LTC", "Litecoin", "Scrypt", 150, 6.25,
                      HashrateFormula.SHA256_STYLE, "litecoin", "ltcbook.nownodes.io"),
    "DOGE": _blockbook("DOGE", "Dogecoin", "Scrypt", 60, 10000,
                       HashrateFormula.SHA256_STYLE, "dogecoin", "dogebook.nownodes.io"),
    "DASH": _blockbook("DASH", "Dash", "X11", 150, 0.44,
                       HashrateFormula.SHA256_STYLE, "dash", "dashbook.nownodes.io"),
    "ZEC": _blockbook("ZEC", "Zcash", "Equihash", 75, 1.25,
                      HashrateFormula.EQUIHASH, "zcash", "zecbook.nownodes.io"),
    # Blockbook difficulty for these does not map to hashrate by any
    # formula we have validated.
    "RVN": _blockbook("RVN", "Ravencoin", "KawPow", 60, 1250,
                      HashrateFormula.NONE, "ravencoin", "rvnbook.nownodes.io"),
    "ETC": _blockbook("ETC", "Ethereum Classic", "Etchash", 13, 2.048,
                      HashrateFormula.NONE, "ethereum-classic", "etcbook.nownodes.io"),
    "KAS": CoinSpec(
        symbol="KAS",
        name="Kaspa",
        algorithm="kHeavyHash",
        provider=Provider.NOWNODES_KASPA,
        block_time=0.1,
        block_reward=2.06,
        hashrate_formula=HashrateFormula.NONE,
        coingecko_id="kaspa",
    ),
    "XMR": CoinSpec(
        symbol="XMR",
        name="Monero",
        algorithm="RandomX",
        provider=Provider.NOWNODES_MONERO,
        block_time=120,
        block_reward=0.6,
        hashrate_formula=HashrateFormula.DIFFICULTY_PER_SECOND,
        coingecko_id="monero",
    ),
    # SHA-256 leg of a five-algorithm chain; each algorithm targets 75s.
    "DGB": CoinSpec(
        symbol="DGB",
        name="DigiByte",
        algorithm="SHA-256",
        provider=Provider.NOWNODES_DIGIBYTE,
        block_time=75,
        block_reward=250,
        hashrate_formula=HashrateFormula.NONE,
        coingecko_id="digibyte",
    ),
    "CKB": CoinSpec(
        symbol="CKB",
        name="Nervos Network",
        algorithm="Eaglesong",
        provider=Provider.NERVOS_EXPLORER,
        block_time=8,
        block_reward=533,
        hashrate_formula=HashrateFormula.DIFFICULTY_PER_SECOND,
        coingecko_id="nervos-network",
    ),
}


def estimate_hashrate(spec: CoinSpec, difficulty: float) -> Tuple[float, Optional[str]]:
    """Estimate network hashrate (H/s) from difficulty.

    Returns ``(hashrate, formula_label)``; ``(0.0, None)`` when the coin has
    no validated formula or the difficulty is unusable.
    """
    if not spec.can_estimate_hashrate or not difficulty or difficulty <= 0 or spec.block_time <= 0:
        return 0.0, None

    formula = spec.hashrate_formula
    if formula is HashrateFormula.SHA256_STYLE:
        value = difficulty * 2 ** 32 / spec.block_time
    elif formula is HashrateFormula.EQUIHASH:
        value = difficulty * 2 ** 13 / spec.block_time
    else:
        value = difficulty / spec.block_time
    return value, formula.value


class CoinRegistry:
    """Read-only view over the coin table with config overrides applied."""

    OVERRIDABLE_FIELDS = ("block_reward", "block_time")

    def __init__(self, specs: Optional[Mapping[str, CoinSpec]] = None):
        self._specs: Dict[str, CoinSpec] = dict(specs if specs is not None else COIN_TABLE)

    def __contains__(self, symbol: object) -> bool:
        return isinstance(symbol, str) and symbol.upper() in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def get(self, symbol: str) -> CoinSpec:
        spec = self._specs.get(symbol.upper())
        if spec is None:
            raise UnsupportedCoin(symbol.upper())
        return spec

    def symbols(self) -> List[str]:
        return list(self._specs)

    def coingecko_ids(self) -> Dict[str, str]:
        return {symbol: spec.coingecko_id for symbol, spec in self._specs.items()}

    def with_overrides(self, overrides: Mapping[str, Mapping[str, float]]) -> "CoinRegistry":
        """Return a new registry with per-coin constants replaced.

        Raises:
            UnsupportedCoin: override names a coin not in the table
            ValueError: override names a field that cannot be overridden
        """
        specs = dict(self._specs)
        for symbol, fields in overrides.items():
            spec = self.get(symbol)
            unknown = set(fields) - set(self.OVERRIDABLE_FIELDS)
            if unknown:
                raise ValueError(f"Cannot override {sorted(unknown)} for {spec.symbol}")
            specs[spec.symbol] = replace(spec, **{k: float(v) for k, v in fields.items()})
            logger.info(f"Coin constants for {spec.symbol} overridden: {dict(fields)}")
        return CoinRegistry(specs)
