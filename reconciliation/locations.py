"""Location mapping between the legacy system and the ERP.

The legacy system (Source A) tracks stock under ~35 fine-grained location
codes; the ERP (Source B) under a smaller set of consolidated branch codes.
Each Source-A code maps to exactly one Source-B code.

Rules of the built-in table:
1. Suffix "1" locations merge into their parent (PDG1 -> PDG)
2. Regional consolidations (SMG -> YGY, JMB1 -> PLG, LPG -> JABAR-JKT, ...)
3. Decommissioned locations (SMR1) are excluded from the report
4. Display-only locations (PHL) have no ERP counterpart and stay unmapped

The configuration is immutable and passed into the merge engine, so tests
can inject alternate tables.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union


class _NotMapped:
    """Sentinel for Source-A codes absent from the mapping table."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_MAPPED"

    def __bool__(self) -> bool:
        return False


NOT_MAPPED = _NotMapped()


# =============================================================================
# Built-in Tables
# =============================================================================

ACTIVE_SOURCE_B_BRANCHES: Tuple[str, ...] = (
    "YGY",        # Yogyakarta
    "PTK",        # Pontianak
    "PLG",        # Palembang
    "PKU",        # Pekanbaru
    "PDG",        # Padang
    "MND",        # Manado
    "MKS",        # Makassar
    "MKP",        # Marketplace
    "MDN",        # Medan
    "KPG",        # Kupang
    "JATIM",      # Surabaya
    "JABAR-JKT",  # Jakarta
    "HO",         # Head Office
    "BKP",        # Balikpapan
    "BJM",        # Banjarmasin
    "BALI",       # Denpasar
    "AMB",        # Ambon
)

DEFAULT_MAPPING: Dict[str, str] = {
    # Exact matches
    "YGY": "YGY",
    "PTK": "PTK",
    "PLG": "PLG",
    "PKU": "PKU",
    "PDG": "PDG",
    "MND": "MND",
    "MKS": "MKS",
    "MKP": "MKP",
    "MDN": "MDN",
    "KPG": "KPG",
    "HO": "HO",
    "BKP": "BKP",
    "BJM": "BJM",
    "AMB": "AMB",

    # Regional
    "JKT": "JABAR-JKT",
    "SBY": "JATIM",
    "DPS": "BALI",
    "DP1": "BALI",

    # Suffix "1" locations fold into their parent
    "PDG1": "PDG",
    "MDN1": "MDN",
    "PKU1": "PKU",
    "AMB1": "AMB",
    "PLG1": "PLG",
    "MKS1": "MKS",
    "BJM1": "BJM",
    "PTK1": "PTK",

    # Consolidated
    "HO2": "HO",
    "LPG": "JABAR-JKT",
    "LPG1": "JABAR-JKT",
    "SMG": "YGY",
    "SMG1": "YGY",
    "JMB1": "PLG",
    "PLU1": "MND",

    # Marketplace subdivisions (standalone on both sides)
    "MKPS": "MKPS",
    "MKPM": "MKPM",
    "MKPN": "MKPN",
}

DEFAULT_EXCLUDED_CODES: FrozenSet[str] = frozenset({"SMR1"})

DEFAULT_DISPLAY_NAMES: Dict[str, str] = {
    "JABAR-JKT": "Jakarta",
    "JATIM": "Surabaya",
    "BALI": "Denpasar",
    "YGY": "Yogyakarta",
    "PTK": "Pontianak",
    "PLG": "Palembang",
    "PKU": "Pekanbaru",
    "PDG": "Padang",
    "MND": "Manado",
    "MKS": "Makassar",
    "MKP": "Marketplace",
    "MDN": "Medan",
    "KPG": "Kupang",
    "HO": "Head Office",
    "BKP": "Balikpapan",
    "BJM": "Banjarmasin",
    "AMB": "Ambon",
    "MKPS": "MKP Semarang",
    "MKPM": "MKP Manado",
    "MKPN": "MKP Medan",
    "PHL": "Philippine",
}

DEFAULT_BUFFER_A = 1.5
DEFAULT_BUFFER_B = 1.0


# =============================================================================
# Configuration
# =============================================================================

def _freeze(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class LocationConfig:
    """Static location tables, loaded once at process start."""
    mapping: Mapping[str, str] = field(default_factory=lambda: _freeze(DEFAULT_MAPPING))
    buffers: Mapping[str, float] = field(default_factory=lambda: _freeze({}))
    source_b_buffers: Mapping[str, float] = field(default_factory=lambda: _freeze({}))
    excluded_codes: FrozenSet[str] = DEFAULT_EXCLUDED_CODES
    source_b_codes: Tuple[str, ...] = ACTIVE_SOURCE_B_BRANCHES
    display_names: Mapping[str, str] = field(default_factory=lambda: _freeze(DEFAULT_DISPLAY_NAMES))
    default_buffer_a: float = DEFAULT_BUFFER_A
    default_buffer_b: float = DEFAULT_BUFFER_B

    def __post_init__(self):
        # Accept plain dicts/lists from callers but store read-only views
        object.__setattr__(self, "mapping", _freeze(self.mapping))
        object.__setattr__(self, "buffers", _freeze(self.buffers))
        object.__setattr__(self, "source_b_buffers", _freeze(self.source_b_buffers))
        object.__setattr__(self, "display_names", _freeze(self.display_names))
        object.__setattr__(self, "excluded_codes", frozenset(self.excluded_codes))
        object.__setattr__(self, "source_b_codes", tuple(self.source_b_codes))


DEFAULT_LOCATION_CONFIG = LocationConfig()


def load_location_config(path: Union[str, Path]) -> LocationConfig:
    """Load location tables from a JSON file.

    Expected format (every key optional, defaults fill the gaps):
    {
        "mapping": {"JKT": "JABAR-JKT", ...},
        "buffers": {"JKT": 2.0, ...},
        "source_b_buffers": {"JABAR-JKT": 2.0},
        "excluded_codes": ["SMR1"],
        "source_b_codes": ["JABAR-JKT", ...],
        "display_names": {"JABAR-JKT": "Jakarta"},
        "default_buffer_a": 1.5,
        "default_buffer_b": 1.0
    }
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return LocationConfig(
        mapping=data.get("mapping", DEFAULT_MAPPING),
        buffers={k: float(v) for k, v in data.get("buffers", {}).items()},
        source_b_buffers={k: float(v) for k, v in data.get("source_b_buffers", {}).items()},
        excluded_codes=frozenset(data.get("excluded_codes", DEFAULT_EXCLUDED_CODES)),
        source_b_codes=tuple(data.get("source_b_codes", ACTIVE_SOURCE_B_BRANCHES)),
        display_names=data.get("display_names", DEFAULT_DISPLAY_NAMES),
        default_buffer_a=float(data.get("default_buffer_a", DEFAULT_BUFFER_A)),
        default_buffer_b=float(data.get("default_buffer_b", DEFAULT_BUFFER_B)),
    )


# =============================================================================
# Mapper
# =============================================================================

class LocationMapper:
    """Resolves Source-A location codes to Source-B location codes.

    Usage:
        mapper = LocationMapper(DEFAULT_LOCATION_CONFIG)
        mapper.resolve("SMG1")     # "YGY"
        mapper.group_for("YGY")    # frozenset({"YGY", "SMG", "SMG1"})
        mapper.resolve("PHL")      # NOT_MAPPED
    """

    def __init__(self, config: LocationConfig = DEFAULT_LOCATION_CONFIG):
        self.config = config
        groups: Dict[str, set] = {}
        for code_a, code_b in config.mapping.items():
            groups.setdefault(code_b, set()).add(code_a)
        self._groups: Dict[str, FrozenSet[str]] = {
            code_b: frozenset(codes) for code_b, codes in groups.items()
        }

    def resolve(self, source_a_code: str) -> Union[str, _NotMapped]:
        """Map a Source-A code to its Source-B code, or NOT_MAPPED."""
        return self.config.mapping.get(source_a_code, NOT_MAPPED)

    def group_for(self, source_b_code: str) -> FrozenSet[str]:
        """All Source-A codes that fold into the given Source-B code."""
        return self._groups.get(source_b_code, frozenset())

    def is_excluded(self, source_a_code: str) -> bool:
        return source_a_code in self.config.excluded_codes

    def buffer_for(self, source_a_code: str) -> float:
        return self.config.buffers.get(source_a_code, self.config.default_buffer_a)

    def source_b_buffer_for(self, source_b_code: str) -> Optional[float]:
        return self.config.source_b_buffers.get(source_b_code)

    def display_name(self, code: str) -> str:
        return self.config.display_names.get(code, code)

    def summary(self) -> Dict[str, Any]:
        """Describe the configured tables for the locations endpoint."""
        consolidations = {
            code_b: sorted(codes)
            for code_b, codes in sorted(self._groups.items())
            if len(codes) > 1
        }
        return {
            "source_a_location_count": len(set(self.config.mapping) | set(self.config.excluded_codes)),
            "source_b_location_count": len(self.config.source_b_codes),
            "mapped_location_count": len(self.config.mapping),
            "excluded_codes": sorted(self.config.excluded_codes),
            "groups": {code_b: sorted(codes) for code_b, codes in sorted(self._groups.items())},
            "consolidations": consolidations,
            "display_names": dict(self.config.display_names),
        }
