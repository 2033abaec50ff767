"""
jniaudit/config.py — run configuration for the boundary audit.

Every knob the analyses consult (the ``Java_`` prefix, the
two interface table signatures, the allocator symbols, the log file names)
lives here so that the CLI and the tests can override it.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from jniaudit.runtime_table import (
    ALLOCATOR_SYMBOLS,
    BOUNDARY_SIGNATURES,
    ENTRY_PREFIX,
    MEMORY_SLOT_INDICES,
    NATIVE_INTERFACE_SIGNATURE,
)


class CyclePolicy(Enum):
    """What a call back into a function already on the current path means.

    NO_EVIDENCE  — nothing; the function on the path is scanned by its own
                   frame, so any evidence it holds is still found there.
    CONSERVATIVE — assume the worst: the cycle itself counts as evidence.
    """
    NO_EVIDENCE = "no-evidence"
    CONSERVATIVE = "conservative"


class AnalysisKind(Enum):
    PURITY = "purity"
    POINTER_ARITHMETIC = "pointer-arithmetic"
    TYPE_CASTS = "type-casts"
    DYNAMIC_MEMORY = "dynamic-memory"


DEFAULT_LOG_NAMES: Dict[str, str] = {
    "all": "AllLog.txt",
    AnalysisKind.PURITY.value: "FunctionalPurityLog.txt",
    AnalysisKind.POINTER_ARITHMETIC.value: "PointerArithmeticLog.txt",
    AnalysisKind.TYPE_CASTS.value: "TypeCastsLog.txt",
    AnalysisKind.DYNAMIC_MEMORY.value: "DynamicMemoryLog.txt",
}


@dataclass(frozen=True)
class AuditConfig:
    """
    Attributes
    ----------
    entry_prefix               : name prefix of boundary-entry functions
    boundary_signatures        : type substrings marking a runtime call
    native_interface_signature : base type substring of JNI slot lookups
    memory_slots               : slot indices treated as memory management
    allocator_symbols          : platform allocator / deallocator names
    cycle_policy               : meaning of a call back onto the path
    log_dir                    : directory the default log files go to
    log_names                  : per-mode log file name ("all" + analyses)
    """
    entry_prefix: str = ENTRY_PREFIX
    boundary_signatures: Tuple[str, ...] = BOUNDARY_SIGNATURES
    native_interface_signature: str = NATIVE_INTERFACE_SIGNATURE
    memory_slots: FrozenSet[int] = MEMORY_SLOT_INDICES
    allocator_symbols: FrozenSet[str] = ALLOCATOR_SYMBOLS
    cycle_policy: CyclePolicy = CyclePolicy.NO_EVIDENCE
    log_dir: Path = Path(".")
    log_names: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_LOG_NAMES)
    )

    def with_overrides(self, **overrides: Any) -> "AuditConfig":
        """Return a copy with the given non-``None`` fields replaced."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise TypeError(f"unknown config field(s): {sorted(unknown)}")
        return dataclasses.replace(self, **changes)

    def log_path(self, mode: str, explicit: Optional[str] = None) -> Path:
        """Where *mode* ("all" or an analysis value) appends its rows."""
        if explicit:
            return Path(explicit)
        return Path(self.log_dir) / self.log_names[mode]


__all__ = [
    "AnalysisKind",
    "AuditConfig",
    "CyclePolicy",
    "DEFAULT_LOG_NAMES",
]
