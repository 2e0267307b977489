"""
Data-driven drivetrain corrections.

Scrapers routinely report all-wheel drive for cars that were never sold with
it. Each rule names a brand, the generations (by internal code) it covers, the
wrong value to look for and the value to write instead. Variants whose names
carry one of the ``exempt_name_tokens`` (the xDrive trims) keep their value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class DrivetrainRule:
    key: str
    brand: str
    internal_codes: Sequence[str]
    from_value: str
    to_value: str
    exempt_name_tokens: Sequence[str] = ()
    description: str = ""


BMW_RWD_CODES = ("E30", "E36", "E46", "E90", "E92", "E93", "F30", "F32", "F80", "F82", "G80", "G82")

DEFAULT_DRIVETRAIN_RULES: tuple[DrivetrainRule, ...] = (
    DrivetrainRule(
        key="bmw-rwd-platforms",
        brand="BMW",
        internal_codes=BMW_RWD_CODES,
        from_value="AWD",
        to_value="RWD",
        exempt_name_tokens=("xi", "xdrive", "x drive"),
        description="Rear-wheel-drive BMW platforms mislabelled AWD unless the trim is an xDrive model.",
    ),
)

__all__ = ["BMW_RWD_CODES", "DEFAULT_DRIVETRAIN_RULES", "DrivetrainRule"]
