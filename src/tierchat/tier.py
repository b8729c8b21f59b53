"""Capability tier detection from total system memory.

The tier is derived once from total physical memory and drives which model
artifacts are loaded. Detection never fails: if memory cannot be read the
smallest tier is assumed.
"""

import logging
import math
from enum import Enum
from typing import Callable, Optional

import psutil

from .errors import ConfigError, TierDetectionFailure

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1024**3

# Upper-exclusive bounds in GB, ascending
TIER_THRESHOLDS_GB = (1.0, 2.0, 4.0, 8.0)


class Tier(Enum):
    """Discrete memory-capability bucket. The value names the model subdirectory."""

    MICRO = "micro"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    MACRO = "macro"

    @classmethod
    def parse(cls, name: str) -> "Tier":
        """Parse a case-insensitive tier name (e.g. "small").

        Raises:
            ConfigError: If the name is not a known tier.
        """
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ConfigError(f"Unknown tier '{name}' (expected one of: {valid})") from None


_TIERS_ASCENDING = (Tier.MICRO, Tier.SMALL, Tier.MEDIUM, Tier.LARGE)


def tier_for_memory(total_gb: float) -> Tier:
    """Map total memory in GB to a tier.

    Boundaries are exclusive on the upper tier: exactly 1 GB is SMALL.

    Args:
        total_gb: Total physical memory in GB.

    Returns:
        The matching tier.
    """
    for tier, bound in zip(_TIERS_ASCENDING, TIER_THRESHOLDS_GB):
        if total_gb < bound:
            return tier
    return Tier.MACRO


def read_total_memory_gb() -> float:
    """Read total physical memory in GB.

    Raises:
        TierDetectionFailure: If psutil cannot report a positive total.
    """
    try:
        total = psutil.virtual_memory().total
    except (psutil.Error, OSError, RuntimeError, AttributeError) as e:
        raise TierDetectionFailure(f"Could not read system memory: {e}") from e

    if not total or total <= 0:
        raise TierDetectionFailure(f"Implausible total memory reading: {total!r}")
    return total / BYTES_PER_GB


def detect(memory_reader: Optional[Callable[[], float]] = None) -> Tier:
    """Detect the capability tier of this host.

    Args:
        memory_reader: Callable returning total memory in GB. Defaults to
            reading it via psutil.

    Returns:
        Detected tier, or Tier.MICRO if memory could not be read.
    """
    reader = memory_reader or read_total_memory_gb
    try:
        total_gb = reader()
        if total_gb is None or not math.isfinite(total_gb) or total_gb <= 0:
            raise TierDetectionFailure(f"Implausible total memory reading: {total_gb!r}")
    except (TierDetectionFailure, OSError, RuntimeError, TypeError, ValueError) as e:
        logger.warning("%s; assuming tier '%s'", e, Tier.MICRO.value)
        return Tier.MICRO

    tier = tier_for_memory(total_gb)
    logger.info("Detected system memory: %.2f GB, selecting tier '%s'", total_gb, tier.value)
    return tier


class TierSelector:
    """Detects the tier once and serves the cached answer afterwards.

    Host-level memory changes are not re-polled. An explicit override (e.g.
    from configuration) bypasses detection entirely.

    Example:
        >>> selector = TierSelector()
        >>> selector.detect()
        <Tier.LARGE: 'large'>
    """

    def __init__(
        self,
        override: Optional[Tier] = None,
        memory_reader: Optional[Callable[[], float]] = None,
    ):
        self._tier: Optional[Tier] = override
        self._memory_reader = memory_reader
        if override is not None:
            logger.info("Using configured tier '%s'", override.value)

    def detect(self) -> Tier:
        """Return the host tier, detecting it on first use."""
        if self._tier is None:
            self._tier = detect(self._memory_reader)
        return self._tier
