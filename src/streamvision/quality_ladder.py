"""Quality tier downgrades for bandwidth-limited playback."""

import logging
from collections.abc import Mapping

from .types import QualityTier, StreamURL

logger = logging.getLogger(__name__)

# Variant lookup order when a tier has no URL of its own
_TIER_ORDER = [QualityTier.ULTRA, QualityTier.HIGH, QualityTier.MEDIUM, QualityTier.LOW]


class QualityLadder:
    """
    Tracks the current quality tier and how many times it was lowered.

    Only the adaptation tick task touches a ladder, so it carries no lock.

    Attributes:
        tier: Current quality tier.
        downgrade_count: Downgrades since the last reset.
    """

    def __init__(self) -> None:
        self.tier = QualityTier.AUTO
        self.downgrade_count = 0

    def can_downgrade(self, limit: int) -> bool:
        """Whether a downgrade is allowed under the given bound."""
        return self.tier.next_lower is not None and self.downgrade_count < limit

    def downgrade(self, limit: int) -> QualityTier | None:
        """
        Move one tier down.

        Args:
            limit: Maximum downgrade count allowed by the calling remediation level.

        Returns:
            The new tier, or None if already at LOW or the bound is reached.
        """
        if not self.can_downgrade(limit):
            return None

        self.tier = self.tier.next_lower
        self.downgrade_count += 1
        logger.info("Quality downgraded to %s (count: %d)", self.tier.label, self.downgrade_count)
        return self.tier

    def set_tier(self, tier: QualityTier) -> None:
        """Apply a manual quality selection without touching the downgrade count."""
        self.tier = tier
        logger.info("Quality manually set to %s", tier.label)

    def reset(self) -> None:
        self.tier = QualityTier.AUTO
        self.downgrade_count = 0


def select_variant(
    variants: Mapping[QualityTier, StreamURL],
    tier: QualityTier,
) -> StreamURL | None:
    """
    Pick the stream URL for a quality tier.

    Falls back to the nearest lower tier that has a URL, then to the AUTO
    variant. AUTO itself prefers its own URL, then the best tier available.

    Args:
        variants: Mapping of tier to stream URL offered by the source.
        tier: Requested tier.

    Returns:
        The chosen URL, or None if no suitable variant exists.
    """
    if tier is QualityTier.AUTO:
        candidates = [QualityTier.AUTO, *_TIER_ORDER]
    else:
        candidates = [*_TIER_ORDER[_TIER_ORDER.index(tier) :], QualityTier.AUTO]

    for candidate in candidates:
        url = variants.get(candidate)
        if url:
            return url
    return None
