"""
Candidate media locations and quality inference.

A Candidate is one observed reference to a possible media file. Candidates
are created during a single browser session, collected in a CandidateSet and
handed to the ranker; they are never persisted.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional, Tuple

from clips.service.constants import MEDIA_FIELD_PATTERN, ORIGINAL_MARKERS, TIER_MARKERS


class QualityTier(IntEnum):
    """Quality bucket; a higher value is a better candidate"""

    DEFAULT = 0
    UNKNOWN = 1
    TIER_360 = 2
    TIER_480 = 3
    TIER_720 = 4
    TIER_1080 = 5


class Channel(Enum):
    DOM = 'dom'
    SCRIPT_PAYLOAD = 'script'
    NETWORK_RESPONSE = 'network'


@dataclass(frozen=True)
class Candidate:
    """One observed media location"""

    location: str
    tier: QualityTier
    channel: Channel
    looks_original: bool
    sequence: int


def infer_tier(location, field_name=None, fallback=None) -> Tuple[QualityTier, bool]:
    """
    Guess the quality tier of a media location.

    The location and the name of the field it was found under are searched
    for originality markers first, then for resolution hints.

    Args:
        location: Media URL
        field_name: Key or attribute the URL was found under, if any
        fallback: Tier to use when nothing matches. When omitted, UNKNOWN if
                  field_name names a media field, else DEFAULT.

    Returns:
        tuple: (QualityTier, looks_original)
    """
    haystack = f'{location or ""} {field_name or ""}'.lower()

    if any(marker in haystack for marker in ORIGINAL_MARKERS):
        return QualityTier.TIER_1080, True

    for marker, tier_name in TIER_MARKERS:
        if marker in haystack:
            return QualityTier[tier_name], False

    if fallback is not None:
        return fallback, False
    if field_name and MEDIA_FIELD_PATTERN.search(field_name):
        return QualityTier.UNKNOWN, False
    return QualityTier.DEFAULT, False


@dataclass
class CandidateSet:
    """
    Session-scoped accumulator of candidates.

    Built when a session starts, filled by the extraction strategies and
    returned when the session ends. Assigns discovery order.
    """

    candidates: List[Candidate] = field(default_factory=list)

    def add(self, location, channel, field_name=None, fallback=None) -> Optional[Candidate]:
        """
        Record a media location.

        Args:
            location: Absolute http(s) URL
            channel: Channel that observed it
            field_name: Originating key or attribute, for tier inference
            fallback: Tier used when inference finds no hint

        Returns:
            Candidate, or None if the location is not an http(s) URL
        """
        location = (location or '').strip()
        if not location.lower().startswith(('http://', 'https://')):
            return None

        tier, looks_original = infer_tier(location, field_name, fallback)
        candidate = Candidate(
            location=location,
            tier=tier,
            channel=channel,
            looks_original=looks_original,
            sequence=len(self.candidates),
        )
        self.candidates.append(candidate)
        return candidate

    def __len__(self):
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)
