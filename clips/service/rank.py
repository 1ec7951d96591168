"""
Candidate ranking.

Pure functions over Candidate values: no browser, no network. The ranker is
the only place where one channel's signal is preferred over another's.
"""

from dataclasses import dataclass, replace
from typing import List

from clips.service.candidates import Candidate
from clips.service.errors import NoCandidateFound


@dataclass(frozen=True)
class RankedSelection:
    """The chosen candidate and the deduplicated field it won against"""

    selected: Candidate
    candidates: List[Candidate]

    @property
    def alternates(self):
        """Candidates that lost, best first"""
        return self.candidates[1:]


def dedupe(candidates):
    """
    Collapse candidates that share a location.

    The merged candidate keeps the earliest sequence and channel, the best
    tier and the originality flag if any duplicate carried it.

    Returns:
        list: One candidate per location, in first-seen order
    """
    merged = {}
    for candidate in sorted(candidates, key=lambda c: c.sequence):
        existing = merged.get(candidate.location)
        if existing is None:
            merged[candidate.location] = candidate
            continue
        merged[candidate.location] = replace(
            existing,
            tier=max(existing.tier, candidate.tier),
            looks_original=existing.looks_original or candidate.looks_original,
        )
    return list(merged.values())


def rank_key(candidate):
    """Sort key: original first, then higher tier, then first observed"""
    return (not candidate.looks_original, -int(candidate.tier), candidate.sequence)


def rank(candidates) -> RankedSelection:
    """
    Pick the best media location.

    Args:
        candidates: Iterable of Candidate, possibly with duplicates

    Returns:
        RankedSelection

    Raises:
        NoCandidateFound: If there is nothing to choose from
    """
    ordered = sorted(dedupe(candidates), key=rank_key)
    if not ordered:
        raise NoCandidateFound('No media candidates were observed')
    return RankedSelection(selected=ordered[0], candidates=ordered)


def describe(selection):
    """Human-readable ranking, one line per candidate"""
    lines = []
    for position, candidate in enumerate(selection.candidates):
        marker = '*' if position == 0 else ' '
        original = ' original' if candidate.looks_original else ''
        lines.append(
            f'{marker} {candidate.tier.name:<9} {candidate.channel.value:<7}'
            f' #{candidate.sequence}{original} {candidate.location}'
        )
    return '\n'.join(lines)
