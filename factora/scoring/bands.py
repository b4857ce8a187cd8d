"""
Risk band analysis — selection, overlap and coverage.

Bands are closed intervals [min_score, max_score]. The registry tolerates
overlaps and gaps while a model is being curated, so the checks here return
a tagged result instead of raising:

    Ok()                      → invariant holds
    Defects((d1, d2, ...))    → invariant violated; every defect listed

Selection order is total and deterministic even when bands overlap:
smallest min_score, then smallest max_score, then insertion order.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Iterable, Optional, TypeVar, Union

from factora.schemas.registry import RiskBandOut

T = TypeVar("T")


@dataclass(frozen=True)
class Ok:
    pass


@dataclass(frozen=True)
class Defects(Generic[T]):
    items: tuple[T, ...]

    def __len__(self) -> int:
        return len(self.items)


InvariantResult = Union[Ok, Defects]


@dataclass(frozen=True)
class BandOverlap:
    first: str
    second: str
    overlap_min: float
    overlap_max: float


@dataclass(frozen=True)
class CoverageGap:
    lower: float   # score just past the covered region
    upper: float


@dataclass(frozen=True)
class CoverageOverrun:
    lower: float   # covered by bands but outside the canonical range
    upper: float


@dataclass(frozen=True)
class Coverage:
    observed_min: Optional[float]
    observed_max: Optional[float]
    expected_min: float
    expected_max: float
    gaps: tuple[CoverageGap, ...]

    @property
    def complete(self) -> bool:
        """Observed span equals the canonical range exactly, with no internal gaps."""
        return (
            self.observed_min is not None
            and self.observed_min == self.expected_min
            and self.observed_max == self.expected_max
            and not self.gaps
        )


def selection_order(bands: Iterable[RiskBandOut]) -> list[RiskBandOut]:
    return sorted(bands, key=lambda b: (b.min_score, b.max_score, b.id))


def select_band(bands: Iterable[RiskBandOut], score: float) -> tuple[Optional[RiskBandOut], list[RiskBandOut]]:
    """
    Returns (selected band or None, every band containing the score).
    More than one candidate means the model has overlapping bands.
    """
    candidates = [b for b in selection_order(bands) if b.contains(score)]
    return (candidates[0] if candidates else None), candidates


def check_overlaps(bands: Iterable[RiskBandOut]) -> InvariantResult:
    """Every unordered pair of distinct bands whose closed intervals intersect."""
    ordered = selection_order(bands)
    overlaps: list[BandOverlap] = []
    for i, a in enumerate(ordered):
        for b in ordered[i + 1:]:
            lo = max(a.min_score, b.min_score)
            hi = min(a.max_score, b.max_score)
            if lo <= hi:
                overlaps.append(BandOverlap(a.band, b.band, lo, hi))
    return Defects(tuple(overlaps)) if overlaps else Ok()


def measure_coverage(
    bands: Iterable[RiskBandOut],
    expected_min: float,
    expected_max: float,
    adjacency_tolerance: float = 1.0,
) -> Coverage:
    """
    Observed [min(min_score), max(max_score)] plus internal gaps.

    Two consecutive bands are contiguous when the next one starts no more
    than ``adjacency_tolerance`` above the covered maximum so far, so integer
    bands such as [650, 799] and [800, 1000] count as contiguous.
    """
    ordered = selection_order(bands)
    if not ordered:
        return Coverage(None, None, expected_min, expected_max, ())

    gaps: list[CoverageGap] = []
    reach = ordered[0].max_score
    for band in ordered[1:]:
        if band.min_score - reach > adjacency_tolerance:
            gaps.append(CoverageGap(reach, band.min_score))
        reach = max(reach, band.max_score)

    return Coverage(
        observed_min=ordered[0].min_score,
        observed_max=max(b.max_score for b in ordered),
        expected_min=expected_min,
        expected_max=expected_max,
        gaps=tuple(gaps),
    )


def check_coverage(
    bands: Iterable[RiskBandOut],
    expected_min: float,
    expected_max: float,
    adjacency_tolerance: float = 1.0,
) -> InvariantResult:
    coverage = measure_coverage(bands, expected_min, expected_max, adjacency_tolerance)
    if coverage.complete:
        return Ok()
    defects: list[Union[CoverageGap, CoverageOverrun]] = list(coverage.gaps)
    if coverage.observed_min is None:
        defects.append(CoverageGap(expected_min, expected_max))
    else:
        if coverage.observed_min > expected_min:
            defects.insert(0, CoverageGap(expected_min, coverage.observed_min))
        elif coverage.observed_min < expected_min:
            defects.insert(0, CoverageOverrun(coverage.observed_min, expected_min))
        if coverage.observed_max < expected_max:
            defects.append(CoverageGap(coverage.observed_max, expected_max))
        elif coverage.observed_max > expected_max:
            defects.append(CoverageOverrun(expected_max, coverage.observed_max))
    return Defects(tuple(defects))
