"""
Band overlap / coverage analysis.
"""
import uuid
from datetime import datetime, timezone

from factora.schemas.registry import RiskBandOut
from factora.scoring.bands import (
    BandOverlap, CoverageGap, CoverageOverrun, Defects, Ok, check_coverage, check_overlaps, measure_coverage,
    select_band,
)

NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)
MODEL_ID = uuid.uuid4()


def _bands(*ranges):
    return [
        RiskBandOut(
            id=i + 1, model_id=MODEL_ID, band=b, min_score=lo, max_score=hi,
            recommendation=b, updated_at=NOW,
        )
        for i, (b, lo, hi) in enumerate(ranges)
    ]


BASELINE = _bands(("A", 800, 1000), ("B", 650, 799), ("C", 450, 649), ("D", 0, 449))


class TestOverlaps:

    def test_disjoint_bands_are_ok(self):
        assert check_overlaps(BASELINE) == Ok()

    def test_two_overlapping_bands_report_exactly_one_pair(self):
        result = check_overlaps(_bands(("LOW", 0, 500), ("HIGH", 400, 900)))
        assert isinstance(result, Defects)
        assert len(result) == 1
        assert result.items[0] == BandOverlap("LOW", "HIGH", 400, 500)

    def test_every_violating_pair_is_listed(self):
        result = check_overlaps(_bands(("X", 0, 600), ("Y", 100, 700), ("Z", 500, 900)))
        pairs = {(o.first, o.second) for o in result.items}
        assert pairs == {("X", "Y"), ("X", "Z"), ("Y", "Z")}

    def test_shared_edge_counts_as_overlap(self):
        result = check_overlaps(_bands(("LOW", 0, 500), ("HIGH", 500, 1000)))
        assert len(result) == 1
        assert result.items[0].overlap_min == result.items[0].overlap_max == 500

    def test_no_bands_is_ok(self):
        assert check_overlaps([]) == Ok()


class TestCoverage:

    def test_integer_edges_are_contiguous_within_tolerance(self):
        coverage = measure_coverage(BASELINE, 0, 1000, adjacency_tolerance=1.0)
        assert coverage.gaps == ()
        assert coverage.complete
        assert check_coverage(BASELINE, 0, 1000) == Ok()

    def test_zero_tolerance_reports_integer_seams_as_gaps(self):
        coverage = measure_coverage(BASELINE, 0, 1000, adjacency_tolerance=0.0)
        assert len(coverage.gaps) == 3

    def test_internal_gap_is_reported(self):
        bands = _bands(("LOW", 0, 300), ("HIGH", 500, 1000))
        result = check_coverage(bands, 0, 1000)
        assert result == Defects((CoverageGap(300, 500),))

    def test_short_range_reports_missing_ends(self):
        bands = _bands(("MID", 100, 900))
        result = check_coverage(bands, 0, 1000)
        assert result.items == (CoverageGap(0, 100), CoverageGap(900, 1000))

    def test_bands_wider_than_the_range_are_not_complete(self):
        coverage = measure_coverage(_bands(("WIDE", -100, 1100)), 0, 1000)
        assert coverage.gaps == ()
        assert not coverage.complete
        assert check_coverage(_bands(("WIDE", -100, 1100)), 0, 1000).items == (
            CoverageOverrun(-100, 0), CoverageOverrun(1000, 1100),
        )

    def test_no_bands_is_one_full_gap(self):
        coverage = measure_coverage([], 0, 1000)
        assert coverage.observed_min is None
        assert not coverage.complete
        assert check_coverage([], 0, 1000) == Defects((CoverageGap(0, 1000),))


class TestSelectBand:

    def test_returns_all_candidates(self):
        band, candidates = select_band(_bands(("HIGH", 400, 900), ("LOW", 0, 500)), 450)
        assert band.band == "LOW"
        assert [c.band for c in candidates] == ["LOW", "HIGH"]

    def test_outside_every_band(self):
        band, candidates = select_band(BASELINE, 1200)
        assert band is None
        assert candidates == []
