"""Tests for dimension consensus across individual reports."""

from __future__ import annotations

import pytest

from diagnostic.reports.consensus import analyze_consensus
from diagnostic.settings import DIMENSION_KEYS

from conftest import sample_report


def _with_scores(**scores: int) -> dict:
    report = sample_report(3)
    for key, value in scores.items():
        report["dimensions"][key]["score"] = value
    return report


class TestAnalyzeConsensus:
    def test_flags_divergent_dimensions(self):
        analysis = analyze_consensus(
            {
                "ana@acme.test": _with_scores(data=1, strategy=4),
                "ben@acme.test": _with_scores(data=4, strategy=3),
            }
        )

        by_dim = {d.dimension: d for d in analysis.dimensions}
        assert analysis.divergent == ["data"]
        assert by_dim["data"].spread == 3
        assert by_dim["data"].mean == 2.5
        assert by_dim["data"].std == 1.5
        assert by_dim["strategy"].divergent is False
        assert by_dim["data"].scores == {"ana@acme.test": 1, "ben@acme.test": 4}

    def test_threshold_is_configurable(self):
        reports = {
            "a": _with_scores(data=2),
            "b": _with_scores(data=3),
        }
        assert analyze_consensus(reports, divergence_spread=1).divergent == ["data"]
        assert analyze_consensus(reports).divergent == []

    def test_single_report_never_divergent(self):
        analysis = analyze_consensus({"a": _with_scores(data=1, strategy=5)})
        assert analysis.divergent == []
        assert analysis.agreement == []

    def test_rank_agreement_between_profiles(self):
        rising = dict(zip(DIMENSION_KEYS, [1, 2, 3, 4, 5, 5, 5]))
        falling = dict(zip(DIMENSION_KEYS, [5, 4, 3, 2, 1, 1, 1]))
        analysis = analyze_consensus(
            {
                "a": _with_scores(**rising),
                "b": _with_scores(**rising),
                "c": _with_scores(**falling),
            }
        )
        rho = {(p.first, p.second): p.rho for p in analysis.agreement}
        assert rho[("a", "b")] == pytest.approx(1.0)
        assert rho[("a", "c")] == pytest.approx(-1.0)

    def test_flat_profile_has_no_rank_agreement(self):
        analysis = analyze_consensus({"a": sample_report(3), "b": _with_scores(data=5)})
        assert analysis.agreement[0].rho is None

    def test_malformed_report_skipped(self):
        analysis = analyze_consensus({"a": {"dimensions": {}}, "b": sample_report(2)})
        assert analysis.participants == ["b"]

    def test_no_reports(self):
        assert analyze_consensus({}).to_dict()["dimensions"] == []
