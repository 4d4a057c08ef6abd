"""Consensus analysis — where do participants' individual reports disagree?

For a multi-participant interview each participant's individual report
scores the same seven dimensions.  This module lines those scores up and
computes, per dimension, the mean, standard deviation and spread
(max − min).  A spread at or above the divergence threshold flags a
dimension where perceptions differ enough to suggest an information silo.

Pairwise agreement between participants is the Spearman rank correlation
of their dimension profiles; a flat profile (all scores equal) has no
ranking, so its agreement is reported as ``None``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from itertools import combinations
from typing import Any, Mapping

import numpy as np
from scipy import stats

from diagnostic.settings import DIMENSION_KEYS

logger = logging.getLogger(__name__)


@dataclass
class DimensionConsensus:
    dimension: str
    mean: float
    std: float
    spread: int
    divergent: bool
    scores: dict[str, int] = field(default_factory=dict)


@dataclass
class PairAgreement:
    first: str
    second: str
    rho: float | None


@dataclass
class ConsensusAnalysis:
    participants: list[str]
    dimensions: list[DimensionConsensus]
    agreement: list[PairAgreement]

    @property
    def divergent(self) -> list[str]:
        return [d.dimension for d in self.dimensions if d.divergent]

    def to_dict(self) -> dict[str, Any]:
        return {
            "participants": list(self.participants),
            "dimensions": [asdict(d) for d in self.dimensions],
            "agreement": [asdict(a) for a in self.agreement],
            "divergent": self.divergent,
        }


def _profile(report: Mapping[str, Any]) -> list[int] | None:
    try:
        dims = report["dimensions"]
        return [int(dims[key]["score"]) for key in DIMENSION_KEYS]
    except (KeyError, TypeError, ValueError):
        return None


def _spearman(a: np.ndarray, b: np.ndarray) -> float | None:
    if np.ptp(a) == 0 or np.ptp(b) == 0:
        return None
    rho, _ = stats.spearmanr(a, b)
    rho = float(rho)
    return None if np.isnan(rho) else round(rho, 3)


def analyze_consensus(
    reports: Mapping[str, Mapping[str, Any]],
    divergence_spread: float = 2.0,
) -> ConsensusAnalysis:
    """Compare individual reports keyed by participant contact."""
    participants: list[str] = []
    rows: list[list[int]] = []
    for participant, report in sorted(reports.items()):
        profile = _profile(report)
        if profile is None:
            logger.warning("Skipping malformed report for %s in consensus analysis", participant)
            continue
        participants.append(participant)
        rows.append(profile)

    if not rows:
        return ConsensusAnalysis(participants=[], dimensions=[], agreement=[])

    matrix = np.array(rows, dtype=float)  # participants × dimensions
    means = matrix.mean(axis=0)
    stds = matrix.std(axis=0)
    spreads = matrix.max(axis=0) - matrix.min(axis=0)

    dimensions = [
        DimensionConsensus(
            dimension=key,
            mean=round(float(means[i]), 2),
            std=round(float(stds[i]), 2),
            spread=int(spreads[i]),
            divergent=len(rows) > 1 and bool(spreads[i] >= divergence_spread),
            scores={p: int(matrix[j, i]) for j, p in enumerate(participants)},
        )
        for i, key in enumerate(DIMENSION_KEYS)
    ]

    agreement = [
        PairAgreement(participants[i], participants[j], _spearman(matrix[i], matrix[j]))
        for i, j in combinations(range(len(participants)), 2)
    ]
    return ConsensusAnalysis(participants=participants, dimensions=dimensions, agreement=agreement)
