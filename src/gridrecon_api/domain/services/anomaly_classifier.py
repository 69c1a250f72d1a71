# src/gridrecon_api/domain/services/anomaly_classifier.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Anomaly classifier for zone energy balances.

Purpose:
    Map a reconciliation result, together with the zone's recent history, to
    a severity tier and a suspect flag.

Layer:
    domain/services

Tiers (by delta ratio, default thresholds):
    normal       ratio < 0.05
    watch        0.05 <= ratio < 0.15
    elevated     0.15 <= ratio <= 0.30
    critical     ratio > 0.30
    inverted     negative delta, whatever its magnitude
    unclassifiable  zero output, whatever the consumption

A result is suspect when its tier is elevated or critical, or when it is
watch and the zone's ``sustained_watch_runs`` most recent prior results were
watch as well.

Notes:
    - Pure and deterministic: no I/O, no clock, no logging.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from gridrecon_api.domain.entities.reconciliation import ReconciliationResult
from gridrecon_api.domain.enums.reconciliation import SeverityTier

_SUSPECT_TIERS: frozenset[SeverityTier] = frozenset(
    {SeverityTier.ELEVATED, SeverityTier.CRITICAL}
)


@dataclass(frozen=True, slots=True)
class AnomalyThresholds:
    """Tier boundaries expressed as ratios (0.05 == 5%).

    Attributes:
        watch: Lower bound (inclusive) of the watch tier.
        elevated: Lower bound (inclusive) of the elevated tier.
        critical: Ratios strictly above this bound are critical.
        sustained_watch_runs: Consecutive prior watch results that turn a
            watch result into a suspect one.
    """

    watch: Decimal = Decimal("0.05")
    elevated: Decimal = Decimal("0.15")
    critical: Decimal = Decimal("0.30")
    sustained_watch_runs: int = 2

    def __post_init__(self) -> None:
        """Enforce threshold ordering."""
        if not (Decimal(0) < self.watch <= self.elevated <= self.critical):
            raise ValueError("Thresholds must satisfy 0 < watch <= elevated <= critical.")
        if self.sustained_watch_runs < 1:
            raise ValueError("sustained_watch_runs must be >= 1.")


@dataclass(frozen=True, slots=True)
class Classification:
    """Classifier output."""

    tier: SeverityTier
    suspect: bool


class AnomalyClassifier:
    """Deterministic severity classifier."""

    def __init__(self, thresholds: AnomalyThresholds | None = None) -> None:
        self._thresholds = thresholds or AnomalyThresholds()

    @property
    def thresholds(self) -> AnomalyThresholds:
        """Return the configured thresholds."""
        return self._thresholds

    def tier_for(self, result: ReconciliationResult) -> SeverityTier:
        """Return the tier implied by the result's own figures."""
        if result.delta_ratio is None:
            return SeverityTier.UNCLASSIFIABLE
        if result.delta_kwh < 0:
            return SeverityTier.INVERTED

        ratio = result.delta_ratio
        t = self._thresholds
        if ratio < t.watch:
            return SeverityTier.NORMAL
        if ratio < t.elevated:
            return SeverityTier.WATCH
        if ratio <= t.critical:
            return SeverityTier.ELEVATED
        return SeverityTier.CRITICAL

    def classify(
        self,
        result: ReconciliationResult,
        prior_results: Sequence[ReconciliationResult] = (),
    ) -> Classification:
        """Classify ``result`` against the zone's history.

        Args:
            result: Result to classify.
            prior_results: Earlier results for the same zone, most recent
                first. Results for other zones are ignored.

        Returns:
            The tier and suspect flag.
        """
        tier = self.tier_for(result)
        if tier in _SUSPECT_TIERS:
            return Classification(tier=tier, suspect=True)
        if tier is not SeverityTier.WATCH:
            return Classification(tier=tier, suspect=False)

        needed = self._thresholds.sustained_watch_runs
        recent = [p for p in prior_results if p.zone_id == result.zone_id][:needed]
        sustained = len(recent) == needed and all(
            (p.severity or self.tier_for(p)) is SeverityTier.WATCH for p in recent
        )
        return Classification(tier=tier, suspect=sustained)

    def apply(
        self,
        result: ReconciliationResult,
        prior_results: Sequence[ReconciliationResult] = (),
    ) -> ReconciliationResult:
        """Return ``result`` carrying its classification."""
        classification = self.classify(result, prior_results)
        return result.with_classification(classification.tier, classification.suspect)


__all__ = ["AnomalyClassifier", "AnomalyThresholds", "Classification"]
