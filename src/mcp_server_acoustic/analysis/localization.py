"""Zone localization and health assessment.

Turns a resolved zone (plus optional clip features) into a fault label,
health/confidence scores, risk tier and a bearing inside the zone's
acoustic sector.  The scoring step sits behind the :class:`Predictor`
protocol; :class:`RandomPredictor` draws scores from fixed bands and can
be swapped for a trained model without touching the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import numpy as np

from mcp_server_acoustic.analysis.models import (
    AnalysisResult,
    AudioMetadata,
    HealthStatus,
    Notification,
    RiskLevel,
)
from mcp_server_acoustic.analysis.zones import ZoneDescriptor

logger = logging.getLogger(__name__)

NO_FAULT = "None Detected"

# Inclusive score bands
HEALTHY_BAND = (90, 99)
FAULT_BAND = (40, 79)
CONFIDENCE_BAND = (75, 94)

HEALTHY_MIN_SCORE = 80
WARNING_MIN_SCORE = 55

RISK_BY_STATUS = {
    HealthStatus.HEALTHY: RiskLevel.LOW,
    HealthStatus.WARNING: RiskLevel.MEDIUM,
    HealthStatus.CRITICAL: RiskLevel.HIGH,
}

RECOMMENDATIONS = {
    RiskLevel.LOW: "Continue normal operation. Next scheduled inspection adequate.",
    RiskLevel.MEDIUM: "Schedule maintenance within 7 days. Monitor closely.",
    RiskLevel.HIGH: "Immediate shutdown recommended. Critical fault detected.",
}


@dataclass(frozen=True)
class Prediction:
    fault_label: str
    health_score: int
    confidence_score: int


class Predictor(Protocol):
    def predict(
        self,
        zone: ZoneDescriptor,
        audio_metrics: AudioMetadata | None,
        rng: np.random.Generator,
    ) -> Prediction: ...


def _draw(rng: np.random.Generator, band: tuple[int, int]) -> int:
    return int(rng.integers(band[0], band[1] + 1))


class RandomPredictor:
    """Placeholder classifier drawing scores from fixed bands.

    No fault → health in ``[90, 99]``; any candidate fault → ``[40, 79]``.
    Confidence is ``[75, 94]`` regardless.  Clip features are ignored.
    """

    def predict(
        self,
        zone: ZoneDescriptor,
        audio_metrics: AudioMetadata | None,
        rng: np.random.Generator,
    ) -> Prediction:
        faults = zone.candidate_faults
        fault = faults[int(rng.integers(len(faults)))] if faults else NO_FAULT
        band = HEALTHY_BAND if fault == NO_FAULT else FAULT_BAND
        return Prediction(
            fault_label=fault,
            health_score=_draw(rng, band),
            confidence_score=_draw(rng, CONFIDENCE_BAND),
        )


def classify_health(health_score: int) -> HealthStatus:
    """Healthy ≥ 80, Warning 55–79, Critical < 55."""
    if health_score >= HEALTHY_MIN_SCORE:
        return HealthStatus.HEALTHY
    if health_score >= WARNING_MIN_SCORE:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


def risk_level(health_score: int) -> RiskLevel:
    return RISK_BY_STATUS[classify_health(health_score)]


def estimate_direction(zone: ZoneDescriptor, rng: np.random.Generator) -> int:
    """Integer bearing drawn uniformly from ``[min_deg, max_deg)``."""
    lo, hi = zone.angle_range
    if hi <= lo:
        raise ValueError(f"Empty angle range: {zone.angle_range}")
    return int(rng.integers(lo, hi))


@dataclass(frozen=True)
class Localization:
    """Result of :func:`infer` plus the alert to raise, if any."""

    result: AnalysisResult
    alert: Notification | None = None


def critical_alert(zone: ZoneDescriptor, fault_label: str) -> Notification:
    return Notification(
        title="Critical Health Alert",
        description=(
            f"{fault_label} detected in {zone.system_name} → {zone.component_name}. "
            "Immediate action required."
        ),
        severity="critical",
    )


def infer(
    zone: ZoneDescriptor,
    rng: np.random.Generator | int | None = None,
    audio_metrics: AudioMetadata | None = None,
    predictor: Predictor | None = None,
    timestamp: datetime | None = None,
) -> Localization:
    """Produce a localized health estimate for one zone.

    Args:
        zone: Target zone (sector, candidate faults).
        rng: Random generator or seed.
        audio_metrics: Features of the clip that triggered the analysis.
        predictor: Scoring model.  Default → :class:`RandomPredictor`.
        timestamp: Result time.  Default → now.

    Returns:
        Localization with the result and, when the derived status is
        Critical, an alert payload.
    """
    if not isinstance(rng, np.random.Generator):
        rng = np.random.default_rng(rng)
    predictor = predictor or RandomPredictor()

    pred = predictor.predict(zone, audio_metrics, rng)
    if not 0 <= pred.health_score <= 100:
        raise ValueError(f"health_score out of range: {pred.health_score}")
    if not 0 <= pred.confidence_score <= 100:
        raise ValueError(f"confidence_score out of range: {pred.confidence_score}")

    status = classify_health(pred.health_score)
    risk = RISK_BY_STATUS[status]
    angle = estimate_direction(zone, rng)

    result = AnalysisResult(
        system_name=zone.system_name,
        zone_label=zone.zone_label,
        component_name=zone.component_name,
        ai_label=zone.ai_label,
        fault_label=pred.fault_label,
        health_score=pred.health_score,
        confidence_score=pred.confidence_score,
        health_status=status,
        risk_level=risk,
        recommendation=RECOMMENDATIONS[risk],
        direction_angle_deg=angle,
        timestamp=timestamp or datetime.now(),
        audio_metrics=audio_metrics,
    )

    alert = None
    if status is HealthStatus.CRITICAL:
        alert = critical_alert(zone, pred.fault_label)
        logger.warning(
            "Critical health in %s / %s: %s (score %d)",
            zone.system_name, zone.component_name, pred.fault_label, pred.health_score,
        )

    return Localization(result=result, alert=alert)
