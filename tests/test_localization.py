"""Tests for zone localization and health assessment."""

from datetime import datetime

import numpy as np
import pytest

from mcp_server_acoustic.analysis.localization import (
    NO_FAULT,
    RECOMMENDATIONS,
    Prediction,
    RandomPredictor,
    classify_health,
    estimate_direction,
    infer,
    risk_level,
)
from mcp_server_acoustic.analysis.models import HealthStatus, RiskLevel
from mcp_server_acoustic.analysis.zones import DEFAULT_CATALOG


class _Fixed:
    def __init__(self, fault, health, confidence=80):
        self.prediction = Prediction(fault, health, confidence)

    def predict(self, zone, audio_metrics, rng):
        return self.prediction


class TestHealthMapping:
    @pytest.mark.parametrize("score", range(0, 101))
    def test_score_to_status_and_risk(self, score):
        status = classify_health(score)
        if score >= 80:
            assert status is HealthStatus.HEALTHY
            assert risk_level(score) is RiskLevel.LOW
        elif score >= 55:
            assert status is HealthStatus.WARNING
            assert risk_level(score) is RiskLevel.MEDIUM
        else:
            assert status is HealthStatus.CRITICAL
            assert risk_level(score) is RiskLevel.HIGH

    def test_boundaries(self):
        assert classify_health(80) is HealthStatus.HEALTHY
        assert classify_health(79) is HealthStatus.WARNING
        assert classify_health(55) is HealthStatus.WARNING
        assert classify_health(54) is HealthStatus.CRITICAL


class TestDirection:
    def test_feed_pump_sector(self, feedwater_pump):
        rng = np.random.default_rng(0)
        angles = [estimate_direction(feedwater_pump, rng) for _ in range(1000)]
        assert all(200 <= a < 260 for a in angles)
        assert all(isinstance(a, int) for a in angles)

    def test_general_zone_full_circle(self):
        zone = DEFAULT_CATALOG.resolve(None, None)
        rng = np.random.default_rng(1)
        angles = [estimate_direction(zone, rng) for _ in range(500)]
        assert all(0 <= a < 360 for a in angles)


class TestRandomPredictor:
    def test_fault_band(self, feedwater_pump):
        rng = np.random.default_rng(2)
        for _ in range(300):
            p = RandomPredictor().predict(feedwater_pump, None, rng)
            assert p.fault_label in feedwater_pump.candidate_faults
            assert 40 <= p.health_score <= 79
            assert 75 <= p.confidence_score <= 94

    def test_no_fault_band(self):
        zone = DEFAULT_CATALOG.resolve(None, "boiler")
        rng = np.random.default_rng(3)
        for _ in range(300):
            p = RandomPredictor().predict(zone, None, rng)
            assert p.fault_label == NO_FAULT
            assert 90 <= p.health_score <= 99
            assert 75 <= p.confidence_score <= 94


class TestInfer:
    def test_scenario_feed_pump(self, feedwater_pump):
        for seed in range(1000):
            result = infer(feedwater_pump, rng=seed).result
            assert 200 <= result.direction_angle_deg < 260
            assert result.zone_label == "ZONE E"
            assert result.ai_label == "feedwater_pump_zone"

    def test_result_consistent(self, feedwater_pump):
        result = infer(feedwater_pump, rng=7).result
        assert result.health_status is classify_health(result.health_score)
        assert result.risk_level is risk_level(result.health_score)
        assert result.recommendation == RECOMMENDATIONS[result.risk_level]
        assert result.component_name == "Boiler Feed Pump"

    def test_seed_reproducible(self, feedwater_pump):
        ts = datetime(2024, 1, 1)
        a = infer(feedwater_pump, rng=42, timestamp=ts).result
        b = infer(feedwater_pump, rng=42, timestamp=ts).result
        assert a == b

    def test_critical_alert(self, feedwater_pump):
        loc = infer(feedwater_pump, rng=0, predictor=_Fixed("Cavitation", 45))
        assert loc.result.health_status is HealthStatus.CRITICAL
        assert loc.result.risk_level is RiskLevel.HIGH
        assert loc.alert is not None
        assert loc.alert.severity == "critical"
        assert "Cavitation" in loc.alert.description
        assert "Boiler Feed Pump" in loc.alert.description

    def test_no_alert_when_warning(self, feedwater_pump):
        loc = infer(feedwater_pump, rng=0, predictor=_Fixed("Seal Leak", 60))
        assert loc.result.health_status is HealthStatus.WARNING
        assert loc.alert is None

    @pytest.mark.parametrize("health, confidence", [(101, 80), (-1, 80), (50, 120)])
    def test_out_of_range_scores_rejected(self, feedwater_pump, health, confidence):
        with pytest.raises(ValueError, match="out of range"):
            infer(feedwater_pump, predictor=_Fixed("Cavitation", health, confidence))

    def test_audio_metrics_attached(self, feedwater_pump, wav_440):
        from mcp_server_acoustic.analysis.audio_io import decode
        from mcp_server_acoustic.analysis.features import summarize_clip

        meta = summarize_clip(decode(wav_440), "pump.wav", len(wav_440))
        result = infer(feedwater_pump, rng=1, audio_metrics=meta).result
        assert result.audio_metrics is meta
        assert result.to_dict()["audio_metrics"]["file_name"] == "pump.wav"

    def test_to_dict_plain_values(self, feedwater_pump):
        d = infer(feedwater_pump, rng=3, timestamp=datetime(2024, 5, 1, 12, 0)).result.to_dict()
        assert d["health_status"] in {"Healthy", "Warning", "Critical"}
        assert d["risk_level"] in {"Low", "Medium", "High"}
        assert d["timestamp"] == "2024-05-01T12:00:00"
