"""Tests for the analysis session state machine."""

from __future__ import annotations

import asyncio

import numpy as np
import pytest

from mcp_server_acoustic.analysis.errors import InvalidTransitionError
from mcp_server_acoustic.analysis.localization import Prediction
from mcp_server_acoustic.analysis.models import HealthStatus
from mcp_server_acoustic.analysis.reference import ReferenceSpec
from mcp_server_acoustic.analysis.session import (
    ALLOWED_TRANSITIONS,
    LIVE_CAPTURE_LABEL,
    AnalysisSession,
    LiveCapture,
    SessionConfig,
    SessionState,
)

S = SessionState


class _Fixed:
    def __init__(self, fault, health, confidence=80):
        self.prediction = Prediction(fault, health, confidence)

    def predict(self, zone, audio_metrics, rng):
        return self.prediction


def _tone_frames(session=None, stop_after=None, levels=None, frame_size=1024):
    """Endless 440 Hz stream, optionally stopping the session after N frames."""

    async def gen():
        n = np.arange(frame_size)
        i = 0
        while True:
            yield 0.5 * np.sin(2 * np.pi * 440.0 * (n + i * frame_size) / 16000)
            i += 1
            if levels is not None:
                levels.append(session.decibel_level)
            if stop_after is not None and i == stop_after:
                session.request_stop()
            await asyncio.sleep(0.001)

    return gen()


class _Recorder:
    def __init__(self):
        self.states = []
        self.progress = []
        self.notifications = []


def _session(zone, config, rng=0, **kwargs):
    rec = _Recorder()
    session = AnalysisSession(
        zone,
        config=config,
        rng=rng,
        on_progress=rec.progress.append,
        on_notification=rec.notifications.append,
        on_state_change=rec.states.append,
        **kwargs,
    )
    return session, rec


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


class TestTransitions:
    @pytest.mark.parametrize("current", list(S))
    @pytest.mark.parametrize("target", list(S))
    def test_table(self, feedwater_pump, current, target):
        session = AnalysisSession(feedwater_pump)
        session.state = current
        allowed = {
            (S.AWAITING, S.LISTENING),
            (S.LISTENING, S.ANALYZING),
            (S.ANALYZING, S.COMPLETE),
            (S.COMPLETE, S.LISTENING),
        }
        expected = (current, target) in allowed
        assert session.can_transition(target) is expected
        assert (target in ALLOWED_TRANSITIONS[current]) is expected
        if expected:
            session._transition(target)
            assert session.state is target
        else:
            with pytest.raises(InvalidTransitionError):
                session._transition(target)
            assert session.state is current

    def test_initial_state(self, feedwater_pump):
        session = AnalysisSession(feedwater_pump)
        assert session.state is S.AWAITING
        assert session.result is None
        assert session.progress == 0.0
        assert not session.busy


class TestConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"live_capture_window_s": 0},
            {"progress_interval_s": -0.1},
            {"max_progress_step": 0},
            {"max_progress_step": 101},
            {"capture_frame_size": 0},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            SessionConfig(**kwargs)


# ---------------------------------------------------------------------------
# File slot
# ---------------------------------------------------------------------------


class TestSelectFile:
    def test_metadata(self, feedwater_pump, wav_440):
        session = AnalysisSession(feedwater_pump)
        meta = session.select_file(wav_440, "pump.wav")
        assert meta is not None
        assert meta.reference_compatible is True
        assert session.file_metadata is meta
        assert session.state is S.AWAITING

    def test_decode_failure(self, feedwater_pump, fast_config, wav_440):
        session, rec = _session(feedwater_pump, fast_config)
        session.select_file(wav_440, "pump.wav")

        assert session.select_file(b"not audio" * 100, "broken.wav") is None
        assert session.state is S.AWAITING
        assert session.file_metadata is None
        assert "Could not decode" in session.last_error
        assert rec.notifications[-1].severity == "error"
        assert rec.states == []

    def test_oversize_rejected_without_decode(self, feedwater_pump, wav_440, monkeypatch):
        def _no_decode(*args, **kwargs):
            raise AssertionError("decode must not run for oversized input")

        monkeypatch.setattr("mcp_server_acoustic.analysis.session.decode", _no_decode)
        session, rec = _session(
            feedwater_pump,
            SessionConfig(),
            reference=ReferenceSpec(max_file_size_bytes=1024),
        )
        assert session.select_file(wav_440, "pump.wav") is None
        assert session.state is S.AWAITING
        assert session.last_error.startswith("File too large. Max ")
        assert rec.notifications[0].title == "Audio Input Rejected"

    @pytest.mark.parametrize("name", ["pump.aiff", "pump.caf", "pump"])
    def test_unaccepted_extension_rejected(self, feedwater_pump, wav_440, name):
        session, rec = _session(feedwater_pump, SessionConfig())
        assert session.select_file(wav_440, name) is None
        assert session.file_metadata is None
        assert session.state is S.AWAITING
        assert "Could not decode" in session.last_error
        assert rec.notifications[0].title == "Audio Input Rejected"

    def test_extension_case_insensitive(self, feedwater_pump, wav_440):
        assert AnalysisSession(feedwater_pump).select_file(wav_440, "PUMP.WAV") is not None

    def test_clear_file(self, feedwater_pump, wav_440):
        session = AnalysisSession(feedwater_pump)
        session.select_file(wav_440, "pump.wav")
        session.clear_file()
        assert session.file_metadata is None

    def test_start_without_file(self, feedwater_pump):
        session = AnalysisSession(feedwater_pump)
        with pytest.raises(ValueError, match="no file selected"):
            asyncio.run(session.start())
        assert session.state is S.AWAITING


# ---------------------------------------------------------------------------
# File sessions
# ---------------------------------------------------------------------------


class TestFileSession:
    def test_runs_to_complete(self, feedwater_pump, fast_config, wav_440):
        session, rec = _session(feedwater_pump, fast_config)
        meta = session.select_file(wav_440, "pump.wav")

        result = asyncio.run(session.start())

        assert session.state is S.COMPLETE
        assert rec.states == [S.LISTENING, S.ANALYZING, S.COMPLETE]
        assert session.result is result
        assert 200 <= result.direction_angle_deg < 260
        assert result.audio_metrics is meta
        assert result.fault_label in feedwater_pump.candidate_faults

    def test_progress_monotone_to_100(self, feedwater_pump, fast_config, wav_440):
        session, rec = _session(feedwater_pump, fast_config)
        session.select_file(wav_440, "pump.wav")
        asyncio.run(session.start())

        assert rec.progress[0] == 0.0
        assert rec.progress[-1] == 100.0
        assert all(b >= a for a, b in zip(rec.progress, rec.progress[1:]))
        assert all(0.0 <= p <= 100.0 for p in rec.progress)
        assert session.progress == 100.0

    def test_restart_discards_result(self, feedwater_pump, fast_config, wav_440):
        seen_at_analyzing = []
        session, rec = _session(feedwater_pump, fast_config)
        session._on_state_change = lambda s: seen_at_analyzing.append(
            (s, session.result)
        )
        session.select_file(wav_440, "pump.wav")

        async def run_twice():
            first = await session.start()
            second = await session.start()
            return first, second

        first, second = asyncio.run(run_twice())

        assert first is not second
        assert session.result is second
        # result is cleared on re-entry into LISTENING
        analyzing = [r for s, r in seen_at_analyzing if s is S.ANALYZING]
        assert analyzing == [None, None]

    def test_start_while_busy(self, feedwater_pump, wav_440):
        config = SessionConfig(progress_interval_s=0.0, realtime_file_playback=True)
        session = AnalysisSession(feedwater_pump, config=config)
        session.select_file(wav_440, "pump.wav")

        async def run():
            task = asyncio.create_task(session.start())
            while session.state is not S.LISTENING:
                await asyncio.sleep(0.001)
            with pytest.raises(InvalidTransitionError):
                await session.start()
            assert session.select_file(wav_440, "other.wav") is None
            session.request_stop()
            return await task

        result = asyncio.run(run())
        assert result is not None
        assert session.state is S.COMPLETE

    def test_request_stop_outside_listening(self, feedwater_pump, fast_config, wav_440):
        session, _ = _session(feedwater_pump, fast_config)
        assert session.request_stop() is False
        session.select_file(wav_440, "pump.wav")
        asyncio.run(session.start())
        assert session.request_stop() is False
        assert session.state is S.COMPLETE

    def test_critical_alert_notified(self, feedwater_pump, fast_config, wav_440):
        session, rec = _session(
            feedwater_pump, fast_config, predictor=_Fixed("Cavitation", 45)
        )
        session.select_file(wav_440, "pump.wav")
        result = asyncio.run(session.start())

        assert result.health_status is HealthStatus.CRITICAL
        assert rec.notifications[-1].severity == "critical"
        assert "Cavitation" in rec.notifications[-1].description

    def test_seeded_sessions_reproducible(self, feedwater_pump, fast_config, wav_440):
        results = []
        for _ in range(2):
            session, _rec = _session(feedwater_pump, fast_config, rng=123)
            session.select_file(wav_440, "pump.wav")
            r = asyncio.run(session.start())
            results.append((r.fault_label, r.health_score, r.direction_angle_deg))
        assert results[0] == results[1]


# ---------------------------------------------------------------------------
# Live sessions
# ---------------------------------------------------------------------------


class TestLiveSession:
    def test_stop_ends_capture(self, feedwater_pump, fast_config):
        released = []
        levels = []
        session, rec = _session(feedwater_pump, fast_config)
        source = LiveCapture(
            _tone_frames(session, stop_after=20, levels=levels),
            16000,
            release=lambda: released.append(True),
        )

        result = asyncio.run(asyncio.wait_for(session.start(source), timeout=10))

        assert session.state is S.COMPLETE
        assert released == [True]
        assert not source.is_open
        assert levels and all(lv > 0 for lv in levels)
        assert session.decibel_level == 0.0
        metrics = result.audio_metrics
        assert metrics.format_label == LIVE_CAPTURE_LABEL
        assert metrics.reference_compatible is False
        assert 424 <= metrics.spectral_centroid_hz <= 456

    def test_window_timeout(self, feedwater_pump):
        config = SessionConfig(live_capture_window_s=0.05, progress_interval_s=0.0)
        session, rec = _session(feedwater_pump, config)
        source = LiveCapture(_tone_frames(), 16000)

        result = asyncio.run(asyncio.wait_for(session.start(source), timeout=10))

        assert result is not None
        assert rec.states == [S.LISTENING, S.ANALYZING, S.COMPLETE]

    def test_permission_denied(self, feedwater_pump, fast_config):
        async def deny():
            return False

        session, rec = _session(feedwater_pump, fast_config)
        source = LiveCapture(_tone_frames(), 16000, request_permission=deny)

        assert asyncio.run(session.start(source)) is None
        assert session.state is S.AWAITING
        assert rec.states == []
        assert rec.notifications[0].title == "Microphone Access Denied"
        assert "microphone access" in session.last_error

    def test_permission_granted(self, feedwater_pump):
        async def allow():
            return True

        config = SessionConfig(live_capture_window_s=0.02, progress_interval_s=0.0)
        session, _ = _session(feedwater_pump, config)
        source = LiveCapture(_tone_frames(), 16000, request_permission=allow)
        assert asyncio.run(session.start(source)) is not None

    def test_released_on_cancel(self, feedwater_pump, fast_config):
        released = []
        session, _ = _session(feedwater_pump, fast_config)
        source = LiveCapture(
            _tone_frames(), 16000, release=lambda: released.append(True)
        )

        async def run():
            task = asyncio.create_task(session.start(source))
            while session.state is not S.LISTENING:
                await asyncio.sleep(0.001)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())
        assert released == [True]
        assert not source.is_open
        assert session.state is S.AWAITING
        assert not session.busy

    def test_stream_error_releases_device(self, feedwater_pump, fast_config):
        released = []

        async def broken():
            yield np.zeros(1024)
            raise OSError("device unplugged")

        session, _ = _session(feedwater_pump, fast_config)
        source = LiveCapture(broken(), 16000, release=lambda: released.append(True))

        with pytest.raises(OSError, match="unplugged"):
            asyncio.run(session.start(source))
        assert released == [True]
        assert session.state is S.AWAITING
        assert session.progress == 0.0

    def test_stream_error_leaves_session_usable(self, feedwater_pump, fast_config, wav_440):
        async def broken():
            yield np.zeros(1024)
            raise OSError("device unplugged")

        session, rec = _session(feedwater_pump, fast_config)
        session.select_file(wav_440, "pump.wav")
        with pytest.raises(OSError):
            asyncio.run(session.start(LiveCapture(broken(), 16000)))

        assert rec.states == [S.LISTENING, S.AWAITING]
        assert session.file_metadata is None
        assert session.last_error is None
        assert session.request_stop() is False

        assert session.select_file(wav_440, "pump.wav") is not None
        result = asyncio.run(session.start())
        assert result is not None
        assert session.state is S.COMPLETE

    def test_multichannel_frames_use_first_row(self, feedwater_pump):
        async def stereo():
            n = np.arange(1024)
            for i in range(4):
                tone = 0.5 * np.sin(2 * np.pi * 440.0 * (n + i * 1024) / 16000)
                yield np.vstack([tone, np.zeros(1024)])

        config = SessionConfig(live_capture_window_s=5.0, progress_interval_s=0.0)
        session, _ = _session(feedwater_pump, config)
        result = asyncio.run(session.start(LiveCapture(stereo(), 16000)))
        assert result.audio_metrics.channel_count == 1
        assert result.audio_metrics.rms_energy > 0.3
