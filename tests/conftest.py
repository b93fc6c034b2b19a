"""Shared test fixtures for acoustic analysis tests."""

from __future__ import annotations

import numpy as np
import pytest

from mcp_server_acoustic.analysis.audio_io import encode_wav
from mcp_server_acoustic.analysis.session import SessionConfig
from mcp_server_acoustic.analysis.test_signal import generate_tone
from mcp_server_acoustic.analysis.zones import DEFAULT_CATALOG, ZoneDescriptor

FS = 16000


@pytest.fixture
def sine_440() -> np.ndarray:
    """2 s, 440 Hz sine at 16 kHz, amplitude 0.5, no noise."""
    _, x = generate_tone(2.0, FS, 440.0, amplitude=0.5)
    return x


@pytest.fixture
def wav_440(sine_440: np.ndarray) -> bytes:
    """The 440 Hz sine encoded as 16-bit mono WAV bytes."""
    return encode_wav(sine_440, FS)


@pytest.fixture
def feedwater_pump() -> ZoneDescriptor:
    """Boiler feed pump — ZONE E, sector [200, 260)."""
    zone = DEFAULT_CATALOG.lookup_by_component_id("boiler-feed-pump")
    assert zone is not None
    return zone


@pytest.fixture
def fast_config() -> SessionConfig:
    """Session timing with no real-time waits."""
    return SessionConfig(
        live_capture_window_s=30.0,
        progress_interval_s=0.0,
        realtime_file_playback=False,
    )
