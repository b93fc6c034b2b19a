"""Reference recording format.

Uploaded clips are judged against the MIMII industrial machine‑sound
dataset layout: 16 kHz, 16‑bit PCM WAV, 8‑channel array, ~10 s segments
recorded at three SNR levels.  A handful of values can be overridden
through environment variables at load time.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class ReferenceSpec:
    """Target audio format against which clips are compared.

    Attributes:
        sample_rate: Reference sampling frequency in Hz.
        channel_count: Channels of the reference microphone array.
        fft_size: Analysis frame length in samples (spectral centroid).
        frame_duration_ms: Duration of one FFT frame at ``sample_rate``.
        segment_duration_s: Length of one reference clip in seconds.
        snr_levels: SNR levels (dB) present in the reference corpus.
        max_file_size_bytes: Largest accepted upload.
        accepted_formats: Accepted file extensions (with leading dot).
        container: Primary container of the reference corpus.
        encoding: Sample encoding of the reference corpus.
    """

    sample_rate: int = 16000
    channel_count: int = 8
    fft_size: int = 1024
    frame_duration_ms: int = 64
    segment_duration_s: float = 10.0
    snr_levels: frozenset[int] = frozenset({6, 0, -6})
    max_file_size_bytes: int = 50 * 1024 * 1024
    accepted_formats: tuple[str, ...] = (".wav", ".mp3", ".ogg", ".flac", ".m4a")
    container: str = "WAV"
    encoding: str = "16-bit PCM"

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be > 0, got {self.sample_rate}")
        if self.channel_count < 1:
            raise ValueError(f"channel_count must be ≥ 1, got {self.channel_count}")
        if self.fft_size < 2 or self.fft_size % 2 != 0:
            raise ValueError(f"fft_size must be even and ≥ 2, got {self.fft_size}")
        if self.segment_duration_s <= 0:
            raise ValueError(
                f"segment_duration_s must be > 0, got {self.segment_duration_s}"
            )
        if self.max_file_size_bytes <= 0:
            raise ValueError(
                f"max_file_size_bytes must be > 0, got {self.max_file_size_bytes}"
            )

    @property
    def max_file_size_mb(self) -> float:
        return self.max_file_size_bytes / (1024 * 1024)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["snr_levels"] = sorted(self.snr_levels, reverse=True)
        d["accepted_formats"] = list(self.accepted_formats)
        return d


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_reference_spec() -> ReferenceSpec:
    """Build the reference spec, applying environment overrides.

    Recognised variables: ``ACOUSTIC_REFERENCE_SAMPLE_RATE``,
    ``ACOUSTIC_FFT_SIZE`` and ``ACOUSTIC_MAX_FILE_SIZE_MB``.

    Raises:
        ValueError: If an override is not an integer or is out of range.
    """
    defaults = ReferenceSpec()
    sample_rate = _env_int("ACOUSTIC_REFERENCE_SAMPLE_RATE", defaults.sample_rate)
    fft_size = _env_int("ACOUSTIC_FFT_SIZE", defaults.fft_size)
    max_mb = _env_int(
        "ACOUSTIC_MAX_FILE_SIZE_MB", defaults.max_file_size_bytes // (1024 * 1024)
    )
    return ReferenceSpec(
        sample_rate=sample_rate,
        fft_size=fft_size,
        frame_duration_ms=round(1000 * fft_size / sample_rate) if sample_rate > 0 else 0,
        max_file_size_bytes=max_mb * 1024 * 1024,
    )


DEFAULT_REFERENCE = ReferenceSpec()
