"""Data records shared by the ingestion, feature and localization stages."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True)
class DecodedAudio:
    """A decoded clip, one row per channel, samples in [-1, 1].

    The sample matrix is made read‑only on construction.

    Attributes:
        sample_rate: Sampling frequency in Hz.
        samples: 2‑D array shaped ``(channels, n_samples)``.
    """

    sample_rate: int
    samples: NDArray[np.floating]

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be > 0, got {self.sample_rate}")
        arr = np.asarray(self.samples, dtype=np.float64)
        if arr.ndim == 1:
            arr = arr[np.newaxis, :]
        if arr.ndim != 2 or arr.shape[0] < 1:
            raise ValueError(f"Expected (channels, n_samples) array, got shape {arr.shape}")
        arr = arr.copy()
        arr.setflags(write=False)
        object.__setattr__(self, "samples", arr)

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def n_samples(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration_s(self) -> float:
        return self.n_samples / self.sample_rate

    def channel(self, index: int = 0) -> NDArray[np.floating]:
        """Return one channel as a 1‑D array."""
        if not 0 <= index < self.channel_count:
            raise ValueError(
                f"Channel {index} out of range (clip has {self.channel_count})"
            )
        return self.samples[index]


@dataclass(frozen=True)
class AudioMetadata:
    """Per‑clip summary, rounded for presentation.

    ``reference_compatible`` holds iff the sample rate equals the
    reference rate and the file is a ``.wav``.
    """

    file_name: str
    file_size_bytes: int
    duration_s: float
    sample_rate: int
    channel_count: int
    format_label: str
    estimated_snr_db: float
    rms_energy: float
    spectral_centroid_hz: int
    reference_compatible: bool

    def to_dict(self) -> dict:
        return asdict(self)


class HealthStatus(str, Enum):
    HEALTHY = "Healthy"
    WARNING = "Warning"
    CRITICAL = "Critical"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class Notification:
    """Payload handed to the presentation layer (toasts, alerts)."""

    title: str
    description: str
    severity: str = "info"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AnalysisResult:
    """Zone‑localized health estimate produced once per completed session."""

    system_name: str
    zone_label: str
    component_name: str
    ai_label: str
    fault_label: str
    health_score: int
    confidence_score: int
    health_status: HealthStatus
    risk_level: RiskLevel
    recommendation: str
    direction_angle_deg: int
    timestamp: datetime = field(default_factory=datetime.now)
    audio_metrics: AudioMetadata | None = None

    def to_dict(self) -> dict:
        """Serialisable snapshot used for report export."""
        d = asdict(self)
        d["health_status"] = self.health_status.value
        d["risk_level"] = self.risk_level.value
        d["timestamp"] = self.timestamp.isoformat(timespec="seconds")
        return d
