"""Capture‑to‑result session state machine.

State machine::

    AWAITING ──start──→ LISTENING ──(window elapsed | stop)──→ ANALYZING
                            ↑                                      │
                            └──start── COMPLETE ←──(progress 100)──┘

Any other transition raises :class:`InvalidTransitionError`.  A run that fails or
is cancelled after capture started is aborted back to ``AWAITING``.  Capture runs
as a background task bounded by the capture window and cancelled by an
explicit stop; analysis runs feature extraction first (in a worker
thread), then a progress loop, then localization.  Capture sources are
async context managers so device handles are released on every exit
path, including task cancellation.

Usage::

    session = AnalysisSession(DEFAULT_CATALOG.resolve("boiler-feed-pump"))
    session.select_file(data, "pump.wav")
    result = await session.start()
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

import numpy as np
from numpy.typing import NDArray

from mcp_server_acoustic.analysis.audio_io import check_extension, check_size, decode
from mcp_server_acoustic.analysis.errors import (
    IngestError,
    InvalidTransitionError,
    PermissionDenied,
)
from mcp_server_acoustic.analysis.features import decibel_level, summarize_clip
from mcp_server_acoustic.analysis.localization import Predictor, infer
from mcp_server_acoustic.analysis.models import (
    AnalysisResult,
    AudioMetadata,
    DecodedAudio,
    Notification,
)
from mcp_server_acoustic.analysis.reference import DEFAULT_REFERENCE, ReferenceSpec
from mcp_server_acoustic.analysis.zones import ZoneDescriptor

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    AWAITING = "awaiting"
    LISTENING = "listening"
    ANALYZING = "analyzing"
    COMPLETE = "complete"


ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.AWAITING: frozenset({SessionState.LISTENING}),
    SessionState.LISTENING: frozenset({SessionState.ANALYZING}),
    SessionState.ANALYZING: frozenset({SessionState.COMPLETE}),
    SessionState.COMPLETE: frozenset({SessionState.LISTENING}),
}

LIVE_CAPTURE_LABEL = "Live Capture"


@dataclass(frozen=True)
class SessionConfig:
    """Timing of one session.

    Attributes:
        live_capture_window_s: Capture window for live streams.
        progress_interval_s: Delay between analysis progress steps.
        max_progress_step: Largest single progress increment (percent).
        capture_frame_size: Samples per frame when playing back a file.
        realtime_file_playback: Pace file playback at the clip's real rate.
    """

    live_capture_window_s: float = 12.0
    progress_interval_s: float = 0.3
    max_progress_step: float = 15.0
    capture_frame_size: int = 1024
    realtime_file_playback: bool = True

    def __post_init__(self) -> None:
        if self.live_capture_window_s <= 0:
            raise ValueError(
                f"live_capture_window_s must be > 0, got {self.live_capture_window_s}"
            )
        if self.progress_interval_s < 0:
            raise ValueError(
                f"progress_interval_s must be ≥ 0, got {self.progress_interval_s}"
            )
        if not 0 < self.max_progress_step <= 100:
            raise ValueError(
                f"max_progress_step must be in (0, 100], got {self.max_progress_step}"
            )
        if self.capture_frame_size < 1:
            raise ValueError(
                f"capture_frame_size must be ≥ 1, got {self.capture_frame_size}"
            )


# ---------------------------------------------------------------------------
# Capture sources
# ---------------------------------------------------------------------------

class CaptureSource:
    """Base class for audio frame sources.

    ``__aenter__`` acquires the device (and may raise
    :class:`PermissionDenied`); ``__aexit__`` releases it.
    """

    sample_rate: int
    is_open: bool = False

    async def __aenter__(self) -> CaptureSource:
        self.is_open = True
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.is_open = False

    def frames(self) -> AsyncIterator[NDArray[np.floating]]:
        raise NotImplementedError

    def window_s(self, config: SessionConfig, reference: ReferenceSpec) -> float:
        raise NotImplementedError


class FileCapture(CaptureSource):
    """Plays a decoded clip back as a frame stream.

    The capture window is ``min(clip duration, reference segment)``.
    """

    def __init__(
        self,
        decoded: DecodedAudio,
        metadata: AudioMetadata,
        frame_size: int = 1024,
        realtime: bool = True,
    ) -> None:
        self.decoded = decoded
        self.metadata = metadata
        self.sample_rate = decoded.sample_rate
        self.frame_size = frame_size
        self.realtime = realtime

    async def frames(self) -> AsyncIterator[NDArray[np.floating]]:
        x = self.decoded.channel(0)
        delay = self.frame_size / self.sample_rate if self.realtime else 0.0
        for start in range(0, len(x), self.frame_size):
            yield x[start: start + self.frame_size]
            await asyncio.sleep(delay)

    def window_s(self, config: SessionConfig, reference: ReferenceSpec) -> float:
        return min(self.decoded.duration_s, reference.segment_duration_s)


class LiveCapture(CaptureSource):
    """Wraps a frame stream delivered by an external capture transport.

    Args:
        stream: Async iterator of 1‑D (mono) or ``(channels, n)`` frames.
        sample_rate: Sampling frequency of the stream in Hz.
        request_permission: Awaited on open; returning ``False`` means
            access was refused.
        release: Called on close to hand the device back.
    """

    def __init__(
        self,
        stream: AsyncIterator[NDArray[np.floating]],
        sample_rate: int,
        request_permission: Callable[[], Awaitable[bool]] | None = None,
        release: Callable[[], None] | None = None,
    ) -> None:
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be > 0, got {sample_rate}")
        self.stream = stream
        self.sample_rate = sample_rate
        self._request_permission = request_permission
        self._release = release

    async def __aenter__(self) -> LiveCapture:
        if self._request_permission is not None and not await self._request_permission():
            raise PermissionDenied("Capture device access refused")
        self.is_open = True
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        try:
            aclose = getattr(self.stream, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self._release is not None:
                self._release()
            self.is_open = False

    async def frames(self) -> AsyncIterator[NDArray[np.floating]]:
        async for frame in self.stream:
            arr = np.asarray(frame, dtype=np.float64)
            yield arr[0] if arr.ndim == 2 else arr

    def window_s(self, config: SessionConfig, reference: ReferenceSpec) -> float:
        return config.live_capture_window_s


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class AnalysisSession:
    """One capture → analysis → result cycle for a single zone.

    Args:
        zone: Target zone (from the plant catalog).
        reference: Reference audio format.
        config: Session timing.
        predictor: Scoring model passed to localization.
        rng: Random generator or seed (progress steps and scoring).
        on_progress: Called with each new progress value (0–100).
        on_notification: Called with user‑facing notifications (errors,
            critical alerts).
        on_state_change: Called with each new state.
    """

    def __init__(
        self,
        zone: ZoneDescriptor,
        reference: ReferenceSpec = DEFAULT_REFERENCE,
        config: SessionConfig | None = None,
        predictor: Predictor | None = None,
        rng: np.random.Generator | int | None = None,
        on_progress: Callable[[float], None] | None = None,
        on_notification: Callable[[Notification], None] | None = None,
        on_state_change: Callable[[SessionState], None] | None = None,
    ) -> None:
        self.zone = zone
        self.reference = reference
        self.config = config or SessionConfig()
        self.predictor = predictor
        self.rng = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)
        self._on_progress = on_progress
        self._on_notification = on_notification
        self._on_state_change = on_state_change

        self.state = SessionState.AWAITING
        self.result: AnalysisResult | None = None
        self.progress = 0.0
        self.decibel_level = 0.0
        self.last_error: str | None = None

        self._decoded: DecodedAudio | None = None
        self._file_metadata: AudioMetadata | None = None
        self._stop: asyncio.Event | None = None

    # --- state --------------------------------------------------------

    def can_transition(self, target: SessionState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]

    def _transition(self, target: SessionState) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(self.state, target)
        logger.debug("Session %s: %s -> %s", self.zone.component_name, self.state.value, target.value)
        self.state = target
        if self._on_state_change is not None:
            self._on_state_change(target)

    def _notify(self, notification: Notification) -> None:
        if self._on_notification is not None:
            self._on_notification(notification)

    def _fail(self, exc: IngestError) -> None:
        self.last_error = exc.user_message
        self._decoded = None
        self._file_metadata = None
        logger.info("Ingestion rejected: %s", exc)
        title = "Microphone Access Denied" if isinstance(exc, PermissionDenied) else "Audio Input Rejected"
        self._notify(Notification(title=title, description=exc.user_message, severity="error"))

    def _abort(self) -> None:
        # bypasses ALLOWED_TRANSITIONS
        logger.warning(
            "Session %s aborted while %s; back to %s",
            self.zone.component_name, self.state.value, SessionState.AWAITING.value,
        )
        self.state = SessionState.AWAITING
        self.progress = 0.0
        self.last_error = None
        self._decoded = None
        self._file_metadata = None
        if self._on_state_change is not None:
            self._on_state_change(SessionState.AWAITING)

    def _set_progress(self, value: float) -> None:
        self.progress = value
        if self._on_progress is not None:
            self._on_progress(value)

    @property
    def file_metadata(self) -> AudioMetadata | None:
        return self._file_metadata

    @property
    def busy(self) -> bool:
        return self.state in (SessionState.LISTENING, SessionState.ANALYZING)

    # --- file slot ----------------------------------------------------

    def select_file(self, data: bytes, file_name: str) -> AudioMetadata | None:
        """Decode an uploaded clip into the session's file slot.

        Input with an unaccepted extension, oversized or undecodable
        input is rejected here: the slot is
        cleared, ``last_error`` is set, a notification is emitted and
        ``None`` is returned.  The state is never changed.
        """
        if self.busy:
            logger.warning("File selection ignored while %s", self.state.value)
            return None

        self.last_error = None
        try:
            check_extension(file_name, self.reference)
            check_size(len(data), self.reference)
            decoded = decode(data)
            metadata = summarize_clip(decoded, file_name, len(data), self.reference)
        except IngestError as exc:
            self._fail(exc)
            return None

        self._decoded = decoded
        self._file_metadata = metadata
        logger.info(
            "Selected %s: %.2f s @ %d Hz, %d ch, reference_compatible=%s",
            file_name, metadata.duration_s, metadata.sample_rate,
            metadata.channel_count, metadata.reference_compatible,
        )
        return metadata

    def clear_file(self) -> None:
        if not self.busy:
            self._decoded = None
            self._file_metadata = None
            self.last_error = None

    # --- run ----------------------------------------------------------

    def request_stop(self) -> bool:
        """Cut the capture window short.

        Only meaningful while listening; returns ``False`` (no‑op) in any
        other state.
        """
        if self.state is not SessionState.LISTENING or self._stop is None:
            return False
        self._stop.set()
        return True

    async def start(self, source: CaptureSource | None = None) -> AnalysisResult | None:
        """Run one session through to ``COMPLETE``.

        Args:
            source: Capture source.  Default → play back the selected file.

        Returns:
            The new result, or ``None`` if capture could not start
            (permission refused).

        If the capture stream fails or the run is cancelled after capture
        started, the device is released, the session is reset to
        ``AWAITING`` with an empty file slot and the exception is re‑raised.

        Raises:
            InvalidTransitionError: If called while listening or analyzing.
            ValueError: If there is neither a source nor a selected file.
        """
        if not self.can_transition(SessionState.LISTENING):
            raise InvalidTransitionError(self.state, SessionState.LISTENING)
        if source is None:
            if self._decoded is None or self._file_metadata is None:
                raise ValueError("No capture source given and no file selected")
            source = FileCapture(
                self._decoded,
                self._file_metadata,
                frame_size=self.config.capture_frame_size,
                realtime=self.config.realtime_file_playback,
            )

        stop = self._stop = asyncio.Event()
        try:
            try:
                async with source:
                    self._transition(SessionState.LISTENING)
                    self.result = None
                    self.last_error = None
                    self._set_progress(0.0)
                    captured = await self._capture(source, stop)
            finally:
                self._stop = None
                self.decibel_level = 0.0
            return await self._analyze(source, captured)
        except PermissionDenied as exc:
            self._fail(exc)
            return None
        except (Exception, asyncio.CancelledError):
            if self.busy:
                self._abort()
            raise

    async def _capture(
        self,
        source: CaptureSource,
        stop: asyncio.Event,
    ) -> NDArray[np.floating]:
        chunks: list[NDArray[np.floating]] = []

        async def pump() -> None:
            async for frame in source.frames():
                chunks.append(frame)
                self.decibel_level = decibel_level(frame)

        pump_task = asyncio.create_task(pump())
        stop_task = asyncio.create_task(stop.wait())
        window = source.window_s(self.config, self.reference)
        try:
            done, _ = await asyncio.wait(
                {pump_task, stop_task},
                timeout=window,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (pump_task, stop_task):
                task.cancel()
            await asyncio.gather(pump_task, stop_task, return_exceptions=True)

        if pump_task in done and not pump_task.cancelled():
            exc = pump_task.exception()
            if exc is not None:
                raise exc
        if stop_task in done:
            logger.info("Capture stopped early for %s", self.zone.component_name)

        if not chunks:
            return np.zeros(0, dtype=np.float64)
        return np.concatenate(chunks)

    def _extract_features(
        self,
        source: CaptureSource,
        captured: NDArray[np.floating],
    ) -> AudioMetadata | None:
        if isinstance(source, FileCapture):
            return source.metadata
        if captured.size == 0:
            return None
        clip = DecodedAudio(sample_rate=source.sample_rate, samples=captured)
        metadata = summarize_clip(clip, LIVE_CAPTURE_LABEL, captured.nbytes, self.reference)
        return dataclasses.replace(
            metadata, format_label=LIVE_CAPTURE_LABEL, reference_compatible=False
        )

    async def _analyze(
        self,
        source: CaptureSource,
        captured: NDArray[np.floating],
    ) -> AnalysisResult:
        self._transition(SessionState.ANALYZING)

        metrics = await asyncio.to_thread(self._extract_features, source, captured)

        progress = 0.0
        while progress < 100.0:
            await asyncio.sleep(self.config.progress_interval_s)
            step = self.config.max_progress_step * (1.0 - self.rng.random())
            progress = min(100.0, progress + step)
            self._set_progress(progress)

        localization = infer(self.zone, self.rng, metrics, self.predictor)
        self.result = localization.result
        self._transition(SessionState.COMPLETE)

        if localization.alert is not None:
            self._notify(localization.alert)
        return localization.result
