"""Audio ingestion: decode encoded clips into sample buffers.

Decoding goes through ``soundfile`` (libsndfile), which reads WAV, FLAC,
OGG/Vorbis and — with libsndfile ≥ 1.1 — MP3.  Containers libsndfile
cannot parse (M4A/AAC on most builds) surface as
:class:`~mcp_server_acoustic.analysis.errors.UnsupportedFormat`.

Size limits are enforced by the caller *before* any decode is attempted;
:func:`load_audio_file` does so from the file's ``stat`` size.
"""

from __future__ import annotations

import io
import logging
from math import gcd
from pathlib import Path

import numpy as np
import soundfile as sf
from scipy import signal as sig

from mcp_server_acoustic.analysis.errors import EmptyAudio, OversizeInput, UnsupportedFormat
from mcp_server_acoustic.analysis.models import DecodedAudio
from mcp_server_acoustic.analysis.reference import DEFAULT_REFERENCE, ReferenceSpec

logger = logging.getLogger(__name__)


def check_size(size_bytes: int, reference: ReferenceSpec = DEFAULT_REFERENCE) -> None:
    """Reject inputs larger than ``reference.max_file_size_bytes``.

    Raises:
        OversizeInput: If the input is too large.
    """
    if size_bytes > reference.max_file_size_bytes:
        raise OversizeInput(size_bytes, reference.max_file_size_bytes)


def check_extension(file_name: str, reference: ReferenceSpec = DEFAULT_REFERENCE) -> None:
    """Reject file names whose extension is not an accepted container.

    Raises:
        UnsupportedFormat: If the extension is not in
            ``reference.accepted_formats``.
    """
    ext = Path(file_name).suffix.lower()
    if ext not in reference.accepted_formats:
        raise UnsupportedFormat(f"Extension '{ext}' of {file_name!r} is not accepted")


def resample(
    samples: np.ndarray,
    orig_rate: int,
    target_rate: int,
) -> np.ndarray:
    """Polyphase resampling along the last axis."""
    if orig_rate == target_rate:
        return samples
    g = gcd(int(orig_rate), int(target_rate))
    up = int(target_rate) // g
    down = int(orig_rate) // g
    return sig.resample_poly(samples, up, down, axis=-1)


def decode(
    data: bytes,
    requested_sample_rate: int | None = None,
) -> DecodedAudio:
    """Decode an encoded audio buffer.

    Args:
        data: Raw bytes of a WAV/FLAC/OGG/MP3 (or other libsndfile) file.
        requested_sample_rate: If given, resample the decoded clip to this
            rate.

    Returns:
        DecodedAudio with every channel of the clip.

    Raises:
        UnsupportedFormat: If no container can parse ``data``.
        EmptyAudio: If decoding yields zero samples.
        ValueError: If ``requested_sample_rate`` is not positive.
    """
    if requested_sample_rate is not None and requested_sample_rate <= 0:
        raise ValueError(
            f"requested_sample_rate must be > 0, got {requested_sample_rate}"
        )

    try:
        with sf.SoundFile(io.BytesIO(data)) as f:
            sample_rate = int(f.samplerate)
            frames = f.read(dtype="float64", always_2d=True)
    except (sf.SoundFileError, RuntimeError) as exc:
        logger.info("Decode failed for %d-byte buffer: %s", len(data), exc)
        raise UnsupportedFormat(str(exc)) from exc

    if frames.size == 0:
        raise EmptyAudio("Decoded clip contains no samples")

    samples = frames.T
    if requested_sample_rate is not None and requested_sample_rate != sample_rate:
        samples = resample(samples, sample_rate, requested_sample_rate)
        sample_rate = int(requested_sample_rate)
        if samples.shape[-1] == 0:
            raise EmptyAudio("Resampled clip contains no samples")

    return DecodedAudio(sample_rate=sample_rate, samples=np.clip(samples, -1.0, 1.0))


def load_audio_file(
    file_path: str,
    requested_sample_rate: int | None = None,
    reference: ReferenceSpec = DEFAULT_REFERENCE,
) -> tuple[DecodedAudio, int]:
    """Read and decode an audio file from disk.

    The size check runs on the file's metadata before its contents are
    read.

    Returns:
        ``(decoded, file_size_bytes)``.

    Raises:
        FileNotFoundError: If the file does not exist.
        OversizeInput: If the file exceeds the reference size limit.
        UnsupportedFormat: If the extension is not accepted.
        DecodeFailure: If the contents cannot be decoded.
    """
    path = Path(file_path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    check_extension(path.name, reference)
    size_bytes = path.stat().st_size
    check_size(size_bytes, reference)
    decoded = decode(path.read_bytes(), requested_sample_rate)
    return decoded, size_bytes


def encode_wav(
    samples: np.ndarray,
    sample_rate: int,
    subtype: str = "PCM_16",
) -> bytes:
    """Encode samples (1‑D, or ``(channels, n)``) as WAV bytes."""
    arr = np.asarray(samples, dtype=np.float64)
    if arr.ndim == 2:
        arr = arr.T
    buf = io.BytesIO()
    sf.write(buf, np.clip(arr, -1.0, 1.0), int(sample_rate), format="WAV", subtype=subtype)
    return buf.getvalue()


def get_audio_file_info(
    file_path: str,
    reference: ReferenceSpec = DEFAULT_REFERENCE,
) -> dict:
    """Return file metadata without decoding the samples.

    Args:
        file_path: Path to the audio file.
        reference: Reference whose accepted formats are reported against.

    Returns:
        Dictionary with file size, container details and duration.
    """
    path = Path(file_path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    ext = path.suffix.lower()
    size_bytes = path.stat().st_size
    info: dict = {
        "file_path": str(path),
        "file_name": path.name,
        "extension": ext,
        "size_bytes": size_bytes,
        "size_mb": round(size_bytes / (1024 * 1024), 2),
        "accepted_extension": ext in reference.accepted_formats,
    }

    try:
        hdr = sf.info(str(path))
    except (sf.SoundFileError, RuntimeError) as e:
        info["format"] = "unknown"
        info["error"] = str(e)
        return info

    info["format"] = hdr.format
    info["subtype"] = hdr.subtype
    info["channels"] = hdr.channels
    info["sample_rate"] = hdr.samplerate
    info["n_frames"] = hdr.frames
    info["duration_s"] = round(hdr.frames / hdr.samplerate, 3) if hdr.samplerate else 0.0
    return info
