"""Format labelling and reference‑compatibility checks."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath

from mcp_server_acoustic.analysis.models import DecodedAudio
from mcp_server_acoustic.analysis.reference import DEFAULT_REFERENCE, ReferenceSpec

FORMAT_LABELS = {
    "wav": "WAV (PCM)",
    "mp3": "MP3 (Compressed)",
    "ogg": "OGG Vorbis",
    "flac": "FLAC (Lossless)",
    "m4a": "M4A (AAC)",
}


@dataclass(frozen=True)
class FormatVerdict:
    format_label: str
    reference_compatible: bool


def file_extension(file_name: str) -> str:
    """Lower‑case extension without the dot (``""`` if there is none)."""
    return PurePath(file_name).suffix.lower().lstrip(".")


def format_label(file_name: str) -> str:
    """Human‑readable container label; unknown extensions are upper‑cased."""
    ext = file_extension(file_name)
    return FORMAT_LABELS.get(ext, ext.upper())


def is_reference_compatible(
    sample_rate: int,
    file_name: str,
    reference: ReferenceSpec = DEFAULT_REFERENCE,
) -> bool:
    """True iff the rate matches the reference and the file is a WAV.

    A matching rate alone is not enough: only the uncompressed container
    compares bit‑for‑bit with the reference corpus.
    """
    return sample_rate == reference.sample_rate and file_name.lower().endswith(".wav")


def validate(
    decoded: DecodedAudio,
    file_name: str,
    reference: ReferenceSpec = DEFAULT_REFERENCE,
) -> FormatVerdict:
    return FormatVerdict(
        format_label=format_label(file_name),
        reference_compatible=is_reference_compatible(
            decoded.sample_rate, file_name, reference
        ),
    )
