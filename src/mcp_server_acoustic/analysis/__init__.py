"""Acoustic analysis library — ingestion, features, localization and sessions."""

from mcp_server_acoustic.analysis.audio_io import decode, load_audio_file
from mcp_server_acoustic.analysis.features import (
    estimate_snr,
    rms_energy,
    spectral_centroid,
    summarize_clip,
)
from mcp_server_acoustic.analysis.localization import infer
from mcp_server_acoustic.analysis.models import AnalysisResult, AudioMetadata, DecodedAudio
from mcp_server_acoustic.analysis.reference import ReferenceSpec, load_reference_spec
from mcp_server_acoustic.analysis.session import AnalysisSession, SessionState
from mcp_server_acoustic.analysis.validation import validate
from mcp_server_acoustic.analysis.zones import DEFAULT_CATALOG, ZoneCatalog, ZoneDescriptor

__all__ = [
    "decode",
    "load_audio_file",
    "rms_energy",
    "spectral_centroid",
    "estimate_snr",
    "summarize_clip",
    "validate",
    "infer",
    "AnalysisSession",
    "SessionState",
    "AnalysisResult",
    "AudioMetadata",
    "DecodedAudio",
    "ReferenceSpec",
    "load_reference_spec",
    "ZoneCatalog",
    "ZoneDescriptor",
    "DEFAULT_CATALOG",
]
