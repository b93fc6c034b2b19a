"""MCP Server for acoustic zone health analysis.

Provides tools for decoding machine‑sound clips, extracting acoustic
features, checking them against the reference recording format, and
running a full zone‑localized health analysis via the Model Context
Protocol.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Annotated, Literal
from uuid import uuid4

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from mcp_server_acoustic.analysis.audio_io import (
    check_extension,
    check_size,
    get_audio_file_info,
    load_audio_file,
)
from mcp_server_acoustic.analysis.errors import IngestError
from mcp_server_acoustic.analysis.features import summarize_clip
from mcp_server_acoustic.analysis.models import AnalysisResult, Notification
from mcp_server_acoustic.analysis.reference import load_reference_spec
from mcp_server_acoustic.analysis.session import AnalysisSession, SessionConfig
from mcp_server_acoustic.analysis.test_signal import generate_test_clip
from mcp_server_acoustic.analysis.zones import DEFAULT_CATALOG

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Server instance
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "acoustic",
    instructions=(
        "Acoustic zone health analysis server for power‑plant machinery. "
        "A plant is split into systems, each owning an acoustic zone and an "
        "angle‑of‑arrival sector.  Use list_plant_zones and lookup_component "
        "to find a component id, inspect_audio_file / extract_audio_features "
        "to check a recording against the reference format (16 kHz WAV), and "
        "analyze_component to run a full capture → analysis session that "
        "returns a fault label, health score, risk level and bearing.  "
        "Completed analyses are exported as reports under ~/.acoustic_data/ "
        "and referenced by short IDs (rep_xxxx); use list_reports, get_report "
        "and clear_reports to manage them."
    ),
)

REFERENCE = load_reference_spec()

# ---------------------------------------------------------------------------
# Report store: persisted to ~/.acoustic_data/reports (configurable via
# ACOUSTIC_DATA_DIR env var).
# ---------------------------------------------------------------------------

_DATA_DIR = Path(os.environ.get("ACOUSTIC_DATA_DIR", Path.home() / ".acoustic_data"))
_REPORTS_DIR = _DATA_DIR / "reports"
_CLIPS_DIR = _DATA_DIR / "clips"


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:8]}"


def _report_path(rid: str) -> Path:
    return _REPORTS_DIR / f"{rid}.json"


def _store_report(result: AnalysisResult, alerts: list[Notification]) -> str:
    """Persist a result snapshot to disk and return its report ID."""
    _REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    rid = _new_id("rep")
    payload = {
        "report_id": rid,
        "result": result.to_dict(),
        "alerts": [a.to_dict() for a in alerts],
    }
    _report_path(rid).write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    logger.info("Exported report %s for %s", rid, result.component_name)
    return rid


def _list_report_ids() -> list[str]:
    if not _REPORTS_DIR.exists():
        return []
    return sorted(f.stem for f in _REPORTS_DIR.glob("rep_*.json"))


# ===================================================================
# RESOURCE: Reference recording format
# ===================================================================

@mcp.resource("acoustic://reference-spec")
def reference_spec_resource() -> str:
    """Reference recording format (MIMII industrial machine‑sound dataset)."""
    return json.dumps(REFERENCE.to_dict(), indent=2)


# ===================================================================
# TOOL 1: Plant hierarchy
# ===================================================================

@mcp.tool()
def list_plant_zones(
    include_components: Annotated[bool, Field(description="Include subsystems and components for each system", default=False)] = False,
) -> str:
    """List plant systems with their acoustic zone and angle sector.

    Sectors are given in degrees as [min, max) and together cover the
    full circle around the listening array.
    """
    return json.dumps({
        "systems": [s.to_dict(include_components) for s in DEFAULT_CATALOG.systems],
        "n_components": len(DEFAULT_CATALOG.component_ids()),
    }, indent=2)


@mcp.tool()
def lookup_component(
    component_id: Annotated[str, Field(description="Component id, e.g. 'boiler-feed-pump'")],
) -> str:
    """Resolve a component id to its system, zone, sector and candidate faults."""
    zone = DEFAULT_CATALOG.lookup_by_component_id(component_id)
    if zone is None:
        return json.dumps({
            "error": f"Unknown component '{component_id}'.",
            "known_components": DEFAULT_CATALOG.component_ids(),
        })
    return json.dumps(zone.to_dict(), indent=2)


# ===================================================================
# TOOL 2: Inspect file
# ===================================================================

@mcp.tool()
def inspect_audio_file(
    file_path: Annotated[str, Field(description="Absolute path to the audio file")],
) -> str:
    """Read an audio file's header (container, rate, channels, duration) without decoding it."""
    info = get_audio_file_info(file_path, REFERENCE)
    info["within_size_limit"] = info["size_bytes"] <= REFERENCE.max_file_size_bytes
    return json.dumps(info, indent=2, default=str)


# ===================================================================
# TOOL 3: Feature extraction
# ===================================================================

@mcp.tool()
def extract_audio_features(
    file_path: Annotated[str, Field(description="Absolute path to the audio file (WAV, MP3, OGG, FLAC, M4A)")],
) -> str:
    """Decode a clip and compute RMS energy, spectral centroid and SNR.

    Also reports the format label and whether the clip is compatible with
    the reference format (16 kHz sample rate in a WAV container).
    """
    try:
        decoded, size_bytes = load_audio_file(file_path, reference=REFERENCE)
    except IngestError as exc:
        return json.dumps({"error": exc.user_message, "detail": str(exc)})

    metadata = summarize_clip(decoded, Path(file_path).name, size_bytes, REFERENCE)
    return json.dumps(metadata.to_dict(), indent=2)


# ===================================================================
# TOOL 4: Synthetic clip
# ===================================================================

@mcp.tool()
def generate_test_audio_clip(
    duration_s: Annotated[float, Field(description="Clip duration in seconds", default=2.0)] = 2.0,
    sample_rate: Annotated[int, Field(description="Sample rate in Hz", default=16000)] = 16000,
    freq_hz: Annotated[float, Field(description="Fundamental hum frequency in Hz", default=440.0)] = 440.0,
    effects: Annotated[list[str] | None, Field(description="Effects to add: 'hiss', 'impacts', 'intermittent'", default=None)] = None,
) -> str:
    """Generate a synthetic machine‑sound WAV clip and save it to the data directory.

    Returns the file path, ready for extract_audio_features or
    analyze_component.
    """
    clip = generate_test_clip(
        duration_s=duration_s,
        fs_sample=sample_rate,
        freq_hz=freq_hz,
        effects=effects,
    )
    _CLIPS_DIR.mkdir(parents=True, exist_ok=True)
    path = _CLIPS_DIR / f"{_new_id('clip')}.wav"
    path.write_bytes(clip["wav_bytes"])
    return json.dumps({
        "file_path": str(path),
        "sampling_freq_hz": clip["sampling_freq_hz"],
        "duration_s": clip["duration_s"],
        "n_samples": clip["n_samples"],
        "effects_applied": clip["effects_applied"],
    }, indent=2)


# ===================================================================
# TOOL 5: Full analysis session
# ===================================================================

@mcp.tool()
async def analyze_component(
    component_id: Annotated[str | None, Field(description="Component id to analyse (see lookup_component)", default=None)] = None,
    system_id: Annotated[str | None, Field(description="System id, used when the component is unknown", default=None)] = None,
    file_path: Annotated[str | None, Field(description="Audio file to analyse. Omit to use a synthetic clip", default=None)] = None,
    seed: Annotated[int | None, Field(description="Random seed for reproducible scoring", default=None)] = None,
    realtime: Annotated[bool, Field(description="Play the clip back in real time (up to 10 s)", default=False)] = False,
) -> str:
    """Run one acoustic analysis session for a plant component.

    Selects the clip, plays it through the capture stage, extracts
    features, then localizes the sound within the component's zone and
    estimates fault, health score, confidence and risk.  The result is
    exported as a report.
    """
    zone = DEFAULT_CATALOG.resolve(component_id, system_id)
    alerts: list[Notification] = []
    session = AnalysisSession(
        zone,
        reference=REFERENCE,
        config=SessionConfig(progress_interval_s=0.0, realtime_file_playback=realtime),
        rng=seed,
        on_notification=alerts.append,
    )

    if file_path is not None:
        path = Path(file_path).resolve()
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        # checked from name and stat so rejected files are never read
        try:
            check_extension(path.name, REFERENCE)
            check_size(path.stat().st_size, REFERENCE)
        except IngestError as exc:
            return json.dumps({"error": exc.user_message, "state": session.state.value})
        data = await asyncio.to_thread(path.read_bytes)
        name = path.name
    else:
        data = generate_test_clip()["wav_bytes"]
        name = "synthetic.wav"

    if await asyncio.to_thread(session.select_file, data, name) is None:
        return json.dumps({"error": session.last_error, "state": session.state.value})

    result = await session.start()
    if result is None:
        return json.dumps({"error": session.last_error, "state": session.state.value})
    rid = _store_report(result, alerts)

    return json.dumps({
        "report_id": rid,
        "state": session.state.value,
        "result": result.to_dict(),
        "alerts": [a.to_dict() for a in alerts],
    }, indent=2, default=str)


# ===================================================================
# UTILITY TOOLS: Report store management
# ===================================================================

@mcp.tool()
def list_reports() -> str:
    """List exported analysis reports with their component and health summary."""
    items = []
    for rid in _list_report_ids():
        try:
            payload = json.loads(_report_path(rid).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            items.append({"id": rid, "error": "could not load"})
            continue
        res = payload.get("result", {})
        items.append({
            "id": rid,
            "component": res.get("component_name"),
            "system": res.get("system_name"),
            "fault": res.get("fault_label"),
            "health_score": res.get("health_score"),
            "risk_level": res.get("risk_level"),
            "timestamp": res.get("timestamp"),
        })
    return json.dumps({
        "reports": items,
        "total": len(items),
        "data_directory": str(_DATA_DIR),
    }, indent=2, default=str)


@mcp.tool()
def get_report(
    report_id: Annotated[str, Field(description="Report ID returned by analyze_component")],
) -> str:
    """Return the full content of an exported report."""
    path = _report_path(report_id)
    if not path.exists():
        return json.dumps({"error": f"Report '{report_id}' not found."})
    return path.read_text(encoding="utf-8")


@mcp.tool()
def clear_reports(
    report_id: Annotated[str | None, Field(description="ID of a specific report to remove, or omit to clear everything", default=None)] = None,
) -> str:
    """Delete exported reports from disk.

    Pass a specific report_id to remove one report, or omit to clear all.
    """
    if report_id is not None:
        path = _report_path(report_id)
        if path.exists():
            path.unlink()
            return json.dumps({"cleared": report_id, "remaining": len(_list_report_ids())})
        return json.dumps({"error": f"Report '{report_id}' not found."})

    count = 0
    for rid in _list_report_ids():
        _report_path(rid).unlink()
        count += 1
    return json.dumps({"cleared": "all", "items_removed": count})


# ===================================================================
# PROMPT: Guided health check
# ===================================================================

@mcp.prompt()
def acoustic_health_check(component_id: str = "boiler-feed-pump") -> str:
    """Step-by-step guided prompt for an acoustic health check of one component."""
    return f"""You are performing an acoustic health check on plant component '{component_id}'.

Follow this workflow:

1. **Resolve the component** with `lookup_component` to get its system, zone,
   angle sector and the fault types it is known for.

2. **Check the recording**:
   - `inspect_audio_file` reads the header without decoding.
   - `extract_audio_features` returns RMS energy, spectral centroid, estimated
     SNR and whether the clip matches the reference format (16 kHz WAV).
   - Clips larger than {REFERENCE.max_file_size_mb:g} MB are rejected.
   - No recording?  Create one with `generate_test_audio_clip`.

3. **Run the analysis** with `analyze_component(component_id=..., file_path=...)`.
   It returns a report_id and the result: fault label, health score,
   confidence, risk level, recommendation and the bearing (degrees) inside
   the component's zone.

4. Critical health (score below 55) comes with an alert — call it out first.

Report the findings with the risk level and the recommended action.
"""


# ---------------------------------------------------------------------------
# Server entry
# ---------------------------------------------------------------------------

def serve(transport: Literal["stdio", "sse", "streamable-http"] = "stdio") -> None:
    """Start the acoustic analysis MCP server."""
    mcp.run(transport=transport)
