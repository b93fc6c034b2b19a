"""Plant hierarchy catalog: systems → subsystems → components.

Each system owns an acoustic zone and an angle‑of‑arrival sector
``[min_deg, max_deg)``; the six sectors tile the full circle.  The catalog
is built once at import time from immutable records and only read
afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True)
class PlantComponent:
    id: str
    name: str
    ai_label: str
    faults: tuple[str, ...]
    sound_characteristics: str


@dataclass(frozen=True)
class Subsystem:
    id: str
    name: str
    components: tuple[PlantComponent, ...]


@dataclass(frozen=True)
class PlantSystem:
    """One plant system and the acoustic sector it occupies.

    Attributes:
        id: Stable identifier (``"feedwater"``).
        name: Display name.
        description: One‑line summary.
        zone: Zone label (``"ZONE E"``).
        angle_range: ``(min_deg, max_deg)`` with ``0 ≤ min < max ≤ 360``.
        subsystems: Ordered subsystems.
    """

    id: str
    name: str
    description: str
    zone: str
    angle_range: tuple[int, int]
    subsystems: tuple[Subsystem, ...]

    def __post_init__(self) -> None:
        lo, hi = self.angle_range
        if not 0 <= lo < hi <= 360:
            raise ValueError(f"Invalid angle range for {self.id}: {self.angle_range}")

    def to_dict(self, include_components: bool = False) -> dict:
        d: dict = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "zone": self.zone,
            "angle_range_deg": list(self.angle_range),
        }
        if include_components:
            d["subsystems"] = [
                {
                    "id": sub.id,
                    "name": sub.name,
                    "components": [
                        {"id": c.id, "name": c.name, "faults": list(c.faults)}
                        for c in sub.components
                    ],
                }
                for sub in self.subsystems
            ]
        return d


@dataclass(frozen=True)
class ZoneDescriptor:
    """Everything the localization engine needs to know about a target."""

    system_name: str
    subsystem_name: str
    zone_label: str
    angle_range: tuple[int, int]
    component_name: str
    ai_label: str
    candidate_faults: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "system_name": self.system_name,
            "subsystem_name": self.subsystem_name,
            "zone_label": self.zone_label,
            "angle_range_deg": list(self.angle_range),
            "component_name": self.component_name,
            "ai_label": self.ai_label,
            "candidate_faults": list(self.candidate_faults),
        }


def _c(id: str, name: str, ai_label: str, faults: list[str], sound: str) -> PlantComponent:
    return PlantComponent(id, name, ai_label, tuple(faults), sound)


PLANT_SYSTEMS: tuple[PlantSystem, ...] = (
    PlantSystem(
        id="boiler",
        name="Boiler System",
        description="Steam generation through fuel combustion: furnace, superheater, economizer and drum.",
        zone="ZONE A",
        angle_range=(0, 30),
        subsystems=(
            Subsystem("boiler-furnace", "Furnace & Tubes", (
                _c("furnace-walls", "Furnace Wall Tubes", "boiler_furnace_zone", ["Tube Leak", "Overheating"], "High-frequency hiss from steam escape"),
                _c("superheater", "Superheater", "boiler_superheater_zone", ["Tube Erosion", "Overheating"], "Broadband noise with temperature-linked amplitude"),
                _c("reheater", "Reheater", "boiler_reheater_zone", ["Thermal Fatigue", "Tube Leak"], "Intermittent high-frequency bursts"),
                _c("economizer", "Economizer", "boiler_economizer_zone", ["Corrosion", "Blockage"], "Low-frequency rumble with flow restriction noise"),
                _c("drum", "Drum", "boiler_drum_zone", ["Water Level Fault", "Pressure Surge"], "Thumping or hammering at irregular intervals"),
            )),
            Subsystem("boiler-valves", "Boiler Valves", (
                _c("blowdown-valve", "Blowdown Valve", "boiler_blowdown_valve", ["Leakage", "Stuck Open"], "Continuous steam hiss above 4kHz"),
                _c("safety-valve", "Safety Valve", "boiler_safety_valve", ["Premature Lift", "Seat Leak"], "Sharp pressure-release burst"),
                _c("steam-outlet-valve", "Steam Outlet Valve", "boiler_steam_outlet_valve", ["Erosion", "Vibration"], "Ultrasonic hiss with valve flutter"),
            )),
        ),
    ),
    PlantSystem(
        id="steam-turbine",
        name="Steam & Turbine System",
        description="Main steam piping, control/stop valves and HP/IP/LP turbine stages.",
        zone="ZONE B–C",
        angle_range=(30, 140),
        subsystems=(
            Subsystem("steam-line", "Main Steam Line", (
                _c("main-steam-pipe", "Main Steam Pipe", "main_steam_line_zone", ["Steam Leakage", "Thermal Expansion Stress"], "High-frequency hiss and pipe resonance"),
                _c("control-valve", "Control Valve", "turbine_control_valve_zone", ["Leakage", "Valve Flutter", "Cavitation"], "Irregular fluttering with cavitation noise"),
                _c("stop-valve", "Stop Valve", "turbine_stop_valve_zone", ["Seat Erosion", "Stuck"], "Grinding noise during operation"),
            )),
            Subsystem("turbine-stages", "Turbine Stages", (
                _c("hp-turbine", "HP Turbine", "hp_turbine_zone", ["Blade Damage", "Bearing Wear", "Shaft Misalignment"], "Blade-pass frequency anomalies, 2x RPM harmonics"),
                _c("ip-turbine", "IP Turbine", "ip_turbine_zone", ["Blade Erosion", "Vibration"], "Mid-frequency vibration hum"),
                _c("lp-turbine", "LP Turbine", "lp_turbine_zone", ["Blade Fouling", "Exhaust Wetness"], "Low-frequency rumble with moisture impact noise"),
            )),
        ),
    ),
    PlantSystem(
        id="condenser-cooling",
        name="Condenser & Cooling System",
        description="Condenser tubes, circulating water pumps, cooling tower lines and associated valves.",
        zone="ZONE D",
        angle_range=(140, 200),
        subsystems=(
            Subsystem("condenser", "Condenser", (
                _c("condenser-tubes", "Condenser Tubes", "condenser_zone", ["Tube Leak", "Fouling"], "Air ingress whistle, flow turbulence"),
                _c("circ-water-pump", "Circulating Water Pump", "condenser_circ_pump_zone", ["Cavitation", "Bearing Wear"], "Broadband crackling with bearing rumble"),
            )),
            Subsystem("cooling-valves", "Cooling Valves", (
                _c("cooling-water-valve", "Cooling Water Valve", "cooling_water_valve_zone", ["Leakage", "Corrosion"], "Low-frequency drip-related noise"),
                _c("drain-valve", "Drain Valve", "cooling_drain_valve_zone", ["Stuck", "Vibration"], "Rattling and valve chatter"),
            )),
        ),
    ),
    PlantSystem(
        id="feedwater",
        name="Feedwater System",
        description="Boiler feed pump, feedwater heaters, check valves and control valves.",
        zone="ZONE E",
        angle_range=(200, 260),
        subsystems=(
            Subsystem("feedwater-pump", "Feed Pump & Heaters", (
                _c("boiler-feed-pump", "Boiler Feed Pump", "feedwater_pump_zone", ["Cavitation", "Bearing Wear", "Seal Leak"], "Broadband crackling, high-frequency bearing spikes"),
                _c("feedwater-heater", "Feedwater Heater", "feedwater_heater_zone", ["Tube Leak", "Shell Erosion"], "Steam impingement noise"),
            )),
            Subsystem("feedwater-valves", "Feedwater Valves", (
                _c("feedwater-check-valve", "Check Valve", "feedwater_check_valve_zone", ["Vibration", "Slam"], "Periodic slamming impact noise"),
                _c("feedwater-control-valve", "Control Valve", "feedwater_control_valve_zone", ["Cavitation", "Leakage"], "High-frequency cavitation hiss"),
            )),
        ),
    ),
    PlantSystem(
        id="fuel-air",
        name="Fuel & Air System",
        description="Pulverizers, FD/ID fans, air dampers and fuel handling components.",
        zone="ZONE F",
        angle_range=(260, 320),
        subsystems=(
            Subsystem("fuel-handling", "Fuel Handling", (
                _c("coal-pulverizer", "Coal Pulverizer", "pulverizer_zone", ["Roller Wear", "Fire", "Blockage"], "Grinding noise with impact spikes"),
            )),
            Subsystem("fans", "Fans & Dampers", (
                _c("fd-fan", "Forced Draft Fan", "fd_fan_zone", ["Imbalance", "Bearing Wear", "Blade Damage"], "1x running speed dominant peak"),
                _c("id-fan", "Induced Draft Fan", "id_fan_zone", ["Imbalance", "Erosion"], "Sub-harmonic vibration with erosion noise"),
                _c("air-damper", "Air Damper", "air_damper_zone", ["Stuck", "Vibration"], "Rattling and flow turbulence"),
            )),
        ),
    ),
    PlantSystem(
        id="auxiliary",
        name="Auxiliary Systems",
        description="Lubrication system, drain lines, safety relief systems and gearbox assemblies.",
        zone="ZONE G",
        angle_range=(320, 360),
        subsystems=(
            Subsystem("aux-systems", "Support Systems", (
                _c("lube-oil-system", "Lubrication System", "lube_oil_zone", ["Low Pressure", "Contamination"], "Pump whine and flow restriction noise"),
                _c("gearbox", "Gearbox Assembly", "gearbox_zone", ["Gear Tooth Wear", "Pitting", "Misalignment"], "Gear mesh frequency sidebands"),
                _c("safety-relief", "Safety Relief System", "safety_relief_zone", ["Premature Lift", "Seat Leak"], "Sudden pressure release bursts"),
            )),
        ),
    ),
)

UNKNOWN_SYSTEM = "Unknown System"
GENERAL_ZONE = "General Zone"
UNKNOWN_AI_LABEL = "unknown_zone"
FULL_CIRCLE = (0, 360)


class ZoneCatalog:
    """Read‑only index over a plant hierarchy."""

    def __init__(self, systems: tuple[PlantSystem, ...] = PLANT_SYSTEMS) -> None:
        self._systems = tuple(systems)
        by_system: dict[str, PlantSystem] = {}
        by_component: dict[str, ZoneDescriptor] = {}
        for sys in self._systems:
            by_system[sys.id] = sys
            for sub in sys.subsystems:
                for comp in sub.components:
                    if comp.id in by_component:
                        raise ValueError(f"Duplicate component id: {comp.id}")
                    by_component[comp.id] = ZoneDescriptor(
                        system_name=sys.name,
                        subsystem_name=sub.name,
                        zone_label=sys.zone,
                        angle_range=sys.angle_range,
                        component_name=comp.name,
                        ai_label=comp.ai_label,
                        candidate_faults=comp.faults,
                    )
        self._by_system = MappingProxyType(by_system)
        self._by_component = MappingProxyType(by_component)

    @property
    def systems(self) -> tuple[PlantSystem, ...]:
        return self._systems

    def lookup_by_component_id(self, component_id: str) -> ZoneDescriptor | None:
        return self._by_component.get(component_id)

    def lookup_by_system_id(self, system_id: str) -> PlantSystem | None:
        return self._by_system.get(system_id)

    def component_ids(self) -> list[str]:
        return list(self._by_component)

    def all_components(self) -> list[dict]:
        """Flat list of components with their system/subsystem context."""
        rows = []
        for sys in self._systems:
            for sub in sys.subsystems:
                for comp in sub.components:
                    rows.append({
                        "id": comp.id,
                        "name": comp.name,
                        "ai_label": comp.ai_label,
                        "faults": list(comp.faults),
                        "sound_characteristics": comp.sound_characteristics,
                        "system_id": sys.id,
                        "system_name": sys.name,
                        "subsystem_name": sub.name,
                        "zone": sys.zone,
                    })
        return rows

    def resolve(
        self,
        component_id: str | None = None,
        system_id: str | None = None,
    ) -> ZoneDescriptor:
        """Resolve a target, falling back to a general zone.

        A known component wins.  Otherwise the system name is used when
        ``system_id`` is known, with the full circle as sector and no
        candidate faults.
        """
        if component_id:
            zone = self.lookup_by_component_id(component_id)
            if zone is not None:
                return zone

        system = self.lookup_by_system_id(system_id) if system_id else None
        return ZoneDescriptor(
            system_name=system.name if system else UNKNOWN_SYSTEM,
            subsystem_name="",
            zone_label="",
            angle_range=FULL_CIRCLE,
            component_name=GENERAL_ZONE,
            ai_label=UNKNOWN_AI_LABEL,
            candidate_faults=(),
        )


DEFAULT_CATALOG = ZoneCatalog()
