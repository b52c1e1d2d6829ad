"""Per-field coercion and light validation.

Both the AI pass and the pattern fallback feed raw strings through the same
rule for a field, so "AI value if valid, else first valid pattern match" is
decided with one definition of "valid". Values failing a rule are dropped.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

_NUMBER_RE = re.compile(r"\d+(?:,\d{3})*(?:\.\d+)?")
_VOLTAGE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(kV|KV|kv|V|v|千伏|伏特|伏)")

PV_ID_RE = re.compile(r"\d{6}PV\d{4}")
ENERGY_PERMIT_ID_RE = re.compile(r"[A-Z]{2,4}-\d{3}PV\d{4}")
CONTRACT_NUMBER_RE = re.compile(r"[A-Z0-9][A-Z0-9\-]{3,29}")
METER_NUMBER_RE = re.compile(r"\d{2}-?\d{2}-?\d{4}-?\d{2}-?\d|[A-Z0-9][A-Z0-9\-]{4,19}")
MODEL_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9\-_/.+]{2,39}")

GRID_CONNECTION_MODES = ("內線併聯", "外線併聯", "高壓併聯", "低壓併聯")


@dataclass(frozen=True)
class FieldRule:
    """How to turn a raw string into a typed, validated field value."""

    name: str
    coerce: Callable[[str], Optional[Any]]


def _clean(raw: str) -> str:
    return unicodedata.normalize("NFKC", raw).strip()


def _compact_upper(raw: str) -> str:
    return re.sub(r"\s+", "", _clean(raw)).upper()


def _shape(pattern: re.Pattern[str]) -> Callable[[str], Optional[str]]:
    def coerce(raw: str) -> Optional[str]:
        value = _compact_upper(raw)
        return value if pattern.fullmatch(value) else None

    return coerce


def _model(raw: str) -> Optional[str]:
    value = _clean(raw).rstrip(".,;:")
    return value if MODEL_RE.fullmatch(value) else None


def _number(raw: str) -> Optional[float]:
    match = _NUMBER_RE.search(_clean(raw))
    if not match:
        return None
    return float(match.group(0).replace(",", ""))


def _ranged_float(low: float, high: float) -> Callable[[str], Optional[float]]:
    def coerce(raw: str) -> Optional[float]:
        value = _number(raw)
        if value is None or not low <= value <= high:
            return None
        return value

    return coerce


def _panel_count(raw: str) -> Optional[int]:
    value = _number(raw)
    if value is None or value != int(value) or not 1 <= value <= 100_000:
        return None
    return int(value)


def _voltage(raw: str) -> Optional[str]:
    match = _VOLTAGE_RE.search(_clean(raw))
    if not match:
        return None
    magnitude = float(match.group(1))
    unit = match.group(2).lower()
    if unit in ("kv", "千伏"):
        volts = magnitude * 1000
        label = f"{match.group(1)}kV"
    else:
        volts = magnitude
        label = f"{match.group(1)}V"
    if not 100 <= volts <= 345_000:
        return None
    return label


def _grid_mode(raw: str) -> Optional[str]:
    value = re.sub(r"\s+", "", _clean(raw)).replace("併網", "併聯")
    for mode in GRID_CONNECTION_MODES:
        if mode in value:
            return mode
    return None


FIELD_RULES: Dict[str, FieldRule] = {
    rule.name: rule
    for rule in (
        FieldRule("pv_id", _shape(PV_ID_RE)),
        FieldRule("energy_permit_id", _shape(ENERGY_PERMIT_ID_RE)),
        FieldRule("contract_number", _shape(CONTRACT_NUMBER_RE)),
        FieldRule("meter_number", _shape(METER_NUMBER_RE)),
        FieldRule("module_model", _model),
        FieldRule("inverter_model", _model),
        FieldRule("panel_wattage", _ranged_float(100, 1000)),
        FieldRule("panel_count", _panel_count),
        FieldRule("installed_capacity_kw", _ranged_float(0.1, 100_000)),
        FieldRule("voltage", _voltage),
        FieldRule("grid_connection_mode", _grid_mode),
    )
}

# AI tool output attribute -> ExtractedFields attribute, where they differ.
AI_FIELD_NAMES: Dict[str, str] = {
    "pv_id": "pv_id",
    "energy_permit_id": "energy_permit_id",
    "contract_number": "contract_number",
    "meter_number": "meter_number",
    "module_model": "module_model",
    "inverter_model": "inverter_model",
    "panel_wattage": "panel_wattage",
    "panel_count": "panel_count",
    "installed_capacity": "installed_capacity_kw",
    "voltage": "voltage",
    "grid_connection_mode": "grid_connection_mode",
}


def coerce_field(name: str, raw: Any) -> Optional[Any]:
    """Apply the rule for ``name`` to ``raw``; ``None`` when invalid or empty."""
    if raw is None:
        return None
    if not isinstance(raw, str):
        raw = str(raw)
    if not raw.strip():
        return None
    rule = FIELD_RULES.get(name)
    if rule is None:
        raise KeyError(f"Unknown extraction field: {name}")
    return rule.coerce(raw)
