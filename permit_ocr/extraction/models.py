"""Shared data models for document extraction.

Models serialize with camelCase aliases (``surroundingText``, ``pvId``, ...)
because that is the shape downstream consumers read; Python code uses the
snake_case attribute names.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DateKind(str, Enum):
    """Milestone date kinds found in utility/regulatory correspondence."""

    SUBMISSION = "submission"
    ISSUE = "issue"
    METER_READING = "meterReading"
    UNKNOWN = "unknown"


# Kinds that can appear in ``ExtractionResult.dates`` (one each at most).
TYPED_DATE_KINDS = (DateKind.SUBMISSION, DateKind.ISSUE, DateKind.METER_READING)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def to_dict(self) -> Dict[str, Any]:
        """Dump using the external (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


class ExtractedDate(_CamelModel):
    """One recognized calendar event from a document."""

    kind: DateKind
    date: str = Field(..., description="ISO YYYY-MM-DD")
    surrounding_text: str = ""
    confidence: float = Field(..., gt=0.0, le=1.0)
    provenance: str


class ExtractedFields(_CamelModel):
    """Flat bag of optional identifiers and equipment attributes."""

    pv_id: Optional[str] = None
    energy_permit_id: Optional[str] = None
    contract_number: Optional[str] = None
    meter_number: Optional[str] = None
    module_model: Optional[str] = None
    inverter_model: Optional[str] = None
    panel_wattage: Optional[float] = None
    panel_count: Optional[int] = None
    installed_capacity_kw: Optional[float] = None
    voltage: Optional[str] = None
    grid_connection_mode: Optional[str] = None
    provenance: Dict[str, str] = Field(default_factory=dict)

    def populated(self) -> Dict[str, Any]:
        """Return the populated fields keyed by attribute name."""
        return {
            name: value
            for name, value in self
            if name != "provenance" and value is not None
        }


class AIExtraction(_CamelModel):
    """Structured output of the semantic (AI) pass.

    Every attribute is an unvalidated string as returned by the model; the
    field descriptions double as the tool schema sent to the endpoint.
    """

    model_config = ConfigDict(extra="ignore")

    submission_date: Optional[str] = Field(
        None,
        description="送件日/申請日: date the applicant submitted the request (often after 復台端 or 台端...申請)",
    )
    issue_date: Optional[str] = Field(
        None, description="發文日期/核發日: date the authority issued this letter or permit"
    )
    meter_date: Optional[str] = Field(
        None, description="併聯運轉日/掛表日: grid connection or meter installation date"
    )
    pv_id: Optional[str] = Field(
        None, description="PV 同意備案編號, six digits + PV + four digits, e.g. 120114PV0442"
    )
    energy_permit_id: Optional[str] = Field(
        None, description="能源署/縣市 設備登記編號, e.g. YUN-114PV0349"
    )
    contract_number: Optional[str] = Field(None, description="購售電契約編號 / contract number")
    meter_number: Optional[str] = Field(None, description="電號 or 表號 of the meter")
    module_model: Optional[str] = Field(None, description="PV module model number")
    inverter_model: Optional[str] = Field(None, description="Inverter model number")
    panel_wattage: Optional[str] = Field(None, description="Single module rating in W")
    panel_count: Optional[str] = Field(None, description="Number of modules (片)")
    installed_capacity: Optional[str] = Field(
        None, description="Installed capacity in kW/kWp (裝置容量)"
    )
    voltage: Optional[str] = Field(None, description="Connection voltage with unit, e.g. 11.4kV or 380V")
    grid_connection_mode: Optional[str] = Field(
        None, description="併聯方式, e.g. 內線併聯 / 外線併聯 / 高壓併聯 / 低壓併聯"
    )
    raw_text: str = Field("", description="Full verbatim transcription of the document text")

    def is_empty(self) -> bool:
        return not any(value for _, value in self)


class ExtractionResult(_CamelModel):
    """Merged output of one ``DateFieldExtractor.extract`` call."""

    dates: List[ExtractedDate] = Field(default_factory=list)
    fields: ExtractedFields = Field(default_factory=ExtractedFields)
    raw_text: str = ""
    candidates: List[ExtractedDate] = Field(default_factory=list)
    source: Literal["ai", "empty"] = "ai"

    def date_for(self, kind: DateKind) -> Optional[ExtractedDate]:
        return next((d for d in self.dates if d.kind == kind), None)

    def to_document_update(self) -> Dict[str, Any]:
        """Map the result onto document/project store column names.

        Only populated values are included; the caller decides whether to
        apply them or route them through human review first.
        """
        update: Dict[str, Any] = {}
        for kind, column in _DATE_COLUMNS.items():
            found = self.date_for(kind)
            if found:
                update[column] = found.date

        for attr, column in _FIELD_COLUMNS.items():
            value = getattr(self.fields, attr)
            if value is not None:
                update[column] = value
        return update


_DATE_COLUMNS = {
    DateKind.SUBMISSION: "submitted_at",
    DateKind.ISSUE: "issued_at",
    DateKind.METER_READING: "actual_meter_date",
}

_FIELD_COLUMNS = {
    "pv_id": "pv_id",
    "energy_permit_id": "energy_permit_id",
    "contract_number": "contract_number",
    "meter_number": "meter_number",
    "module_model": "module_model",
    "inverter_model": "inverter_model",
    "panel_wattage": "panel_wattage",
    "panel_count": "panel_count",
    "installed_capacity_kw": "capacity_kwp",
    "voltage": "voltage",
    "grid_connection_mode": "grid_connection_type",
}
