"""Pydantic v2 schemas: load records, the LLM output contract, and API bodies."""

import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from load_insights.domain.enums import (
    BrokerStatus,
    InteractionType,
    StopType,
    TaskPriority,
    TaskStatus,
)

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def coerce_text(value) -> str:
    """Degrade missing values to "" and render numbers without a trailing .0."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def coerce_amount(value) -> float:
    """Parse money-like input ("$1,250.00", 1250, None) into a float, 0.0 if absent."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NON_NUMERIC.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def parse_miles(miles: str | None) -> float:
    """Parse the string-encoded ``miles`` field. Returns 0.0 when unusable."""
    if not miles:
        return 0.0
    return coerce_amount(miles)


# ---------------------------------------------------------------------------
# Load records
# ---------------------------------------------------------------------------


class Stop(BaseModel):
    """One pickup or delivery on a load's route."""

    type: StopType
    location_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    date: str = ""
    time: str = ""
    appointment_type: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator(
        "location_name", "address", "city", "state", "zip", "date", "time",
        "appointment_type", mode="before",
    )
    @classmethod
    def _text(cls, value):
        return coerce_text(value)


class Accessorial(BaseModel):
    """Additional charge on top of the linehaul."""

    name: str = ""
    amount: float = 0.0

    @field_validator("name", mode="before")
    @classmethod
    def _text(cls, value):
        return coerce_text(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value):
        return coerce_amount(value)


class LoadRecord(BaseModel):
    """A fully-keyed load record.

    Every field is always present: strings default to "", numbers to 0 and
    lists to []. ``rpm`` stays None until a distance is known.
    """

    model_config = ConfigDict(from_attributes=True)

    load_id: str = ""
    broker_name: str = ""
    broker_email: str = ""
    broker_phone: str = ""
    carrier_name: str = ""
    carrier_mc: str = ""
    carrier_email: str = ""
    carrier_phone: str = ""
    carrier_address: str = ""
    rate_total: float = 0.0
    linehaul_rate: float = 0.0
    accessorials: list[Accessorial] = Field(default_factory=list)
    equipment_type: str = ""
    temp_min: str = ""
    temp_max: str = ""
    stops: list[Stop] = Field(default_factory=list)
    commodity: str = ""
    weight: str = ""
    miles: str = ""
    notes: str = ""
    rpm: float | None = None
    source_file: str = ""
    source_channel: str = ""
    extracted_at: str = ""

    @field_validator(
        "load_id", "broker_name", "broker_email", "broker_phone", "carrier_name",
        "carrier_mc", "carrier_email", "carrier_phone", "carrier_address",
        "equipment_type", "temp_min", "temp_max", "commodity", "weight", "miles",
        "notes", "source_file", "source_channel", "extracted_at",
        mode="before",
    )
    @classmethod
    def _text(cls, value):
        return coerce_text(value)

    @field_validator("rate_total", "linehaul_rate", mode="before")
    @classmethod
    def _amount(cls, value):
        return coerce_amount(value)

    @field_validator("accessorials", mode="before")
    @classmethod
    def _accessorials(cls, value):
        return [item for item in (value or []) if item]

    @field_validator("stops", mode="before")
    @classmethod
    def _stops(cls, value):
        """Drop stops whose type is not pickup/delivery instead of failing the record."""
        valid_types = {t.value for t in StopType}
        kept = []
        for stop in value or []:
            if isinstance(stop, Stop):
                kept.append(stop)
                continue
            if not isinstance(stop, dict):
                continue
            stop_type = str(stop.get("type") or "").strip().lower()
            if stop_type in valid_types:
                kept.append(stop)
        return kept

    def compute_rpm(self) -> float | None:
        """rate_total / miles, or None when miles are missing."""
        miles = parse_miles(self.miles)
        if miles > 0 and self.rate_total:
            return self.rate_total / miles
        return None

    def pickups(self) -> list[Stop]:
        return [s for s in self.stops if s.type == StopType.PICKUP]

    def deliveries(self) -> list[Stop]:
        return [s for s in self.stops if s.type == StopType.DELIVERY]


# ---------------------------------------------------------------------------
# LLM output contract
# ---------------------------------------------------------------------------


class ExtractedStop(BaseModel):
    """Stop as the model must return it."""

    type: StopType = Field(description="'pickup' for origin, 'delivery' for destination")
    location_name: str = Field("", description="Company or facility name at this stop")
    address: str = Field(
        "",
        description="Complete street address with number and street name, e.g. '4500 Industrial Blvd'. "
        "Needed for mileage calculation.",
    )
    city: str = Field(description="City name. Required, never blank.")
    state: str = Field(description="Two-letter state abbreviation (CA, TX, NY). Required, never blank.")
    zip: str = Field("", description="ZIP or postal code")
    date: str = Field("", description="Pickup or delivery date")
    time: str = Field("", description="Pickup or delivery time or window")
    appointment_type: str = Field("", description="FCFS, appointment, etc.")


class ExtractedAccessorial(BaseModel):
    name: str = Field("", description="Charge name, e.g. Fuel, Detention, Lumper")
    amount: float = Field(0, description="Charge amount in dollars")


class LoadExtraction(BaseModel):
    """Structured output requested from the extraction model.

    All properties are listed so the model always returns every key.
    """

    load_id: str = Field(
        description="Load ID, trip number, order number or reference number. Always extract this."
    )
    broker_name: str = Field(description="Name of the broker / freight company")
    broker_email: str = Field("", description="Broker's email address")
    broker_phone: str = Field("", description="Broker's phone number")
    carrier_name: str = Field("", description="Name of the carrier")
    carrier_mc: str = Field("", description="Carrier MC or DOT number")
    carrier_email: str = Field("", description="Carrier's email address")
    carrier_phone: str = Field("", description="Carrier's phone number")
    carrier_address: str = Field("", description="Carrier's full address (street, city, state, zip)")
    rate_total: float = Field(description="Total rate: the final amount to be paid")
    linehaul_rate: float = Field(
        0,
        description="Base linehaul rate (Base Rate, Transportation Charge) before accessorials",
    )
    accessorials: list[ExtractedAccessorial] = Field(
        default_factory=list, description="Additional charges (fuel, detention, lumper, ...)"
    )
    equipment_type: str = Field("", description="Equipment type, e.g. Dry Van, Reefer, Flatbed")
    temp_min: str = Field("", description="Minimum temperature, if applicable")
    temp_max: str = Field("", description="Maximum temperature, if applicable")
    stops: list[ExtractedStop] = Field(
        default_factory=list,
        description="Pickup and delivery stops in route order. Must include at least one pickup "
        "and one delivery; city and state are required.",
    )
    commodity: str = Field("", description="Type of goods being transported")
    weight: str = Field("", description="Weight of the load")
    notes: str = Field(
        "",
        description="All special instructions combined: loading/unloading, detention, appointments, "
        "contacts, equipment, temperature monitoring, dock hours, hazmat, BOL/PO/reference numbers.",
    )


# ---------------------------------------------------------------------------
# Ingestion API
# ---------------------------------------------------------------------------


class ExtensionAttachment(BaseModel):
    """One PDF attachment forwarded by the browser extension."""

    filename: str
    data: str  # base64 / base64url
    message_id: str | None = None


class ExtensionScanRequest(BaseModel):
    attachments: list[ExtensionAttachment] = Field(default_factory=list)


class GmailSyncRequest(BaseModel):
    timeRange: str = "1m"


# ---------------------------------------------------------------------------
# CRM API
# ---------------------------------------------------------------------------


class BrokerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    broker_name: str
    broker_email: str
    broker_phone: str | None = None
    first_load_date: date | None = None
    last_load_date: date | None = None
    total_loads: int = 0
    total_revenue: float = 0.0
    avg_rate: float = 0.0
    avg_rpm: float | None = None
    status: str
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BrokerUpdate(BaseModel):
    """User-editable broker fields. Aggregates are not editable."""

    broker_name: str | None = None
    broker_phone: str | None = None
    status: BrokerStatus | None = None
    notes: str | None = None


class InteractionCreate(BaseModel):
    broker_id: str
    interaction_type: InteractionType
    subject: str | None = None
    notes: str | None = None
    interaction_date: datetime | None = None


class InteractionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    broker_id: str
    interaction_type: str
    subject: str | None = None
    notes: str | None = None
    interaction_date: datetime
    created_at: datetime | None = None


class TaskCreate(BaseModel):
    broker_id: str
    title: str
    description: str | None = None
    due_date: datetime | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING


class TaskUpdate(BaseModel):
    task_id: str
    title: str | None = None
    description: str | None = None
    due_date: datetime | None = None
    priority: TaskPriority | None = None
    status: TaskStatus | None = None
    completed_at: datetime | None = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    broker_id: str
    title: str
    description: str | None = None
    due_date: datetime | None = None
    status: str
    priority: str
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Assistant API
# ---------------------------------------------------------------------------


class ChatTurn(BaseModel):
    role: str
    content: str = ""


class ChatRequest(BaseModel):
    message: str = ""
    conversationHistory: list[ChatTurn] = Field(default_factory=list)
