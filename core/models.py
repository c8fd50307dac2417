"""
Core data models for the refresh pipeline.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter, field_validator


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class FailureKind(str, Enum):
    BLOCKED = "blocked"
    UNAVAILABLE = "unavailable"
    PARSE_FAILED = "parse_failed"


class TransportMode(str, Enum):
    DIRECT = "direct"
    BROWSER = "browser"


class SourceDescriptor(BaseModel):
    """Static identity of one registered source."""
    model_config = ConfigDict(frozen=True)

    source_id: str
    entity: str
    event_kind: str
    display_name: str

    @property
    def key(self) -> str:
        return f"{self.entity}.{self.event_kind}"


class FetchOutcome(BaseModel):
    """Result of one transport call. Failures are data, never exceptions."""
    success: bool
    http_status: int = 0
    body_text: str = ""
    final_url: Optional[str] = None
    transport_mode: TransportMode = TransportMode.DIRECT
    error_kind: Optional[FailureKind] = None
    error_detail: Optional[str] = None

    @field_validator("error_kind")
    @classmethod
    def _transport_never_parses(cls, v: Optional[FailureKind]) -> Optional[FailureKind]:
        if v is FailureKind.PARSE_FAILED:
            raise ValueError("transport outcomes cannot be parse_failed")
        return v

    @property
    def explanation(self) -> str:
        return self.error_detail or f"HTTP {self.http_status}"


def _require_known_confidence(v: Confidence) -> Confidence:
    if v is Confidence.NONE:
        raise ValueError("a dated result needs high, medium or low confidence")
    return v


def _require_no_confidence(v: Confidence) -> Confidence:
    if v is not Confidence.NONE:
        raise ValueError("an undated result carries no confidence")
    return v


def _as_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]
DatedConfidence = Annotated[Confidence, AfterValidator(_require_known_confidence)]
NoConfidence = Annotated[Confidence, AfterValidator(_require_no_confidence)]


# --------------------------------------------------------------------------- #
# Adapter boundary
# --------------------------------------------------------------------------- #
class AdapterSuccess(BaseModel):
    ok: Literal[True] = True
    event_time_utc: UtcDatetime
    source_url: str
    confidence: DatedConfidence
    note: Optional[str] = None
    http_status: Optional[int] = None
    transport_mode: Optional[TransportMode] = None


class AdapterFailure(BaseModel):
    ok: Literal[False] = False
    failure_kind: FailureKind
    explanation: str
    http_status: Optional[int] = None
    transport_mode: Optional[TransportMode] = None

    @classmethod
    def from_fetch(cls, outcome: FetchOutcome) -> "AdapterFailure":
        return cls(
            failure_kind=outcome.error_kind or FailureKind.UNAVAILABLE,
            explanation=outcome.explanation,
            http_status=outcome.http_status,
            transport_mode=outcome.transport_mode,
        )

    @classmethod
    def from_exception(cls, exc: BaseException) -> "AdapterFailure":
        message = str(exc)
        explanation = f"{type(exc).__name__}: {message}" if message else type(exc).__name__
        return cls(failure_kind=FailureKind.UNAVAILABLE, explanation=explanation)


AdapterOutcome = Union[AdapterSuccess, AdapterFailure]


# --------------------------------------------------------------------------- #
# Published records
# --------------------------------------------------------------------------- #
class _RecordBase(BaseModel):
    source_id: str
    entity: str
    event_kind: str
    display_name: str
    fetched_at_utc: UtcDatetime
    http_status: Optional[int] = None
    transport_mode: Optional[TransportMode] = None


class FreshRecord(_RecordBase):
    status: Literal["fresh"] = "fresh"
    event_time_utc: UtcDatetime
    source_url: str
    confidence: DatedConfidence
    note: Optional[str] = None
    last_success_at_utc: UtcDatetime

    @property
    def success_time(self) -> datetime:
        return self.last_success_at_utc


class StaleRecord(_RecordBase):
    status: Literal["stale"] = "stale"
    event_time_utc: UtcDatetime
    last_good_at_utc: UtcDatetime
    source_url: str
    confidence: DatedConfidence
    reason: str
    failure_kind: FailureKind
    note: Optional[str] = None

    @property
    def success_time(self) -> datetime:
        # Sticky: always the time of the Fresh run this data came from.
        return self.last_good_at_utc


class UnavailableRecord(_RecordBase):
    status: Literal["unavailable"] = "unavailable"
    event_time_utc: None = None
    confidence: NoConfidence = Confidence.NONE
    failure_kind: FailureKind
    explanation: str


EventRecord = Annotated[
    Union[FreshRecord, StaleRecord, UnavailableRecord],
    Field(discriminator="status"),
]

event_record_adapter: TypeAdapter = TypeAdapter(EventRecord)


# --------------------------------------------------------------------------- #
# Run summary
# --------------------------------------------------------------------------- #
class UnavailableSource(BaseModel):
    source_id: str
    failure_kind: FailureKind
    explanation: str


class RunSummary(BaseModel):
    """Aggregate of one orchestrator run."""
    started_at_utc: datetime = Field(default_factory=utcnow)
    finished_at_utc: Optional[datetime] = None
    fresh: int = 0
    stale: int = 0
    unavailable: int = 0
    write_errors: int = 0
    unavailable_sources: list[UnavailableSource] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.fresh + self.stale + self.unavailable

    @property
    def is_catastrophic(self) -> bool:
        """More than half of all sources ended unavailable."""
        return self.unavailable * 2 > self.total

    @property
    def exit_code(self) -> int:
        return 1 if self.is_catastrophic else 0

    def add(self, record: Union[FreshRecord, StaleRecord, UnavailableRecord]) -> None:
        if isinstance(record, FreshRecord):
            self.fresh += 1
        elif isinstance(record, StaleRecord):
            self.stale += 1
        elif isinstance(record, UnavailableRecord):
            self.unavailable += 1
            self.unavailable_sources.append(
                UnavailableSource(
                    source_id=record.source_id,
                    failure_kind=record.failure_kind,
                    explanation=record.explanation,
                )
            )
        else:
            raise TypeError(f"Unknown record type: {type(record).__name__}")


class DiagnosticArtifact(BaseModel):
    """Best-effort debug capture of a failed browser fetch."""
    source_id: str
    url: str
    captured_at: datetime = Field(default_factory=utcnow)
    http_status: int = 0
    error: Optional[str] = None
    title: Optional[str] = None
    html: Optional[str] = None
    screenshot: Optional[bytes] = None
