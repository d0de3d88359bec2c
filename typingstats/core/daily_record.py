"""Per-day keystroke record and date-key helpers."""

from datetime import date, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator

from typingstats.core.errors import InvariantViolation
from typingstats.core.gcounter import GCounter

DATE_KEY_FORMAT = "%Y-%m-%d"


def _now() -> datetime:
    """Current time as an aware datetime in the local time zone."""
    return datetime.now().astimezone()


def date_key(when: datetime | date) -> str:
    """Format a date as a YYYY-MM-DD key in the local time zone."""
    if isinstance(when, datetime) and when.tzinfo is not None:
        when = when.astimezone()
    return when.strftime(DATE_KEY_FORMAT)


def today_key(now: datetime | None = None) -> str:
    """Date key for today."""
    return date_key(now or _now())


def date_key_days_ago(days: int, now: datetime | None = None) -> str:
    """Date key for the calendar day ``days`` before today."""
    now = now or _now()
    if now.tzinfo is not None:
        now = now.astimezone()
    return (now.date() - timedelta(days=days)).strftime(DATE_KEY_FORMAT)


def parse_date_key(key: str) -> date | None:
    """Parse a date key, returning None if it is not a valid YYYY-MM-DD date."""
    try:
        return datetime.strptime(key, DATE_KEY_FORMAT).date()
    except (TypeError, ValueError):
        return None


def display_string(key: str) -> str:
    """Human-readable form of a date key, e.g. "Dec 27"."""
    day = parse_date_key(key)
    if day is None:
        return key
    return f"{day:%b} {day.day}"


def short_display_string(key: str) -> str:
    """Short form of a date key, e.g. "12/26"."""
    day = parse_date_key(key)
    if day is None:
        return key
    return f"{day.month}/{day.day}"


class DailyRecord(BaseModel):
    """Keystroke and word counts for one calendar day, across all devices.

    The ``id`` (date key) and ``created_at`` never change after creation;
    counts change only through :meth:`increment`, :meth:`add_words` and
    :meth:`merge`.
    """

    id: str = Field(..., frozen=True, description="Date in YYYY-MM-DD format")
    counter: GCounter = Field(
        default_factory=GCounter, description="Keystrokes per device"
    )
    words: GCounter = Field(default_factory=GCounter, description="Words per device")
    created_at: datetime = Field(..., alias="createdAt", frozen=True)
    modified_at: datetime = Field(..., alias="modifiedAt")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if parse_date_key(v) is None:
            raise ValueError(f"Invalid date key: {v!r}")
        return v

    @classmethod
    def new(cls, when: datetime | None = None) -> "DailyRecord":
        """Create an empty record for the day containing ``when`` (default: now)."""
        when = when or _now()
        return cls(id=date_key(when), created_at=when, modified_at=when)

    @classmethod
    def from_json(cls, payload: str | bytes) -> "DailyRecord":
        """Decode a record from its JSON wire form.

        Raises:
            pydantic.ValidationError: If the payload is malformed
        """
        return cls.model_validate_json(payload)

    def to_json(self) -> str:
        """Encode the record to its JSON wire form."""
        return self.model_dump_json(by_alias=True)

    def to_payload(self) -> dict:
        """JSON-compatible dict of the record, as stored in the local file."""
        return self.model_dump(mode="json", by_alias=True)

    @property
    def total_keystrokes(self) -> int:
        return self.counter.total

    @property
    def total_words(self) -> int:
        return self.words.total

    def increment(self, device_id: str, amount: int = 1) -> None:
        """Add keystrokes observed on ``device_id``."""
        self.counter.increment(device_id, amount)
        self.modified_at = _now()

    def add_words(self, device_id: str, amount: int = 1) -> None:
        """Add words observed on ``device_id``."""
        self.words.increment(device_id, amount)
        self.modified_at = _now()

    def merge(self, other: "DailyRecord") -> None:
        """Merge another replica of the same day into this record.

        Raises:
            InvariantViolation: If ``other`` belongs to a different day
        """
        if other.id != self.id:
            raise InvariantViolation(
                f"Cannot merge record for {other.id} into record for {self.id}"
            )
        self.counter.merge(other.counter)
        self.words.merge(other.words)
        self.modified_at = _now()
