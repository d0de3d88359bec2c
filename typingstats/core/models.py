"""Pydantic models for read-only snapshots handed to the UI and CLI."""

from pydantic import BaseModel, ConfigDict, Field


class StatsSummary(BaseModel):
    """Aggregate statistics shown in the menu / stats command."""

    date: str = Field(..., description="Today's date key (YYYY-MM-DD)")
    device_id: str = Field(..., description="Identifier of this device")
    today_keystrokes: int = Field(default=0, description="Keystrokes today, all devices")
    today_words: int = Field(default=0, description="Words today, all devices")
    yesterday_keystrokes: int = Field(default=0, description="Keystrokes yesterday")
    seven_day_avg: int = Field(default=0, description="Mean keystrokes over the last 7 days")
    thirty_day_avg: int = Field(
        default=0, description="Mean keystrokes over the last 30 days"
    )
    record_keystrokes: int = Field(default=0, description="Best day's keystrokes")
    record_date: str | None = Field(default=None, description="Date key of the best day")

    model_config = ConfigDict(extra="ignore")


class HistoryEntry(BaseModel):
    """One day in the history list."""

    date: str = Field(..., description="Date key (YYYY-MM-DD)")
    display_date: str = Field(..., description="Human-readable date, e.g. 'Dec 27'")
    short_date: str = Field(default="", description="Compact date, e.g. '12/27'")
    keystrokes: int = Field(..., description="Keystrokes across all devices")
    words: int = Field(default=0, description="Words across all devices")
    device_count: int = Field(default=0, description="Number of contributing devices")

    model_config = ConfigDict(extra="ignore")
