"""Electronic Program Guide records."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EPGProgram(BaseModel):
    """A single programme; start/end stay in the raw XMLTV form ``YYYYMMDDHHMMSS +HHMM``."""
    model_config = ConfigDict(frozen=True)

    title: str
    start_time: str
    end_time: str
    channel: str = ""
    description: Optional[str] = None
    category: Optional[str] = None
    rating: Optional[str] = None
    language: Optional[str] = None
    icon: Optional[str] = None


class EPGChannel(BaseModel):
    """A guide channel with its programmes sorted by start time."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    icon: str = ""
    programs: list[EPGProgram] = Field(default_factory=list)
    alias_of: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.programs
