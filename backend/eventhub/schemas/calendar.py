from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PreferenceIn(BaseModel):
    include_all_sources: bool = True
    selected_sources: List[int] = Field(default_factory=list)

    @field_validator("selected_sources")
    @classmethod
    def check_positive_ids(cls, v: List[int]) -> List[int]:
        if any(s <= 0 for s in v):
            raise ValueError("source ids must be positive integers")
        return sorted(set(v))


class PreferenceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    include_all_sources: bool
    selected_sources: List[int]
    updated_at: Optional[datetime] = None


class FeedLinks(BaseModel):
    https: str
    webcal: str
