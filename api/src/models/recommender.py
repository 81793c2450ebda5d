from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator

# strict so ids come back exactly as sent (no bool/float coercion)
ItemId = Union[StrictStr, StrictInt]


class CandidateItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: ItemId
    name: Optional[str] = None
    category: Optional[str] = None
    material: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None


class RecommendationContext(BaseModel):
    # festival / weather are the known signals; anything else rides along as free text
    model_config = ConfigDict(extra="allow")

    festival: Optional[str] = None
    weather: Optional[str] = None

    def extra_signals(self) -> Dict[str, str]:
        extras = self.model_extra or {}
        return {str(k): str(v) for k, v in extras.items() if v not in (None, "")}


class RecommendRequest(BaseModel):
    user_id: Optional[str] = None
    lat: Optional[float] = Field(default=None, allow_inf_nan=False)
    lon: Optional[float] = Field(default=None, allow_inf_nan=False)
    now_iso: Optional[str] = None                 # ISO-8601; defaults to server time
    candidate_items: List[CandidateItem] = Field(default_factory=list)
    context: RecommendationContext = Field(default_factory=RecommendationContext)

    @model_validator(mode="after")
    def _unique_ids(self) -> "RecommendRequest":
        seen = set()
        for item in self.candidate_items:
            key = (type(item.id).__name__, item.id)
            if key in seen:
                raise ValueError(f"duplicate candidate id: {item.id!r}")
            seen.add(key)
        return self


class RecommendResponse(BaseModel):
    recommendations: List[ItemId]


class ErrorResponse(BaseModel):
    message: str
    detail: Any = None
