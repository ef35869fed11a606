from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Any

from travelguide.models.guide_models import Coordinates, ResolvedLocation

class GuideGenerationRequest(BaseModel):
    # Validated in the endpoint so an empty prompt maps to 400
    prompt: Optional[str] = None

class GeocodeRequest(BaseModel):
    address: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=40)

    @field_validator('address', 'city')
    @classmethod
    def strip_whitespace(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('must not be blank')
        return v

class BatchGeocodeRequest(BaseModel):
    items: List[GeocodeRequest] = Field(..., min_length=1)

class GeocodeResponse(BaseModel):
    address: str
    found: bool
    location: Optional[ResolvedLocation] = None

class BatchGeocodeResponse(BaseModel):
    results: List[GeocodeResponse]
    resolved: int
    total: int

class CityCenterResponse(BaseModel):
    city: str
    found: bool
    coordinates: Optional[Coordinates] = None

class RateLimitStatusResponse(BaseModel):
    recent_requests: int
    max_requests_per_second: int
    remaining_requests: int
    next_available_at_ms: float

class ValidationResponse(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)
