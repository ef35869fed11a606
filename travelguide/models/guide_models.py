from pydantic import BaseModel, Field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

# (lng, lat) as returned by Amap
Coordinates = Tuple[float, float]

class ResolvedLocation(BaseModel):
    input_text: str
    coordinates: Optional[Coordinates] = None
    city: str = ""
    district: str = ""
    formatted_address: str = ""
    adcode: str = ""

    model_config = {"frozen": True}

# Itinerary tree ------------------------------------------------------------

class Transportation(BaseModel):
    from_location: str = Field("", alias="from")
    to: str = ""
    method: str = ""
    duration: str = ""
    cost: str = ""
    route: str = ""
    tips: str = ""

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}

class EnrichableEntry(BaseModel):
    """Itinerary leaf that carries a free-text location and optional coordinates."""
    name: str = ""
    location: str = ""
    cost: str = ""
    description: str = ""
    coordinates: Optional[Coordinates] = None
    formatted_address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    transportation: Optional[Transportation] = None

    model_config = {"coerce_numbers_to_str": True}

    def apply_resolution(self, resolved: Optional[ResolvedLocation]) -> bool:
        if resolved is None or resolved.coordinates is None:
            self.coordinates = None
            return False
        self.coordinates = resolved.coordinates
        self.formatted_address = resolved.formatted_address
        self.city = resolved.city
        self.district = resolved.district
        return True

class Activity(EnrichableEntry):
    time: str = ""
    duration: str = ""

class Meal(EnrichableEntry):
    type: str = ""

class DayPlan(BaseModel):
    day: int
    title: str = ""
    activities: List[Activity] = Field(default_factory=list)
    meals: List[Meal] = Field(default_factory=list)

class ItineraryPlan(BaseModel):
    days: List[DayPlan] = Field(default_factory=list)

# Structured completion outputs -----------------------------------------------

class TripFacts(BaseModel):
    destination: str = ""
    start_date: Optional[date] = None
    duration_days: Optional[int] = Field(None, ge=1, le=60)

class GuideSkeleton(BaseModel):
    destination: str = Field(..., min_length=1)
    duration: str = Field(..., min_length=1)
    budget: str = ""
    overview: str = ""
    highlights: List[str] = Field(default_factory=list)
    tips: List[str] = Field(default_factory=list)

    model_config = {"coerce_numbers_to_str": True}

class MapLocation(EnrichableEntry):
    type: str = "attraction"  # attraction | restaurant | hotel
    day: int = 1

class MapLocationList(BaseModel):
    locations: List[MapLocation] = Field(default_factory=list)

class BudgetItem(BaseModel):
    category: str
    amount: float = Field(..., ge=0)
    percentage: float = Field(..., ge=0, le=100)
    color: str = "#3b82f6"
    description: str = ""

class BudgetPlan(BaseModel):
    breakdown: List[BudgetItem] = Field(default_factory=list)

# Upstream enrichment ---------------------------------------------------------

class DailyForecast(BaseModel):
    date: str
    day_weather: str = ""
    night_weather: str = ""
    day_temp: Optional[float] = None
    night_temp: Optional[float] = None
    wind: str = ""

class WeatherInfo(BaseModel):
    destination: str = ""
    start_date: Optional[date] = None
    duration_days: Optional[int] = None
    current: Optional[Dict[str, Any]] = None
    forecast: List[DailyForecast] = Field(default_factory=list)
    advice: str = ""
    source: str = "amap"
    available: bool = True

# Finished guide --------------------------------------------------------------

class TravelGuide(BaseModel):
    id: Optional[str] = None
    prompt: str
    title: str
    destination: str
    duration: str
    budget: str
    overview: str
    highlights: List[str] = Field(default_factory=list)
    tips: List[str] = Field(default_factory=list)
    transportation: str = ""
    itinerary: List[DayPlan] = Field(default_factory=list)
    map_locations: List[MapLocation] = Field(default_factory=list)
    budget_breakdown: List[BudgetItem] = Field(default_factory=list)
    weather_info: Optional[WeatherInfo] = None
    social_insights: str = ""
    generated_at: Optional[str] = None
    generation_time_seconds: Optional[float] = None
    is_public: bool = True
