from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, create_model, field_validator

from .services.weights import ScoringWeights

DEFAULTS = {"beds": 3, "baths": 2, "carpark": 0, "property_type": "House"}

class PropertyInput(BaseModel):
    """Target property for a quick evaluation. Only `location` is required."""
    location: str = ""
    beds: int = 3
    baths: int = 2
    carpark: int = 0
    property_type: str = "House"
    size: Optional[float] = Field(default=None, ge=0)    # land area, m²
    price: Optional[float] = Field(default=None, ge=0)   # asking price, if any
    features: Optional[str] = None

    @field_validator("beds", "baths", "carpark", "property_type", mode="before")
    @classmethod
    def _null_means_default(cls, v, info):
        return DEFAULTS[info.field_name] if v is None or v == "" else v

    @field_validator("location", mode="before")
    @classmethod
    def _strip_location(cls, v):
        return (v or "").strip() if isinstance(v, (str, type(None))) else v

class SubmitResponse(BaseModel):
    success: bool = True
    job_id: str
    message: str = "Evaluation started. Use job_id to poll for status."

class JobStatusResponse(BaseModel):
    status: str
    stage: str
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None

class ComparableIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str
    price: int = Field(gt=0)
    source: str = "manual"
    beds: Optional[int] = None
    baths: Optional[int] = None
    cars: Optional[int] = None
    land_area: Optional[float] = None
    property_type: Optional[str] = None
    sold_date: Optional[str] = None
    sold_date_raw: Optional[str] = None
    listing_type: str = "sold"
    distance_km: Optional[float] = None
    images: list[str] = []

class CacheWriteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    suburb: str = Field(min_length=1)
    state: str = Field(min_length=1)
    postcode: Optional[str] = None
    property_type: Optional[str] = Field(default=None, alias="propertyType")
    sales: list[ComparableIn]

# Partial weights body: any coefficient may be omitted.
WeightsPayload = create_model(
    "WeightsPayload",
    name=(Optional[str], None),
    description=(Optional[str], None),
    **{name: (Optional[float], None) for name in ScoringWeights.model_fields},
)
