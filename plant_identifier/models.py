"""Pydantic models for identification and image-search payloads."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Confidence = Literal["High", "Medium", "Low"]


class CareRequirements(BaseModel):
    watering: str
    sunlight: str
    soil: str
    temperature: str
    humidity: str
    fertilizing: str


class GrowthCharacteristics(BaseModel):
    size: str
    growthRate: str
    lifespan: str


class PlantRecord(BaseModel):
    commonName: str
    scientificName: str
    family: str
    nativeRegion: str
    careRequirements: CareRequirements
    growthCharacteristics: GrowthCharacteristics
    interestingFacts: List[str] = Field(..., min_length=3)
    warnings: List[str] = Field(..., min_length=1)
    identificationConfidence: Confidence = "Medium"
    similarPlants: List[str] = Field(..., min_length=1)
    imageSearchTerms: List[str] = Field(..., min_length=3, max_length=5)
    imageCount: int = Field(6, ge=4, le=8)
    # provenance, set by the API layer
    modelUsed: Optional[str] = None
    analysisTimestamp: Optional[str] = None
    responseTime: Optional[str] = None
    note: Optional[str] = None


class IdentifyResponse(BaseModel):
    success: bool
    model: str
    responseTime: str
    timestamp: str
    data: PlantRecord
    error: Optional[str] = None
    message: Optional[str] = None


class ImageResult(BaseModel):
    id: str
    url: str
    thumbnailUrl: str
    altText: str
    photographerName: str
    photographerUrl: str
    sourceUrl: str


class ImageSearchResult(BaseModel):
    query: str
    page: int = 1
    total: int = 0
    total_pages: int = 1
    images: List[ImageResult] = Field(default_factory=list)
    mock: bool = False
    note: Optional[str] = None
