"""
Defaulting validator for plant identification records.

`normalize_plant_record` turns whatever partial mapping the repair or
extraction step produced into a fully populated `PlantRecord`. Each field is
judged on its own: anything missing, mistyped or too short is replaced by a
stock default, so the result is always complete.
"""
from typing import Any, Dict, List, Mapping, Optional

from ..models import CareRequirements, GrowthCharacteristics, PlantRecord

DEFAULT_COMMON_NAME = "Plant"
DEFAULT_SCIENTIFIC_NAME = "Unknown species"
DEFAULT_FAMILY = "Unknown family"
DEFAULT_NATIVE_REGION = "Unknown"

DEFAULT_CARE = {
    "watering": "Water when top inch of soil is dry",
    "sunlight": "Bright indirect light",
    "soil": "Well-draining potting mix",
    "temperature": "65-80°F (18-27°C)",
    "humidity": "Moderate humidity",
    "fertilizing": "Monthly during growing season",
}

DEFAULT_GROWTH = {
    "size": "Varies by species",
    "growthRate": "Moderate",
    "lifespan": "Perennial",
}

DEFAULT_FACTS = [
    "Plants help purify indoor air",
    "Can improve mental well-being",
    "Convert CO2 to oxygen",
]
DEFAULT_WARNINGS = ["Always verify plant identification", "Wash hands after handling"]
DEFAULT_SIMILAR_PLANTS = ["Various ornamental plants"]

CONFIDENCE_LEVELS = ("High", "Medium", "Low")
DEFAULT_CONFIDENCE = "Medium"

MIN_FACTS = 3
MIN_WARNINGS = 1
MIN_SIMILAR_PLANTS = 1
MIN_SEARCH_TERMS = 3
MAX_SEARCH_TERMS = 5

MIN_IMAGE_COUNT = 4
MAX_IMAGE_COUNT = 8
DEFAULT_IMAGE_COUNT = 6

_GENERIC_TERMS = ["plant", "foliage", "greenery", "botanical"]
_PADDING_TERMS = ["nature", "garden", "horticulture"]


def _string_or(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _sub_record(value: Any, defaults: Mapping[str, str]) -> Dict[str, str]:
    # a missing or non-object parent gets the full default sub-record
    if not isinstance(value, Mapping):
        return dict(defaults)
    return {key: _string_or(value.get(key), default) for key, default in defaults.items()}


def _string_list(value: Any, minimum: int, default: List[str]) -> List[str]:
    """Keep the non-blank strings; below `minimum`, use the full default list."""
    if not isinstance(value, (list, tuple)):
        return list(default)
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    if len(items) < minimum:
        return list(default)
    return items


def _confidence(value: Any) -> str:
    return value if value in CONFIDENCE_LEVELS else DEFAULT_CONFIDENCE


def _image_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_IMAGE_COUNT
    if value != value:  # NaN
        return DEFAULT_IMAGE_COUNT
    return int(round(min(max(value, MIN_IMAGE_COUNT), MAX_IMAGE_COUNT)))


def generate_image_search_terms(
    common_name: str,
    scientific_name: Optional[str] = None,
    family: Optional[str] = None,
    sunlight: Optional[str] = None,
) -> List[str]:
    """Derive 3-5 photo search terms from the identification fields.

    Deterministic: the same inputs always give the same ordered terms.
    Default placeholder values ("Plant", "Unknown species", ...) are ignored.
    """
    terms: List[str] = []

    def add(term: str) -> None:
        term = term.strip().lower()
        if term and term not in terms:
            terms.append(term)

    if common_name and common_name != DEFAULT_COMMON_NAME:
        add(common_name)
        for part in common_name.lower().split():
            if len(part) > 3:
                add(part)

    if scientific_name and scientific_name != DEFAULT_SCIENTIFIC_NAME:
        for part in scientific_name.lower().split():
            if len(part) > 3:
                add(part)

    if family and family != DEFAULT_FAMILY:
        add(family)

    if sunlight:
        light = sunlight.lower()
        if "indoor" in light:
            add("indoor plant")
        if "outdoor" in light:
            add("outdoor plant")
        if "succulent" in light or "cactus" in light:
            add("succulent")
            add("cactus")
        if "tropical" in light:
            add("tropical plant")

    for term in _GENERIC_TERMS:
        add(term)
    if len(terms) < MIN_SEARCH_TERMS:
        for term in _PADDING_TERMS:
            add(term)

    return terms[:MAX_SEARCH_TERMS]


def normalize_plant_record(partial: Optional[Mapping[str, Any]]) -> PlantRecord:
    """Build a complete `PlantRecord` from a sparse or malformed mapping."""
    data: Mapping[str, Any] = partial if isinstance(partial, Mapping) else {}

    common_name = _string_or(data.get("commonName"), DEFAULT_COMMON_NAME)
    scientific_name = _string_or(data.get("scientificName"), DEFAULT_SCIENTIFIC_NAME)
    family = _string_or(data.get("family"), DEFAULT_FAMILY)
    care = _sub_record(data.get("careRequirements"), DEFAULT_CARE)

    search_terms = _string_list(data.get("imageSearchTerms"), MIN_SEARCH_TERMS, [])
    if not search_terms:
        search_terms = generate_image_search_terms(common_name, scientific_name, family, care["sunlight"])

    return PlantRecord(
        commonName=common_name,
        scientificName=scientific_name,
        family=family,
        nativeRegion=_string_or(data.get("nativeRegion"), DEFAULT_NATIVE_REGION),
        careRequirements=CareRequirements(**care),
        growthCharacteristics=GrowthCharacteristics(
            **_sub_record(data.get("growthCharacteristics"), DEFAULT_GROWTH)
        ),
        interestingFacts=_string_list(data.get("interestingFacts"), MIN_FACTS, DEFAULT_FACTS),
        warnings=_string_list(data.get("warnings"), MIN_WARNINGS, DEFAULT_WARNINGS),
        identificationConfidence=_confidence(data.get("identificationConfidence")),
        similarPlants=_string_list(data.get("similarPlants"), MIN_SIMILAR_PLANTS, DEFAULT_SIMILAR_PLANTS),
        imageSearchTerms=search_terms[:MAX_SEARCH_TERMS],
        imageCount=_image_count(data.get("imageCount")),
    )


def _placeholder_record(
    common_name: str,
    care: Dict[str, str],
    facts: List[str],
    warnings: List[str],
    note: Optional[str] = None,
) -> PlantRecord:
    return PlantRecord(
        commonName=common_name,
        scientificName="N/A",
        family="Unknown",
        nativeRegion="Unknown",
        careRequirements=CareRequirements(**care),
        growthCharacteristics=GrowthCharacteristics(size="Unknown", growthRate="Unknown", lifespan="Unknown"),
        interestingFacts=facts,
        warnings=warnings,
        identificationConfidence="Low",
        similarPlants=["Unknown"],
        imageSearchTerms=["plant", "nature", "green"],
        imageCount=MIN_IMAGE_COUNT,
        note=note,
    )


def service_unavailable_record() -> PlantRecord:
    """Placeholder returned with HTTP 503 when every model has failed."""
    return _placeholder_record(
        "Service Unavailable",
        {
            "watering": "Gemini API is currently overloaded",
            "sunlight": "Please try again in a few minutes",
            "soil": "The AI service is experiencing high demand",
            "temperature": "Temporary service interruption",
            "humidity": "Try during off-peak hours",
            "fertilizing": "Check back soon",
        },
        [
            "AI services can experience temporary overload",
            "Try again in 5-10 minutes",
            "Consider uploading during less busy hours",
        ],
        ["Service temporarily unavailable"],
    )


def processing_error_record(message: Optional[str] = None) -> PlantRecord:
    """Placeholder returned with HTTP 500 on unexpected failures."""
    return _placeholder_record(
        "Processing Error",
        {key: "Error occurred" for key in DEFAULT_CARE},
        ["An error occurred", "Please try again", "Check your connection"],
        ["Service error - try again"],
        note=message or "Unknown error",
    )
