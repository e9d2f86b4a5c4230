"""
Plant identification pipeline: prompt, model call and text-to-record.
"""
import logging
from dataclasses import dataclass

from ..errors import NoRecoverableJson
from ..models import PlantRecord
from .extraction import extract_fields_from_text
from .gemini import GeminiClient
from .ingress import EncodedImage
from .repair import repair_json
from .schema import normalize_plant_record

logger = logging.getLogger(__name__)

IDENTIFY_PROMPT = """
Analyze this plant image and return ONLY valid JSON with the following structure:
{
  "commonName": "Common name of the plant",
  "scientificName": "Scientific/Latin name",
  "family": "Plant family",
  "nativeRegion": "Native geographic region",
  "careRequirements": {
    "watering": "Detailed watering instructions",
    "sunlight": "Sunlight exposure needs",
    "soil": "Soil type and composition",
    "temperature": "Ideal temperature range",
    "humidity": "Humidity requirements",
    "fertilizing": "Fertilization schedule"
  },
  "growthCharacteristics": {
    "size": "Mature size dimensions",
    "growthRate": "Growth speed (Fast/Moderate/Slow)",
    "lifespan": "Expected lifespan"
  },
  "interestingFacts": ["Fact 1", "Fact 2", "Fact 3"],
  "warnings": ["Warning 1", "Warning 2"],
  "identificationConfidence": "High/Medium/Low",
  "similarPlants": ["Plant 1", "Plant 2"],
  "imageSearchTerms": ["Search term 1", "Search term 2", "Search term 3", "Search term 4"],
  "imageCount": 6
}

IMPORTANT FOR IMAGE SEARCH:
1. "imageSearchTerms" should be 3-5 specific search terms that would help find similar images of this plant
2. Include terms like: plant name, flower color, leaf shape, growth habit, specific features
3. Examples: ["monstera deliciosa", "swiss cheese plant", "split leaf", "indoor tropical", "fenestrated leaves"]
4. "imageCount" should be a number between 4-8 for how many similar images to show

Return only the JSON object. No markdown, no commentary.
"""


@dataclass(frozen=True)
class Identification:
    record: PlantRecord
    model_used: str
    parse_strategy: str
    attempts: int


def record_from_model_text(text: str):
    """Turn raw model output into a `PlantRecord`.

    Returns ``(record, strategy)`` where strategy names the repair strategy
    that succeeded, or ``"regex_extraction"`` when none did.
    """
    try:
        parsed = repair_json(text)
        partial, strategy = parsed.record, parsed.strategy
    except NoRecoverableJson as e:
        logger.warning("[Identify] %s; falling back to field extraction", e)
        partial, strategy = extract_fields_from_text(text), "regex_extraction"
    return normalize_plant_record(partial), strategy


async def identify_plant(client: GeminiClient, image: EncodedImage) -> Identification:
    """Identify the plant in `image`. Raises `AllModelsExhausted` when no model answers."""
    result = await client.generate(IDENTIFY_PROMPT, image.data, image.mime_type)
    record, strategy = record_from_model_text(result.text)
    logger.info(
        "[Identify] %s (%s) via %s, parsed with %s",
        record.commonName, record.identificationConfidence, result.model_used, strategy,
    )
    return Identification(
        record=record,
        model_used=result.model_used,
        parse_strategy=strategy,
        attempts=result.attempts,
    )
