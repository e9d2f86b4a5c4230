"""
Service layer for the Plant Identifier API.

Exports:
- validate_upload: MIME/size checks and base64 encoding of uploads
- GeminiClient: inference client with retry and model fallback
- repair_json: ordered JSON recovery strategies for model output
- extract_fields_from_text: regex fallback when no JSON is recoverable
- normalize_plant_record: defaulting validator producing a full PlantRecord
- identify_plant: the end-to-end identification pipeline
- ImageSearchService: Unsplash enrichment with placeholder fallback
"""
from .extraction import extract_fields_from_text
from .gemini import GeminiClient, InferenceResult
from .identify import identify_plant, record_from_model_text
from .images import ImageSearchService
from .ingress import EncodedImage, validate_upload
from .repair import ParseFailure, ParseSuccess, repair_json
from .schema import normalize_plant_record

__all__ = [
    'validate_upload',
    'EncodedImage',
    'GeminiClient',
    'InferenceResult',
    'repair_json',
    'ParseSuccess',
    'ParseFailure',
    'extract_fields_from_text',
    'normalize_plant_record',
    'identify_plant',
    'record_from_model_text',
    'ImageSearchService',
]
