"""
Last-resort field extraction from unstructured model output.

Used when no JSON object can be recovered. Pulls whatever of the common
name, scientific name and confidence it can find; never raises.
"""
import re
from typing import Any, Dict, Optional

from .schema import CONFIDENCE_LEVELS

_COMMON_NAME_KEY_RE = re.compile(r'"commonName"\s*:\s*"([^"]+)"')
_COMMON_NAME_PROSE_RE = re.compile(r"common name[:\s]+([^.\n]+)", re.IGNORECASE)
_SCIENTIFIC_NAME_KEY_RE = re.compile(r'"scientificName"\s*:\s*"([^"]+)"')
_SCIENTIFIC_NAME_PROSE_RE = re.compile(r"scientific name[:\s]+([^.\n]+)", re.IGNORECASE)
_CONFIDENCE_KEY_RE = re.compile(r'"identificationConfidence"\s*:\s*"([^"]+)"')
_CONFIDENCE_PROSE_RE = re.compile(r"confidence[:\s]+(High|Medium|Low)\b", re.IGNORECASE)


def _first_match(text: str, *patterns) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            value = match.group(1).strip().strip("\"'*").strip()
            if value:
                return value
    return None


def normalize_confidence(value: Any) -> Optional[str]:
    """Return `value` only if it is exactly one of High/Medium/Low."""
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    return candidate if candidate in CONFIDENCE_LEVELS else None


def extract_fields_from_text(text: Any) -> Dict[str, Any]:
    info: Dict[str, Any] = {}
    if not isinstance(text, str) or not text:
        return info

    common_name = _first_match(text, _COMMON_NAME_KEY_RE, _COMMON_NAME_PROSE_RE)
    if common_name:
        info["commonName"] = common_name

    scientific_name = _first_match(text, _SCIENTIFIC_NAME_KEY_RE, _SCIENTIFIC_NAME_PROSE_RE)
    if scientific_name:
        info["scientificName"] = scientific_name

    confidence = normalize_confidence(_first_match(text, _CONFIDENCE_KEY_RE, _CONFIDENCE_PROSE_RE))
    if confidence:
        info["identificationConfidence"] = confidence

    return info
