"""
Recover a JSON object from generated model text.

The model is asked for strict JSON but regularly wraps it in prose or
markdown fences, uses single quotes, leaves trailing commas, or stops
mid-object. Each strategy below returns a `ParseSuccess` or a
`ParseFailure`; `repair_json` runs them in order and the first success wins.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..errors import NoRecoverableJson

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[ \t]*[A-Za-z0-9_+-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"^\s*```[ \t]*[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_CLOSE_FENCE_RE = re.compile(r"\r?\n?```\s*$")
_INNER_OBJECT_RE = re.compile(r"\{.*?\}(?=\s*\{|\s*$)", re.DOTALL)
_DANGLING_KEY_RE = re.compile(r',?\s*"(?:[^"\\]|\\.)*"\s*:\s*$')

_SMART_QUOTES = {
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
}

_PYTHON_LITERALS = {"True": "true", "False": "false", "None": "null"}

# cap on candidate start positions tried by the inner-object strategy
_MAX_INNER_CANDIDATES = 200


@dataclass(frozen=True)
class ParseSuccess:
    record: Dict[str, Any]
    strategy: str


@dataclass(frozen=True)
class ParseFailure:
    strategy: str
    reason: str


ParseOutcome = Union[ParseSuccess, ParseFailure]


def _as_record(value: Any) -> Optional[Dict[str, Any]]:
    """Objects pass through; an array yields its first object."""
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        for item in value:
            if isinstance(item, dict):
                return item
    return None


def _loads_record(text: str, strategy: str) -> ParseOutcome:
    if not text.strip():
        return ParseFailure(strategy, "empty input")
    try:
        value = json.loads(text)
    except (ValueError, RecursionError) as e:
        return ParseFailure(strategy, f"invalid JSON ({e})")
    record = _as_record(value)
    if record is None:
        return ParseFailure(strategy, f"expected an object, got {type(value).__name__}")
    return ParseSuccess(record, strategy)


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text minus stray fences."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    text = _OPEN_FENCE_RE.sub("", text)
    return _CLOSE_FENCE_RE.sub("", text).strip()


def _skip_ws(text: str, index: int) -> int:
    while index < len(text) and text[index].isspace():
        index += 1
    return index


def _scan_double(text: str, start: int) -> int:
    """Index just past the double-quoted string opening at `start`."""
    i = start + 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == '"':
            return i + 1
        i += 1
    return len(text)


def _scan_single(text: str, start: int) -> Optional[int]:
    """Index just past a single-quoted string, or None if it never closes.

    A quote only closes the string when followed by a JSON delimiter, so
    apostrophes inside words ("don't") survive.
    """
    i = start + 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == "'":
            after = _skip_ws(text, i + 1)
            if after >= len(text) or text[after] in ",}]:":
                return i + 1
        i += 1
    return None


def _single_to_double(body: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append("'" if nxt == "'" else ch + nxt)
            i += 2
            continue
        out.append('\\"' if ch == '"' else ch)
        i += 1
    return '"' + "".join(out) + '"'


def _rewrite_tokens(text: str) -> str:
    """Quote bare keys, convert single-quoted strings and drop trailing commas.

    Works token by token so commas, colons and quotes inside string values
    are never touched.
    """
    out: List[str] = []
    last = ""  # last significant character emitted
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            end = _scan_double(text, i)
            out.append(text[i:end])
            last = '"'
            i = end
            continue
        if ch == "'" and last in ("", "{", "[", ",", ":"):
            end = _scan_single(text, i)
            if end is not None:
                out.append(_single_to_double(text[i + 1:end - 1]))
                last = '"'
                i = end
                continue
        if ch == ",":
            nxt = _skip_ws(text, i + 1)
            if nxt < n and text[nxt] in "}]":
                i += 1
                continue
        if ch.isalpha() or ch in "_$":
            j = i
            while j < n and (text[j].isalnum() or text[j] in "_$-"):
                j += 1
            word = text[i:j]
            after = _skip_ws(text, j)
            if after < n and text[after] == ":" and last in ("", "{", ","):
                out.append(json.dumps(word))
                last = '"'
            else:
                out.append(_PYTHON_LITERALS.get(word, word))
                last = word[-1]
            i = j
            continue
        out.append(ch)
        if not ch.isspace():
            last = ch
        i += 1
    return "".join(out)


def _close_truncated(text: str) -> str:
    """Append the closers a truncated object is missing, innermost first."""
    stack: List[str] = []
    in_string = False
    escape = False
    for ch in text:
        if escape:
            escape = False
            continue
        if in_string:
            if ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()

    if in_string:
        text += '"'
    text = text.rstrip()
    text = _DANGLING_KEY_RE.sub("", text)
    text = text.rstrip().rstrip(",")
    return text + "".join(reversed(stack))


def repair_text(text: str) -> str:
    """Apply the textual repairs used by the `textual_repair` strategy."""
    candidate = strip_code_fences(text) if "```" in text else text
    for bad, good in _SMART_QUOTES.items():
        candidate = candidate.replace(bad, good)
    start = candidate.find("{")
    if start != -1:
        end = candidate.rfind("}")
        candidate = candidate[start:end + 1] if end > start else candidate[start:]
    return _rewrite_tokens(candidate.strip())


def _parse_direct(text: str) -> ParseOutcome:
    return _loads_record(text.strip(), "direct")


def _parse_code_fence(text: str) -> ParseOutcome:
    if "```" not in text:
        return ParseFailure("code_fence", "no code fence")
    for match in _FENCE_RE.finditer(text):
        outcome = _loads_record(match.group(1).strip(), "code_fence")
        if isinstance(outcome, ParseSuccess):
            return outcome
    return _loads_record(strip_code_fences(text), "code_fence")


def _parse_outer_braces(text: str) -> ParseOutcome:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return ParseFailure("outer_braces", "no brace-delimited span")
    return _loads_record(text[start:end + 1], "outer_braces")


def _parse_textual_repair(text: str) -> ParseOutcome:
    repaired = repair_text(text)
    outcome = _loads_record(repaired, "textual_repair")
    if isinstance(outcome, ParseSuccess):
        return outcome
    closed = _close_truncated(repaired)
    if closed != repaired:
        return _loads_record(closed, "textual_repair")
    return outcome


def _parse_inner_object(text: str) -> ParseOutcome:
    starts = [m.start() for m in re.finditer(r"\{", text)][:_MAX_INNER_CANDIDATES]
    if not starts:
        return ParseFailure("inner_object", "no object fragments")

    decoder = json.JSONDecoder()
    for start in starts:
        try:
            value, _ = decoder.raw_decode(text, start)
        except (ValueError, RecursionError):
            continue
        if isinstance(value, dict) and value:
            return ParseSuccess(value, "inner_object")

    for start in starts:
        match = _INNER_OBJECT_RE.match(text, start)
        if not match:
            continue
        fragment = match.group(0)
        for candidate in (fragment, repair_text(fragment)):
            outcome = _loads_record(candidate, "inner_object")
            if isinstance(outcome, ParseSuccess) and outcome.record:
                return outcome
    return ParseFailure("inner_object", "no fragment parsed as an object")


STRATEGIES: Sequence[Callable[[str], ParseOutcome]] = (
    _parse_direct,
    _parse_code_fence,
    _parse_outer_braces,
    _parse_textual_repair,
    _parse_inner_object,
)


def repair_json(text: Any) -> ParseSuccess:
    """Run every strategy in order and return the first success.

    Raises `NoRecoverableJson` listing each strategy's failure reason when
    none of them yields an object.
    """
    if not isinstance(text, str):
        text = "" if text is None else str(text)
    failures: List[ParseFailure] = []
    for strategy in STRATEGIES:
        outcome = strategy(text)
        if isinstance(outcome, ParseSuccess):
            if failures:
                logger.debug(
                    "[Repair] recovered JSON with %s after %s",
                    outcome.strategy, ", ".join(f.strategy for f in failures),
                )
            return outcome
        failures.append(outcome)
    raise NoRecoverableJson(f"{f.strategy}: {f.reason}" for f in failures)
