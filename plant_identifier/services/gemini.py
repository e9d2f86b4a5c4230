"""
Gemini inference client with retry and model fallback.

Calls the Gemini REST `generateContent` endpoint with a prompt and an inline
base64 image. Overload responses (429/503) are retried on the same model with
exponential backoff; a 404 advances straight to the next model; any other
failure waits a short fixed delay and advances. Only when every model has
failed (or the time budget runs out) does the caller see `AllModelsExhausted`.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..config import Settings
from ..errors import (
    AllModelsExhausted,
    ModelNotFound,
    RetryableUpstreamFailure,
    UpstreamError,
    UpstreamHTTPError,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 503)

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


@dataclass(frozen=True)
class InferenceResult:
    text: str
    model_used: str
    attempts: int


def extract_candidate_text(response: Dict[str, Any]) -> str:
    """Join the text parts of the first candidate; ``"{}"`` when there are none."""
    try:
        candidates = response.get("candidates") or []
        if not candidates:
            return "{}"
        parts = (candidates[0].get("content") or {}).get("parts") or []
        texts = [p.get("text") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    except AttributeError:
        return "{}"
    text = "".join(texts)
    return text if text.strip() else "{}"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
        message = (body.get("error") or {}).get("message")
        if message:
            return str(message)
    except (ValueError, AttributeError):
        pass
    return response.text[:200]


class GeminiClient:
    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.models: List[str] = settings.models
        self._transport = transport
        self._sleep = sleep
        self._clock = clock

    def build_payload(self, prompt: str, image_base64: str, mime_type: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {"inlineData": {"mimeType": mime_type, "data": image_base64}},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": self.settings.temperature,
                "topP": 0.95,
                "topK": 40,
                "maxOutputTokens": self.settings.max_output_tokens,
                "candidateCount": 1,
            },
            "safetySettings": [
                {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
                for category in SAFETY_CATEGORIES
            ],
        }

    async def _call_model(
        self,
        client: httpx.AsyncClient,
        model: str,
        payload: Dict[str, Any],
        timeout: float,
    ) -> str:
        """Make one attempt against `model`; raise a typed `UpstreamError` on failure."""
        url = f"{self.settings.gemini_api_base.rstrip('/')}/{model}:generateContent"
        try:
            response = await client.post(
                url,
                headers={"x-goog-api-key": self.settings.gemini_api_key or ""},
                json=payload,
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            raise UpstreamHTTPError(model, f"Request to {model} failed: {e.__class__.__name__}: {e}")

        status = response.status_code
        logger.debug("[Gemini] %s responded %s", model, status)
        if status in RETRYABLE_STATUSES:
            raise RetryableUpstreamFailure(model, f"Model {model} is overloaded ({status})", status)
        if status == 404:
            raise ModelNotFound(model, f"Model {model} not found.", status)
        if not response.is_success:
            raise UpstreamHTTPError(model, f"API error {status}: {_error_message(response)}", status)

        try:
            body = response.json()
        except ValueError:
            # not the documented shape; let the repair engine deal with the raw body
            return response.text or "{}"
        if not isinstance(body, dict):
            return "{}"
        return extract_candidate_text(body)

    async def generate(self, prompt: str, image_base64: str, mime_type: str) -> InferenceResult:
        """Run the prompt against the configured models until one succeeds."""
        payload = self.build_payload(prompt, image_base64, mime_type)
        deadline = self._clock() + self.settings.time_budget_seconds
        attempts = 0
        last_error: Optional[Exception] = None

        def remaining() -> float:
            return deadline - self._clock()

        budget_cut = False

        async def wait(delay: float) -> None:
            """Sleep for `delay`, or skip it when it would overrun the budget."""
            nonlocal budget_cut
            if delay > remaining():
                budget_cut = True
                return
            await self._sleep(delay)

        async with httpx.AsyncClient(transport=self._transport) as client:
            for index, model in enumerate(self.models):
                is_last = index == len(self.models) - 1
                retry = 0
                while True:
                    budget = remaining()
                    if budget <= 0:
                        raise AllModelsExhausted(
                            "Time budget exhausted before the Gemini API responded",
                            last_error=last_error,
                            attempts=attempts,
                        )
                    attempts += 1
                    logger.info(
                        "[Gemini] Calling model %s (attempt %d/%d)",
                        model, retry + 1, self.settings.max_retries + 1,
                    )
                    try:
                        text = await self._call_model(
                            client, model, payload, min(self.settings.request_timeout_seconds, budget)
                        )
                    except RetryableUpstreamFailure as e:
                        last_error = e
                        if retry < self.settings.max_retries:
                            delay = self.settings.base_delay_seconds * (2 ** retry)
                            if delay <= remaining():
                                logger.warning("[Gemini] %s overloaded (%s). Retrying in %.2fs", model, e.status_code, delay)
                                await wait(delay)
                                retry += 1
                                continue
                            budget_cut = True
                            logger.warning(
                                "[Gemini] %s overloaded; %.2fs backoff exceeds the time budget, trying next model",
                                model, delay,
                            )
                            break
                        logger.warning("[Gemini] %s still overloaded after %d retries", model, self.settings.max_retries)
                        if not is_last:
                            await wait(self.settings.fallback_delay_seconds)
                        break
                    except ModelNotFound as e:
                        last_error = e
                        logger.warning("[Gemini] %s", e)
                        break
                    except UpstreamError as e:
                        last_error = e
                        logger.warning("[Gemini] %s failed: %s", model, e)
                        if not is_last:
                            await wait(self.settings.fallback_delay_seconds)
                        break

                    logger.info("[Gemini] Success with model %s after %d attempt(s)", model, attempts)
                    return InferenceResult(text=text, model_used=model, attempts=attempts)

        if budget_cut:
            message = f"Time budget exhausted before any Gemini model succeeded ({last_error})"
        else:
            message = str(last_error) if last_error else "No Gemini models configured"
        raise AllModelsExhausted(
            message,
            last_error=last_error,
            attempts=attempts,
        )
