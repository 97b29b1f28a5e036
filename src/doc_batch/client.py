"""
Gemini ``generateContent`` client.

One blocking HTTP request per :meth:`GenerationClient.submit`; the response
is classified into a :mod:`outcomes` variant.  No retries happen here:
retry, rotation, and quota decisions belong to the batch runner.
"""

from __future__ import annotations

import time
from typing import Optional

import requests

from .config import API_BASE_URL, DEFAULT_MODEL, GENERATION_CONFIG, REQUEST_TIMEOUT_SECONDS
from .failures import APIError
from .outcomes import Empty, GenerationOutcome, Produced, QuotaExhausted, TransientError

QUOTA_STATUS_CODES = frozenset({429})
QUOTA_ERROR_STATUSES = frozenset({"RESOURCE_EXHAUSTED"})


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------

def build_endpoint_url(model: str, base_url: str = API_BASE_URL) -> str:
    """Endpoint for ``model``; the key is passed separately as ``key=``."""
    return f"{base_url.rstrip('/')}/models/{model}:generateContent"


def build_request_payload(prompt: str, generation_config: Optional[dict] = None) -> dict:
    """
    Construct the JSON request body.

    Args:
        prompt: Fully rendered prompt string.
        generation_config: Optional ``generationConfig`` block.

    Returns:
        Dict suitable for the ``json=`` argument of ``requests.post()``.
    """
    payload: dict = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
    if generation_config:
        payload["generationConfig"] = dict(generation_config)
    return payload


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def extract_text(response_json: dict) -> str:
    """
    Join the text parts of the first candidate.

    Returns an empty string when there is no candidate, no content, or no
    text part; the caller turns that into an ``Empty`` outcome.
    """
    candidates = response_json.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content")
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts")
    if not isinstance(parts, list):
        return ""
    texts = [
        part["text"] for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    ]
    return "".join(texts).strip()


def _malformed_candidates(response_json: dict) -> bool:
    """``candidates`` present but not shaped list[{content: {parts: list}}]."""
    candidates = response_json.get("candidates")
    if candidates is None:
        return False
    if not isinstance(candidates, list):
        return True
    if not candidates:
        return False
    first = candidates[0]
    if not isinstance(first, dict):
        return True
    content = first.get("content")
    if content is None:
        return False
    if not isinstance(content, dict):
        return True
    parts = content.get("parts")
    return parts is not None and not isinstance(parts, list)


def error_status(response_json) -> str:
    """Provider status string from an error body (``RESOURCE_EXHAUSTED`` ...)."""
    if not isinstance(response_json, dict):
        return ""
    error = response_json.get("error")
    if not isinstance(error, dict):
        return ""
    return str(error.get("status") or "")


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:300]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message") or body["error"])[:300]
    return str(body)[:300]


def classify_response(response: requests.Response, latency: Optional[float] = None) -> GenerationOutcome:
    """
    Map one HTTP response to a generation outcome.

    - 429, or an error body with status ``RESOURCE_EXHAUSTED`` → QuotaExhausted
    - other non-2xx → TransientError
    - undecodable or malformed 2xx body → TransientError
    - 2xx without usable text → Empty (``promptFeedback.blockReason`` noted)
    - otherwise → Produced
    """
    status = response.status_code

    if status in QUOTA_STATUS_CODES:
        return QuotaExhausted(detail=f"HTTP {status}: {_error_message(response)}", latency_seconds=latency)

    if not 200 <= status < 300:
        try:
            body = response.json()
        except ValueError:
            body = None
        if error_status(body) in QUOTA_ERROR_STATUSES:
            return QuotaExhausted(detail=f"HTTP {status}: {_error_message(response)}", latency_seconds=latency)
        return TransientError(
            detail=f"HTTP {status}: {_error_message(response)}",
            category=APIError.categorize_status(status),
            latency_seconds=latency,
        )

    try:
        data = response.json()
    except ValueError as exc:
        category, message = APIError.categorize(exc)
        return TransientError(detail=f"Undecodable response: {message}", category=category, latency_seconds=latency)

    if not isinstance(data, dict):
        return TransientError(
            detail=f"Unexpected response type {type(data).__name__}",
            category=APIError.INVALID_RESPONSE,
            latency_seconds=latency,
        )

    if _malformed_candidates(data):
        return TransientError(
            detail="Malformed candidates in response",
            category=APIError.INVALID_RESPONSE,
            latency_seconds=latency,
        )

    text = extract_text(data)
    if not text:
        feedback = data.get("promptFeedback") or {}
        reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        detail = f"blocked: {reason}" if reason else "no candidates in response"
        return Empty(detail=detail, latency_seconds=latency)

    return Produced(text=text, latency_seconds=latency)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GenerationClient:
    """
    Blocking client for the generation API.

    Args:
        model: Model id placed in the endpoint path.
        timeout: Per-request timeout in seconds.
        generation_config: Optional ``generationConfig`` sent with each call.
        session: ``requests.Session`` to reuse connections (created if omitted).
        base_url: API root, overridable for tests or proxies.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        generation_config: Optional[dict] = None,
        session: Optional[requests.Session] = None,
        base_url: str = API_BASE_URL,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.generation_config = (
            dict(GENERATION_CONFIG) if generation_config is None else dict(generation_config)
        )
        self.session = session or requests.Session()
        self.endpoint = build_endpoint_url(model, base_url)

    def submit(self, prompt: str, credential: str) -> GenerationOutcome:
        """
        Send one request with ``credential`` and classify the result.

        Never raises for transport or HTTP failures; those come back as
        ``TransientError``.
        """
        payload = build_request_payload(prompt, self.generation_config)
        start = time.monotonic()
        try:
            response = self.session.post(
                self.endpoint,
                params={"key": credential},
                headers={"Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            latency = round(time.monotonic() - start, 3)
            category, message = APIError.categorize(exc)
            # requests embeds the full URL (with the key) in some messages
            message = message.replace(credential, "***")
            return TransientError(detail=message, category=category, latency_seconds=latency)

        latency = round(time.monotonic() - start, 3)
        return classify_response(response, latency)

    def close(self) -> None:
        self.session.close()
