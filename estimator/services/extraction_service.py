"""
Gemini extraction service.

Turns a photo of a handwritten quote/catalog or a free-text material list into
priced line items in two steps:

1. recognition: image or text -> raw rows (name, spec, quantity, unit)
2. pricing: raw rows -> priced rows plus citations

Pricing first runs the grounded strategy (Google Search tool enabled). When
that fails with a failure kind that allows it, the offline strategy asks the
model for an internal-knowledge estimate and marks its single source as
offline so the figures are not mistaken for verified market prices.
"""

from __future__ import annotations

import enum
import json
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, TypeVar

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from estimator.core.config import Settings, settings as default_settings
from estimator.core.logging import get_logger
from estimator.ui.viewmodels import AnalysisResult, GroundingSource, LineItem

logger = get_logger(__name__)

T = TypeVar("T")

OFFLINE_SOURCE = GroundingSource(title="AI internal price estimate (offline mode)", uri="#")
DEFAULT_SOURCE_TITLE = "Reference link"


class ExtractionErrorKind(str, enum.Enum):
    """Typed failure classification for extraction calls."""
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    MODEL_NOT_FOUND = "model_not_found"
    PERMANENT = "permanent"
    CONTRACT_VIOLATION = "contract_violation"
    NOT_CONFIGURED = "not_configured"

    @property
    def is_transient(self) -> bool:
        return self in (ExtractionErrorKind.RATE_LIMITED, ExtractionErrorKind.UNAVAILABLE)

    @property
    def allows_fallback(self) -> bool:
        return self in (
            ExtractionErrorKind.RATE_LIMITED,
            ExtractionErrorKind.UNAVAILABLE,
            ExtractionErrorKind.CONTRACT_VIOLATION,
        )


USER_MESSAGES = {
    ExtractionErrorKind.RATE_LIMITED: (
        "The AI service is busy (rate limit reached). Please wait a moment and try again."
    ),
    ExtractionErrorKind.UNAVAILABLE: (
        "The AI service is temporarily unavailable. Please check your network and try again."
    ),
    ExtractionErrorKind.MODEL_NOT_FOUND: (
        "The configured AI model was not found. Check the GEMINI_MODEL setting."
    ),
    ExtractionErrorKind.PERMANENT: (
        "The AI service rejected the request. Check the API key and settings."
    ),
    ExtractionErrorKind.CONTRACT_VIOLATION: (
        "The AI service returned a response that could not be read as a material list."
    ),
    ExtractionErrorKind.NOT_CONFIGURED: (
        "AI extraction is not configured. Set GEMINI_API_KEY and restart."
    ),
}


class ExtractionError(RuntimeError):
    """Raised when an extraction call fails terminally."""

    def __init__(self, kind: ExtractionErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]


def classify_error(exc: BaseException) -> ExtractionError:
    """Map an SDK or transport exception to an ExtractionError."""
    if isinstance(exc, ExtractionError):
        return exc

    if isinstance(exc, genai_errors.APIError):
        code = exc.code or 0
        if code == 429:
            kind = ExtractionErrorKind.RATE_LIMITED
        elif code == 404:
            kind = ExtractionErrorKind.MODEL_NOT_FOUND
        elif code == 408 or code >= 500:
            kind = ExtractionErrorKind.UNAVAILABLE
        else:
            kind = ExtractionErrorKind.PERMANENT
        return ExtractionError(kind, f"Gemini API error {code} {exc.status or ''}: {exc.message or ''}".strip())

    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return ExtractionError(ExtractionErrorKind.UNAVAILABLE, f"Network error: {exc}")

    raise TypeError(f"Cannot classify {type(exc).__name__}") from exc


RETRYABLE_EXCEPTIONS = (
    ExtractionError,
    genai_errors.APIError,
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


# ---------------------------------------------------------------------------
# Response contracts
# ---------------------------------------------------------------------------

class RecognizedItem(BaseModel):
    """A raw row read from the photo or text, before pricing."""
    name: str
    spec: str
    quantity: float
    unit: str


class PricedItem(BaseModel):
    """A priced row as returned by the pricing step."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: str
    spec: str
    quantity: float
    unit: str
    market_price: float = Field(alias="marketPrice")
    brand: str
    remarks: str
    supplier: str
    source_url: str = Field(alias="sourceUrl")

    def to_line_item(self) -> LineItem:
        return LineItem(
            name=self.name,
            spec=self.spec,
            quantity=self.quantity,
            unit=self.unit,
            market_price=self.market_price,
            brand=self.brand,
            remarks=self.remarks,
            supplier=self.supplier,
            source_url=self.source_url,
        )


_recognized_list = TypeAdapter(List[RecognizedItem])
_priced_list = TypeAdapter(List[PricedItem])

RECOGNITION_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "name": types.Schema(type=types.Type.STRING),
            "spec": types.Schema(type=types.Type.STRING),
            "quantity": types.Schema(type=types.Type.NUMBER),
            "unit": types.Schema(type=types.Type.STRING),
        },
        required=["name", "spec", "quantity", "unit"],
    ),
)

PRICED_FIELDS = [
    "id", "name", "spec", "quantity", "unit", "marketPrice",
    "brand", "remarks", "supplier", "sourceUrl",
]

PRICING_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            name: types.Schema(
                type=types.Type.NUMBER if name in ("quantity", "marketPrice") else types.Type.STRING
            )
            for name in PRICED_FIELDS
        },
        required=PRICED_FIELDS[1:],
    ),
)


def parse_json_payload(raw_text: Optional[str]) -> Any:
    """
    Parse the JSON body of a model response. Markdown code fences are
    tolerated; anything else unparseable is a contract violation.
    """
    if not raw_text or not raw_text.strip():
        raise ExtractionError(ExtractionErrorKind.CONTRACT_VIOLATION, "Empty response from model")

    cleaned = re.sub(r"^```(?:json)?", "", raw_text.strip(), flags=re.IGNORECASE | re.MULTILINE)
    cleaned = re.sub(r"```$", "", cleaned.strip(), flags=re.MULTILINE).strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Grounded answers sometimes wrap the array in prose
    match = re.search(r"\[.*\]", cleaned, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise ExtractionError(
                ExtractionErrorKind.CONTRACT_VIOLATION, f"Unparseable JSON in response: {exc}"
            ) from exc

    raise ExtractionError(ExtractionErrorKind.CONTRACT_VIOLATION, "No JSON array found in response")


def _validate(adapter: TypeAdapter, payload: Any) -> list:
    try:
        return adapter.validate_python(payload)
    except ValidationError as exc:
        raise ExtractionError(
            ExtractionErrorKind.CONTRACT_VIOLATION,
            f"Response does not match the item schema: {exc.error_count()} error(s)",
        ) from exc


def grounding_sources(response: Any) -> List[GroundingSource]:
    """Collect web citations from the first candidate's grounding metadata."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    sources = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            continue
        sources.append(GroundingSource(
            title=getattr(web, "title", None) or DEFAULT_SOURCE_TITLE,
            uri=getattr(web, "uri", None) or "#",
        ))
    return sources


@dataclass
class ModelProbe:
    """Result of probing one model name."""
    model: str
    ok: bool
    error: Optional[str] = None


class ExtractionService:
    """
    Gemini-backed extraction with a uniform retry policy: transient failures
    are retried up to ``EXTRACTION_MAX_ATTEMPTS`` attempts, waiting
    ``EXTRACTION_BASE_DELAY_SECONDS`` and doubling after each failure.
    """

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        config: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or default_settings
        self._client = client
        self._sleep = sleep
        self.model = self.config.GEMINI_MODEL
        self.max_attempts = self.config.EXTRACTION_MAX_ATTEMPTS
        self.base_delay = self.config.EXTRACTION_BASE_DELAY_SECONDS

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self.config.GEMINI_API_KEY:
                raise ExtractionError(
                    ExtractionErrorKind.NOT_CONFIGURED, "GEMINI_API_KEY is not set"
                )
            self._client = genai.Client(api_key=self.config.GEMINI_API_KEY)
        return self._client

    # ----- public API -----

    def extract_from_image(self, data: bytes, mime_type: str = "image/jpeg") -> AnalysisResult:
        """Recognize and price the materials shown in an image."""
        if not data:
            raise ValueError("Image payload is empty")
        logger.info(f"Extracting items from image ({len(data)} bytes, {mime_type})")

        prompt = (
            "Read this electrical/plumbing material estimate sheet. "
            "List every material with its name, specification, quantity and unit."
        )
        contents = [types.Part.from_bytes(data=data, mime_type=mime_type), prompt]
        raw_items = self._recognize(contents)
        return self._price_items(raw_items)

    def extract_from_text(self, text: str) -> AnalysisResult:
        """Parse and price a free-text material list."""
        if not text or not text.strip():
            raise ValueError("Text input is empty")
        logger.info(f"Extracting items from text ({len(text)} chars)")

        prompt = f'Extract the electrical/plumbing material list from:\n"{text.strip()}"'
        raw_items = self._recognize(prompt)
        return self._price_items(raw_items)

    def check_models(self, candidates: Optional[List[str]] = None) -> List[ModelProbe]:
        """Send a short prompt to each candidate model and report which respond."""
        results = []
        for model in candidates or self.config.GEMINI_MODEL_CANDIDATES:
            try:
                self.client.models.generate_content(model=model, contents="Hello")
            except RETRYABLE_EXCEPTIONS as exc:
                error = classify_error(exc)
                logger.info(f"Model {model} unavailable: {error.kind.value}")
                results.append(ModelProbe(model=model, ok=False, error=error.message))
                continue
            results.append(ModelProbe(model=model, ok=True))
        return results

    # ----- steps -----

    def _recognize(self, contents: Any) -> List[RecognizedItem]:
        def call() -> List[RecognizedItem]:
            response = self.client.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=RECOGNITION_SCHEMA,
                ),
            )
            return _validate(_recognized_list, parse_json_payload(response.text))

        items = self._call_with_retry(call, "recognition")
        logger.info(f"Recognized {len(items)} raw items")
        return items

    def _price_items(self, raw_items: List[RecognizedItem]) -> AnalysisResult:
        try:
            return self._price_grounded(raw_items)
        except ExtractionError as exc:
            if not exc.kind.allows_fallback:
                raise
            logger.warning(
                f"Grounded pricing failed ({exc.kind.value}: {exc.message}); "
                "falling back to offline estimate"
            )
        return self._price_offline(raw_items)

    def _price_grounded(self, raw_items: List[RecognizedItem]) -> AnalysisResult:
        listing = json.dumps([item.model_dump() for item in raw_items], ensure_ascii=False)
        prompt = (
            f"Using Google Search, find the current lowest {self.config.MARKET_REGION} market price, "
            "a recommended brand, the specification and supplier for each material below.\n"
            f"Materials: {listing}\n\n"
            "Answer with a JSON array only. Each object must contain: "
            "id, name, spec, quantity, unit, marketPrice (number), brand, remarks, "
            "supplier, sourceUrl."
        )

        def call() -> AnalysisResult:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    tools=[types.Tool(google_search=types.GoogleSearch())],
                ),
            )
            priced = _validate(_priced_list, parse_json_payload(response.text))
            return AnalysisResult(
                items=[item.to_line_item() for item in priced],
                sources=grounding_sources(response),
                mode="grounded",
            )

        result = self._call_with_retry(call, "grounded pricing")
        logger.info(f"Grounded pricing returned {len(result.items)} items, {len(result.sources)} sources")
        return result

    def _price_offline(self, raw_items: List[RecognizedItem]) -> AnalysisResult:
        listing = json.dumps([item.model_dump() for item in raw_items], ensure_ascii=False)
        prompt = (
            f"You are an experienced {self.config.MARKET_REGION} electrical and plumbing estimator. "
            "From your own knowledge of the market, estimate a reasonable current price "
            "(tax included) for each material below.\n"
            f"Materials: {listing}\n\n"
            "Return a JSON array with id, name, spec, quantity, unit, marketPrice, brand, "
            "remarks, supplier and sourceUrl. Use \"AI estimate\" as the supplier."
        )

        def call() -> AnalysisResult:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=PRICING_SCHEMA,
                ),
            )
            priced = _validate(_priced_list, parse_json_payload(response.text))
            return AnalysisResult(
                items=[item.to_line_item() for item in priced],
                sources=[OFFLINE_SOURCE],
                mode="offline",
            )

        result = self._call_with_retry(call, "offline pricing")
        logger.info(f"Offline pricing returned {len(result.items)} items")
        return result

    def _call_with_retry(self, operation: Callable[[], T], label: str) -> T:
        delay = self.base_delay
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation()
            except RETRYABLE_EXCEPTIONS as exc:
                error = classify_error(exc)
                if not error.kind.is_transient or attempt >= self.max_attempts:
                    logger.error(f"{label} failed ({error.kind.value}) after {attempt} attempt(s): {error.message}")
                    if error is exc:
                        raise
                    raise error from exc
                logger.warning(
                    f"{label} attempt {attempt}/{self.max_attempts} failed "
                    f"({error.kind.value}); retrying in {delay:.1f}s"
                )
            self._sleep(delay)
            delay *= 2
        raise AssertionError("unreachable")
