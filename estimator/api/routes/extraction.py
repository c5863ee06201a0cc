"""
Extraction routes: photo or free text in, priced line items out.
The previous items are replaced only when the whole call succeeds.
"""

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from estimator.api.deps import Extractor, SessionId
from estimator.core.logging import get_logger
from estimator.schemas.quote import ExtractionErrorResponse, QuoteResponse, TextExtractionRequest, quote_response
from estimator.services.extraction_workflow import run_extraction

logger = get_logger(__name__)

router = APIRouter(prefix="/extract", tags=["extraction"])

ERROR_RESPONSES = {
    status.HTTP_409_CONFLICT: {"description": "An extraction is already running"},
    status.HTTP_429_TOO_MANY_REQUESTS: {"model": ExtractionErrorResponse},
    status.HTTP_502_BAD_GATEWAY: {"model": ExtractionErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ExtractionErrorResponse},
}


@router.post("/text", response_model=QuoteResponse, responses=ERROR_RESPONSES)
async def extract_text(request: TextExtractionRequest, session_id: SessionId, extractor: Extractor) -> QuoteResponse:
    """Parse a free-text material list and price it."""
    if not request.text.strip():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Text input is empty")

    state = await run_extraction(session_id, lambda: extractor.extract_from_text(request.text))
    return quote_response(state)


@router.post("/image", response_model=QuoteResponse, responses=ERROR_RESPONSES)
async def extract_image(session_id: SessionId, extractor: Extractor, file: UploadFile = File(...)) -> QuoteResponse:
    """Read a photo of a handwritten quote or catalog page and price it."""
    content_type = file.content_type or "image/jpeg"
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please upload an image file")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded image is empty")

    logger.info(f"Processing uploaded image: {file.filename}")
    state = await run_extraction(session_id, lambda: extractor.extract_from_image(data, content_type))
    return quote_response(state)
