from datetime import datetime, timezone as dt_timezone
from typing import Optional
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from cleansort.core.config import settings
from .receipt import ReceiptExtractor, fallback_items

logger = logging.getLogger(__name__)

router = APIRouter()


def get_extractor(request: Request) -> ReceiptExtractor:
    extractor = getattr(request.app.state, "receipt_extractor", None)
    if extractor is None:
        extractor = ReceiptExtractor()
        request.app.state.receipt_extractor = extractor
    return extractor


@router.post("/process-receipt")
async def process_receipt(
    image: Optional[UploadFile] = File(None),
    city: Optional[str] = Form(None),
    extractor: ReceiptExtractor = Depends(get_extractor),
):
    """Extract disposable items from a receipt photo."""
    if not extractor.is_configured:
        logger.error("[OCR] OPENAI_API_KEY not found in environment variables")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error: OPENAI_API_KEY not found",
        )
    if image is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No image file provided")
    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only image files are allowed")

    content = await image.read()
    if len(content) > settings.OCR_MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"File too large. Maximum size is {settings.OCR_MAX_UPLOAD_BYTES // (1024 * 1024)}MB.")

    logger.info(f"[OCR] Processing receipt {image.filename} ({len(content)} bytes) city={city!r}")
    timestamp = datetime.now(dt_timezone.utc).isoformat()
    try:
        items = await extractor.extract(content, image.content_type, city)
    except Exception as e:
        logger.error(f"[OCR] Extraction failed, returning sample items: {e!r}")
        items = fallback_items()
        return {
            "success": True,
            "items": items,
            "count": len(items),
            "city": city,
            "timestamp": timestamp,
            "fallback": True,
            "error": str(e),
        }

    return {
        "success": True,
        "items": items,
        "count": len(items),
        "city": city,
        "timestamp": timestamp,
    }
