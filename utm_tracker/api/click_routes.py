"""UTM Tracker — Click Ingestion Routes."""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from utm_tracker.core.context import AppContext, get_context
from utm_tracker.core.logging import get_logger, log_fields
from utm_tracker.models.click_models import ClickRecord, to_utc, utcnow

logger = get_logger("api.clicks")

router = APIRouter(tags=["Clicks"])

CLICK_DEFAULTS = {
    "source": "facebook",
    "medium": "fb_ads",
    "campaign": "unknown",
    "content": "unknown",
    "placement": "unknown",
}


# ── Request / Response Models ──


class StoreClickRequest(BaseModel):
    """Payload posted by the landing page when the WhatsApp button is clicked."""

    session_id: str = Field(..., min_length=1)
    original_params: Optional[Dict[str, Any]] = None
    """Every query parameter on the landing URL, verbatim."""
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    content: Optional[str] = None
    placement: Optional[str] = None
    full_url: Optional[str] = None
    click_time: Optional[datetime] = None

    model_config = {
        "extra": "ignore",
        "json_schema_extra": {
            "examples": [
                {
                    "session_id": "wa-1718000000000-1a2b3c4d",
                    "source": "instagram",
                    "campaign": "summer_sale",
                    "original_params": {"utm_source": "instagram"},
                }
            ]
        },
    }

    @field_validator("click_time")
    @classmethod
    def click_time_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Browser times may carry any offset; naive ones are taken as UTC."""
        return to_utc(value)

    def resolve(self, dimension: str) -> str:
        """original_params value, then top-level field, then the default."""
        params = self.original_params or {}
        return (
            params.get(dimension)
            or getattr(self, dimension)
            or CLICK_DEFAULTS[dimension]
        )


# ── Endpoints ──


@router.post("/store-click", status_code=status.HTTP_201_CREATED)
async def store_click(
    request: StoreClickRequest,
    context: AppContext = Depends(get_context),
):
    """Record a click. Repeated session ids are acknowledged without changes."""
    now = utcnow()
    record = ClickRecord(
        id=request.session_id,
        **{dimension: str(request.resolve(dimension)) for dimension in CLICK_DEFAULTS},
        original_params=request.original_params or {},
        full_url=request.full_url,
        click_time=request.click_time or now,
        timestamp=now,
        has_engaged=False,
        synced_to_sheets=False,
    )
    try:
        _, created = context.store.create_click(record)
    except Exception as e:
        logger.error(
            f"❌ Storage error: {e}",
            extra=log_fields(session_id=request.session_id, stage="store_click"),
        )
        raise HTTPException(status_code=500, detail="Database operation failed")

    if created:
        logger.info(f"Click stored: {request.session_id}", extra=log_fields(session_id=request.session_id))
    return {
        "message": "Click stored",
        "session_id": request.session_id,
        "created": created,
    }
