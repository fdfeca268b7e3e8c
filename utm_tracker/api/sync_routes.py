"""UTM Tracker — Sheets Sync Routes."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from utm_tracker.core.context import AppContext, get_context

router = APIRouter(tags=["Sync"])


@router.post("/scheduled-sync")
async def trigger_sync(context: AppContext = Depends(get_context)):
    """Run one batch export to Google Sheets and return its summary."""
    result = await context.mirror.scheduled_sync()
    if not result["success"]:
        return JSONResponse(status_code=500, content=result)
    return result
