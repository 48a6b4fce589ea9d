from fastapi import FastAPI, HTTPException, Header, Depends
from config import settings
from services.database import RecordWriteError
from services.ingestion import IngestionService
from models.device import DeviceCredential
from models.ingest import IngestRequest, IngestResponse, IngestStatus
import logging

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="SMS Gateway Ingest",
    version="0.1.0",
    description="Idempotent ingestion of mobile-money SMS forwarded by device relays"
)

_ingestion_service = None


def get_ingestion_service() -> IngestionService:
    """Create the IngestionService on first use"""
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = IngestionService()
    return _ingestion_service


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "service": "SMS Gateway Ingest"
    }


@app.get("/status")
def get_status(service: IngestionService = Depends(get_ingestion_service)):
    """Record counts by parse status

    Returns:
        {
            "status": "running",
            "records": {"pending": int, "parsed": int, "failed": int},
            "extraction_models": [str]
        }
    """
    try:
        return {
            "status": "running",
            "records": service.status_counts(),
            "extraction_models": [p.name for p in service.extractor.providers]
        }
    except Exception as e:
        logger.error(f"Error reading status: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/ingest", response_model=IngestResponse)
def ingest_sms(
    request: IngestRequest,
    x_device_id: str = Header(None, alias="X-Device-Id"),
    x_device_secret: str = Header(None, alias="X-Device-Secret"),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Ingest one SMS forwarded by a relay

    Safe under arbitrary retry: a repeated delivery of the same
    (sender, body, received_at) returns the first record.

    Returns:
        {
            "ok": bool,
            "id": str,
            "duplicate": bool,
            "parse_status": "pending" | "parsed" | "failed",
            "skipped": bool,
            "reason": str or None,
            "model_used": str or None
        }

    Status codes:
        200: accepted, duplicate or skipped
        400: malformed request (relay must not retry)
        401: missing, unknown or disabled device credential (relay must not retry)
        503: storage unavailable (relay retries)
    """
    credential = DeviceCredential(device_id=x_device_id, device_secret=x_device_secret)

    try:
        result = service.ingest(credential, request)
    except RecordWriteError as e:
        logger.error(f"Storage error during ingest: {str(e)}", exc_info=True)
        raise HTTPException(status_code=503, detail="Storage unavailable")
    except Exception as e:
        logger.error(f"Error ingesting SMS: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    if result.status == IngestStatus.REJECTED:
        raise HTTPException(status_code=401 if result.unauthorized else 400, detail=result.reason)

    return IngestResponse.from_result(result)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting SMS Gateway Ingest ({settings.ENVIRONMENT})")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on server shutdown"""
    logger.info("Shutting down SMS Gateway Ingest")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
