"""
ATS Scan Router - keyword scoring of a resume against a job description
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from atscan.models.schemas import ScanRequest, ScanResponse
from atscan.services.esco_client import ESCOClient
from atscan.services.pipeline import ScanPipeline
from atscan.utils.exceptions import ATSBaseException, map_to_http_exception
from atscan.utils.logging_config import get_logger

router = APIRouter(prefix="/api/ats", tags=["ats"])
logger = get_logger(__name__)


def get_pipeline(request: Request) -> ScanPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Scan pipeline is not initialized")
    return pipeline


def get_esco_client(request: Request) -> ESCOClient:
    client = getattr(request.app.state, "esco_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="ESCO client is not initialized")
    return client


@router.post("/scan", response_model=ScanResponse)
async def scan(payload: ScanRequest, pipeline: ScanPipeline = Depends(get_pipeline)):
    """Score the resume against the job description"""
    try:
        result = await pipeline.scan(payload.job_description, payload.resume_text, payload.options)
    except ATSBaseException as exc:
        logger.warning(f"Scan rejected: {exc.message}", extra={"error_code": exc.error_code})
        raise map_to_http_exception(exc) from exc
    return ScanResponse(success=True, data=result)


@router.get("/cache/stats")
async def cache_stats(client: ESCOClient = Depends(get_esco_client)) -> Dict[str, Any]:
    """Hit/miss/eviction counters of the ESCO caches"""
    return client.cache_stats()
