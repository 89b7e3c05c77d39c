"""FastAPI main application."""

from fastapi import FastAPI, BackgroundTasks, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import structlog

from .. import __version__
from ..config import settings
from ..logging_setup import configure_logging
from ..core.errors import InvalidDimensions, SurfaceUnavailable
from ..core.scene import pixel_size, validate_dimensions
from ..render.export import encode_raster
from ..render.preview import render_preview
from ..utils.seeds import new_seed, normalize_seed
from .jobs import COMPLETED, ExportJobStore, ExportLimitReached, run_export

# Configure logging
configure_logging()

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="War Scene Generator API",
    description="Seed-driven procedural war scene backgrounds",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

jobs = ExportJobStore(
    ttl_seconds=settings.export_ttl_seconds,
    max_active=settings.max_concurrent_exports,
)


# Request/Response models
class SeedRequest(BaseModel):
    """Request for a fresh seed."""

    previous: Optional[int] = Field(None, description="Seed currently displayed, never returned")


class SeedResponse(BaseModel):
    """A scene seed."""

    seed: int


class ExportRequest(BaseModel):
    """Request to export a scene at high resolution."""

    seed: Optional[int] = Field(None, description="Scene seed; a fresh one is picked when omitted")
    width: Optional[int] = Field(None, gt=0, le=16384, description="Export width in pixels")
    height: Optional[int] = Field(None, gt=0, le=16384, description="Export height in pixels")
    quality: Optional[int] = Field(None, ge=1, le=100, description="JPEG quality")


class JobResponse(BaseModel):
    """Response with export job information."""

    job_id: str
    seed: int
    width: int
    height: int
    status: str
    progress_percent: int
    message: str
    current_layer: Optional[str] = None
    filename: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


def _job_response(job, message: str) -> JobResponse:
    return JobResponse(
        job_id=job.id,
        seed=job.seed,
        width=job.width,
        height=job.height,
        status=job.status,
        progress_percent=job.progress_percent,
        message=message,
        current_layer=job.current_layer,
        filename=job.result.filename if job.result else None,
        error_message=job.error_message,
        created_at=job.created_at,
        completed_at=job.completed_at,
    )


def _get_job_or_404(job_id: str):
    job = jobs.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "War Scene Generator API",
        "version": __version__,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.post("/seeds", response_model=SeedResponse)
async def create_seed(request: Optional[SeedRequest] = None):
    """Pick a new seed, different from ``previous``."""
    previous = request.previous if request else None
    return SeedResponse(seed=new_seed(previous=previous))


@app.get("/scenes/{seed}/preview")
def get_preview(
    seed: int,
    width: float = Query(None, description="Viewport width, defaults to settings.preview_width"),
    height: float = Query(None, description="Viewport height, defaults to settings.preview_height"),
    pixel_ratio: float = Query(1.0, gt=0, le=4, description="Device pixel ratio"),
):
    """Render a PNG preview of ``seed``."""
    width = settings.preview_width if width is None else width
    height = settings.preview_height if height is None else height
    try:
        validate_dimensions(width, height)
    except InvalidDimensions as e:
        raise HTTPException(status_code=422, detail=str(e))

    pixel_width, pixel_height = pixel_size(width, height, pixel_ratio)
    if pixel_width * pixel_height > settings.max_preview_pixels:
        raise HTTPException(
            status_code=422,
            detail=f"Preview of {pixel_width}x{pixel_height} exceeds {settings.max_preview_pixels} pixels",
        )

    try:
        raster = render_preview(width, height, normalize_seed(seed), pixel_ratio)
    except SurfaceUnavailable as e:
        logger.error("Preview failed", seed=seed, error=str(e))
        raise HTTPException(status_code=503, detail=str(e))

    return Response(content=encode_raster(raster, "PNG"), media_type="image/png")


@app.post("/exports", response_model=JobResponse, status_code=202)
async def create_export(request: ExportRequest, background_tasks: BackgroundTasks):
    """
    Start an export job.

    Returns immediately with the job. Use /exports/{job_id} to check status.
    """
    logger.info("Export requested", request=request.model_dump())
    seed = normalize_seed(request.seed) if request.seed is not None else new_seed()
    width = settings.export_width if request.width is None else request.width
    height = settings.export_height if request.height is None else request.height
    if width * height > settings.max_export_pixels:
        raise HTTPException(
            status_code=422,
            detail=f"Export of {width}x{height} exceeds {settings.max_export_pixels} pixels",
        )

    try:
        job = jobs.create(
            seed=seed,
            width=width,
            height=height,
            quality=settings.export_quality if request.quality is None else request.quality,
        )
    except ExportLimitReached as e:
        logger.warning("Export rejected", seed=seed, error=str(e))
        raise HTTPException(status_code=429, detail=str(e))

    # Sync task: Starlette runs it in the threadpool
    background_tasks.add_task(run_export, jobs, job.id)

    return _job_response(job, "Export job started")


@app.get("/exports/{job_id}", response_model=JobResponse)
async def get_export_status(job_id: str):
    """Get status of an export job."""
    job = _get_job_or_404(job_id)
    return _job_response(job, f"Job {job.status}")


@app.get("/exports/{job_id}/download")
async def download_export(job_id: str):
    """Download a finished export as a JPEG attachment."""
    job = _get_job_or_404(job_id)
    if job.status != COMPLETED or job.result is None:
        raise HTTPException(status_code=409, detail=f"Job is {job.status}")

    return Response(
        content=job.result.data,
        media_type=job.result.content_type,
        headers={"Content-Disposition": f'attachment; filename="{job.result.filename}"'},
    )


@app.delete("/exports/{job_id}", response_model=JobResponse)
async def cancel_export(job_id: str):
    """Request cancellation; takes effect at the next layer boundary."""
    job = _get_job_or_404(job_id)
    if job.finished:
        raise HTTPException(status_code=409, detail=f"Job already {job.status}")
    jobs.cancel(job_id)
    logger.info("Export cancellation requested", job_id=job_id)
    return _job_response(job, "Cancellation requested")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
