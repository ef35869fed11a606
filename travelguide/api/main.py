from fastapi import FastAPI, HTTPException, Depends, Query
import os
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
import logging
import asyncio
from datetime import datetime
from typing import Callable, Optional, Set

from travelguide.models.request_models import (
    BatchGeocodeRequest,
    BatchGeocodeResponse,
    CityCenterResponse,
    GeocodeRequest,
    GeocodeResponse,
    GuideGenerationRequest,
    RateLimitStatusResponse,
    ValidationResponse,
)
from travelguide.services.amap_geocoding_service import AmapGeocodingService
from travelguide.services.guide_content_generator import GuideContentGenerator
from travelguide.services.guide_pipeline import GuidePipeline
from travelguide.services.rate_limiter import SlidingWindowRateLimiter
from travelguide.services.social_insights_service import SocialInsightsService
from travelguide.services.stream_transport import ProgressStream
from travelguide.services.vertex_ai_service import VertexAIService
from travelguide.services.weather_service import AmapWeatherService
from travelguide.utils.config import get_settings, validate_settings
from travelguide.utils.firestore_manager import GuideStore
from travelguide.utils.validators import GuideRequestValidator

# Configure logging
logging.basicConfig(
    level=get_settings().LOG_LEVEL,
    format=get_settings().LOG_FORMAT
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="AI Travel Guide API",
    description="Generate multi-day travel guides from a free-text request with live progress streaming",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global services (initialized on startup)
vertex_ai_service: Optional[VertexAIService] = None
rate_limiter: Optional[SlidingWindowRateLimiter] = None
geocoder: Optional[AmapGeocodingService] = None
weather_service: Optional[AmapWeatherService] = None
social_service: Optional[SocialInsightsService] = None
content_generator: Optional[GuideContentGenerator] = None
guide_store: Optional[GuideStore] = None

# Pipeline runs outlive their request handler; keep references until they finish
_generation_tasks: Set[asyncio.Task] = set()

@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    global vertex_ai_service, rate_limiter, geocoder, weather_service, social_service, content_generator, guide_store

    try:
        settings = get_settings()

        # Validate settings
        if not validate_settings():
            logger.error("Invalid settings configuration")
            raise Exception("Invalid settings configuration")

        # Ensure GOOGLE_APPLICATION_CREDENTIALS is exported for ADC (Vertex AI)
        if settings.GOOGLE_APPLICATION_CREDENTIALS:
            os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = settings.GOOGLE_APPLICATION_CREDENTIALS
            logger.info("ADC path set from settings", extra={"gac_path": settings.GOOGLE_APPLICATION_CREDENTIALS})
        else:
            logger.info("No GOOGLE_APPLICATION_CREDENTIALS in settings; relying on gcloud ADC if present")

        logger.info("Initializing services...")

        vertex_ai_service = VertexAIService(
            project_id=settings.GOOGLE_CLOUD_PROJECT,
            location=settings.GOOGLE_CLOUD_LOCATION,
            model_name=settings.GEMINI_MODEL,
            max_attempts=settings.COMPLETION_MAX_ATTEMPTS,
            temperature=settings.COMPLETION_TEMPERATURE,
        )
        # One limiter per process: the Amap ceiling applies to the key, not the request
        rate_limiter = SlidingWindowRateLimiter(max_requests=settings.AMAP_MAX_REQUESTS_PER_SECOND)
        geocoder = AmapGeocodingService(
            api_key=settings.AMAP_API_KEY,
            rate_limiter=rate_limiter,
            base_url=settings.AMAP_BASE_URL,
            timeout=settings.AMAP_TIMEOUT_SECONDS,
        )
        weather_service = AmapWeatherService(settings.AMAP_API_KEY, geocoder, base_url=settings.AMAP_BASE_URL)
        social_service = SocialInsightsService(
            api_url=settings.TIKHUB_API_URL,
            api_key=settings.TIKHUB_API_KEY,
            notes_limit=settings.SOCIAL_NOTES_LIMIT,
        )
        content_generator = GuideContentGenerator(vertex_ai_service)

        # Initialize Firestore if enabled
        if settings.USE_FIRESTORE:
            try:
                guide_store = GuideStore()
            except Exception as fe:
                logger.warning("Firestore initialization failed; continuing without Firestore", extra={"error": str(fe)})

        logger.info("All services initialized successfully")

    except Exception as e:
        logger.error(f"Failed to initialize services: {str(e)}")
        raise

@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources on shutdown"""
    if geocoder is not None:
        await geocoder.close()
    if social_service is not None:
        await social_service.close()

# --- Dependencies ---

def get_geocoder() -> AmapGeocodingService:
    if geocoder is None:
        raise HTTPException(status_code=503, detail="Geocoding service not initialized")
    return geocoder

def get_guide_store() -> Optional[GuideStore]:
    return guide_store

def get_pipeline_factory() -> Callable[[], GuidePipeline]:
    """A fresh pipeline (and tracker) per generation request, sharing the process-wide services"""
    if content_generator is None or geocoder is None:
        raise HTTPException(status_code=503, detail="Generation services not initialized")

    def factory() -> GuidePipeline:
        return GuidePipeline(
            content_generator=content_generator,
            geocoder=geocoder,
            weather_service=weather_service,
            social_service=social_service,
            guide_store=guide_store,
        )
    return factory

# --- Generation ---

@app.post("/api/v1/generate/stream")
async def generate_guide_stream(
    request: GuideGenerationRequest,
    pipeline_factory: Callable[[], GuidePipeline] = Depends(get_pipeline_factory)
):
    """Generate a travel guide, streaming progress as Server-Sent Events"""
    prompt = (request.prompt or "").strip()
    if not prompt:
        raise HTTPException(status_code=400, detail="请提供旅行需求")

    logger.info("[stream] Generation requested", extra={"prompt_length": len(prompt)})
    stream = ProgressStream()
    pipeline = pipeline_factory()

    task = asyncio.create_task(pipeline.run_streaming(prompt, stream))
    _generation_tasks.add(task)
    task.add_done_callback(_generation_tasks.discard)

    return StreamingResponse(
        stream.sse_frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}
    )

@app.post("/api/v1/validate-request", response_model=ValidationResponse)
async def validate_guide_request(request: GuideGenerationRequest):
    """Validate a guide request without generating anything"""
    result = GuideRequestValidator.validate_prompt(request.prompt)
    return ValidationResponse(
        valid=result['valid'],
        errors=result['errors'],
        warnings=result['warnings'],
        details={"length": result['length']}
    )

@app.get("/api/v1/guides/{guide_id}")
async def get_travel_guide(guide_id: str, store: Optional[GuideStore] = Depends(get_guide_store)):
    """Retrieve a previously generated guide"""
    if store is None:
        raise HTTPException(status_code=503, detail="Persistence not enabled")
    guide = await store.get_travel_guide(guide_id)
    if guide is None:
        raise HTTPException(status_code=404, detail="Travel guide not found")
    return guide

# --- Geocoding ---

@app.post("/api/v1/geocode", response_model=GeocodeResponse)
async def geocode_address(request: GeocodeRequest, service: AmapGeocodingService = Depends(get_geocoder)):
    """Resolve a free-text place description within a city"""
    location = await service.resolve(request.address, request.city)
    return GeocodeResponse(address=request.address, found=location is not None, location=location)

@app.post("/api/v1/geocode/batch", response_model=BatchGeocodeResponse)
async def geocode_batch(request: BatchGeocodeRequest, service: AmapGeocodingService = Depends(get_geocoder)):
    """Resolve many addresses concurrently; one result per item, in order"""
    validation = GuideRequestValidator.validate_geocode_batch([item.model_dump() for item in request.items])
    if not validation['valid']:
        raise HTTPException(status_code=400, detail="; ".join(validation['errors']))

    locations = await service.batch_resolve([(item.address, item.city) for item in request.items])
    results = [
        GeocodeResponse(address=item.address, found=loc is not None, location=loc)
        for item, loc in zip(request.items, locations)
    ]
    return BatchGeocodeResponse(
        results=results,
        resolved=sum(1 for r in results if r.found),
        total=len(results)
    )

@app.get("/api/v1/geocode/city-center", response_model=CityCenterResponse)
async def get_city_center(
    city: str = Query(..., min_length=1, max_length=40),
    service: AmapGeocodingService = Depends(get_geocoder)
):
    coordinates = await service.city_center(city)
    return CityCenterResponse(city=city, found=coordinates is not None, coordinates=coordinates)

@app.get("/api/v1/geocode/rate-limit", response_model=RateLimitStatusResponse)
async def get_rate_limit_status(service: AmapGeocodingService = Depends(get_geocoder)):
    """Current state of the shared geocoding rate limiter"""
    return RateLimitStatusResponse(**service.rate_limit_status())

# --- Helpers ---
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    try:
        services = {
            "vertex_ai": vertex_ai_service is not None,
            "geocoding": geocoder is not None,
            "weather": weather_service is not None,
            "social_insights": social_service is not None and social_service.enabled,
            "firestore": guide_store is not None
        }
        services_healthy = services["vertex_ai"] and services["geocoding"]

        return {
            "status": "healthy" if services_healthy else "degraded",
            "timestamp": datetime.utcnow().isoformat(),
            "services": services,
            "active_generations": len(_generation_tasks),
            "version": get_settings().API_VERSION
        }

    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "timestamp": datetime.utcnow().isoformat(),
                "error": str(e)
            }
        )

@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "AI Travel Guide API",
        "version": get_settings().API_VERSION,
        "description": "Generate travel guides with live progress using AI",
        "docs": "/docs",
        "health": "/health"
    }

@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "timestamp": datetime.utcnow().isoformat(),
            "path": str(request.url)
        }
    )

@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "timestamp": datetime.utcnow().isoformat(),
            "path": str(request.url)
        }
    )
