from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import structlog
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from .config.settings import settings
from .models.api_models import DetectionRequest, DetectionResponse, HealthResponse, VersionResponse
from .services import DetectionService

# Configure logging
logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="RPS Guard",
    description="Attack detection for the RockPaperScissors staked game contract",
    version=settings.VERSION
)

# Initialize services
detection_service = DetectionService()

# Configure rate limiting
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Add metrics
Instrumentator().instrument(app).expose(app)


def _field_path(location) -> str:
    # Drop the leading "body" segment so paths read like trace.logs.0.address
    parts = [str(part) for part in location]
    if parts and parts[0] == "body":
        parts = parts[1:]
    return ".".join(parts)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = [f"{_field_path(error['loc'])}: {error['msg']}" for error in exc.errors()]
    logger.error("validation_error", path=request.url.path, errors=problems)
    return JSONResponse(status_code=400, content={"message": "; ".join(problems)})

# Routes


@app.get("/app/health-check", response_model=HealthResponse)
async def health_check():
    return HealthResponse(message="OK")


@app.get("/app/version", response_model=VersionResponse)
async def version():
    return VersionResponse(name=settings.NAME, version=settings.VERSION)


@app.post("/detect", response_model=DetectionResponse, response_model_exclude_none=True)
@limiter.limit(settings.RATE_LIMIT_DETECT)
async def detect(request: Request, detection_request: DetectionRequest):
    """
    Classify one enriched transaction against the attack catalogue
    """
    try:
        return detection_service.detect(detection_request)
    except Exception as e:
        logger.error("detection_error",
                     request_id=detection_request.id,
                     error=str(e))
        raise HTTPException(
            status_code=500,
            detail="Internal server error during detection"
        )


def main():
    uvicorn.run(
        "rps_guard.app:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL
    )


if __name__ == "__main__":
    main()
