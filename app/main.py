import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from routers.router import router
from core.lifespan import lifespan
from core.config import settings
from core.logger import logger
from core.rate_limiter import limiter

# CORS configuration
if settings.ENABLE_CORS:
    origins = [
        origin for origin in (settings.FRONTEND_ENDPOINT, settings.BACKEND_ENDPOINT) if origin
    ]
else:
    origins = ["*"]

# Initialize FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    Out-of-process build dispatch: upload a zipped project, a worker pool builds it,
    the artifact comes back.

    ## Endpoints

    **POST /api/build** - Upload a zip archive (multipart field `file`)

    - async mode: `202 {"correlationKey": ...}`; poll `GET /api/build/{key}/result`
    - sync mode: `200 {"correlationKey": ..., "artifact": <base64>, "sizeBytes": ...}`
      or `504` when the build does not finish in time

    **GET /api/build/{key}/result** - One-shot retrieval (404 until available)

    **GET /api/health** - Object store and queue connectivity
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request/Response logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    log_data = {
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": int(duration * 1000),
        "client": request.client.host if request.client else "unknown"
    }

    # Only log non-health-check requests
    if request.url.path != "/api/health":
        logger.info(f"Request: {log_data}")

    return response

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=["x-correlation-key"],
)

# Include routers
app.include_router(router)

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    return {
        "service": settings.PROJECT_NAME,
        "version": "1.0.0",
        "status": "running",
        "mode": settings.SUBMIT_MODE,
        "documentation": "/docs"
    }
