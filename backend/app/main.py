from fastapi import FastAPI, Request, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import logging

from app.core.config import settings
from app.core.database import create_db_and_tables, get_db
from app.core.cache import cache
from app.core.exceptions import ExamIntegrityError, InternalError
from app.api.v1.api import api_router
from app.api.v1.endpoints.health import build_health_status
from app.middleware.timezone import TimezoneMiddleware

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Exam Integrity API",
    description="Exam session integrity, monitoring and violation scoring",
    version="1.0.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(TimezoneMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ExamIntegrityError)
async def exam_integrity_exception_handler(request: Request, exc: ExamIntegrityError):
    # internal details stay out of production responses
    expose_details = settings.is_development or not isinstance(exc, InternalError)
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.details})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(expose_details=expose_details))


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


@app.on_event("startup")
async def startup_event():
    """Application startup tasks"""
    logger.info("Starting Exam Integrity API...")

    create_db_and_tables()
    logger.info("Database initialized")

    cache_health = cache.health_check()
    if cache_health is None:
        logger.warning("REDIS_URL not set - session locking disabled")
    elif cache_health:
        logger.info("Redis connection established")
    else:
        logger.warning("Redis connection failed - session lock requests will error")

    logger.info("Exam Integrity API startup completed")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Exam Integrity API...")
    cache.close()
    logger.info("Exam Integrity API shutdown completed")


app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    return build_health_status(db)


@app.get("/")
async def read_root():
    return {
        "message": "Exam Integrity API",
        "version": "1.0.0",
    }
