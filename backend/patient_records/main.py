"""
Patient Records API.
CRUD for patient records in DynamoDB, condition search through OpenSearch
with a table-scan fallback, and Cognito-protected writes.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import patients
from .api.responses import fail
from .core.config import settings
from .core.errors import PatientServiceError
from .core.request_logging import RequestLoggingMiddleware
from .seed_demo import seed_demo_data
from .services.patient_service import get_patient_service
from .services.search_index import get_search_index

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()


def initialize_services() -> None:
    """Create the search index if needed and optionally seed demo data.

    Failures are logged; the API starts without OpenSearch if it is down.
    """
    search_index = get_search_index()
    if search_index is None:
        logger.warning("OPENSEARCH_DOMAIN not configured. Search by condition will use a DynamoDB scan.")
    else:
        try:
            search_index.ensure_index()
        except Exception as exc:
            logger.warning("OpenSearch initialization failed, continuing without it: %s", exc)

    if settings.SEED_DEMO_DATA:
        try:
            seed_demo_data(get_patient_service())
        except PatientServiceError as exc:
            logger.warning("Demo data seeding failed: %s", exc.message)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    initialize_services()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Patient record management backed by DynamoDB, with fuzzy condition "
        "search through OpenSearch and Cognito-authenticated writes."
    ),
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(patients.router, prefix="/api")


@app.exception_handler(PatientServiceError)
async def patient_service_error_handler(request: Request, exc: PatientServiceError):
    return fail(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    return fail(400, f"Invalid request: {problems}")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return fail(404, "Route not found", path=request.url.path, method=request.method)
    return fail(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return fail(500, "Internal server error")


@app.get("/")
def root():
    return {
        "message": "Welcome to Patient Management API",
        "status": "Server is running successfully",
        "version": settings.VERSION,
        "endpoints": {
            "health": "GET /health",
            "patients": "GET /api/patients",
            "createPatient": "POST /api/patients",
            "getPatient": "GET /api/patients/{patientId}",
            "updatePatient": "PUT /api/patients/{patientId}",
            "deletePatient": "DELETE /api/patients/{patientId}",
            "searchByAddress": "GET /api/patients/search/address?address=...",
            "searchByCondition": "GET /api/patients/search/condition?condition=...",
        },
    }


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
    }
