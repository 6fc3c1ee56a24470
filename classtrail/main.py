import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from classtrail.routes import answers, attempts, auth, classrooms, criteria, exercises, trail
from classtrail.db.base import Base
from classtrail.db.sessions import engine, SessionLocal
from classtrail.core.config import settings
from classtrail.core.exceptions import AppException
from classtrail.services.criteria_service import CriteriaService

# Import all models to ensure they're registered with Base
import classtrail.models

logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Classrooms, learning trails and automatically graded programming exercises"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Render domain errors as structured JSON."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    """A uniqueness rule caught a race the services did not translate."""
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=409,
        content={"error": "CONFLICT", "message": "Request conflicts with existing data", "details": {}}
    )


# Register routers
app.include_router(auth.router)
app.include_router(classrooms.router)
app.include_router(trail.router)
app.include_router(attempts.router)
app.include_router(answers.router)
app.include_router(criteria.router)
app.include_router(exercises.router)


@app.on_event("startup")
async def startup_event():
    logger.info("%s v%s starting...", settings.APP_NAME, settings.APP_VERSION)
    db = SessionLocal()
    try:
        criteria_list = CriteriaService(db).ensure_default_criteria()
        logger.info("Grading rubric ready with %d criteria", len(criteria_list))
    finally:
        db.close()


@app.get("/health")
def health():
    return {"status": "ok"}
