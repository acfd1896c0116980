import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import Base, SessionLocal, engine, ensure_schema
from .errors import ScholarPathError
from .settings import settings
from .routers import auth, bundles, health, student, teacher
from .services.badges import seed_badge_catalog

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

app = FastAPI(title="Scholars Path API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(bundles.router)
app.include_router(student.router)
app.include_router(teacher.router)


@app.exception_handler(ScholarPathError)
async def scholarpath_error_handler(request: Request, exc: ScholarPathError):
	# Internal detail stays in the logs; callers get the public message only
	logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
	return JSONResponse(
		status_code=exc.status_code,
		content={"detail": exc.public_message, "retryable": exc.retryable},
	)


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Add columns missing from databases created by older versions
	ensure_schema()
	db = SessionLocal()
	try:
		seed_badge_catalog(db)
	finally:
		db.close()
