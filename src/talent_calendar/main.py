import logging

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables early
load_dotenv()

from talent_calendar.api.router import router as api_router
from talent_calendar.auth.google_auth import GoogleCalendarAuth
from talent_calendar.auth.oauth_flow import CalendarConnectionManager
from talent_calendar.auth.token_manager import CalendarTokenManager
from talent_calendar.services.document_access import DocumentAccessGate
from talent_calendar.services.document_encryption import DocumentEncryptionService
from talent_calendar.services.document_storage import DocumentStore
from talent_calendar.services.google_calendar import GoogleCalendarService
from talent_calendar.sync.controller import CalendarSyncController
from talent_calendar.sync.storage import SyncStorageManager
from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import InvalidPasscodeError, TalentCalendarError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Talent Calendar Service",
    description="Google Calendar sync and identity document encryption for talent bookings",
    version="1.0.0"
)


# Exception handlers for application errors
@app.exception_handler(TalentCalendarError)
async def talent_calendar_exception_handler(request: Request, exc: TalentCalendarError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    content = {"error": exc.message}
    if isinstance(exc, InvalidPasscodeError):
        content["attemptsRemaining"] = exc.attempts_remaining
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(api_router, prefix=settings.API_PREFIX)


@app.on_event("startup")
async def startup_event():
    storage = SyncStorageManager()
    await storage.initialize()
    logger.info("Sync storage initialized")

    auth = GoogleCalendarAuth()
    if not auth.configured:
        logger.warning("Google Calendar credentials not configured; calendar routes will return 503")
    calendar_service = GoogleCalendarService(auth)
    token_manager = CalendarTokenManager(storage, auth)

    document_encryption = DocumentEncryptionService(DocumentStore())

    app.state.storage = storage
    app.state.sync_controller = CalendarSyncController(storage, token_manager, calendar_service)
    app.state.connection_manager = CalendarConnectionManager(storage, auth, calendar_service)
    app.state.document_encryption = document_encryption
    app.state.document_access = DocumentAccessGate(storage, document_encryption)
    logger.info("Talent calendar services initialized")


@app.on_event("shutdown")
async def shutdown_event():
    storage = getattr(app.state, "storage", None)
    if storage:
        await storage.close()
        logger.info("Sync storage closed")


# Route for health check
@app.get("/health")
async def health_check():
    return {"status": "ok"}


# Direct execution for development
if __name__ == "__main__":
    uvicorn.run("talent_calendar.main:app", host="0.0.0.0", port=8008, reload=settings.DEBUG)
