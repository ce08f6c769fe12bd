import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from afisha.core.config import settings
from afisha.core.database import Base, SessionLocal, engine
from afisha.core.exceptions import register_exception_handlers
from afisha.core.scheduler import start_scheduler, stop_scheduler
from afisha.api.routes import admin, auth, events, users
from afisha.services.auth_service import AuthService
from afisha.services.mail_service import mail_service

# Register every model on Base.metadata before create_all
from afisha.models import event, participant, rating, token, user  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def seed_admin() -> None:
    db = SessionLocal()
    try:
        AuthService(db, mail_service).seed_admin_if_missing()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage app lifecycle events.

    Startup: create tables, seed the bootstrap admin, start the status sweep
    Shutdown: stop the scheduler
    """
    # In production, use migrations (Alembic) instead of create_all
    Base.metadata.create_all(bind=engine)
    if settings.SEED_ADMIN:
        seed_admin()
    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    yield
    if settings.SCHEDULER_ENABLED:
        stop_scheduler()


app = FastAPI(
    title="Afisha API",
    description="Event listings, RSVPs and moderation",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware - the SPA sends cookies, so credentials are allowed
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(events.router)
app.include_router(users.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    """Root endpoint - API information"""
    return {"message": "Afisha API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check endpoint - used by monitoring/deployment tools"""
    return {"status": "healthy"}
