"""
SDOH Exchange - EHR application API
Creates SDOH referrals (ServiceRequest + Task) in the EHR FHIR server, sends them to
Community Based Organizations and keeps Task statuses synchronized.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import administration, auth, context, mappings, support, tasks
from .core.audit_middleware import AuditMiddleware
from .core.config import settings
from .core.exceptions import register_exception_handlers
from .core.openapi import EHR_OPENAPI_TAGS
from .models import audit, launch_context  # noqa: F401  Ensure tables are registered
from .models.base import Base, engine
from .services.task_poller import TaskPoller

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # NOTE: In production, use Alembic migrations instead of create_all()
    Base.metadata.create_all(bind=engine)

    poller = None
    polling_task = None
    if not settings.TASK_POLLING_ENABLED:
        logger.info("Task polling is disabled")
    elif not settings.EHR_OPEN_FHIR_SERVER_URI:
        logger.warning("EHR_OPEN_FHIR_SERVER_URI is not set, Task polling is disabled")
    else:
        poller = TaskPoller()
        polling_task = asyncio.create_task(poller.run())

    yield

    if poller is not None:
        poller.stop()
        await polling_task


app = FastAPI(
    title=settings.SWAGGER_TITLE,
    description="SMART-on-FHIR app to create and track SDOH referrals in Community Based Organizations.",
    version=settings.VERSION,
    contact={"name": settings.CONTACT_NAME, "url": settings.CONTACT_URL},
    openapi_tags=EHR_OPENAPI_TAGS,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(AuditMiddleware)
register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(context.router)
app.include_router(support.router)
app.include_router(tasks.router)
app.include_router(mappings.router)
app.include_router(administration.router)


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.VERSION}
