"""
SDOH Exchange - CBRO application API
Lets a Community Based Organization work the referral Tasks that EHRs sent to its FHIR server.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import cbro_tasks
from .core.config import settings
from .core.exceptions import register_exception_handlers
from .core.openapi import CBRO_OPENAPI_TAGS

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.CBRO_APP_NAME,
    description="Receive, accept and complete SDOH referral Tasks.",
    version=settings.VERSION,
    contact={"name": settings.CONTACT_NAME, "url": settings.CONTACT_URL},
    openapi_tags=CBRO_OPENAPI_TAGS,
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

register_exception_handlers(app)

app.include_router(cbro_tasks.router)


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.CBRO_APP_NAME, "version": settings.VERSION}
