import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from feedback360.api.audit import router as audit_router
from feedback360.api.emailing_list import router as emailing_list_router
from feedback360.api.employees import router as employees_router
from feedback360.api.health import router as health_router
from feedback360.api.imports import router as imports_router
from feedback360.api.relationships import router as relationships_router
from feedback360.api.reporting import router as reporting_router
from feedback360.api.root import router as root_router
from feedback360.api.submissions import router as submissions_router
from feedback360.api.surveys import router as surveys_router
from feedback360.api.tenants import router as tenants_router
from feedback360.core.config import settings
from feedback360.core.logging import configure_logging
from feedback360.core.notifications import LoggingDispatcher
from feedback360.core.results import ServiceException
from feedback360.services.emailing_list_cache import EmailingListCache

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Feedback360 Engine")
app.state.emailing_list_cache = EmailingListCache.from_settings(settings)
app.state.notification_dispatcher = LoggingDispatcher()

# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceException)
def service_exception_handler(request: Request, exc: ServiceException):
    return JSONResponse(
        status_code=exc.error.http_status,
        content={"detail": exc.error.reason, "error": exc.error.kind.value},
    )


@app.exception_handler(StaleDataError)
def stale_data_handler(request: Request, exc: StaleDataError):
    logger.info("Concurrent write rejected on %s", request.url.path)
    return JSONResponse(
        status_code=409,
        content={"detail": "Record was modified by another request", "error": "conflict"},
    )


# Un-prefixed routes first so "/{tenant_slug}" never shadows them
app.include_router(root_router)
app.include_router(health_router)
app.include_router(tenants_router)
app.include_router(employees_router)
app.include_router(relationships_router)
app.include_router(surveys_router)
app.include_router(submissions_router)
app.include_router(imports_router)
app.include_router(reporting_router)
app.include_router(emailing_list_router)
app.include_router(audit_router)
