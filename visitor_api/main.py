import logging
import sys

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from .config import settings
from .middleware import RequestLoggingMiddleware
from .middleware.logging import ACCESS_LOGGER_NAME
from .routers import auth, documents, health, my_events, reminders, reports, visitors

logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler(sys.stdout)])
logging.getLogger(ACCESS_LOGGER_NAME).setLevel(logging.INFO)

if settings.sentry_dsn and str(settings.sentry_dsn).strip().lower().startswith(("http://", "https://")):
    sentry_sdk.init(
        dsn=str(settings.sentry_dsn).strip(),
        environment=settings.environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
    )

app = FastAPI(title="Visitor Document Confirmation API", version="0.1.0")

app.add_middleware(RequestLoggingMiddleware)

if settings.metrics_enabled:
    instrumentator = Instrumentator(should_group_status_codes=True, should_ignore_untemplated=True)
    instrumentator.instrument(app).expose(app, include_in_schema=False)

# CORS for the visitor and admin web apps
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(auth.router)
app.include_router(documents.router, tags=["documents"])
app.include_router(my_events.router, tags=["my-events"])
app.include_router(visitors.router, tags=["visitors"])
app.include_router(reminders.router, tags=["reminders"])
app.include_router(reports.router, tags=["reports"])
