# sync_avito/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sync_avito.config import ALLOWED_ORIGINS
from sync_avito.logging_config import setup_logging
from sync_avito.middleware import RequestIDMiddleware
from sync_avito.routes.integrations import router as integrations_router
from sync_avito.routes.oauth import router as oauth_router
from sync_avito.routes.ops import router as ops_router
from sync_avito.routes.sync import router as sync_router

setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Avito Sync API",
    description="Listing reconciliation and OAuth connection for the Avito marketplace",
    version="1.0.0",
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

app.include_router(ops_router, tags=["Ops"])
app.include_router(sync_router, prefix="/avito", tags=["Sync"])
app.include_router(oauth_router, prefix="/avito", tags=["OAuth"])
app.include_router(integrations_router, prefix="/avito", tags=["Integrations"])
