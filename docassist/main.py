from contextlib import asynccontextmanager

from fastapi import FastAPI

from docassist.agent.nodes.generation import create_chat_model
from docassist.api.v1 import analytics as analytics_router
from docassist.api.v1 import chat as chat_router
from docassist.api.v1 import documents as documents_router
from docassist.api.v1 import metrics as metrics_router
from docassist.api.v1 import projects as projects_router
from docassist.config.db import SessionLocal, check_db_connection, engine
from docassist.middleware.request_logging import request_logging_middleware
from docassist.services.container import build_services
from docassist.services.embeddings import get_embedding_model
from docassist.services.metrics import MetricsCollector
from docassist.settings import settings
from docassist.utils.logging_config import logger, setup_logging
from docassist.worker import check_broker_connection


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle application startup and shutdown events.
    """
    setup_logging()
    await check_db_connection()
    if not settings.INGESTION_EAGER:
        await check_broker_connection()

    metrics = MetricsCollector()
    app.state.metrics = metrics
    app.state.services = build_services(
        settings,
        SessionLocal,
        get_embedding_model(),
        create_chat_model(),
        metrics,
    )
    logger.info("SERVICES AND CHAT GRAPH ARE READY")

    yield

    await engine.dispose()


app = FastAPI(
    lifespan=lifespan,
    title="Document Assistant",
    description="Multi-tenant document ingestion and retrieval-augmented chat",
)

app.middleware("http")(request_logging_middleware)

# Include routers
app.include_router(
    documents_router.router, prefix="/api/v1/documents", tags=["Documents"]
)
app.include_router(projects_router.router, prefix="/api/v1/projects", tags=["Projects"])
app.include_router(chat_router.router, prefix="/api/v1/chat", tags=["Chat"])
app.include_router(
    analytics_router.router, prefix="/api/v1/analytics", tags=["Analytics"]
)
app.include_router(metrics_router.router, prefix="/api/v1/metrics", tags=["Metrics"])


@app.get("/")
def read_root() -> dict[str, str]:
    return {"message": "Hello from Document Assistant API!"}
