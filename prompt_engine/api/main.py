"""Prompt Engine API - template execution service.

This API executes parameterised prompt templates and keeps an audit trail:
- Prompt templates (versioned catalog)
- Executions (resolve, route to a provider, record)
- Tag groups (ordered template workflows)
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prompt_engine.api.routes import executions, models, tag_groups, templates
from prompt_engine.config import Settings, get_settings
from prompt_engine.executor import db
from prompt_engine.executor.engine import ExecutionEngine
from prompt_engine.executor.execution_store import SqlExecutionStore
from prompt_engine.executor.service import PromptExecutionService
from prompt_engine.llm.factory import build_router
from prompt_engine.templates.registry import TemplateRegistry, get_template_registry

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def wire_services(
    settings: Settings,
    registry: Optional[TemplateRegistry] = None,
) -> PromptExecutionService:
    """Build the provider router, engine and store, and hand them to the routes."""
    registry = registry or get_template_registry()
    provider_router = build_router(settings)

    db.configure(settings.database_url, settings.sqlite_path)
    db.init_db()

    service = PromptExecutionService(
        catalog=registry,
        engine=ExecutionEngine(provider_router),
        store=SqlExecutionStore(),
        default_model=settings.default_model,
    )

    executions.init_service(service)
    templates.init_registry(registry)
    tag_groups.init_tag_groups(registry, service)
    models.init_router(provider_router)
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Loading prompt templates...")
    registry = get_template_registry()
    logger.info(f"Loaded {registry.count()} templates")

    logger.info("Initializing providers and execution store...")
    service = wire_services(settings, registry)
    logger.info(f"Routing table: {service.engine.router.describe()}")

    logger.info("Prompt Engine API ready")
    yield
    # Shutdown
    logger.info("Shutting down Prompt Engine API")


# Create FastAPI app
app = FastAPI(
    title="Prompt Engine API",
    description="""
## Prompt Template Execution Service

Resolves `{{variable}}` templates against typed inputs, runs them on text or
image models, and records every attempt.

### Key Endpoints

- `POST /v1/prompts/execute` - Execute a stored or inline template
- `GET /v1/prompts` - Execution audit trail
- `GET /v1/prompt-templates` - List templates
- `GET /v1/tag-groups` - List ordered template workflows
- `POST /v1/tag-groups/{group}/run` - Run a workflow end to end
""",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers with /v1 prefix
app.include_router(executions.router, prefix="/v1")
app.include_router(templates.router, prefix="/v1")
app.include_router(tag_groups.router, prefix="/v1")
app.include_router(models.router, prefix="/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Prompt Engine API",
        "version": "0.1.0",
        "docs": "/docs",
        "endpoints": {
            "execute": "/v1/prompts/execute",
            "executions": "/v1/prompts",
            "templates": "/v1/prompt-templates",
            "tag_groups": "/v1/tag-groups",
            "models": "/v1/models",
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    registry = get_template_registry()
    return {
        "status": "healthy",
        "templates_loaded": registry.count(),
        "mock_mode": settings.mock_mode,
        "database": "postgres" if settings.database_url.startswith("postgres") else "sqlite",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "prompt_engine.api.main:app",
        host="0.0.0.0",
        port=8001,
        reload=True,
    )
