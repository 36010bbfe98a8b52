"""
Edit Applier Backend - FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from edit_applier.routers import config, edit, retrieval
from edit_applier.services.config_manager import ConfigManager
from edit_applier.utils.logger import setup_logger

logger = setup_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - startup and shutdown logic"""
    logger.info("Starting Edit Applier backend...")
    config_manager = ConfigManager.get_instance()
    cfg = config_manager.get_config()
    logger.info("ConfigManager initialized (%s)", config_manager.config_file)
    if not cfg["apply"].get("apiKey"):
        logger.warning("No apply API key configured; set APPLY_API_KEY or PUT /api/config")

    yield
    logger.info("Shutting down Edit Applier backend...")


app = FastAPI(
    title="Edit Applier Backend",
    description="Applies sparse code edits to workspace files through a hosted apply model",
    version="1.0.0",
    lifespan=lifespan,
)

# Local agents and editor plugins call in from other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(edit.router, prefix="/api/edit", tags=["edit"])
app.include_router(retrieval.router, prefix="/api", tags=["retrieval"])
app.include_router(config.router, prefix="/api/config", tags=["config"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "edit-applier-backend"}


def run():
    """Console entry point"""
    import uvicorn

    server = ConfigManager.get_instance().get_config().get("server", {})
    uvicorn.run(app, host=server.get("host", "127.0.0.1"), port=int(server.get("port", 8000)))


if __name__ == "__main__":
    run()
