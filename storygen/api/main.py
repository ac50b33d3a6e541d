"""
FastAPI application entry point.

Wires the routers, CORS for the browser front-end, and the static mount that
serves bundled catalog images under /img.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .routers import health, images, story
from storygen.models.manager import ModelManager
from storygen.pipeline.story.catalog import ImageCatalog, default_image_dir

logger = logging.getLogger(__name__)

# Global application state
app_state = {}

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Build the model manager and catalog once at startup, release provider
    connections at shutdown.
    """
    print("1. Starting Story Generator API server...")

    model_manager = ModelManager()
    app_state["model_manager"] = model_manager
    app_state["image_catalog"] = ImageCatalog()

    print(f"2. ModelManager initialized from {model_manager.config_path}")
    print("3. API server ready to accept requests")

    yield  # Server runs here

    print("4. Shutting down Story Generator API server...")
    model_manager.cleanup()
    app_state.clear()

def create_app() -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.
    """
    app = FastAPI(
        title="Story Generator API",
        description="Compose story templates with products and generate stories with hosted image models",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],  # Common frontend ports
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(images.router, prefix="/api/v1/images", tags=["images"])
    app.include_router(story.router, prefix="/api/v1/story", tags=["story"])

    app.mount("/img", StaticFiles(directory=default_image_dir(), check_dir=False), name="img")

    @app.get("/")
    async def root():
        """Root endpoint with basic API information."""
        return {
            "name": "Story Generator API",
            "version": "1.0.0",
            "status": "operational",
            "endpoints": {
                "health": "/health",
                "images": "/api/v1/images",
                "story": "/api/v1/story",
                "docs": "/docs",
            }
        }

    return app

# Create the FastAPI app instance
app = create_app()
