#!/usr/bin/env python3
"""
Development server launcher for the Story Generator API.

Loads a .env file (REPLICATE_API_TOKEN, OPENAI_API_KEY, ...) and starts uvicorn
with auto-reload. For production, run the ASGI app behind a proper server.
"""

import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

project_root = Path(__file__).parent
load_dotenv(project_root / ".env")

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("Starting Story Generator API Development Server")
    print("Server will be available at: http://localhost:8000")
    print("API documentation at: http://localhost:8000/docs")
    print("\n" + "="*50 + "\n")

    uvicorn.run(
        "storygen.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,     # development only
        reload_dirs=[str(project_root / "storygen")],
        log_level="info"
    )
