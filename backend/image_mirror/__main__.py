"""
Main entry point for the image mirror service.

Runs the FastAPI application with uvicorn:
    python -m image_mirror
"""

import logging
import os

import uvicorn

from .app import create_app

if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("IMAGE_MIRROR_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("IMAGE_MIRROR_PORT", "8787"))
    host = os.getenv("IMAGE_MIRROR_HOST", "0.0.0.0")

    uvicorn.run(create_app(), host=host, port=port, log_level="info")
