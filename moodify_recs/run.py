#!/usr/bin/env python
"""
Moodify Recs - API Server
=========================

Starts the HTTP API under uvicorn.

Usage:
    python -m moodify_recs.run

The port comes from the PORT environment variable (default 8000).
"""

import logging

import uvicorn

from moodify_recs.api import app
from moodify_recs.config import PORT

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def start_server(port: int = PORT):
    """Start the FastAPI server."""
    logger.info(f"Starting server on port {port}")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == '__main__':
    start_server()
