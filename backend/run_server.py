#!/usr/bin/env python3
"""
PromptCraft Backend Server Runner
Starts the FastAPI application on configured port
"""
import uvicorn
import logging
from dotenv import load_dotenv
from pathlib import Path

from shared_settings import get_settings

# Load environment variables
ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger("run_server")


def main():
    settings = get_settings()
    host = settings["host"]
    port = settings["port"]
    workers = settings["workers"]

    # Reload only works with 1 worker
    reload = settings["reload"]
    if reload:
        workers = 1

    logging.basicConfig(level=logging.INFO)
    logger.info(
        f"Starting PromptCraft backend on http://{host}:{port} "
        f"({workers} workers, {'development' if reload else 'production'} mode)"
    )

    uvicorn.run(
        "server:app",
        host=host,
        port=port,
        workers=workers,
        reload=reload,
        log_level="info",
        timeout_keep_alive=30,
        limit_concurrency=100,
        backlog=2048
    )


if __name__ == "__main__":
    main()
