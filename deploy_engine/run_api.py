# deploy_engine/run_api.py
"""Run the deployment engine HTTP API."""

import logging
import os

import uvicorn

from deploy_engine.api.main import app

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    host = os.environ.get("DEPLOY_API_HOST", "0.0.0.0")
    port = int(os.environ.get("DEPLOY_API_PORT", "9000"))

    logger.info("=" * 80)
    logger.info("🚀 DEPLOYMENT ENGINE API")
    logger.info("=" * 80)
    logger.info(f"Listening on {host}:{port}")

    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
