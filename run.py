# run.py
import sys

import uvicorn

from app.core.config import settings
from app.core.logging import logger

if __name__ == "__main__":
    logger.info(f"Starting {settings.PROJECT_NAME} in development mode")
    try:
        uvicorn.run("app.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
    except Exception as e:
        logger.error(f"Error starting server: {str(e)}")
        sys.exit(1)
