import os
import sys
import json
from loguru import logger as loguru_logger

from app.core.config import settings


class CloudLoggingAdapter:
    """
    Adapter to convert Loguru log records to Cloud Logging compatible JSON format
    """
    def __init__(self, service_name: str):
        self.env = os.getenv("ENV", "development")
        self.service_name = service_name

    def write(self, message):
        record = message.record

        # Basic structure required by Cloud Logging
        cloud_log = {
            "severity": record["level"].name,
            "time": record["time"].isoformat(),
            "message": record["message"],
            "logger": record["name"],
            "logging.googleapis.com/labels": {
                "environment": self.env,
                "service": self.service_name
            }
        }

        # Request-scoped fields passed through logger.bind(...)
        for k, v in record["extra"].items():
            cloud_log[k] = v

        if record["exception"] is not None:
            exc_type, exc_value, _ = record["exception"]
            cloud_log["exception"] = f"{exc_type.__name__ if exc_type else 'Exception'}: {exc_value}"

        print(json.dumps(cloud_log, default=str), file=sys.stderr)


def setup_logging(level: str = None, json_logs: bool = None, service_name: str = None) -> None:
    """Replace loguru's default handler with the configured sink."""
    level = level or settings.LOG_LEVEL
    json_logs = settings.LOG_JSON if json_logs is None else json_logs
    service_name = service_name or settings.PROJECT_NAME

    loguru_logger.remove()
    if json_logs:
        loguru_logger.add(CloudLoggingAdapter(service_name).write, level=level)
    else:
        loguru_logger.add(
            sys.stderr,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} - {name} - {level} - {message}",
        )


setup_logging()

# Export the logger
logger = loguru_logger
