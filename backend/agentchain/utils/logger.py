"""
Logging configuration and utilities for agentchain.
"""

import logging
import sys

# Endpoints polled by probes and dashboards; successful hits are not worth a log line
QUIET_ENDPOINTS = ("/health", "/api/v1/analytics/heatmap")


class HealthEndpointFilter(logging.Filter):
    """
    Filter to suppress logging of successful health and polling endpoint requests.

    Only logs requests that have errors or return non-2xx status codes.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Filter out successful polling endpoint requests.

        Args:
            record: Log record to filter

        Returns:
            False to suppress the log record, True to allow it through
        """
        # uvicorn access log args: (client, method, path, http_version, status_code)
        if hasattr(record, 'args') and record.args and isinstance(record.args, tuple):
            if len(record.args) >= 5:
                method = record.args[1]
                path = record.args[2]
                status_code = record.args[4]
                if method == "GET" and path in QUIET_ENDPOINTS:
                    if isinstance(status_code, int) and 200 <= status_code < 300:
                        return False

        return True


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure logging to stdout only.

    Args:
        log_level: The log level to use (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Raises:
        ValueError: If log_level is not a valid logging level name
    """
    log_level_upper = log_level.upper()
    if log_level_upper not in logging._nameToLevel:
        raise ValueError(f"Invalid log level: {log_level}")

    numeric_level = logging._nameToLevel[log_level_upper]

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
        force=True
    )

    logging.getLogger('agentchain').setLevel(numeric_level)
    logging.getLogger('uvicorn').setLevel(logging.INFO)

    # httpx logs every agent request at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    logging.getLogger('uvicorn.access').addFilter(HealthEndpointFilter())


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: The name of the logger, typically the module name

    Returns:
        logging.Logger: Configured logger instance
    """
    if not name.startswith("agentchain"):
        name = f"agentchain.{name}"

    return logging.getLogger(name)


def get_module_logger(module_name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        module_name: The module name (e.g., __name__)

    Returns:
        logging.Logger: Configured logger instance
    """
    if module_name.startswith("agentchain."):
        module_name = module_name[len("agentchain."):]

    return get_logger(module_name)
