"""
API request metrics (logged, not stored).
"""

from typing import Optional

from app.config import logger


def log_api_metric(endpoint: str, method: str, response_time_ms: int,
                   status_code: int, error_type: Optional[str] = None):
    """Log one request's timing and status"""
    if error_type:
        logger.error(f"{method} {endpoint} -> {status_code} ({error_type}) in {response_time_ms}ms")
    elif status_code >= 400:
        logger.warning(f"{method} {endpoint} -> {status_code} in {response_time_ms}ms")
    else:
        logger.info(f"{method} {endpoint} -> {status_code} in {response_time_ms}ms")
