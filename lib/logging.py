"""
Logging module - application logger setup & request timing
"""
import logging
import time
import uuid
from typing import Optional

LOGGER_NAME = "referkit"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(debug: bool = False) -> logging.Logger:
    """Attach a stream handler to the root application logger (idempotent)"""
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """Child logger under the application namespace"""
    if name.startswith(LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


class RequestLogger:
    """Logger with request ID tracking for ops endpoints"""

    def __init__(self):
        self.logger = get_logger("ops")
        self.start_time = time.time()
        self.request_id = None

    def log_request(self, method: str, path: str, request_id: Optional[str] = None):
        """Log incoming request"""
        if not request_id:
            request_id = str(uuid.uuid4())
        self.start_time = time.time()
        self.request_id = request_id
        self.logger.info(f"request_id={request_id} method={method} path={path}")
        return request_id

    def log_response(self, status_code: int, actor: str = "system"):
        """Log response with latency"""
        latency = round((time.time() - self.start_time) * 1000, 2)  # ms
        self.logger.info(
            f"request_id={self.request_id} actor={actor} "
            f"status={status_code} latency={latency}ms"
        )
        return latency
