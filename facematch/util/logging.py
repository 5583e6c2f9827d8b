"""
Structured logging for cache, index and matching operations.
Descriptor values are never logged - only identifiers, counts and distances.
"""

import logging
from typing import Any, Dict


class StructuredLogger:
    """Structured logger for cache refreshes, index maintenance and match decisions."""

    def __init__(self, name: str = "facematch"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def set_debug(self, enabled: bool) -> None:
        self.logger.setLevel(logging.DEBUG if enabled else logging.INFO)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.error(message)
        elif status in ("skipped", "degraded"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_cache_operation(self, operation: str, count: int, status: str = "success", details: Dict[str, Any] = None):
        """Log an identity cache operation."""
        log_details = {"count": count}
        if details:
            log_details.update(details)

        self.log_operation(f"cache.{operation}", status, log_details)

    def log_index_operation(self, operation: str, total: int, status: str = "success", details: Dict[str, Any] = None):
        """Log a vector index operation."""
        log_details = {"total_descriptors": total}
        if details:
            log_details.update(details)

        self.log_operation(f"index.{operation}", status, log_details)

    def log_match(self, strategy: str, identity_id: str = None, distance: float = None, status: str = "matched"):
        """Log a match decision."""
        log_details = {"strategy": strategy}
        if identity_id is not None:
            log_details["identity_id"] = identity_id
        if distance is not None:
            log_details["distance"] = round(float(distance), 6)

        self.log_operation("match", status, log_details)

    def log_enrollment(self, identity_id: str, embedding_count: int, status: str = "success", details: Dict[str, Any] = None):
        """Log an enrollment write."""
        log_details = {"identity_id": identity_id, "embedding_count": embedding_count}
        if details:
            log_details.update(details)

        self.log_operation("enrollment", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
