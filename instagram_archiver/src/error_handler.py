"""
Error Handler - Failure taxonomy for archive runs
Classifies failures and keeps per-type counts; every failure except
authentication is handled by skipping the smallest affected unit.
"""

from typing import Dict, Optional
from enum import Enum

from loguru import logger


class ErrorType(Enum):
    """Types of errors that can occur during an archive run"""
    TRANSIENT_FETCH = "transient_fetch"
    EXTRACTION_MISS = "extraction_miss"
    INTEGRITY_MISMATCH = "integrity_mismatch"
    INVALID_TARGET = "invalid_target"
    AUTHENTICATION = "authentication"
    UNKNOWN = "unknown"


class InstagramError(Exception):
    """Base exception for Instagram archiver errors"""

    error_type = ErrorType.UNKNOWN

    def __init__(self, message: str, error_type: Optional[ErrorType] = None):
        super().__init__(message)
        if error_type is not None:
            self.error_type = error_type


class FetchError(InstagramError):
    """An asset could not be downloaded (HTTP status, network or header failure)"""
    error_type = ErrorType.TRANSIENT_FETCH


class ExtractionMissError(InstagramError):
    """Expected data is absent from both the response cache and the page"""
    error_type = ErrorType.EXTRACTION_MISS


class IntegrityError(InstagramError):
    """A resolved record does not belong to the requested identifier"""
    error_type = ErrorType.INTEGRITY_MISMATCH


class InvalidTargetError(InstagramError):
    """A target reference could not be normalized to an Instagram URL"""
    error_type = ErrorType.INVALID_TARGET


class AuthenticationError(InstagramError):
    """Login was rejected; fatal for the whole run"""
    error_type = ErrorType.AUTHENTICATION


class ErrorHandler:
    """Logs failures and keeps statistics per error type"""

    def __init__(self):
        self.error_counts: Dict[ErrorType, int] = {error_type: 0 for error_type in ErrorType}

    def classify_error(self, exception: Exception) -> ErrorType:
        """Classify the type of error based on the exception"""
        if isinstance(exception, InstagramError):
            return exception.error_type

        error_message = str(exception).lower()
        if "401" in error_message or "unauthorized" in error_message:
            return ErrorType.AUTHENTICATION
        elif any(err in error_message for err in [
            "connection", "network", "timed out", "timeout", "net::err_",
            "connection reset", "connection refused", "name not resolved"
        ]):
            return ErrorType.TRANSIENT_FETCH
        else:
            return ErrorType.UNKNOWN

    def record(self, exception: Exception, context: str = "") -> ErrorType:
        """Log a handled failure and count it; returns its classification"""
        error_type = self.classify_error(exception)
        self.error_counts[error_type] += 1
        prefix = f"{context}: " if context else ""
        if error_type == ErrorType.AUTHENTICATION:
            logger.error(f"❌ {prefix}{exception}")
        else:
            logger.warning(f"⚠️ {prefix}{error_type.value} - {exception}")
        return error_type

    def summary(self) -> Dict[str, int]:
        """Return counts of every error type seen at least once"""
        return {error_type.value: count for error_type, count in self.error_counts.items() if count > 0}

    def log_error_stats(self) -> None:
        """Log error statistics"""
        stats = self.summary()
        if not stats:
            logger.info("No errors recorded")
            return
        logger.info("Error Statistics:")
        for name, count in stats.items():
            logger.info(f"  {name}: {count}")
