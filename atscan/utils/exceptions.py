"""
Custom Exception Classes for the ATS keyword scorer
"""
from typing import Dict, Any
from fastapi import HTTPException


class ATSBaseException(Exception):
    """Base exception for the keyword scoring pipeline"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class InputError(ATSBaseException):
    """Raised when a document handed to the scanner has no usable text"""

    def __init__(self, message: str, document_type: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if document_type:
            details['document_type'] = document_type
        super().__init__(message, error_code="INPUT_ERROR", details=details, **kwargs)


class ConfigurationError(ATSBaseException):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, config_key: str = None, config_value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if config_key:
            details['config_key'] = config_key
        if config_value is not None:
            details['config_value'] = str(config_value)
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details, **kwargs)


class ValidationServiceError(ATSBaseException):
    """Raised when the external skills/occupations reference cannot be used"""

    def __init__(self, message: str, service_name: str = "esco", status_code: int = None, **kwargs):
        details = kwargs.pop('details', {})
        if service_name:
            details['service_name'] = service_name
        if status_code:
            details['status_code'] = status_code
        super().__init__(message, error_code="VALIDATION_SERVICE_ERROR", details=details, **kwargs)


class ProcessingError(ATSBaseException):
    """Raised when term extraction or categorization of a document fails"""

    def __init__(self, message: str, document_type: str = None, stage: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if document_type:
            details['document_type'] = document_type
        if stage:
            details['stage'] = stage
        super().__init__(message, error_code="PROCESSING_ERROR", details=details, **kwargs)


def map_to_http_exception(exc: ATSBaseException) -> HTTPException:
    """Map custom exceptions to HTTP exceptions"""

    status_code_mapping = {
        InputError: 400,
        ConfigurationError: 400,
        ProcessingError: 500,
        ValidationServiceError: 502,
    }

    status_code = status_code_mapping.get(type(exc), 500)

    detail = {
        "error": exc.to_dict(),
        "message": exc.message
    }

    return HTTPException(status_code=status_code, detail=detail)


class ExceptionContext:
    """Context manager that turns unexpected failures of a named operation into ProcessingError"""

    def __init__(self, operation: str, logger=None, **context):
        self.operation = operation
        self.logger = logger
        self.context = context

    def __enter__(self):
        if self.logger:
            self.logger.debug(f"Starting operation: {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            if self.logger:
                self.logger.debug(f"Operation completed: {self.operation}", extra=self.context)
            return False

        if self.logger:
            self.logger.error(
                f"Operation failed: {self.operation} - {exc_val}",
                extra={**self.context, "exception_type": exc_type.__name__}
            )

        # Re-raise custom exceptions as-is
        if isinstance(exc_val, ATSBaseException):
            return False

        if not isinstance(exc_val, Exception):
            return False

        raise ProcessingError(
            f"Processing error in {self.operation}: {str(exc_val)}",
            document_type=self.context.get("document_type"),
            stage=self.operation,
            cause=exc_val
        ) from exc_val
