import logging

import pytest

from atscan.utils.exceptions import (
    ConfigurationError, ExceptionContext, InputError, ProcessingError, ValidationServiceError,
    map_to_http_exception,
)


class TestExceptionMapping:
    """Scanner errors become HTTP errors"""

    @pytest.mark.parametrize("exc,status", [
        (InputError("empty", document_type="resume"), 400),
        (ConfigurationError("bad", config_key="weights"), 400),
        (ProcessingError("failed", stage="categorization"), 500),
        (ValidationServiceError("down"), 502),
    ])
    def test_status_codes(self, exc, status):
        http_exc = map_to_http_exception(exc)
        assert http_exc.status_code == status
        assert http_exc.detail["message"] == exc.message
        assert http_exc.detail["error"]["error_code"] == exc.error_code

    def test_cause_is_reported(self):
        exc = ProcessingError("failed", cause=ValueError("bad token"))
        assert exc.to_dict()["cause"] == "bad token"


class TestExceptionContext:
    def test_wraps_unexpected_errors(self):
        with pytest.raises(ProcessingError) as exc_info:
            with ExceptionContext("categorization", logging.getLogger("test"), document_type="resume"):
                raise KeyError("hardSkills")
        assert exc_info.value.details == {"document_type": "resume", "stage": "categorization"}
        assert isinstance(exc_info.value.cause, KeyError)

    def test_scanner_errors_pass_through(self):
        with pytest.raises(InputError):
            with ExceptionContext("basic_extraction"):
                raise InputError("empty")

    def test_success(self):
        with ExceptionContext("basic_extraction") as ctx:
            pass
        assert ctx.operation == "basic_extraction"
