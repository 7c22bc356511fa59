"""
Tests for the error taxonomy and configuration validation.

Run with: pytest tests/test_errors.py -v
"""
import pytest

from thrall import (
    BrowserAgentError,
    BrowserConfig,
    CDPConnectionError,
    CDPNavigationError,
    CDPParseError,
    CDPProtocolError,
    CDPTargetError,
    CDPTimeoutError,
    ScreencastEncodeError,
    ScreencastStateError,
)


class TestErrors:
    """Every thrall error is a BrowserAgentError carrying its context."""

    @pytest.mark.parametrize("error_type", [
        CDPConnectionError,
        CDPNavigationError,
        CDPParseError,
        CDPProtocolError,
        CDPTargetError,
        CDPTimeoutError,
        ScreencastEncodeError,
        ScreencastStateError,
    ])
    def test_hierarchy(self, error_type):
        assert issubclass(error_type, BrowserAgentError)

    def test_str_includes_context(self):
        error = BrowserAgentError("boom", session_id="S1", method="Page.navigate", attempt=2)
        assert str(error) == "boom | session_id=S1 | method=Page.navigate | context=(attempt=2)"

    def test_str_message_only(self):
        assert str(CDPConnectionError("Connection closed")) == "Connection closed"

    def test_timeout_fields(self):
        error = CDPTimeoutError("Timeout waiting for load after 1.0s", timeout=1.0, what="load")
        assert (error.timeout, error.what) == (1.0, "load")

    def test_protocol_error_keeps_message(self):
        error = CDPProtocolError("Cannot find context with specified id", code=-32000,
                                 cdp_error={"code": -32000, "message": "Cannot find context with specified id"})
        assert error.message == "Cannot find context with specified id"
        assert error.code == -32000


class TestBrowserConfig:
    """Configuration defaults and validation."""

    def test_defaults(self):
        config = BrowserConfig()
        assert config.default_timeout == 30.0
        assert config.wait_until == "load"
        assert config.debugger_url == "http://localhost:9222"

    @pytest.mark.parametrize("kwargs", [
        {"wait_until": "commit"},
        {"default_timeout": 0},
        {"polling_interval": -0.1},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            BrowserConfig(**kwargs)
