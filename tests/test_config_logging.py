"""
Tests for configuration and structured logging
"""

import io
import json
import logging

from loancalc import config as config_module
from loancalc.calculator import LoanCalculator
from loancalc.config import LoanCalcConfig, get_config, reload_config
from loancalc.logging_config import JSONFormatter, get_logger, log_action, setup_logging


class TestConfiguration:
    """Test environment-based configuration"""

    def test_defaults(self):
        config = LoanCalcConfig()

        assert config.gst_rate == "0.18"
        assert config.pre_close_fee_rate == "0.10"
        assert config.max_extensions == 4
        assert config.enable_local_preview is True

    def test_environment_override(self, monkeypatch):
        original = get_config()
        monkeypatch.setenv("LOANCALC_GST_RATE", "0.12")
        monkeypatch.setenv("LOANCALC_MAX_EXTENSIONS", "2")
        try:
            config = reload_config()

            assert get_config() is config
            assert config.gst_rate == "0.12"
            assert config.max_extensions == 2
            assert str(LoanCalculator(config).gst_rate) == "0.12"
        finally:
            config_module.config = original


class TestStructuredLogging:
    """Test JSON log output"""

    def setup_method(self):
        self.stream = io.StringIO()
        self.logger = logging.getLogger("loancalc.test_structured")
        self.logger.handlers = []
        handler = logging.StreamHandler(self.stream)
        handler.setFormatter(JSONFormatter())
        self.logger.addHandler(handler)
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False

    def test_log_action_fields(self):
        log_action(self.logger, "info", "Loan amount updated",
                   loan_id="L1", action="update_loan_amount",
                   extra={"new_principal": "15000"})

        entry = json.loads(self.stream.getvalue())
        assert entry["message"] == "Loan amount updated"
        assert entry["level"] == "INFO"
        assert entry["loan_id"] == "L1"
        assert entry["action"] == "update_loan_amount"
        assert entry["extra"] == {"new_principal": "15000"}
        assert "correlation_id" not in entry

    def test_log_action_respects_level(self):
        log_action(self.logger, "debug", "Not emitted", loan_id="L1")

        assert self.stream.getvalue() == ""

    def test_exception_included(self):
        try:
            raise ValueError("bad amount")
        except ValueError:
            self.logger.exception("Calculation failed")

        entry = json.loads(self.stream.getvalue())
        assert "bad amount" in entry["exception"]

    def test_setup_logging(self):
        logger = setup_logging(level="DEBUG", logger_name="loancalc.test_setup")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.propagate is False

        # Repeated setup replaces the handler
        logger = setup_logging(level="INFO", logger_name="loancalc.test_setup", log_format="text")
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_get_logger(self):
        assert get_logger("loancalc.service").name == "loancalc.service"
