"""
Configuration tests.

Run with:
    python -m pytest tests/test_config.py -v
"""

import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Config


class TestConfig:

    def test_defaults(self, monkeypatch):
        for name in ("KIE_API_KEY", "KIE_API_BASE", "KIE_POLL_INTERVAL", "KIE_POLL_MAX_ATTEMPTS"):
            monkeypatch.delenv(name, raising=False)

        config = Config.from_env()

        assert config.api.kie_api_base == "https://api.kie.ai/api/v1"
        assert config.http.request_timeout == 30.0
        assert config.polling.interval_seconds == 5.0
        assert config.polling.max_attempts == 60
        assert config.polling.budget_seconds == 300.0
        assert config.http.request_timeout < config.polling.budget_seconds

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("KIE_API_KEY", "env-key")
        monkeypatch.setenv("KIE_POLL_INTERVAL", "2.5")
        monkeypatch.setenv("KIE_POLL_MAX_ATTEMPTS", "20")

        config = Config.from_env()

        assert config.api.kie_api_key == "env-key"
        assert config.polling.interval_seconds == 2.5
        assert config.polling.max_attempts == 20
        assert config.polling.budget_seconds == 50.0
        assert config.validate() == []

    def test_request_timeout_must_fit_poll_budget(self, monkeypatch):
        monkeypatch.setenv("KIE_API_KEY", "env-key")
        monkeypatch.setenv("KIE_POLL_INTERVAL", "1")
        monkeypatch.setenv("KIE_POLL_MAX_ATTEMPTS", "10")

        config = Config.from_env()

        assert config.polling.budget_seconds == 10.0
        assert config.validate() == [
            "HTTP request timeout must be shorter than the polling budget"
        ]

    def test_validate_reports_issues(self, monkeypatch):
        monkeypatch.delenv("KIE_API_KEY", raising=False)

        config = Config.from_env()
        config.polling.max_attempts = 0

        issues = config.validate()
        assert "KIE_API_KEY not configured" in issues
        assert any("max_attempts" in issue for issue in issues)
