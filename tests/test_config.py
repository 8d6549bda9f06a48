"""Tests for configuration loading."""

import os
from unittest.mock import patch

import pytest

from api_operator.config import (
    DEFAULT_CALL_TIMEOUT_SECONDS,
    ConfigurationError,
    ControllerConfig,
    parse_tag_templates,
)


class TestControllerConfig:
    """Tests for ControllerConfig class."""

    def test_valid_config(self) -> None:
        """Test creating a valid configuration."""
        config = ControllerConfig(account_id="123456789012", region="us-west-2")

        assert config.controller_version == "dev"
        assert config.system_tag_prefix == "aws:"
        assert config.call_timeout_seconds == DEFAULT_CALL_TIMEOUT_SECONDS
        assert list(config.resource_tags) == [
            "services.k8s.aws/controller-version",
            "services.k8s.aws/namespace",
        ]

    def test_missing_account_id(self) -> None:
        """Test that missing account id raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            ControllerConfig(account_id="", region="us-west-2")

        assert "AWS_ACCOUNT_ID" in str(exc_info.value)

    def test_invalid_account_id(self) -> None:
        """Test that a non 12-digit account id is rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            ControllerConfig(account_id="1234", region="us-west-2")

        assert "12 digits" in str(exc_info.value)

    def test_invalid_region(self) -> None:
        """Test that a malformed region is rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            ControllerConfig(account_id="123456789012", region="westeurope")

        assert "AWS_REGION" in str(exc_info.value)

    def test_govcloud_region_accepted(self) -> None:
        """GovCloud region names are valid."""
        config = ControllerConfig(account_id="123456789012", region="us-gov-west-1")
        assert config.region == "us-gov-west-1"

    def test_invalid_call_timeout(self) -> None:
        """Test that out-of-range call timeout raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            ControllerConfig(account_id="123456789012", region="us-west-2", call_timeout_seconds=0)

        assert "CALL_TIMEOUT" in str(exc_info.value)

    def test_default_tag_with_reserved_prefix(self) -> None:
        """Default tags may not use the backend's reserved prefix."""
        with pytest.raises(ConfigurationError) as exc_info:
            ControllerConfig(
                account_id="123456789012",
                region="us-west-2",
                resource_tags={"aws:owner": "me"},
            )

        assert "reserved prefix" in str(exc_info.value)

    def test_errors_are_collected(self) -> None:
        """All validation errors are reported together."""
        with pytest.raises(ConfigurationError) as exc_info:
            ControllerConfig(account_id="", region="", log_level="LOUD")

        message = str(exc_info.value)
        assert "AWS_ACCOUNT_ID" in message
        assert "AWS_REGION" in message
        assert "LOG_LEVEL" in message

    def test_config_is_frozen(self) -> None:
        """Configuration cannot be changed after construction."""
        config = ControllerConfig(account_id="123456789012", region="us-west-2")
        with pytest.raises(AttributeError):
            config.region = "eu-west-1"  # type: ignore[misc]


class TestParseTagTemplates:
    """Tests for RESOURCE_TAGS parsing."""

    def test_preserves_order(self) -> None:
        templates = parse_tag_templates("b=2,a=1,c=%K8S_NAMESPACE%")
        assert list(templates.items()) == [("b", "2"), ("a", "1"), ("c", "%K8S_NAMESPACE%")]

    def test_ignores_blank_entries(self) -> None:
        assert parse_tag_templates("a=1,, ,b=2") == {"a": "1", "b": "2"}

    def test_empty_value_allowed(self) -> None:
        assert parse_tag_templates("a=") == {"a": ""}

    def test_missing_separator(self) -> None:
        with pytest.raises(ConfigurationError):
            parse_tag_templates("novalue")

    def test_empty_key(self) -> None:
        with pytest.raises(ConfigurationError):
            parse_tag_templates("=value")


class TestFromEnv:
    """Tests for loading configuration from the environment."""

    def test_from_env(self) -> None:
        env = {
            "AWS_ACCOUNT_ID": "123456789012",
            "AWS_REGION": "eu-west-1",
            "CONTROLLER_VERSION": "v1.0.0",
            "RESOURCE_TAGS": "team=platform",
            "CALL_TIMEOUT": "45",
            "ENABLE_AUDIT_LOGGING": "false",
            "LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=True):
            config = ControllerConfig.from_env()

        assert config.region == "eu-west-1"
        assert config.controller_version == "v1.0.0"
        assert config.resource_tags == {"team": "platform"}
        assert config.call_timeout_seconds == 45
        assert config.enable_audit_logging is False
        assert config.log_level == "DEBUG"

    def test_from_env_defaults(self) -> None:
        env = {"AWS_ACCOUNT_ID": "123456789012", "AWS_REGION": "us-east-1"}
        with patch.dict(os.environ, env, clear=True):
            config = ControllerConfig.from_env()

        assert config.enable_audit_logging is True
        assert config.log_level == "INFO"
        assert "services.k8s.aws/namespace" in config.resource_tags

    def test_from_env_invalid_integer(self) -> None:
        env = {
            "AWS_ACCOUNT_ID": "123456789012",
            "AWS_REGION": "us-east-1",
            "CALL_TIMEOUT": "soon",
        }
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                ControllerConfig.from_env()

        assert "CALL_TIMEOUT" in str(exc_info.value)

    def test_from_env_missing_required(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError):
                ControllerConfig.from_env()
