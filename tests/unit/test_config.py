import logging

import pytest

from rds_cfn import config
from rds_cfn.logging.setup import get_log_level_from_config


@pytest.mark.parametrize(
    "value,expected",
    [("1", True), ("true", True), (" TRUE ", True), ("0", False), ("", False), ("yes", False)],
)
def test_is_env_true(monkeypatch, value, expected):
    monkeypatch.setenv("RDS_CFN_TEST_FLAG", value)

    assert config.is_env_true("RDS_CFN_TEST_FLAG") is expected


def test_is_env_not_false(monkeypatch):
    monkeypatch.delenv("RDS_CFN_TEST_FLAG", raising=False)
    assert config.is_env_not_false("RDS_CFN_TEST_FLAG")

    monkeypatch.setenv("RDS_CFN_TEST_FLAG", "false")
    assert not config.is_env_not_false("RDS_CFN_TEST_FLAG")


def test_get_int_env(monkeypatch):
    monkeypatch.setenv("RDS_CFN_TEST_DELAY", "12")
    assert config.get_int_env("RDS_CFN_TEST_DELAY", 6) == 12

    monkeypatch.setenv("RDS_CFN_TEST_DELAY", "soon")
    assert config.get_int_env("RDS_CFN_TEST_DELAY", 6) == 6

    monkeypatch.delenv("RDS_CFN_TEST_DELAY")
    assert config.get_int_env("RDS_CFN_TEST_DELAY", 6) == 6


def test_eval_log_type(monkeypatch):
    monkeypatch.setenv("RDS_CFN_LOG", "TRACE")
    assert config.eval_log_type("RDS_CFN_LOG") == "trace"

    monkeypatch.setenv("RDS_CFN_LOG", "chatty")
    assert config.eval_log_type("RDS_CFN_LOG") is False


def test_handler_config_defaults():
    handler_config = config.HandlerConfig()

    assert handler_config.callback_delay == config.CALLBACK_DELAY_SECONDS
    assert handler_config.create_update_delay.timeout == config.CREATE_UPDATE_TIMEOUT_SECONDS
    assert handler_config.delete_delay.timeout == config.DELETE_TIMEOUT_SECONDS
    assert handler_config.create_update_delay is not config.HandlerConfig().create_update_delay


@pytest.mark.parametrize(
    "log,debug,expected",
    [
        (False, False, logging.INFO),
        (False, True, logging.DEBUG),
        ("warn", False, logging.WARNING),
        ("trace", False, logging.DEBUG),
    ],
)
def test_log_level_from_config(monkeypatch, log, debug, expected):
    monkeypatch.setattr(config, "RDS_CFN_LOG", log)
    monkeypatch.setattr(config, "DEBUG", debug)

    assert get_log_level_from_config() == expected
