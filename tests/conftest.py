"""Shared pytest fixtures."""

import logging

import pytest

from boss_orchestrator import config as config_module
from boss_orchestrator.logging_config import ROOT_LOGGER


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
	"""Point config and data dirs at a temp dir and reset the config singleton."""
	monkeypatch.setenv("BOSS_ORCHESTRATOR_CONFIG_DIR", str(tmp_path / "config"))
	monkeypatch.setenv("BOSS_ORCHESTRATOR_DATA_DIR", str(tmp_path / "data"))
	monkeypatch.delenv("BOSS_ORCHESTRATOR_LOG_LEVEL", raising=False)
	monkeypatch.delenv("LOG_LEVEL", raising=False)
	monkeypatch.setattr(config_module, "_config", None)
	yield tmp_path


@pytest.fixture(autouse=True)
def reset_package_logger():
	"""Drop handlers added by setup_logging so each test starts clean."""
	yield
	logger = logging.getLogger(ROOT_LOGGER)
	for handler in list(logger.handlers):
		logger.removeHandler(handler)
		handler.close()
	logger.setLevel(logging.NOTSET)
