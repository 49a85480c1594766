"""Tests for logging setup."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from boss_orchestrator.logging_config import ROOT_LOGGER, setup_logging


def test_setup_logging_handlers(tmp_path: Path):
	"""Console and rotating file handlers are attached once."""
	logger = setup_logging(level="DEBUG", log_dir=tmp_path / "logs")

	assert logger.name == ROOT_LOGGER
	assert logger.level == logging.DEBUG
	assert len(logger.handlers) == 2
	file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
	assert len(file_handlers) == 1
	assert Path(file_handlers[0].baseFilename) == tmp_path / "logs" / "boss_orchestrator.log"

	setup_logging(level="DEBUG", log_dir=tmp_path / "logs")
	assert len(logger.handlers) == 2


def test_setup_logging_without_console(tmp_path: Path):
	logger = setup_logging(level="INFO", log_dir=tmp_path, console=False)
	assert len(logger.handlers) == 1
	assert isinstance(logger.handlers[0], RotatingFileHandler)


def test_level_from_config(tmp_path: Path, monkeypatch):
	"""Without an explicit level the configured one is used."""
	monkeypatch.setenv("BOSS_ORCHESTRATOR_LOG_LEVEL", "warning")

	logger = setup_logging()

	assert logger.level == logging.WARNING
	assert (tmp_path / "data" / "logs").exists()


def test_unknown_level_falls_back_to_info(tmp_path: Path):
	logger = setup_logging(level="chatty", log_dir=tmp_path)
	assert logger.level == logging.INFO


def test_module_loggers_write_to_file(tmp_path: Path):
	"""Child loggers propagate into the package log file."""
	setup_logging(level="DEBUG", log_dir=tmp_path, console=False)

	logging.getLogger("boss_orchestrator.orchestrator.coordinator").info("hello from a child logger")
	logging.getLogger("boss_orchestrator.plans.scheduler").debug("scheduler detail")
	for handler in logging.getLogger(ROOT_LOGGER).handlers:
		handler.flush()

	content = (tmp_path / "boss_orchestrator.log").read_text()
	assert "hello from a child logger" in content
	assert "scheduler detail" in content
