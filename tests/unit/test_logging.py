"""Unit tests for structlog configuration."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest
import structlog

from stack_rag.utils.logging import configure_logging, get_logger, log_context


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


class TestConfigureLogging:
    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = configure_logging("INFO", json_output=True)

        logger.info("batch_process_complete", total=3)

        line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert line["event"] == "batch_process_complete"
        assert line["total"] == 3
        assert line["level"] == "info"
        assert "timestamp" in line

    def test_level_filters_lower_events(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = configure_logging("WARNING", json_output=True)

        logger.info("hidden")
        logger.warning("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "shown" in out

    def test_production_env_selects_json(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("APP_ENV", "production")

        configure_logging("INFO").info("semantic_search", results=2)

        assert json.loads(capsys.readouterr().out.strip().splitlines()[-1])["results"] == 2

    def test_httpx_is_quieted(self) -> None:
        configure_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING


class TestGetLogger:
    def test_configures_on_first_use(self) -> None:
        structlog.reset_defaults()
        logger = get_logger("stack_rag.tests")

        assert structlog.is_configured()
        assert logger is not None


class TestLogContext:
    def test_binds_values_inside_block_only(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = configure_logging("INFO", json_output=True)

        with log_context(batch_run="run-1", provider="mock"):
            logger.info("batch_group_complete")
        logger.info("batch_process_complete")

        inside, outside = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()[-2:]]
        assert inside["batch_run"] == "run-1"
        assert inside["provider"] == "mock"
        assert "batch_run" not in outside

    @pytest.mark.asyncio
    async def test_tasks_started_in_block_inherit_values(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = configure_logging("INFO", json_output=True)

        async def _worker() -> None:
            logger.info("queue_item_done")

        with log_context(batch_run="run-2"):
            task = asyncio.create_task(_worker())
        await task

        line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert line["event"] == "queue_item_done"
        assert line["batch_run"] == "run-2"
