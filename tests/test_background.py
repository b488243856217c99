"""Tests for the background runner and CLI helpers."""

import asyncio

import pytest

from repo_chat.core.errors import ValidationError
from repo_chat.main import parse_target
from repo_chat.pipeline import BackgroundRunner


class TestBackgroundRunner:
    @pytest.mark.asyncio
    async def test_tasks_tracked_until_done(self):
        runner = BackgroundRunner()
        gate = asyncio.Event()

        async def work():
            await gate.wait()
            return "done"

        task = runner.spawn(work(), name="work")
        assert runner.pending == 1

        gate.set()
        await runner.drain(timeout=1)

        assert task.result() == "done"
        assert runner.pending == 0

    @pytest.mark.asyncio
    async def test_failures_do_not_escape(self, caplog):
        runner = BackgroundRunner()

        async def fail():
            raise RuntimeError("boom")

        runner.spawn(fail(), name="failing")
        await runner.drain(timeout=1)

        assert runner.pending == 0
        assert "failing failed: boom" in caplog.text

    @pytest.mark.asyncio
    async def test_drain_cancels_stragglers(self):
        runner = BackgroundRunner()

        task = runner.spawn(asyncio.sleep(60), name="sleeper")
        await runner.drain(timeout=0.01)

        assert task.cancelled()
        assert runner.pending == 0

    @pytest.mark.asyncio
    async def test_drain_without_tasks(self):
        await BackgroundRunner().drain(timeout=0)


class TestParseTarget:
    def test_owner_slash_repo(self):
        assert str(parse_target("acme/widgets")) == "github:acme:widgets"

    def test_full_repository_id(self):
        assert str(parse_target("github:acme:widgets")) == "github:acme:widgets"

    @pytest.mark.parametrize("target", ["acme", "acme/", "github:acme"])
    def test_incomplete_targets_rejected(self, target):
        with pytest.raises(ValidationError):
            parse_target(target)
