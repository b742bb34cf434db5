"""
Tests for the async subprocess helper.
"""
from __future__ import annotations

import sys

import pytest

from compose_image_cache.errors import CommandError, CommandTimeout
from compose_image_cache.providers.process import run_command


class TestRunCommand:

    async def test_captures_output(self):
        result = await run_command([sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"])
        assert result.returncode == 0
        assert result.stdout == "out\n"
        assert result.stderr == "err"

    async def test_non_zero_exit_raises(self):
        with pytest.raises(CommandError) as exc_info:
            await run_command([sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"])
        assert exc_info.value.returncode == 3
        assert exc_info.value.stderr == "boom"

    async def test_non_zero_exit_without_check(self):
        result = await run_command([sys.executable, "-c", "raise SystemExit(2)"], check=False)
        assert result.returncode == 2

    async def test_missing_executable(self):
        with pytest.raises(CommandError) as exc_info:
            await run_command(["definitely-not-a-real-binary-xyz", "--version"])
        assert exc_info.value.returncode == 127

    async def test_timeout_kills_process(self):
        with pytest.raises(CommandTimeout) as exc_info:
            await run_command([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5)
        assert exc_info.value.returncode is None
