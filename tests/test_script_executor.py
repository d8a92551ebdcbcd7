import json
from pathlib import Path

import pytest

from pocket_pilot.common.services.script_executor.script_executor import (
    ScriptExecutor,
    extract_command_name,
    truncate,
)


@pytest.fixture()
def executor(tmp_path):
    return ScriptExecutor(tmp_path, allowed_commands=["echo", "sleep", "printf"], timeout_sec=5)


def test_validate_script_rules(executor):
    assert executor.validate_script("echo hi && echo there") is None
    assert executor.validate_script("   ") == "Script is empty."
    assert "not allowed" in executor.validate_script("echo hi | curl example.com")
    assert "safety rule" in executor.validate_script("echo hi; sudo echo root")
    assert "safety rule" in executor.validate_script("rm -rf /")
    # comments are ignored, env assignments are skipped
    assert executor.validate_script("# curl here\nLANG=C echo ok") is None


def test_disabled_executor(tmp_path):
    executor = ScriptExecutor(tmp_path, enabled=False, allowed_commands=["echo"])
    assert executor.validate_script("echo hi") == "Script executor is disabled by config."


@pytest.mark.asyncio
async def test_execute_writes_run_artifacts(executor):
    result = await executor.execute("echo hello")

    assert result.ok is True
    assert result.exit_code == 0
    assert result.stdout.strip() == "hello"
    run_dir = Path(result.run_dir)
    assert (run_dir / "script.sh").read_text(encoding="utf-8") == "echo hello\n"
    assert json.loads((run_dir / "result.json").read_text(encoding="utf-8"))["exit_code"] == 0
    assert "run_script exit_code=0 timed_out=False" in result.summary()


@pytest.mark.asyncio
async def test_rejected_script_is_not_run(executor):
    result = await executor.execute("curl example.com")

    assert result.ok is False
    assert result.exit_code is None
    assert "Command 'curl' is not allowed" in result.stderr
    assert (Path(result.run_dir) / "stderr.log").exists()


@pytest.mark.asyncio
async def test_timeout_kills_script(executor):
    result = await executor.execute("sleep 5", timeout_sec=1)

    assert result.ok is False
    assert result.timed_out is True


@pytest.mark.asyncio
async def test_output_is_truncated(tmp_path):
    executor = ScriptExecutor(tmp_path, allowed_commands=["printf"], max_output_chars=10)

    result = await executor.execute("printf 'abcdefghijklmnop'")

    assert result.stdout == "abcdefghij\n...[truncated]"


def test_helpers():
    assert extract_command_name("FOO=1 BAR=2 echo hi") == "echo"
    assert extract_command_name("") == ""
    assert truncate("short", 10) == "short"
