# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Executor tests.

Child processes are the current Python interpreter running small
scripts, so no database tools are needed.
"""

import asyncio
import os
import sys
from pathlib import Path

import pytest

from qdb.exceptions import FailureReason, ToolExecutionError
from qdb.executor import (
    classify_failure,
    classify_stderr,
    mask_secrets,
    probe_tool,
    render_command,
    run_tool,
)


def py(code: str) -> list:
    return [sys.executable, "-c", code]


# ============================================================================
# run_tool
# ============================================================================

@pytest.mark.asyncio
async def test_run_tool_captures_output():
    result = await run_tool(py("import sys; print('hello'); print('chatter', file=sys.stderr)"))

    assert result.returncode == 0
    assert result.stdout.strip() == "hello"
    assert result.stderr.strip() == "chatter"
    assert result.truncated is False


@pytest.mark.asyncio
async def test_run_tool_nonzero_exit_is_failure_even_without_stderr():
    with pytest.raises(ToolExecutionError) as exc_info:
        await run_tool(py("import sys; sys.exit(3)"))

    assert exc_info.value.reason == FailureReason.TOOL_FAILURE
    assert exc_info.value.returncode == 3


@pytest.mark.asyncio
async def test_run_tool_failure_message_includes_stderr_tail():
    with pytest.raises(ToolExecutionError) as exc_info:
        await run_tool(py("import sys; print('relation \"x\" does not exist', file=sys.stderr); sys.exit(1)"))

    assert 'relation "x" does not exist' in exc_info.value.message


@pytest.mark.asyncio
async def test_run_tool_missing_executable():
    with pytest.raises(ToolExecutionError) as exc_info:
        await run_tool(["qdb-definitely-not-installed-tool", "--version"])

    assert exc_info.value.reason == FailureReason.TOOL_NOT_FOUND


@pytest.mark.asyncio
async def test_run_tool_classifies_auth_failure():
    code = "import sys; print('ERROR 1045 (28000): Access denied for user', file=sys.stderr); sys.exit(2)"
    with pytest.raises(ToolExecutionError) as exc_info:
        await run_tool(py(code))

    assert exc_info.value.reason == FailureReason.AUTH_FAILURE


@pytest.mark.asyncio
async def test_run_tool_timeout_kills_process():
    with pytest.raises(ToolExecutionError) as exc_info:
        await run_tool(py("import time; time.sleep(30)"), timeout=0.5)

    assert exc_info.value.reason == FailureReason.TIMEOUT


@pytest.mark.asyncio
async def test_run_tool_cancellation_kills_and_reaps_child(temp_dir: Path):
    pid_file = temp_dir / "child.pid"
    code = (
        "import os, sys, time; "
        f"open({str(pid_file)!r}, 'w').write(str(os.getpid())); "
        "time.sleep(30)"
    )
    task = asyncio.create_task(run_tool(py(code)))
    for _ in range(200):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.05)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # Killed and waited on: no zombie left behind
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


@pytest.mark.asyncio
async def test_run_tool_bounded_buffer_keeps_tail():
    code = "import sys; sys.stdout.write('a' * 5000 + 'END')"
    result = await run_tool(py(code), max_buffer=100)

    assert result.truncated is True
    assert len(result.stdout) == 100
    assert result.stdout.endswith("END")


@pytest.mark.asyncio
async def test_run_tool_feeds_stdin_from_file(temp_dir: Path):
    dump = temp_dir / "dump.sql"
    dump.write_text("SELECT 1;\n")

    result = await run_tool(py("import sys; sys.stdout.write(sys.stdin.read())"), stdin_path=dump)

    assert result.stdout == "SELECT 1;\n"
    assert result.command.endswith(f"< {dump}")


@pytest.mark.asyncio
async def test_run_tool_extra_env_reaches_child_only():
    import os

    result = await run_tool(
        py("import os; print(os.environ['PGPASSWORD'])"),
        env={"PGPASSWORD": "s3cret"},
    )

    assert result.stdout.strip() == "s3cret"
    assert "PGPASSWORD" not in os.environ


@pytest.mark.asyncio
async def test_run_tool_rejects_invalid_buffer():
    with pytest.raises(ValueError):
        await run_tool(py("pass"), max_buffer=0)


# ============================================================================
# probe_tool
# ============================================================================

@pytest.mark.asyncio
async def test_probe_tool_available():
    assert await probe_tool([sys.executable, "--version"]) is True


@pytest.mark.asyncio
async def test_probe_tool_never_raises():
    assert await probe_tool(["qdb-definitely-not-installed-tool", "--version"]) is False
    assert await probe_tool(py("import sys; sys.exit(1)")) is False


# ============================================================================
# Classification and rendering
# ============================================================================

def test_classify_stderr_drops_known_chatter():
    stderr = (
        "mysqldump: [Warning] Using a password on the command line interface can be insecure.\n"
        "\n"
        "mysqldump: Couldn't find table: \"ghost\"\n"
    )
    warnings = classify_stderr(stderr, ["Warning"])

    assert warnings == ['mysqldump: Couldn\'t find table: "ghost"']


def test_classify_stderr_without_markers_surfaces_everything():
    assert classify_stderr("one\ntwo\n", []) == ["one", "two"]


def test_classify_failure():
    assert classify_failure(127, "") == FailureReason.TOOL_NOT_FOUND
    assert classify_failure(1, 'FATAL: password authentication failed for user "app"') == FailureReason.AUTH_FAILURE
    assert classify_failure(1, "disk full") == FailureReason.TOOL_FAILURE


def test_mask_secrets():
    assert mask_secrets("--password=hunter2") == "--password=****"
    assert mask_secrets("--uri=mongodb://admin:pw@db:27017") == "--uri=mongodb://admin:****@db:27017"
    assert mask_secrets("--user=root") == "--user=root"


def test_render_command_masks_and_shows_redirect():
    rendered = render_command(
        ["mysql", "--user=root", "--password=hunter2", "shop"],
        stdin_path=Path("/tmp/dump file.sql"),
    )

    assert "hunter2" not in rendered
    assert "--password=****" in rendered
    assert rendered.startswith("mysql --user=root ")
    assert rendered.endswith(" shop < '/tmp/dump file.sql'")
