import asyncio
import os
import sys

import pytest

from screen_solver.core.sandbox import PythonSandbox, SandboxError, fallback_interpreter

@pytest.fixture
def sandbox():
    return PythonSandbox(sys.executable, timeout=20.0)

@pytest.mark.asyncio
async def test_run_feeds_stdin(sandbox):
    await sandbox.load("import sys\nprint(sum(int(x) for x in sys.stdin.read().split()))")
    out = await sandbox.run("1 2\n3")
    assert out.stdout.strip() == "6"

@pytest.mark.asyncio
async def test_loaded_program_is_reused_until_reload(sandbox):
    await sandbox.load("print(input().upper())")
    assert (await sandbox.run("abc")).stdout.strip() == "ABC"
    assert (await sandbox.run("xyz")).stdout.strip() == "XYZ"

    await sandbox.load("print(input()[::-1])")
    assert (await sandbox.run("abc")).stdout.strip() == "cba"

@pytest.mark.asyncio
async def test_run_before_load(sandbox):
    with pytest.raises(SandboxError, match="No code loaded"):
        await sandbox.run("1")

@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["", "   \n", "def broken(:\n    pass"])
async def test_load_rejects_bad_source(sandbox, code):
    with pytest.raises(SandboxError):
        await sandbox.load(code)

@pytest.mark.asyncio
async def test_runtime_error_reports_stderr(sandbox):
    await sandbox.load("raise ValueError('bad input')")
    with pytest.raises(SandboxError, match="bad input"):
        await sandbox.run("")

@pytest.mark.asyncio
async def test_timeout_kills_the_process():
    sandbox = PythonSandbox(sys.executable, timeout=0.5)
    await sandbox.load("while True:\n    pass")
    with pytest.raises(SandboxError, match="timed out"):
        await sandbox.run("")

@pytest.mark.asyncio
async def test_missing_interpreter():
    sandbox = PythonSandbox("/nonexistent/python-binary", fallback="/nonexistent/other-python")
    await sandbox.load("print(1)")
    with pytest.raises(SandboxError, match="Failed to start"):
        await sandbox.run("")

@pytest.mark.asyncio
async def test_falls_back_to_second_interpreter(capsys):
    sandbox = PythonSandbox("/nonexistent/python-binary", timeout=20.0, fallback=sys.executable)
    await sandbox.load("print(input())")

    assert (await sandbox.run("hi")).stdout.strip() == "hi"
    assert sandbox.python_path == sys.executable
    assert "using" in capsys.readouterr().out
    # the working interpreter is kept
    assert (await sandbox.run("again")).stdout.strip() == "again"

def test_default_fallback_pairs_python3_and_python():
    assert fallback_interpreter("python3") == "python"
    assert fallback_interpreter("python") == "python3"
    assert PythonSandbox("python3").fallback == "python"

@pytest.mark.asyncio
async def test_cancelled_run_kills_the_child(tmp_path):
    pid_file = tmp_path / "pid"
    sandbox = PythonSandbox(sys.executable, timeout=60.0)
    await sandbox.load(
        "import os, time\n"
        f"with open({str(pid_file)!r}, 'w') as f:\n"
        "    f.write(str(os.getpid()))\n"
        "time.sleep(60)\n"
    )

    task = asyncio.create_task(sandbox.run(""))
    for _ in range(200):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.05)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # the child has been killed and reaped
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
