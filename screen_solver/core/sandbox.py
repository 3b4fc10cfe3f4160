import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol

STDERR_TAIL_LINES = 20


class SandboxError(Exception):
    pass


@dataclass(frozen=True)
class ExecutionOutput:
    stdout: str
    stderr: str


class ExecutionSandbox(Protocol):
    """One load() fixes the program for every following run() until the next load()."""

    async def load(self, code: str) -> None:
        ...

    async def run(self, input_text: str) -> ExecutionOutput:
        ...


def _tail(text: str, lines: int = STDERR_TAIL_LINES) -> str:
    return "\n".join((text or "").splitlines()[-lines:])


def fallback_interpreter(python_path: str) -> str:
    return "python" if python_path == "python3" else "python3"


async def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await proc.wait()


class PythonSandbox:
    """
    Runs loaded Python source in a fresh isolated interpreter per input.

    If the configured interpreter cannot be started, the other of
    python3/python is tried once and kept for later runs.
    """

    def __init__(self, python_path: str = "python3", timeout: float = 10.0, fallback: Optional[str] = None):
        self.python_path = python_path
        self.fallback = fallback if fallback is not None else fallback_interpreter(python_path)
        self.timeout = timeout
        self._code: Optional[str] = None

    async def load(self, code: str) -> None:
        if not code or not code.strip():
            raise SandboxError("No code to load")
        try:
            compile(code, "<solution>", "exec")
        except SyntaxError as e:
            raise SandboxError(f"Syntax error on line {e.lineno}: {e.msg}") from e
        self._code = code

    async def _spawn(self, python_path: str) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            python_path,
            "-I",
            "-c",
            self._code,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def _start(self) -> asyncio.subprocess.Process:
        try:
            return await self._spawn(self.python_path)
        except OSError as e:
            if not self.fallback or self.fallback == self.python_path:
                raise SandboxError(f"Failed to start {self.python_path}: {e}") from e
            first_error = e

        try:
            proc = await self._spawn(self.fallback)
        except OSError as e:
            raise SandboxError(
                f"Failed to start {self.python_path} ({first_error}) or {self.fallback} ({e})"
            ) from e
        print(f"[Sandbox] {self.python_path} unavailable, using {self.fallback}")
        self.python_path, self.fallback = self.fallback, self.python_path
        return proc

    async def run(self, input_text: str) -> ExecutionOutput:
        if self._code is None:
            raise SandboxError("No code loaded")

        proc = await self._start()
        try:
            out, err = await asyncio.wait_for(
                proc.communicate((input_text or "").encode("utf-8")), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            print(f"[Sandbox] Killing pid {proc.pid} after {self.timeout:g}s")
            raise SandboxError(f"Execution timed out after {self.timeout:g}s") from e
        finally:
            # also reached on cancellation
            if proc.returncode is None:
                await _kill(proc)

        stdout = out.decode("utf-8", errors="replace")
        stderr = err.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise SandboxError(f"Exited with code {proc.returncode}:\n{_tail(stderr)}")
        return ExecutionOutput(stdout=stdout, stderr=stderr)
