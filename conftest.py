import sys
from typing import Any, Dict, List, Optional, Sequence

import pytest

from screen_solver.agents.answerer import ANSWER_USER_PROMPT
from screen_solver.agents.classifier import CLASSIFY_PROMPT
from screen_solver.agents.extractor import EXTRACT_PROMPT
from screen_solver.core.config import SolverConfig
from screen_solver.core.sandbox import ExecutionOutput, SandboxError

ROSTER = ("model-a", "model-b", "model-c")


# -----------------------------
# Test doubles
# -----------------------------
class FakeModelCaller:
    """
    Scripted ModelCaller. Replies are keyed by request kind
    (classify, extract, verify, generate, answer, variant). A reply may be a string,
    an exception instance, a list consumed one per call (last entry repeats),
    or a dict keyed by model name holding any of those.
    """

    def __init__(self, **replies: Any):
        self.replies = replies
        self.calls: List[Dict[str, Any]] = []

    def count(self, kind: str) -> int:
        return sum(1 for c in self.calls if c["kind"] == kind)

    def prompts(self, kind: str) -> List[str]:
        return [c["user_prompt"] for c in self.calls if c["kind"] == kind]

    @staticmethod
    def _kind(system_prompt: str, user_prompt: str) -> str:
        if user_prompt == CLASSIFY_PROMPT:
            return "classify"
        if user_prompt == EXTRACT_PROMPT:
            return "extract"
        if user_prompt.startswith("Check whether the extracted problem"):
            return "verify"
        if system_prompt.startswith("You are an expert competitive programmer"):
            return "generate"
        if system_prompt.startswith("You will receive a correct solution"):
            return "variant"
        if user_prompt == ANSWER_USER_PROMPT:
            return "answer"
        raise AssertionError(f"Unrecognized request: {user_prompt[:60]}")

    async def ask(
        self,
        images: Sequence[bytes],
        system_prompt: str,
        user_prompt: str,
        model: str,
        response_shape: str = "json",
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        kind = self._kind(system_prompt, user_prompt)
        index = sum(1 for c in self.calls if c["kind"] == kind and c["model"] == model)
        self.calls.append({"kind": kind, "model": model, "user_prompt": user_prompt, "shape": response_shape})

        reply = self.replies.get(kind)
        if isinstance(reply, dict):
            reply = reply[model]
        if isinstance(reply, list):
            reply = reply[min(index, len(reply) - 1)]
        if reply is None:
            raise AssertionError(f"No scripted reply for {kind}")
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeSandbox:
    """Maps stdin text to stdout; exceptions in the map are raised."""

    def __init__(self, outputs: Dict[str, Any], load_error: Optional[Exception] = None):
        self.outputs = outputs
        self.load_error = load_error
        self.loaded: List[str] = []
        self.inputs: List[str] = []

    async def load(self, code: str) -> None:
        if self.load_error is not None:
            raise self.load_error
        self.loaded.append(code)

    async def run(self, input_text: str) -> ExecutionOutput:
        if not self.loaded:
            raise SandboxError("No code loaded")
        self.inputs.append(input_text)
        out = self.outputs.get(input_text, "")
        if isinstance(out, Exception):
            raise out
        return ExecutionOutput(stdout=out, stderr="")


# -----------------------------
# Helpers
# -----------------------------
def statement_json(title: str = "Factorial", examples: Optional[list] = None) -> str:
    import json

    return json.dumps({
        "title": title,
        "description": "Print n! for the given n.",
        "examples": examples if examples is not None else [{"input": "5", "output": "120"}],
        "constraints": ["1 <= n <= 10"],
    })


def solution_json(code: str = "print(120)") -> str:
    import json

    return json.dumps({
        "approach": "Multiply 1..n.",
        "code": code,
        "timeComplexity": "O(n)",
        "spaceComplexity": "O(1)",
    })


def variant_json(buggy_code: str = "print(119)  # correct: print(120)") -> str:
    import json

    return json.dumps({
        "responseType": "buggyVariant",
        "intent": "introduce_mistakes",
        "mistakeSummary": "Off by one in the output.",
        "edits": [
            {"description": "Printed 119", "rationale": "The answer is one too small"},
            {"description": "Loop stops early", "rationale": "The last factor is skipped"},
        ],
        "buggyCode": buggy_code,
    })


@pytest.fixture
def config() -> SolverConfig:
    return SolverConfig(api_key="test-key", roster=ROSTER, python_path=sys.executable, sandbox_timeout=20.0)


@pytest.fixture
def images() -> List[bytes]:
    return [b"screenshot-1", b"screenshot-2"]


@pytest.fixture
def states():
    return []