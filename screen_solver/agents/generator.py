import asyncio
from typing import Callable, List, Optional, Sequence

from pydantic import ValidationError

from ..core.model_caller import ModelCaller, load_json_object, preview
from ..core.sandbox import ExecutionSandbox
from ..core.types import (
    CandidateStatus,
    CodeSolution,
    Example,
    ExampleOutcome,
    ProblemStatement,
    SolutionCandidate,
)

SandboxFactory = Callable[[], ExecutionSandbox]
CandidateListener = Callable[[List[SolutionCandidate]], None]
OutcomeListener = Callable[[ExampleOutcome], None]

GENERATE_SYSTEM_PROMPT = (
    "You are an expert competitive programmer. Solve the coding problem step by step.\n"
    "\n"
    "Provide:\n"
    "1. A clear explanation of the approach\n"
    "2. Clean, efficient code in {language}\n"
    "3. Time and space complexity analysis\n"
    "\n"
    "The code must be a complete program: read the input from standard input in the format of the examples "
    "and print the answer to standard output.\n"
    "\n"
    "Format your response as JSON:\n"
    "{{\n"
    "  \"approach\": \"Step by step explanation of your approach\",\n"
    "  \"code\": \"Your complete solution code\",\n"
    "  \"timeComplexity\": \"Time complexity (e.g., O(n))\",\n"
    "  \"spaceComplexity\": \"Space complexity (e.g., O(1))\"\n"
    "}}\n"
    "\n"
    "Make sure the code is syntactically correct and handles edge cases."
)


def outputs_match(actual: str, expected: str) -> bool:
    """Compare program output to the expected output, ignoring surrounding whitespace."""
    return (actual or "").replace("\r\n", "\n").strip() == (expected or "").replace("\r\n", "\n").strip()


async def run_examples(
    sandbox_factory: SandboxFactory,
    code: str,
    examples: Sequence[Example],
    on_outcome: Optional[OutcomeListener] = None,
) -> List[ExampleOutcome]:
    """
    Load `code` into a fresh sandbox once and run the examples against it in order.

    Never raises: a sandbox that cannot be created or loaded marks every
    example as failed with the load error, and a failed run marks only its
    own example.
    """
    outcomes: List[ExampleOutcome] = []

    def record(outcome: ExampleOutcome) -> None:
        outcomes.append(outcome)
        if on_outcome is not None:
            on_outcome(outcome)

    try:
        sandbox = sandbox_factory()
        await sandbox.load(code)
    except Exception as e:
        print(f"[Examples] Could not load code: {e}")
        for example in examples:
            record(ExampleOutcome(
                input=example.stdin_text(),
                expected=example.expected_text(),
                error=f"load failed: {e}",
            ))
        return outcomes

    for example in examples:
        outcome = ExampleOutcome(input=example.stdin_text(), expected=example.expected_text())
        try:
            output = await sandbox.run(outcome.input)
        except Exception as e:
            outcome.error = str(e)
        else:
            outcome.actual = output.stdout
            outcome.passed = outputs_match(output.stdout, outcome.expected)
        record(outcome)
    return outcomes


class SolutionGenerator:
    """
    Fans out one generation attempt per roster model and tests each result
    against the statement's examples.

    Every attempt owns exactly one candidate slot. Failures are recorded on
    the slot instead of raised, so one bad attempt never cancels the others.
    """

    def __init__(
        self,
        caller: ModelCaller,
        roster: Sequence[str],
        language: str,
        sandbox_factory: Optional[SandboxFactory] = None,
    ):
        if not roster:
            raise ValueError("Roster must contain at least one model")
        self.caller = caller
        self.roster = list(roster)
        self.language = language
        self.sandbox_factory = sandbox_factory

    async def generate(
        self,
        statement: ProblemStatement,
        on_update: Optional[CandidateListener] = None,
    ) -> List[SolutionCandidate]:
        candidates = [
            SolutionCandidate(slot=idx, model=model, tests_total=len(statement.examples))
            for idx, model in enumerate(self.roster)
        ]

        def emit() -> None:
            if on_update is not None:
                on_update([c.snapshot() for c in candidates])

        emit()
        print(f"[Generator] Generating {len(candidates)} candidate(s) for '{statement.title}'")

        async with asyncio.TaskGroup() as group:
            for candidate in candidates:
                group.create_task(self._attempt(candidate, statement, emit))

        passed = [c.slot for c in candidates if c.status == CandidateStatus.SUCCEEDED]
        print(f"[Generator] Finished: succeeded slots={passed}")
        return candidates

    async def _attempt(
        self,
        candidate: SolutionCandidate,
        statement: ProblemStatement,
        emit: Callable[[], None],
    ) -> None:
        candidate.status = CandidateStatus.RUNNING
        emit()

        try:
            solution = await self._generate_one(statement, candidate.model)
        except Exception as e:
            candidate.status = CandidateStatus.FAILED
            candidate.error = str(e) or e.__class__.__name__
            print(f"[Generator] Slot {candidate.slot} failed: {preview(candidate.error)}")
            emit()
            return

        candidate.solution = solution
        if statement.examples:
            await self._run_examples(candidate, statement, emit)

        candidate.status = CandidateStatus.SUCCEEDED
        print(
            f"[Generator] Slot {candidate.slot} succeeded "
            f"(tests {candidate.tests_passed}/{candidate.tests_total})"
        )
        emit()

    async def _generate_one(self, statement: ProblemStatement, model: str) -> CodeSolution:
        reply = await self.caller.ask(
            [],
            GENERATE_SYSTEM_PROMPT.format(language=self.language),
            statement.format_for_prompt(),
            model,
            "json",
            temperature=0.3,
            max_tokens=4000,
        )
        try:
            payload = load_json_object(reply)
        except ValueError as e:
            raise ValueError(f"Malformed solution, could not parse JSON: {preview(reply)}") from e
        try:
            return CodeSolution.model_validate(payload)
        except ValidationError as e:
            missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise ValueError(f"Solution is missing required fields: {', '.join(missing)}") from e

    async def _run_examples(
        self,
        candidate: SolutionCandidate,
        statement: ProblemStatement,
        emit: Callable[[], None],
    ) -> None:
        if self.sandbox_factory is None:
            return

        def record(outcome: ExampleOutcome) -> None:
            candidate.tests.append(outcome)
            if outcome.passed:
                candidate.tests_passed += 1
            emit()

        await run_examples(self.sandbox_factory, candidate.solution.code, statement.examples, record)
