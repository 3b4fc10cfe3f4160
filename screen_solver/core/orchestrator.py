import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from ..agents.answerer import Answerer
from ..agents.classifier import Classifier
from ..agents.extractor import ExtractionError, Extractor
from ..agents.generator import SandboxFactory, SolutionGenerator, run_examples
from ..agents.variant import BuggyVariantWriter
from ..agents.verifier import Verifier
from .config import SolverConfig
from .graph import build_graph
from .model_caller import ChatModelCaller, ModelCaller, preview
from .progress import Observer, ProgressReporter
from .sandbox import PythonSandbox
from .types import (
    AnswerAttempt,
    CandidateStatus,
    CodeResponse,
    FastResult,
    LoopExit,
    PipelineState,
    RunResult,
    RunState,
    SelectedResult,
    SolutionCandidate,
    Stage,
)

LOWEST_INDEX_SUCCESS = "lowest-index success"
ALL_CANDIDATES_FAILED = "all candidates failed"

CLASSIFY_PROGRESS = 10
EXTRACT_PROGRESS = 30
EXTRACT_SPAN = 40
GENERAL_PROGRESS = 50
GENERATE_PROGRESS = 70
SELECT_PROGRESS = 90


def select_best(candidates: Sequence[SolutionCandidate]) -> Tuple[Dict[str, Any], SelectedResult]:
    """Pick the lowest-index succeeded candidate, or build a failure payload for slot 0."""
    ordered = sorted(candidates, key=lambda c: c.slot)
    for candidate in ordered:
        if candidate.status == CandidateStatus.SUCCEEDED and candidate.solution is not None:
            payload = candidate.solution.model_dump(by_alias=True)
            payload.update({
                "responseType": "code",
                "testsPassed": candidate.tests_passed,
                "testsTotal": candidate.tests_total,
            })
            return payload, SelectedResult(slot=candidate.slot, reason=LOWEST_INDEX_SUCCESS)

    first_error = ordered[0].error if ordered else None
    payload = {
        "responseType": "code",
        "approach": "Code generation failed",
        "code": f"Error: {first_error or ALL_CANDIDATES_FAILED}",
        "timeComplexity": "N/A",
        "spaceComplexity": "N/A",
    }
    return payload, SelectedResult(slot=0, reason=ALL_CANDIDATES_FAILED)


def default_sandbox_factory(config: SolverConfig) -> SandboxFactory:
    def factory() -> PythonSandbox:
        return PythonSandbox(config.python_path, config.sandbox_timeout)
    return factory


class Orchestrator:
    """
    Runs one pro-mode solve: classify, then either extract/verify/generate/select
    (coding) or fan out direct answers (general).

    An instance owns exactly one run. Its run id tags every progress event
    and the final result, so observers can drop events from superseded runs.
    """

    def __init__(
        self,
        config: SolverConfig,
        caller: Optional[ModelCaller] = None,
        sandbox_factory: Optional[SandboxFactory] = None,
        on_progress: Optional[Observer] = None,
    ):
        self.config = config
        self.run_id = str(uuid4())
        caller = caller or ChatModelCaller(config)
        sandbox_factory = sandbox_factory or default_sandbox_factory(config)

        self.classifier = Classifier(caller, config.vision_model)
        self.extractor = Extractor(caller, config.vision_model)
        self.verifier = Verifier(caller, config.vision_model)
        self.generator = SolutionGenerator(caller, config.roster, config.language, sandbox_factory)
        self.answerer = Answerer(caller, config.model, config.language)
        self.reporter = ProgressReporter(self.run_id, on_progress)

        self._graph = build_graph(self)
        self._started = False

    async def run(self, images: Sequence[bytes]) -> RunResult:
        if self._started:
            raise RuntimeError("Orchestrator runs once; create a new one for each run")
        self._started = True

        print(f"[Orchestrator] Starting run {self.run_id} with {len(images or [])} screenshot(s)")
        try:
            blobs = self._check_images(images)
            initial_state: PipelineState = {
                "run_id": self.run_id,
                "images": blobs,
                "stage": Stage.IDLE,
                "question_kind": None,
                "attempt": 0,
                "statement": None,
                "extraction_error": None,
                "loop_exit": None,
                "candidates": [],
                "answers": [],
                "result": None,
                "error": None,
            }
            final_state = await self._graph.ainvoke(
                initial_state,
                config={
                    "run_name": "pro_pipeline",
                    "recursion_limit": 2 * self.config.max_extraction_attempts + 10,
                },
            )
        except Exception as e:
            return self._fail(str(e) or e.__class__.__name__)

        error = final_state.get("error")
        result = final_state.get("result")
        if error or result is None:
            return self._fail(error or "Pipeline finished without a result")

        self.reporter.complete("Run finished")
        print(f"[Orchestrator] Run {self.run_id} completed")
        return result

    def _check_images(self, images: Sequence[bytes]) -> List[bytes]:
        blobs = list(images or [])
        if not blobs:
            raise ValueError("At least one screenshot is required")
        if len(blobs) > self.config.max_images:
            raise ValueError(f"At most {self.config.max_images} screenshots are supported, got {len(blobs)}")
        return blobs

    def _fail(self, message: str) -> RunResult:
        print(f"[Orchestrator] Run {self.run_id} aborted: {message}")
        self.reporter.fail(message)
        return RunResult(run_id=self.run_id, success=False, error=message)

    def _attempt_progress(self, attempt: int) -> int:
        step = EXTRACT_SPAN // self.config.max_extraction_attempts
        return EXTRACT_PROGRESS + (attempt - 1) * step

    # --- Graph nodes ---

    async def classify(self, state: PipelineState) -> PipelineState:
        state["stage"] = Stage.CLASSIFYING
        self.reporter.update(Stage.CLASSIFYING, "Classifying question", CLASSIFY_PROGRESS, "Analyzing the question type")

        kind = await self.classifier.classify(state["images"])
        state["question_kind"] = kind
        print(f"[Orchestrator] Question classified as {kind.value}")
        return state

    async def extract(self, state: PipelineState) -> PipelineState:
        attempt = state.get("attempt", 0) + 1
        limit = self.config.max_extraction_attempts
        state["attempt"] = attempt
        state["stage"] = Stage.EXTRACTING_VERIFYING
        state["statement"] = None

        self.reporter.update(
            Stage.EXTRACTING_VERIFYING,
            "Extracting problem",
            self._attempt_progress(attempt),
            f"Attempt {attempt}/{limit}: extracting problem text and examples",
        )

        try:
            state["statement"] = await self.extractor.extract(state["images"])
            state["extraction_error"] = None
        except ExtractionError as e:
            state["extraction_error"] = str(e)
            print(f"[Orchestrator] Extraction attempt {attempt}/{limit} failed: {e}")
            if attempt >= limit:
                state["loop_exit"] = LoopExit.EXTRACTION_EXHAUSTED
        return state

    async def verify(self, state: PipelineState) -> PipelineState:
        attempt = state["attempt"]
        limit = self.config.max_extraction_attempts
        progress = self._attempt_progress(attempt)

        self.reporter.update(
            Stage.EXTRACTING_VERIFYING,
            "Verifying extraction",
            progress + 5,
            f"Attempt {attempt}/{limit}: checking the extraction against the screenshots",
        )

        if await self.verifier.verify(state["images"], state["statement"]):
            state["loop_exit"] = LoopExit.VERIFIED
            print(f"[Orchestrator] Extraction verified on attempt {attempt}")
        elif attempt >= limit:
            state["loop_exit"] = LoopExit.VERIFICATION_EXHAUSTED
        else:
            self.reporter.update(
                Stage.EXTRACTING_VERIFYING,
                "Re-extracting problem",
                progress + 10,
                f"Attempt {attempt} did not verify; retrying",
            )
        return state

    async def abort(self, state: PipelineState) -> PipelineState:
        limit = self.config.max_extraction_attempts
        if state.get("loop_exit") == LoopExit.EXTRACTION_EXHAUSTED:
            state["error"] = f"Extraction failed after {limit} attempts: {state.get('extraction_error')}"
        else:
            state["error"] = f"Extraction could not be verified after {limit} attempts"
        state["statement"] = None
        return state

    async def generate(self, state: PipelineState) -> PipelineState:
        state["stage"] = Stage.GENERATING
        total = len(self.generator.roster)

        def on_update(snapshot: List[SolutionCandidate]) -> None:
            done = sum(1 for c in snapshot if c.terminal)
            self.reporter.update(
                Stage.GENERATING,
                "Generating solutions",
                GENERATE_PROGRESS + (SELECT_PROGRESS - GENERATE_PROGRESS - 1) * done // total,
                f"{done}/{total} candidates finished",
                candidates=snapshot,
            )

        self.reporter.update(
            Stage.GENERATING, "Generating solutions", GENERATE_PROGRESS, f"Calling {total} models concurrently"
        )
        state["candidates"] = await self.generator.generate(state["statement"], on_update)
        return state

    async def select(self, state: PipelineState) -> PipelineState:
        state["stage"] = Stage.SELECTING
        self.reporter.update(
            Stage.SELECTING, "Selecting best solution", SELECT_PROGRESS, "Picking the lowest-index successful candidate"
        )

        payload, selected = select_best(state["candidates"])
        print(f"[Orchestrator] Selected slot {selected.slot} ({selected.reason})")
        state["result"] = RunResult(
            run_id=self.run_id, success=True, data=payload, selected_result=selected
        )
        return state

    async def answer_general(self, state: PipelineState) -> PipelineState:
        state["stage"] = Stage.ANSWERING_GENERAL
        answers = [AnswerAttempt(slot=idx, model=model) for idx, model in enumerate(self.config.roster)]
        total = len(answers)

        self.reporter.update(
            Stage.ANSWERING_GENERAL, "Answering question", GENERAL_PROGRESS, f"Calling {total} models concurrently"
        )

        async def attempt(answer: AnswerAttempt) -> None:
            try:
                answer.response = await self.answerer.answer(state["images"], answer.model)
                answer.ok = True
            except Exception as e:
                answer.error = str(e) or e.__class__.__name__
                print(f"[Orchestrator] Answer slot {answer.slot} failed: {preview(answer.error)}")
            done = sum(1 for a in answers if a.ok or a.error)
            self.reporter.update(
                Stage.ANSWERING_GENERAL,
                "Answering question",
                GENERAL_PROGRESS + (SELECT_PROGRESS - GENERAL_PROGRESS) * done // total,
                f"{done}/{total} answers received",
            )

        async with asyncio.TaskGroup() as group:
            for answer in answers:
                group.create_task(attempt(answer))

        state["answers"] = answers
        state["result"] = RunResult(
            run_id=self.run_id,
            success=True,
            data={"multiResult": True, "results": [a.to_dict() for a in answers]},
        )
        return state


async def run_pro(
    images: Sequence[bytes],
    config: Optional[SolverConfig] = None,
    on_progress: Optional[Observer] = None,
    caller: Optional[ModelCaller] = None,
    sandbox_factory: Optional[SandboxFactory] = None,
) -> RunResult:
    orchestrator = Orchestrator(config or SolverConfig.from_env(), caller, sandbox_factory, on_progress)
    return await orchestrator.run(images)


async def run_fast(
    images: Sequence[bytes],
    config: Optional[SolverConfig] = None,
    model: Optional[str] = None,
    caller: Optional[ModelCaller] = None,
    sandbox_factory: Optional[SandboxFactory] = None,
    with_variant: bool = True,
) -> FastResult:
    """
    Single-model answer. A code answer that carries examples is run against
    them; when every example passes, a buggy variant is requested as well.
    """
    config = config or SolverConfig.from_env()
    caller = caller or ChatModelCaller(config)
    answerer = Answerer(caller, config.model, config.language)

    result = FastResult(response=await answerer.answer(images, model))
    response = result.response
    if not isinstance(response, CodeResponse) or not response.examples:
        return result

    result.tests = await run_examples(
        sandbox_factory or default_sandbox_factory(config), response.code, response.examples
    )
    print(f"[Orchestrator] Fast-mode examples: {result.tests_passed}/{len(result.tests)} passed")

    if with_variant and result.all_passed:
        writer = BuggyVariantWriter(caller, config.model, config.language)
        result.buggy_variant = await writer.write(response.code, response.approach, model)
    return result


def print_state(state: RunState) -> None:
    line = f"[Progress] {state.progress:3d}% {state.current_step}"
    if state.step_details:
        line += f" - {state.step_details}"
    if state.error:
        line += f" (error: {state.error})"
    print(line)


def print_summary(result: RunResult) -> None:
    print("\n=== Solver result ===")
    print("Run:", result.run_id)
    print("Success:", result.success)
    if result.error:
        print("Error:", result.error)
        return

    data = result.data or {}
    if data.get("multiResult"):
        for entry in data.get("results", []):
            if entry.get("ok"):
                print(f"  - slot {entry['slot']} ({entry['model']}): {entry['data']}")
            else:
                print(f"  - slot {entry['slot']} ({entry['model']}) failed: {entry.get('error')}")
        return

    if result.selected_result:
        print(f"Selected slot: {result.selected_result.slot} ({result.selected_result.reason})")
    print("Approach:", data.get("approach"))
    print("Time:", data.get("timeComplexity"), "| Space:", data.get("spaceComplexity"))
    if "testsTotal" in data:
        print(f"Tests: {data.get('testsPassed')}/{data.get('testsTotal')}")
    print("Code:\n" + (data.get("code") or ""))


def print_fast(result: FastResult) -> None:
    print("\n=== Solver result (fast) ===")
    response = result.response
    if isinstance(response, CodeResponse):
        print("Approach:", response.approach)
        print("Time:", response.time_complexity, "| Space:", response.space_complexity)
        print("Code:\n" + response.code)
    elif response.response_type == "answer":
        print("Approach:", response.approach)
        print("Answer:", response.result)
    else:
        print("Raw:", response.raw)

    for idx, test in enumerate(result.tests, start=1):
        status = "ok" if test.passed else f"FAIL ({test.error or 'output mismatch'})"
        print(f"  - example {idx}: {status}")
    if result.buggy_variant is not None:
        print("Buggy variant:", result.buggy_variant.mistake_summary)
        print(result.buggy_variant.buggy_code)
