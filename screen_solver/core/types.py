from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, TypedDict, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class QuestionKind(str, Enum):
    CODING = "coding"
    GENERAL = "general"


class Stage(str, Enum):
    IDLE = "idle"
    CLASSIFYING = "classifying"
    EXTRACTING_VERIFYING = "extracting_verifying"
    ANSWERING_GENERAL = "answering_general"
    GENERATING = "generating"
    SELECTING = "selecting"
    DONE = "done"


class LoopExit(str, Enum):
    """Why the extraction/verification loop stopped."""

    VERIFIED = "verified"
    EXTRACTION_EXHAUSTED = "extraction-exhausted"
    VERIFICATION_EXHAUSTED = "verification-exhausted"


class CandidateStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# --- Model payloads (validated once, at the model boundary) ---

LineValue = Union[str, List[str]]


def _coerce_lines(value: Any) -> Any:
    if isinstance(value, list):
        return [str(v) for v in value]
    if value is None:
        raise ValueError("value is required")
    return str(value)


def _non_empty_text(value: Any) -> str:
    if value is None:
        raise ValueError("value is required")
    text = value if isinstance(value, str) else str(value)
    if not text.strip():
        raise ValueError("value must not be empty")
    return text


def _examples_or_empty(value: Any) -> List["Example"]:
    # Absent or malformed example lists degrade to no examples.
    if not isinstance(value, list):
        return []
    try:
        return [Example.model_validate(item) for item in value]
    except ValidationError:
        return []


def _join_lines(value: LineValue) -> str:
    if isinstance(value, list):
        return "\n".join(value)
    return value


class Example(BaseModel):
    input: LineValue
    output: LineValue
    explanation: Optional[str] = None

    @field_validator("input", "output", mode="before")
    @classmethod
    def _lines(cls, value):
        return _coerce_lines(value)

    @field_validator("explanation", mode="before")
    @classmethod
    def _explanation(cls, value):
        return str(value) if value else None

    def stdin_text(self) -> str:
        """Program input: line lists joined, literal escapes expanded."""
        if isinstance(self.input, list):
            return "\n".join(self.input)
        text = self.input
        if "\\n" in text:
            text = text.replace("\\n", "\n").replace("\\t", "\t").replace("\\r", "\r")
        return text

    def expected_text(self) -> str:
        return _join_lines(self.output)


class ProblemStatement(BaseModel):
    """Structured problem extracted from the screenshots. Read-only once built."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    description: str
    examples: List[Example] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)
    follow_up: Optional[str] = Field(default=None, alias="followUp")

    @field_validator("title", "description", mode="before")
    @classmethod
    def _required(cls, value):
        if not isinstance(value, str) or not value.strip():
            raise ValueError("must be a non-empty string")
        return value.strip()

    @field_validator("examples", mode="before")
    @classmethod
    def _examples(cls, value):
        return _examples_or_empty(value)

    @field_validator("constraints", mode="before")
    @classmethod
    def _constraints(cls, value):
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, list):
            return []
        return [str(c) for c in value if c is not None and str(c).strip()]

    @field_validator("follow_up", mode="before")
    @classmethod
    def _follow_up(cls, value):
        return str(value) if value else None

    def format_for_prompt(self) -> str:
        lines = [f"Problem: {self.title}", "", "Description:", self.description, ""]

        if self.examples:
            lines.append("Examples:")
            for idx, example in enumerate(self.examples, start=1):
                lines.append(f"Example {idx}:")
                lines.append(f"Input: {_join_lines(example.input)}")
                lines.append(f"Output: {_join_lines(example.output)}")
                if example.explanation:
                    lines.append(f"Explanation: {example.explanation}")
                lines.append("")

        if self.constraints:
            lines.append("Constraints:")
            lines.extend(f"- {c}" for c in self.constraints)
            lines.append("")

        if self.follow_up:
            lines.append(f"Follow-up: {self.follow_up}")

        return "\n".join(lines).rstrip() + "\n"


class CodeSolution(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    approach: str
    code: str
    time_complexity: str = Field(alias="timeComplexity")
    space_complexity: str = Field(alias="spaceComplexity")

    @field_validator("approach", "code", "time_complexity", "space_complexity", mode="before")
    @classmethod
    def _text(cls, value):
        return _non_empty_text(value)


class CodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response_type: Literal["code"] = Field(default="code", alias="responseType")
    approach: str
    code: str
    time_complexity: str = Field(alias="timeComplexity")
    space_complexity: str = Field(alias="spaceComplexity")
    examples: List[Example] = Field(default_factory=list)

    @field_validator("examples", mode="before")
    @classmethod
    def _examples(cls, value):
        return _examples_or_empty(value)


class AnswerResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response_type: Literal["answer"] = Field(default="answer", alias="responseType")
    approach: str
    result: str


class RawResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response_type: Literal["raw"] = Field(default="raw", alias="responseType")
    raw: str


ModelResponse = Union[CodeResponse, AnswerResponse, RawResponse]


class VariantEdit(BaseModel):
    description: str
    rationale: str

    @field_validator("description", "rationale", mode="before")
    @classmethod
    def _text(cls, value):
        return "" if value is None else str(value)


class BuggyVariant(BaseModel):
    """A deliberately broken copy of a working solution, with the mistakes explained."""

    model_config = ConfigDict(populate_by_name=True)

    response_type: Literal["buggyVariant"] = Field(default="buggyVariant", alias="responseType")
    intent: Literal["introduce_mistakes"] = "introduce_mistakes"
    mistake_summary: str = Field(alias="mistakeSummary")
    edits: List[VariantEdit] = Field(default_factory=list)
    buggy_code: str = Field(alias="buggyCode")

    @field_validator("buggy_code", mode="before")
    @classmethod
    def _code(cls, value):
        return _non_empty_text(value)


# --- Run bookkeeping ---

@dataclass
class ExampleOutcome:
    input: str
    expected: str
    actual: Optional[str] = None
    passed: bool = False
    error: Optional[str] = None


@dataclass
class SolutionCandidate:
    slot: int
    model: str
    tests_total: int
    status: CandidateStatus = CandidateStatus.PENDING
    solution: Optional[CodeSolution] = None
    tests_passed: int = 0
    tests: List[ExampleOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.status in (CandidateStatus.SUCCEEDED, CandidateStatus.FAILED)

    def snapshot(self) -> "SolutionCandidate":
        return replace(self, tests=[replace(t) for t in self.tests])


@dataclass(frozen=True)
class SelectedResult:
    slot: int
    reason: str


@dataclass
class AnswerAttempt:
    slot: int
    model: str
    ok: bool = False
    response: Optional[ModelResponse] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"slot": self.slot, "model": self.model, "ok": self.ok}
        if self.ok and self.response is not None:
            out["data"] = self.response.model_dump(by_alias=True)
        else:
            out["error"] = self.error
        return out


@dataclass
class FastResult:
    """Fast-mode output: the model response plus its example runs, if any."""

    response: ModelResponse
    tests: List[ExampleOutcome] = field(default_factory=list)
    buggy_variant: Optional[BuggyVariant] = None

    @property
    def tests_passed(self) -> int:
        return sum(1 for t in self.tests if t.passed)

    @property
    def all_passed(self) -> bool:
        return bool(self.tests) and all(t.passed for t in self.tests)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"data": self.response.model_dump(by_alias=True)}
        if self.tests:
            out["exampleTests"] = [asdict(t) for t in self.tests]
        if self.buggy_variant is not None:
            out["buggyVariant"] = self.buggy_variant.model_dump(by_alias=True)
        return out


@dataclass
class RunState:
    run_id: str
    stage: Stage
    current_step: str
    progress: int
    step_details: str
    error: Optional[str] = None
    completed: bool = False
    candidates: Optional[List[SolutionCandidate]] = None


@dataclass
class RunResult:
    run_id: str
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    selected_result: Optional[SelectedResult] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"runId": self.run_id, "success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        if self.selected_result is not None:
            out["selectedResult"] = asdict(self.selected_result)
        return out


class PipelineState(TypedDict):
    run_id: str
    images: List[bytes]
    stage: Stage
    question_kind: Optional[QuestionKind]
    # Extraction/verification loop
    attempt: int
    statement: Optional[ProblemStatement]
    extraction_error: Optional[str]
    loop_exit: Optional[LoopExit]
    # Fan-out stages
    candidates: List[SolutionCandidate]
    answers: List[AnswerAttempt]
    # Terminal
    result: Optional[RunResult]
    error: Optional[str]
