import os
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from dotenv import load_dotenv

# Endpoint and model defaults (OpenAI-compatible, OpenRouter by default)
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-5-chat"
VISION_MODEL = "openai/gpt-4o"
DEFAULT_LANGUAGE = "Python"

# Pipeline limits
ROSTER_SIZE = 3
MAX_IMAGES = 4
MAX_EXTRACTION_ATTEMPTS = 3


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class SolverConfig:
    """Everything a run needs to reach the model endpoint and the sandbox."""

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    language: str = DEFAULT_LANGUAGE
    model: str = DEFAULT_MODEL
    vision_model: str = VISION_MODEL
    roster: Tuple[str, ...] = field(default_factory=lambda: (DEFAULT_MODEL,) * ROSTER_SIZE)
    max_images: int = MAX_IMAGES
    max_extraction_attempts: int = MAX_EXTRACTION_ATTEMPTS
    request_timeout: float = 60.0
    sandbox_timeout: float = 10.0
    python_path: str = "python3"

    def __post_init__(self):
        if not (self.api_key or "").strip():
            raise ConfigError("OpenAI API key is required")
        if not self.roster:
            raise ConfigError("Model roster must contain at least one model")
        if self.max_images < 1:
            raise ConfigError("max_images must be positive")
        if self.max_extraction_attempts < 1:
            raise ConfigError("max_extraction_attempts must be positive")
        if self.request_timeout <= 0 or self.sandbox_timeout <= 0:
            raise ConfigError("Timeouts must be positive")
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "api_key", self.api_key.strip())
        object.__setattr__(self, "base_url", (self.base_url or DEFAULT_BASE_URL).strip())
        object.__setattr__(self, "roster", tuple(m.strip() for m in self.roster if m and m.strip()))
        if not self.roster:
            raise ConfigError("Model roster must contain at least one model")

    def with_model(self, model: str) -> "SolverConfig":
        """Copy with a new default model; blank names keep the current one."""
        if not model or not model.strip():
            return self
        return replace(self, model=model.strip())

    @classmethod
    def from_env(cls, api_key: Optional[str] = None) -> "SolverConfig":
        load_dotenv()

        model = (os.getenv("OPENROUTER_MODEL") or os.getenv("MODEL") or DEFAULT_MODEL).strip()
        roster_raw = os.getenv("SOLVER_ROSTER") or ""
        roster = tuple(m.strip() for m in roster_raw.split(",") if m.strip())
        if not roster:
            roster = (model,) * ROSTER_SIZE

        try:
            request_timeout = float(os.getenv("REQUEST_TIMEOUT") or 60.0)
            sandbox_timeout = float(os.getenv("SANDBOX_TIMEOUT") or 10.0)
        except ValueError as e:
            raise ConfigError(f"Invalid timeout in environment: {e}") from e

        return cls(
            api_key=api_key or os.getenv("OPENAI_API_KEY") or "",
            base_url=os.getenv("OPENAI_BASE_URL") or DEFAULT_BASE_URL,
            language=os.getenv("LANGUAGE") or DEFAULT_LANGUAGE,
            model=model,
            vision_model=(os.getenv("VISION_MODEL") or VISION_MODEL).strip(),
            roster=roster,
            request_timeout=request_timeout,
            sandbox_timeout=sandbox_timeout,
            python_path=os.getenv("PYTHON_PATH") or "python3",
        )
