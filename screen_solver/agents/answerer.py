from typing import Optional, Sequence

from ..core.model_caller import ModelCaller, parse_model_response
from ..core.types import ModelResponse

ANSWER_SYSTEM_PROMPT = (
    "You are an expert technical interview assistant.\n"
    "You will receive one or more screenshots that contain either a coding question or a non-coding question.\n"
    "You MUST always answer in valid JSON and ONLY JSON with no extra text.\n"
    "The first field MUST be \"responseType\" with value either \"code\" or \"answer\".\n"
    "If multiple questions are shown, answer the first question only.\n"
    "- If the question requires writing code, return:\n"
    "  {\n"
    "    \"responseType\": \"code\",\n"
    "    \"approach\": \"A concise summary, then a detailed step-by-step explanation of the solving process\",\n"
    "    \"code\": \"Complete, runnable solution code in {language}\",\n"
    "    \"timeComplexity\": \"Big-O with reasoning\",\n"
    "    \"spaceComplexity\": \"Big-O with reasoning\",\n"
    "    \"examples\": [{\"input\": \"...\", \"output\": \"...\"}]\n"
    "  }\n"
    "  Include \"examples\" ONLY if the question shows explicit example input AND output; otherwise omit it.\n"
    "  Use string arrays [\"line1\", \"line2\"] for multi-line content, one element per line, preserving spacing.\n"
    "  Single values stay plain strings, e.g. {\"input\": \"5\", \"output\": \"120\"}.\n"
    "- If the question does NOT require writing code, return:\n"
    "  {\n"
    "    \"responseType\": \"answer\",\n"
    "    \"approach\": \"Explanation of the solving process\",\n"
    "    \"result\": \"A concise final answer in the same language as the question; for multiple choice, only the correct option\"\n"
    "  }\n"
    "Always output a single JSON object: no markdown, no backticks."
)

ANSWER_USER_PROMPT = "Here is an interview question. Please analyze it and provide a solution."


class Answerer:
    """Single-model answer straight from the screenshots (fast mode)."""

    def __init__(self, caller: ModelCaller, model: str, language: str):
        self.caller = caller
        self.model = model
        self.language = language

    async def answer(self, images: Sequence[bytes], model: Optional[str] = None) -> ModelResponse:
        chosen = (model or "").strip() or self.model
        system_prompt = ANSWER_SYSTEM_PROMPT.replace("{language}", self.language)
        reply = await self.caller.ask(
            images, system_prompt, ANSWER_USER_PROMPT, chosen, "json", temperature=0.7, max_tokens=2000
        )
        response = parse_model_response(reply)
        print(f"[Answerer] {chosen} returned a {response.response_type} response")
        return response
