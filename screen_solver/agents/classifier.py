from typing import Sequence

from ..core.model_caller import ModelCaller, preview
from ..core.types import QuestionKind

CLASSIFY_PROMPT = (
    "Analyze these screenshots and decide what kind of question they show.\n"
    "\n"
    "Reply with exactly one of:\n"
    "- \"coding\" - a programming/algorithm problem that asks for an implementation, usually with input/output examples\n"
    "- \"general\" - anything else: concept explanations, theory, multiple choice, general Q&A\n"
    "\n"
    "Look for:\n"
    "1. Function signatures or method definitions\n"
    "2. Input/output examples\n"
    "3. Constraints\n"
    "4. Algorithm or data-structure content\n"
    "5. A request to implement something in code\n"
    "\n"
    "If any of these are present, reply \"coding\", otherwise reply \"general\".\n"
    "Reply with a single word and no explanation."
)


class Classifier:
    """Labels the screenshots as a coding or general question."""

    def __init__(self, caller: ModelCaller, model: str):
        self.caller = caller
        self.model = model

    async def classify(self, images: Sequence[bytes]) -> QuestionKind:
        try:
            reply = await self.caller.ask(
                images, "", CLASSIFY_PROMPT, self.model, "text", temperature=0.0, max_tokens=10
            )
        except Exception as e:
            print(f"[Classifier] Classification failed: {e}; defaulting to coding")
            return QuestionKind.CODING

        token = (reply or "").strip().lower()
        if token == QuestionKind.CODING.value:
            return QuestionKind.CODING
        if token == QuestionKind.GENERAL.value:
            return QuestionKind.GENERAL

        print(f"[Classifier] Unexpected classification '{preview(token, 60)}'; defaulting to coding")
        return QuestionKind.CODING
