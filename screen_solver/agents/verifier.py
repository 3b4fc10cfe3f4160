from typing import Sequence

from ..core.model_caller import ModelCaller, preview
from ..core.types import ProblemStatement

VERIFY_PROMPT = (
    "Check whether the extracted problem below matches the screenshots.\n"
    "\n"
    "Extracted content:\n"
    "{extraction}\n"
    "\n"
    "Compare the screenshots with the extraction and check that:\n"
    "1. The title is correct\n"
    "2. The description is complete and accurate\n"
    "3. The input/output examples match\n"
    "4. Numbers and symbols are exact\n"
    "5. The constraints are correct\n"
    "6. Nothing important is missing\n"
    "\n"
    "If the extraction matches the screenshots completely, reply \"true\".\n"
    "If anything is inconsistent, missing or wrong, reply \"false\".\n"
    "\n"
    "Reply only true or false, with no explanation."
)


class Verifier:
    def __init__(self, caller: ModelCaller, model: str):
        self.caller = caller
        self.model = model

    async def verify(self, images: Sequence[bytes], statement: ProblemStatement) -> bool:
        """True only when the model confirms the extraction; anything else asks for a re-extraction."""
        prompt = VERIFY_PROMPT.format(extraction=statement.format_for_prompt())
        try:
            reply = await self.caller.ask(
                images, "", prompt, self.model, "text", temperature=0.0, max_tokens=10
            )
        except Exception as e:
            print(f"[Verifier] Verification failed: {e}")
            return False

        token = (reply or "").strip().lower()
        if token == "true":
            return True
        if token != "false":
            print(f"[Verifier] Unexpected verification reply '{preview(token, 60)}'; treating as false")
        return False
