from typing import Sequence

from pydantic import ValidationError

from ..core.model_caller import ModelCaller, ModelCallError, load_json_object
from ..core.types import ProblemStatement

EXTRACT_PROMPT = (
    "Carefully read the programming problem in these screenshots and return it as JSON:\n"
    "\n"
    "{\n"
    "  \"title\": \"Problem title\",\n"
    "  \"description\": \"The full problem text, keeping the original wording and requirements\",\n"
    "  \"examples\": [\n"
    "    {\n"
    "      \"input\": \"Exact example input\",\n"
    "      \"output\": \"Exact expected output\",\n"
    "      \"explanation\": \"Explanation, if one is given\"\n"
    "    }\n"
    "  ],\n"
    "  \"constraints\": [\"constraint 1\", \"constraint 2\"],\n"
    "  \"followUp\": \"Follow-up question, if any\"\n"
    "}\n"
    "\n"
    "Notes:\n"
    "1. Extract every input/output example exactly, preserving formatting\n"
    "2. Keep every requirement and detail of the description\n"
    "3. Include all constraints (time/space complexity, value ranges, etc.)\n"
    "4. Include every example when there are several\n"
    "5. Copy numbers and symbols exactly\n"
    "6. If the screenshots show a code template or function signature, include it in the description\n"
    "\n"
    "Return only the JSON object, with no other text."
)


class ExtractionError(Exception):
    pass


class Extractor:
    """Turns screenshots into a ProblemStatement."""

    def __init__(self, caller: ModelCaller, model: str):
        self.caller = caller
        self.model = model

    async def extract(self, images: Sequence[bytes]) -> ProblemStatement:
        try:
            reply = await self.caller.ask(
                images, "", EXTRACT_PROMPT, self.model, "json", temperature=0.0, max_tokens=2000
            )
        except ModelCallError as e:
            print(f"[Extractor] Extraction request failed: {e}")
            raise ExtractionError(f"Extraction request failed: {e}") from e

        try:
            payload = load_json_object(reply)
        except ValueError as e:
            print(f"[Extractor] Could not parse extraction: {e}")
            raise ExtractionError(f"Extraction is not valid JSON: {e}") from e

        try:
            statement = ProblemStatement.model_validate(payload)
        except ValidationError as e:
            missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            print(f"[Extractor] Extraction missing required fields: {missing}")
            raise ExtractionError(f"Extraction is missing required fields: {', '.join(missing)}") from e

        print(f"[Extractor] Extracted '{statement.title}' with {len(statement.examples)} example(s)")
        return statement
