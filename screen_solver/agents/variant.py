from typing import Optional

from pydantic import ValidationError

from ..core.model_caller import ModelCaller, ModelCallError, load_json_object, preview
from ..core.types import BuggyVariant, VariantEdit

VARIANT_SYSTEM_PROMPT = (
    "You will receive a correct solution. Introduce exactly two subtle mistakes to create a buggy version.\n"
    "- The mistakes must look like realistic careless errors: a missed edge case, a wrong boundary condition, "
    "an off-by-one, or mishandled input.\n"
    "- Keep the buggy version close to the original (same structure and algorithm). Mark each of the two "
    "changed lines with a comment on the same line that states the correct version.\n"
    "- Return STRICT JSON only, with these fields:\n"
    "  {\n"
    "    \"responseType\": \"buggyVariant\",\n"
    "    \"intent\": \"introduce_mistakes\",\n"
    "    \"mistakeSummary\": \"What you changed and why it produces wrong output\",\n"
    "    \"edits\": [\n"
    "      {\"description\": \"What changed\", \"rationale\": \"Why this leads to wrong output\"},\n"
    "      {\"description\": \"...\", \"rationale\": \"...\"}\n"
    "    ],\n"
    "    \"buggyCode\": \"The complete code with the two mistakes\"\n"
    "  }\n"
    "- No extra fields, no markdown, no backticks.\n"
    "- Keep the programming language as: {language}"
)

VARIANT_USER_PROMPT = "Original approach (may be empty):\n{approach}\n\nOriginal correct code:\n{code}"


def fallback_variant(code: str, summary: str, rationale: str, description: str = "N/A") -> BuggyVariant:
    """Variant that hands back the original code when the model gave nothing usable."""
    return BuggyVariant(
        mistake_summary=summary,
        edits=[VariantEdit(description=description, rationale=rationale)],
        buggy_code=code,
    )


class BuggyVariantWriter:
    """Asks a model to plant two subtle bugs in a solution that already passes its examples."""

    def __init__(self, caller: ModelCaller, model: str, language: str):
        self.caller = caller
        self.model = model
        self.language = language

    async def write(self, code: str, approach: Optional[str] = None, model: Optional[str] = None) -> BuggyVariant:
        chosen = (model or "").strip() or self.model
        system_prompt = VARIANT_SYSTEM_PROMPT.replace("{language}", self.language)
        user_prompt = VARIANT_USER_PROMPT.format(approach=approach or "(none)", code=code)

        try:
            reply = await self.caller.ask(
                [], system_prompt, user_prompt, chosen, "json", temperature=0.7, max_tokens=1600
            )
        except ModelCallError as e:
            print(f"[Variant] Request failed: {e}")
            return fallback_variant(code, str(e) or "error", str(e) or "unknown", description="error")

        try:
            payload = load_json_object(reply)
        except ValueError:
            print(f"[Variant] Non-JSON reply: {preview(reply, 80)}")
            return fallback_variant(code, "Non-JSON content returned.", reply)

        if payload.get("responseType") == "buggyVariant":
            try:
                variant = BuggyVariant.model_validate(payload)
            except ValidationError as e:
                print(f"[Variant] Variant failed validation: {e.error_count()} error(s)")
            else:
                print(f"[Variant] {chosen} returned {len(variant.edits)} edit(s)")
                return variant

        return fallback_variant(code, "Raw content returned (unexpected shape).", reply)
