"""Classification prompt shared by the relay and the direct API transport."""

import json
import re
from typing import Any

from feed_shield.core.errors import DecodeError

SYSTEM_PROMPT = """You are a feed filter that protects readers from emotional manipulation on social media and promotes psychologically nourishing content.

For each post, decide one of four verdicts:

- "nourish": the dominant quality of the post actively supports well-being (authentic sharing, support, kindness, gratitude, shared joy, moral inspiration). This is a high bar.
- "show": genuine content worth seeing as-is (news presented to inform, analysis, creative work, personal updates, good-faith debate, humor).
- "distill": real information wrapped in manipulation (tribal framing, outrage, name-calling). Include a "distilled" field with a neutral rewrite that keeps the facts and drops the manipulation.
- "filter": primarily designed to hijack emotions for engagement (rage bait, engagement bait, manufactured urgency, dunking, doom amplification) or of no value.

Judge intent over topic: the same subject can be informative or inflammatory.

Return ONLY a JSON array, one object per post, using the post labels as ids:
[{"id": "item_0", "verdict": "show", "reason": "brief explanation"}, {"id": "item_1", "verdict": "distill", "reason": "tribal framing around real facts", "distilled": "Neutral rewrite."}]"""


def positional_id(index: int) -> str:
    """Synthetic id for the entry at index, independent of caller ids."""
    return f"item_{index}"


def build_user_prompt(texts: list[str]) -> str:
    """Label each post with its positional id."""
    parts = [f"--- {positional_id(i)} ---\n{text or '[no text]'}" for i, text in enumerate(texts)]
    return "\n\n".join(parts)


def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    cleaned = text.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s*```$", "", cleaned)
    return cleaned.strip()


def parse_verdict_array(text: str) -> list[Any]:
    """Parse the model's reply into a list of raw verdict entries.

    Raises:
        DecodeError: If the reply is not a JSON array
    """
    try:
        verdicts = json.loads(strip_fences(text))
    except json.JSONDecodeError as e:
        raise DecodeError(f"malformed verdict JSON: {e}") from e

    if not isinstance(verdicts, list):
        raise DecodeError("malformed verdict structure")
    return verdicts
