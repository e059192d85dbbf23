"""Semantic video matching through a chat-completion LLM.

Contract: given the raw query and a list of video descriptions, return the
zero-based indices of the descriptions that match. The caller owns the
mapping from index back to media id. No retries here.
"""

import logging
import re

from openai import OpenAI

from config import LLM_API_KEY, LLM_BASE_URL, LLM_MODEL, LLM_TIMEOUT

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"\d+")


def build_prompt(query: str, descriptions: list[str]) -> str:
    listing = "\n".join(f"[{i}] {d}" for i, d in enumerate(descriptions))
    return (
        f'User is searching their video library with: "{query}"\n\n'
        f"Here are all indexed videos with their descriptions:\n{listing}\n\n"
        "Which videos match what the user is looking for?\n\n"
        "IMPORTANT:\n"
        "- Consider semantic meaning, not just keyword matches\n"
        '- "baby in jumper seat" is NOT "jumping rope"\n'
        "- Match the actual activity/content the user wants\n\n"
        "Reply with ONLY the numbers (in brackets) that match, separated by commas.\n"
        "Example: 0, 3, 6\n"
        "If none match, reply: none"
    )


def parse_indices(response: str, count: int) -> list[int]:
    """Zero-based indices in [0, count) mentioned in the reply, in order, unique."""
    text = response.strip().lower()
    if not text or text.startswith("none"):
        return []
    indices: list[int] = []
    for token in _NUMBER_RE.findall(text):
        idx = int(token)
        if 0 <= idx < count and idx not in indices:
            indices.append(idx)
    return indices


class VideoMatcher:
    def __init__(
        self,
        base_url: str = LLM_BASE_URL,
        model: str = LLM_MODEL,
        api_key: str = LLM_API_KEY,
        client: OpenAI | None = None,
    ):
        self._model = model
        self._openai = client or OpenAI(
            base_url=base_url, api_key=api_key, timeout=LLM_TIMEOUT, max_retries=0
        )

    def _complete(self, prompt: str) -> str:
        response = self._openai.chat.completions.create(
            model=self._model,
            temperature=0,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.choices[0].message.content or ""

    def match(self, query: str, descriptions: list[str]) -> list[int]:
        """Indices of the descriptions relevant to the query. Raises on API errors."""
        if not descriptions:
            return []
        reply = self._complete(build_prompt(query, descriptions))
        indices = parse_indices(reply, len(descriptions))
        logger.info("Video matcher picked %d of %d for %r", len(indices), len(descriptions), query)
        return indices
