"""Text generation helpers backed by the hosted Gemini API.

Three fixed prompt templates: drafting an issue description, suggesting
subtasks and summarizing an issue. Subtask suggestion is best-effort and
degrades to an empty list; the other two raise :class:`GenerationError`.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.exceptions import GenerationError
from ..core.models import Issue
from ..utils.logger import get_logger

logger = get_logger(__name__)

DESCRIPTION_PROMPT = """You are an expert product manager. Write a comprehensive and professional Jira ticket description for a "{type}" with the title: "{title}".
Include sections for:
- Context/Background
- Acceptance Criteria (bullet points)
- Technical Notes (if applicable)

Format with Markdown. Keep it concise but detailed enough for a developer."""

SUBTASKS_PROMPT = """Based on this ticket description, generate a list of 3-5 subtasks to complete this work. Return ONLY a JSON array of strings. No markdown formatting around the json.

Description: {description}"""

SUMMARY_PROMPT = """Summarize the current state and key points of this issue history and description in 2 sentences for a quick status report:
{content}"""

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


class TextGenerator:
    """Stateless prompt-in, text-out client for ``models/{model}:generateContent``."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout or settings.gemini_timeout
        self._transport = transport

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise GenerationError("API Key not found")
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        logger.debug(f"Generation request to {self.model}, prompt {len(prompt)} chars")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            logger.error(f"GenAI transport error: {e}")
            raise GenerationError(f"Generation request failed: {e}") from e
        if response.status_code != 200:
            logger.error(f"GenAI Error {response.status_code}: {response.text[:500]}")
            raise GenerationError(f"Generation failed with HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as e:
            raise GenerationError("Generation returned a non-JSON body") from e
        return _candidate_text(payload)


def _candidate_text(payload: Dict[str, Any]) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        raise GenerationError("Generation returned no candidates")
    parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_subtask_titles(text: str) -> List[str]:
    """Parse a JSON array of strings, tolerating Markdown code fences.

    Anything that is not a list yields an empty list; non-string and blank
    items are dropped.
    """
    try:
        data = json.loads(strip_code_fences(text or "[]") or "[]")
    except ValueError:
        logger.warning("Subtask suggestion was not valid JSON")
        return []
    if not isinstance(data, list):
        return []
    return [item.strip() for item in data if isinstance(item, str) and item.strip()]


def build_issue_digest(issue: Issue, title: Optional[str] = None, description: Optional[str] = None) -> str:
    comments = " | ".join(comment.text for comment in issue.comments)
    return (
        f"Title: {title if title is not None else issue.title}\n"
        f"Description: {description if description is not None else issue.description}\n"
        f"Comments: {comments}"
    )


async def generate_issue_description(generator: TextGenerator, title: str, issue_type: str) -> str:
    return await generator.generate(DESCRIPTION_PROMPT.format(type=issue_type, title=title))


async def suggest_subtasks(generator: TextGenerator, description: str) -> List[str]:
    try:
        text = await generator.generate(SUBTASKS_PROMPT.format(description=description))
    except GenerationError as e:
        logger.error(f"GenAI Error: {e}")
        return []
    return parse_subtask_titles(text)


async def summarize_issue(generator: TextGenerator, content: str) -> str:
    return await generator.generate(SUMMARY_PROMPT.format(content=content))
