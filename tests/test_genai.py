import json

import httpx
import pytest

from sprintdesk.core.exceptions import GenerationError
from sprintdesk.core.models import Comment, Issue
from sprintdesk.services import genai


def _generator(reply=None, status: int = 200, calls=None) -> genai.TextGenerator:
    def handler(request):
        if calls is not None:
            calls.append(request)
        if status != 200:
            return httpx.Response(status, json={"error": {"message": "quota"}})
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": reply}]}}]})

    return genai.TextGenerator(
        api_key="g-key",
        model="gemini-test",
        base_url="https://gen.example.com/v1beta",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_description_prompt_goes_to_generate_content():
    calls = []
    text = await genai.generate_issue_description(_generator("## Context", calls=calls), "Login page", "STORY")
    assert text == "## Context"
    request = calls[0]
    assert request.url.path == "/v1beta/models/gemini-test:generateContent"
    assert request.url.params["key"] == "g-key"
    prompt = json.loads(request.content)["contents"][0]["parts"][0]["text"]
    assert '"STORY" with the title: "Login page"' in prompt


@pytest.mark.asyncio
async def test_missing_key_raises():
    with pytest.raises(GenerationError, match="API Key not found"):
        await genai.TextGenerator(api_key="").generate("hello")


@pytest.mark.asyncio
async def test_http_errors_raise_for_description_and_summary():
    generator = _generator(status=503)
    with pytest.raises(GenerationError):
        await genai.generate_issue_description(generator, "x", "TASK")
    with pytest.raises(GenerationError):
        await genai.summarize_issue(generator, "Title: x")


@pytest.mark.asyncio
async def test_subtasks_tolerate_code_fences():
    reply = '```json\n["Design schema", "Write migration", "  ", 7]\n```'
    assert await genai.suggest_subtasks(_generator(reply), "desc") == ["Design schema", "Write migration"]


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["not json", '{"a": 1}', ""])
async def test_subtasks_degrade_to_empty_list(reply):
    assert await genai.suggest_subtasks(_generator(reply), "desc") == []


@pytest.mark.asyncio
async def test_subtasks_swallow_service_failures():
    assert await genai.suggest_subtasks(_generator(status=500), "desc") == []


def test_issue_digest_joins_comments():
    issue = Issue(
        id="WEB-1",
        project_id="p-1",
        title="Login",
        description="Build it",
        comments=[Comment(id="c1", user_id="u", text="first"), Comment(id="c2", user_id="u", text="second")],
    )
    assert genai.build_issue_digest(issue) == "Title: Login\nDescription: Build it\nComments: first | second"
