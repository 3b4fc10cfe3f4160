import base64
import json
from io import BytesIO

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from PIL import Image

from screen_solver.core.model_caller import (
    ChatModelCaller,
    ModelCallError,
    flatten_content,
    load_json_object,
    parse_model_response,
    preview,
)
from screen_solver.core.types import AnswerResponse, CodeResponse, RawResponse


def png_bytes(size=(40, 20)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


class FakeLLM:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.kwargs = None

    async def ainvoke(self, messages, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return AIMessage(content=self.reply)


# -----------------------------
# Pure helpers
# -----------------------------
def test_flatten_content():
    assert flatten_content("  hi ") == "hi"
    blocks = [{"type": "text", "text": "a"}, {"type": "image_url", "image_url": {}}, "b"]
    assert flatten_content(blocks) == "a\nb"
    assert flatten_content(42) == "42"


@pytest.mark.parametrize(
    "text",
    [
        '{"a": 1}',
        '```json\n{"a": 1}\n```',
        '```\n{"a": 1}\n```',
        'Sure! Here it is: {"a": 1} Hope this helps.',
    ],
)
def test_load_json_object_accepts_wrapped_objects(text):
    assert load_json_object(text) == {"a": 1}


@pytest.mark.parametrize("text", ["", "no braces", "[1, 2]", "{not: json}"])
def test_load_json_object_rejects(text):
    with pytest.raises(ValueError):
        load_json_object(text)


def test_parse_code_response():
    text = json.dumps({
        "responseType": "code",
        "approach": "Hash map.",
        "code": "print(1)",
        "timeComplexity": "O(n)",
        "spaceComplexity": "O(n)",
        "examples": [{"input": ["1 2", "3"], "output": "3"}],
    })
    response = parse_model_response(text)

    assert isinstance(response, CodeResponse)
    assert response.examples[0].stdin_text() == "1 2\n3"
    assert response.model_dump(by_alias=True)["timeComplexity"] == "O(n)"


def test_parse_answer_response():
    response = parse_model_response('{"responseType": "answer", "approach": "a", "result": "42"}')
    assert isinstance(response, AnswerResponse)
    assert response.result == "42"


@pytest.mark.parametrize(
    "text",
    [
        "just prose",
        '{"responseType": "poem", "raw": "x"}',
        '{"responseType": "answer", "approach": "missing result"}',
        '{"approach": "no type", "result": "1"}',
    ],
)
def test_unrecognized_replies_become_raw(text):
    response = parse_model_response(text)
    assert isinstance(response, RawResponse)
    assert response.raw == text


def test_preview_truncates():
    assert preview("abc") == "abc"
    assert preview("x" * 300, 10) == "xxxxxxx..."
    assert preview(None) == ""


# -----------------------------
# ChatModelCaller
# -----------------------------
def test_build_messages_attaches_images(config):
    caller = ChatModelCaller(config)
    messages = caller.build_messages([png_bytes(), png_bytes()], "system", "user")

    assert isinstance(messages[0], SystemMessage)
    human = messages[1]
    assert isinstance(human, HumanMessage)
    assert human.content[0] == {"type": "text", "text": "user"}
    urls = [block["image_url"]["url"] for block in human.content[1:]]
    assert len(urls) == 2
    assert all(u.startswith("data:image/jpeg;base64,") for u in urls)


def test_build_messages_without_system_prompt(config):
    messages = ChatModelCaller(config).build_messages([], "", "user")
    assert len(messages) == 1
    assert isinstance(messages[0], HumanMessage)


@pytest.mark.asyncio
async def test_ask_json_shape_requests_json_object(config, monkeypatch):
    llm = FakeLLM(reply=[{"type": "text", "text": '{"ok": true}'}])
    caller = ChatModelCaller(config)
    monkeypatch.setattr(caller, "_client", lambda model, temperature, max_tokens: llm)

    text = await caller.ask([], "sys", "user", "some/model", "json")

    assert text == '{"ok": true}'
    assert llm.kwargs == {"response_format": {"type": "json_object"}}


@pytest.mark.asyncio
async def test_ask_text_shape_has_no_response_format(config, monkeypatch):
    llm = FakeLLM(reply="coding")
    caller = ChatModelCaller(config)
    monkeypatch.setattr(caller, "_client", lambda model, temperature, max_tokens: llm)

    assert await caller.ask([], "", "classify", "some/model", "text") == "coding"
    assert llm.kwargs == {}


@pytest.mark.asyncio
async def test_ask_wraps_transport_errors(config, monkeypatch):
    caller = ChatModelCaller(config)
    monkeypatch.setattr(
        caller, "_client", lambda model, temperature, max_tokens: FakeLLM(error=TimeoutError("read timed out"))
    )
    with pytest.raises(ModelCallError, match="read timed out"):
        await caller.ask([], "", "user", "some/model")


@pytest.mark.asyncio
async def test_ask_rejects_empty_completion(config, monkeypatch):
    caller = ChatModelCaller(config)
    monkeypatch.setattr(caller, "_client", lambda model, temperature, max_tokens: FakeLLM(reply="   "))
    with pytest.raises(ModelCallError, match="empty completion"):
        await caller.ask([], "", "user", "some/model")


@pytest.mark.asyncio
async def test_ask_rejects_undecodable_image(config):
    with pytest.raises(ModelCallError, match="Could not encode screenshot"):
        await ChatModelCaller(config).ask([b"not an image"], "", "user", "some/model")


@pytest.mark.asyncio
async def test_ask_rejects_unknown_shape(config):
    with pytest.raises(ValueError):
        await ChatModelCaller(config).ask([], "", "user", "some/model", "xml")


def test_client_uses_config(config):
    llm = ChatModelCaller(config)._client("some/model", None, 10)
    assert llm.model_name == "some/model"
    assert llm.temperature == 0.0
    assert llm.max_tokens == 10


def test_screenshots_are_sent_as_jpeg(config):
    messages = ChatModelCaller(config).build_messages([png_bytes()], "", "u")
    url = messages[0].content[1]["image_url"]["url"]
    raw = base64.b64decode(url.split(",", 1)[1])
    assert Image.open(BytesIO(raw)).format == "JPEG"
