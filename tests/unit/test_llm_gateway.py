import json

import pytest

from agents.types import AdvisorGuidance
from candidate_agent import RespondentReply
from config.routes import AppConfig, LlmRoute
from config.registry import ADVISOR_KEY, get_model
from llm_gateway import LlmGatewayError, UsageAttribution, bind_routes, chat


def _route(**overrides) -> LlmRoute:
    data = dict(
        name="advisor-test",
        base_url="http://example.com",
        endpoint="/v1/chat/completions",
        model="small",
        timeout_s=5.0,
        max_retries=1,
    )
    data.update(overrides)
    return LlmRoute(**data)


class _Response:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


class _Client:
    def __init__(self, contents, status_code=200):
        self.contents = list(contents)
        self.status_code = status_code
        self.requests = []

    def post(self, url, *, json, headers, timeout):
        self.requests.append({"url": url, "json": json, "timeout": timeout})
        content = self.contents.pop(0)
        return _Response({"choices": [{"message": {"content": content}}]}, self.status_code)


def test_chat_validates_and_sends_attribution():
    client = _Client(['```json\n{"action": "probe_followup", "message": "dig", "confidence": 0.7}\n```'])
    result = chat(
        [{"role": "user", "content": "hi"}],
        AdvisorGuidance,
        cfg=_route(),
        client=client,
        options={"max_tokens": 50},
        attribution=UsageAttribution(session_id="s1", project_id=None),
        timeout_s=2.0,
    )
    assert result.confidence == 0.7
    request = client.requests[0]
    assert request["url"] == "http://example.com/v1/chat/completions"
    assert request["timeout"] == 2.0
    assert request["json"]["metadata"] == {"session_id": "s1"}
    assert request["json"]["max_tokens"] == 50
    assert request["json"]["messages"][0]["role"] == "system"


def test_chat_retries_then_gives_up():
    client = _Client(['{"confidence": "high"}', '{"confidence": "still high"}'])
    with pytest.raises(LlmGatewayError):
        chat([{"role": "user", "content": "hi"}], AdvisorGuidance, cfg=_route(), client=client)
    assert len(client.requests) == 2
    assert "previous reply failed validation" in client.requests[1]["json"]["messages"][-1]["content"]


def test_chat_error_status():
    client = _Client(["{}"], status_code=503)
    with pytest.raises(LlmGatewayError):
        chat([{"role": "user", "content": "hi"}], AdvisorGuidance, cfg=_route(max_retries=0), client=client)


def test_plain_text_reply_uses_schema_adapter():
    client = _Client(["Honestly, it depends on the team."])
    reply = chat([{"role": "user", "content": "hi"}], RespondentReply, cfg=_route(enforce_json=False), client=client)
    assert reply.answer == "Honestly, it depends on the team."


def test_bind_routes_registers_callables():
    cfg = AppConfig(llm_routes={"fast": _route()}, registry={ADVISOR_KEY: "fast"})
    resolved = bind_routes(cfg, {ADVISOR_KEY: AdvisorGuidance})
    assert resolved[ADVISOR_KEY][1] is AdvisorGuidance
    assert callable(get_model(ADVISOR_KEY))
