import json
from types import SimpleNamespace

import pytest
import requests

from crossref.core.exceptions import DeliveryError
from crossref.integrations.openai_client import OpenAIClient
from crossref.integrations.webhook_notifier import WebhookNotifier


class FakeCompletions:
    def __init__(self, content, finish_reason="stop"):
        self.content = content
        self.finish_reason = finish_reason
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        choice = SimpleNamespace(message=SimpleNamespace(content=self.content), finish_reason=self.finish_reason)
        return SimpleNamespace(choices=[choice], usage=SimpleNamespace(total_tokens=42))


def _client(content, finish_reason="stop"):
    completions = FakeCompletions(content, finish_reason)
    images = SimpleNamespace(generate=lambda **kwargs: SimpleNamespace(data=[SimpleNamespace(url="https://img/1")]))
    inner = SimpleNamespace(chat=SimpleNamespace(completions=completions), images=images)
    return OpenAIClient(api_key="", client=inner), completions


def test_synthesize_story_builds_prompt_and_clamps_confidence(make_article):
    client, completions = _client(json.dumps({"title": "Eén verhaal", "body": "Tekst", "confidence": 1.7}))
    articles = [make_article("nu", "x"), make_article("nos", "y")]

    story = client.synthesize_story("klimaat industrie", articles, {"nu": "NU.nl", "nos": "NOS"})

    assert story == {"title": "Eén verhaal", "body": "Tekst", "confidence": 1.0}
    request = completions.requests[0]
    assert request["response_format"]["type"] == "json_schema"
    prompt = request["messages"][1]["content"]
    assert "Report 1 (NU.nl)" in prompt
    assert "Report 2 (NOS)" in prompt


def test_truncated_response_is_an_error(make_article):
    client, _ = _client("{", finish_reason="length")

    with pytest.raises(ValueError):
        client.synthesize_story("topic", [make_article("nu", "x")], {})


def test_generate_image_returns_url():
    client, _ = _client("{}")
    assert client.generate_image("prompt") == "https://img/1"


def test_missing_api_key_is_rejected():
    with pytest.raises(ValueError):
        OpenAIClient(api_key="")


def test_webhook_notifier_posts_json(monkeypatch):
    posted = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        posted.update(url=url, json=json, timeout=timeout)
        return SimpleNamespace(status_code=204, text="")

    monkeypatch.setattr(requests, "post", fake_post)

    receipt = WebhookNotifier(timeout=5).send("https://hooks.example/a", {"task_id": "t1"})

    assert receipt == {"url": "https://hooks.example/a", "status_code": 204}
    assert posted == {"url": "https://hooks.example/a", "json": {"task_id": "t1"}, "timeout": 5}


def test_webhook_notifier_raises_on_error_status_and_transport_failure(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **k: SimpleNamespace(status_code=500, text="boom"))
    with pytest.raises(DeliveryError) as excinfo:
        WebhookNotifier().send("https://hooks.example/a", {})
    assert excinfo.value.context["status_code"] == 500

    def refuse(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "post", refuse)
    with pytest.raises(DeliveryError):
        WebhookNotifier().send("https://hooks.example/a", {})
