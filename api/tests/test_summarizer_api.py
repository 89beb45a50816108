import asyncio

import pytest

from providers.summarizer import SummarizerClient, SummarizerError, extract_summary_text
from services.services import SUMMARY_MODEL, TITLE_MODEL

URL = "/api/tools/text-summarizer"
TEXT = "FastAPI is a modern web framework for building APIs with Python. " * 20


def test_summarize(summarizer_client, fake_summarizer):
    response = summarizer_client.post(URL, json={"text": TEXT, "action": "summarize", "length": "short"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {
        "summary": fake_summarizer.response,
        "originalLength": len(TEXT),
        "summaryLength": len(fake_summarizer.response),
        "action": "summarize",
    }
    assert fake_summarizer.calls == [
        {"model": SUMMARY_MODEL, "inputs": TEXT, "max_length": 80, "min_length": 20}
    ]


def test_unknown_length_falls_back_to_medium(summarizer_client, fake_summarizer):
    summarizer_client.post(URL, json={"text": TEXT, "action": "summarize", "length": "epic"})

    assert fake_summarizer.calls[0]["max_length"] == 150
    assert fake_summarizer.calls[0]["min_length"] == 30


def test_title_is_capitalized_without_trailing_period(summarizer_client, fake_summarizer):
    fake_summarizer.response = "  modern web frameworks."

    response = summarizer_client.post(URL, json={"text": TEXT, "action": "title"})

    assert response.json()["data"] == {"title": "Modern web frameworks", "action": "title"}
    assert fake_summarizer.calls[0]["inputs"] == TEXT[:1000]
    assert (fake_summarizer.calls[0]["max_length"], fake_summarizer.calls[0]["min_length"]) == (15, 5)


def test_bullets_drop_short_fragments(summarizer_client, fake_summarizer):
    fake_summarizer.response = "FastAPI is fast to write. Yes! Pydantic validates request bodies?"

    response = summarizer_client.post(URL, json={"text": TEXT, "action": "bullets"})

    assert response.json()["data"]["bullets"] == [
        "FastAPI is fast to write",
        "Pydantic validates request bodies",
    ]


def test_both_calls_summary_and_title_models(summarizer_client, fake_summarizer):
    response = summarizer_client.post(URL, json={"text": TEXT, "action": "both"})

    data = response.json()["data"]
    assert data["action"] == "both"
    assert data["title"] == fake_summarizer.response
    assert sorted(call["model"] for call in fake_summarizer.calls) == sorted([SUMMARY_MODEL, TITLE_MODEL])
    title_call = next(call for call in fake_summarizer.calls if call["model"] == TITLE_MODEL)
    assert title_call["inputs"] == f"summarize: {TEXT[:500]}"


def test_long_text_is_truncated(summarizer_client, fake_summarizer):
    long_text = "a" * 12000
    summarizer_client.post(URL, json={"text": long_text, "action": "summarize"})

    assert len(fake_summarizer.calls[0]["inputs"]) == 10000


def test_empty_text_is_rejected(summarizer_client):
    response = summarizer_client.post(URL, json={"text": "   ", "action": "summarize"})

    assert response.status_code == 400
    assert response.json()["error"]


def test_invalid_action_is_rejected(summarizer_client):
    response = summarizer_client.post(URL, json={"text": TEXT, "action": "translate"})

    assert response.status_code == 400


def test_missing_api_key(summarizer_client, fake_summarizer):
    fake_summarizer.configured = False

    response = summarizer_client.post(URL, json={"text": TEXT, "action": "summarize"})

    assert response.status_code == 500
    assert "HUGGINGFACE_API_KEY" in response.json()["error"]


def test_model_failure_is_reported(summarizer_client, fake_summarizer):
    fake_summarizer.response = SummarizerError("Model facebook/bart-large-cnn is not available: timeout")

    response = summarizer_client.post(URL, json={"text": TEXT, "action": "summarize"})

    assert response.status_code == 500
    assert response.json()["details"] == "Model facebook/bart-large-cnn is not available: timeout"


def test_rate_limit_per_client(summarizer_client):
    headers = {"x-forwarded-for": "203.0.113.7"}
    for _ in range(5):
        assert summarizer_client.post(URL, json={"text": TEXT, "action": "summarize"}, headers=headers).status_code == 200

    response = summarizer_client.post(URL, json={"text": TEXT, "action": "summarize"}, headers=headers)

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "Rate limit exceeded"
    assert 0 < body["resetIn"] <= 60

    other = summarizer_client.post(
        URL, json={"text": TEXT, "action": "summarize"}, headers={"x-forwarded-for": "198.51.100.1"}
    )
    assert other.status_code == 200


def test_rate_limited_response_carries_message(summarizer_client, limiter):
    limiter.limit = 0

    response = summarizer_client.post(URL, json={"text": TEXT, "action": "summarize"})

    assert response.status_code == 429
    body = response.json()
    assert body["status"] == "failure"
    assert body["error"] == "Rate limit exceeded"
    assert "0回/3時間" in body["message"]
    assert body["resetIn"] == 60


def test_unexpected_client_error_returns_json(summarizer_client, fake_summarizer):
    fake_summarizer.response = RuntimeError("connection pool exhausted")

    response = summarizer_client.post(URL, json={"text": TEXT, "action": "summarize"})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    body = response.json()
    assert body["status"] == "failure"
    assert body["error"] == "テキストの処理に失敗しました"
    assert body["details"] == "connection pool exhausted"


@pytest.mark.parametrize(
    "generated, expected",
    [
        ("short title.", "Short title"),
        ("short title..", "Short title."),
        ("short title", "Short title"),
    ],
)
def test_title_drops_only_one_trailing_period(summarizer_client, fake_summarizer, generated, expected):
    fake_summarizer.response = generated

    response = summarizer_client.post(URL, json={"text": TEXT, "action": "title"})

    assert response.json()["data"]["title"] == expected


def test_usage(client):
    response = client.get(URL)

    assert response.status_code == 200
    assert "usage" in response.json()


@pytest.mark.parametrize(
    "data, expected",
    [
        ([{"summary_text": "list form"}], "list form"),
        ({"summary_text": "object form"}, "object form"),
        ([], ""),
        (None, ""),
    ],
)
def test_extract_summary_text(data, expected):
    assert extract_summary_text(data) == expected


def test_client_connection_error_is_summarizer_error():
    client = SummarizerClient("token", base_url="http://127.0.0.1:9", timeout_seconds=2)

    with pytest.raises(SummarizerError):
        asyncio.run(client.summarize(SUMMARY_MODEL, "text", 10, 5))
