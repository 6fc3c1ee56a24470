from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from openai import APIConnectionError, RateLimitError

from classtrail.core.exceptions import EvaluatorError, EvaluatorQuotaExceeded
from classtrail.services.openai_service import OpenAIService, parse_evaluation


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_parse_plain_json():
    result = parse_evaluation('{"approved": true, "score": 87, "feedback": "Nice", "suggestions": ["Add tests"]}')
    assert result.approved is True
    assert result.score == 87.0
    assert result.feedback == "Nice"
    assert result.suggestions == ["Add tests"]


def test_parse_tolerates_surrounding_prose():
    result = parse_evaluation('Here you go:\n{"approved": false, "score": 30}\nGood luck!')
    assert result.approved is False
    assert result.score == 30.0
    assert result.feedback == "No feedback available"
    assert result.suggestions == []


def test_parse_clamps_score():
    assert parse_evaluation('{"approved": true, "score": 250}').score == 100.0
    assert parse_evaluation('{"approved": false, "score": "n/a"}').score == 0.0


@pytest.mark.parametrize("content", ["", "no json here", "{not json}"])
def test_parse_rejects_garbage(content):
    with pytest.raises(EvaluatorError):
        parse_evaluation(content)


def test_evaluate_sends_statement_and_reference():
    client = MagicMock()
    client.chat.completions.create.return_value = completion('{"approved": true, "score": 90, "feedback": "ok"}')
    service = OpenAIService(client=client)

    result = service.evaluate("Sum two numbers", "def add(a, b): return a + b", "a + b")

    assert result.approved is True
    messages = client.chat.completions.create.call_args.kwargs["messages"]
    assert "Sum two numbers" in messages[1]["content"]
    assert "a + b" in messages[1]["content"]


def test_rate_limit_becomes_quota_exceeded():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(429, request=request)
    client = MagicMock()
    client.chat.completions.create.side_effect = RateLimitError("quota", response=response, body=None)

    with pytest.raises(EvaluatorQuotaExceeded):
        OpenAIService(client=client).evaluate("statement", "answer")


def test_api_errors_become_evaluator_errors():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    client = MagicMock()
    client.chat.completions.create.side_effect = APIConnectionError(request=request)

    with pytest.raises(EvaluatorError) as exc:
        OpenAIService(client=client).evaluate("statement", "answer")
    assert not isinstance(exc.value, EvaluatorQuotaExceeded)
