"""Recognition client: strict response validation and the single retry."""

import asyncio
import json

import pytest

from paperscore.errors import UpstreamServiceError
from paperscore.models.analysis import RecognitionFailure, RecognitionSuccess
from paperscore.services.recognition import RecognitionClient, parse_recognition_response

from conftest import SleepRecorder


class ScriptedVisionModel:
    """Replays replies in order; an Exception instance is raised instead of returned."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.messages = []

    async def send_message(self, message):
        self.messages.append(message)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def reply(identity="S1", scores=None, note="two scores found"):
    return json.dumps({"identity": identity, "scores": scores if scores is not None else {"1": 4, "2": 7.5}, "note": note})


def run_analyze(model, sleep=None, identity="S1"):
    client = RecognitionClient(model, retry_delay=10, sleep=sleep or SleepRecorder())
    return asyncio.run(client.analyze(b"fake-jpeg-bytes", identity))


def test_valid_reply_is_parsed():
    model = ScriptedVisionModel(reply())
    result = run_analyze(model)

    assert isinstance(result, RecognitionSuccess)
    assert result.identity == "S1"
    assert result.scores == {"1": 4.0, "2": 7.5}
    assert result.note == "two scores found"
    assert len(model.messages) == 1


def test_request_carries_image_and_expected_identity():
    model = ScriptedVisionModel(reply())
    run_analyze(model, identity="1042")

    parts = model.messages[0].to_genai_parts()
    assert parts[0]["inline_data"]["mime_type"] == "image/jpeg"
    assert parts[0]["inline_data"]["data"]
    assert '"1042"' in parts[-1]


def test_code_fenced_reply_is_accepted():
    result = parse_recognition_response("```json\n" + reply() + "\n```")
    assert result.scores["2"] == 7.5


@pytest.mark.parametrize("raw", [
    json.dumps({"identity": "S1", "scores": [4, 7], "note": ""}),
    json.dumps({"identity": 17, "scores": {"1": 4}, "note": ""}),
    json.dumps({"identity": "S1", "scores": {"1": "4"}, "note": ""}),
    json.dumps({"identity": "S1", "scores": {"1": True}, "note": ""}),
    json.dumps({"identity": "S1", "scores": {"1": 4}}),
    json.dumps({"identity": "S1", "scores": {"1": 4}, "note": "", "extra": 1}),
    json.dumps(["S1", {"1": 4}]),
    '{"identity": "S1", "scores": {"1": NaN}, "note": ""}',
    "I could not read this paper",
    "",
])
def test_schema_deviation_is_a_failure(raw):
    with pytest.raises(UpstreamServiceError):
        parse_recognition_response(raw)


def test_failure_is_retried_once_after_fixed_delay():
    sleep = SleepRecorder()
    model = ScriptedVisionModel("not json", reply())

    result = run_analyze(model, sleep=sleep)

    assert isinstance(result, RecognitionSuccess)
    assert len(model.messages) == 2
    assert sleep.calls == [10]


def test_transport_error_then_success():
    sleep = SleepRecorder()
    model = ScriptedVisionModel(ConnectionError("503 service unavailable"), reply())

    result = run_analyze(model, sleep=sleep)

    assert isinstance(result, RecognitionSuccess)
    assert sleep.calls == [10]


def test_two_failures_return_terminal_failure_without_raising():
    sleep = SleepRecorder()
    model = ScriptedVisionModel(TimeoutError("deadline exceeded"), json.dumps({"identity": "S1"}))

    result = run_analyze(model, sleep=sleep)

    assert isinstance(result, RecognitionFailure)
    assert result.attempts == 2
    assert "schema" in result.reason
    assert len(model.messages) == 2
    assert sleep.calls == [10]


def test_client_is_reusable_across_calls():
    model = ScriptedVisionModel(reply(identity="S1"), reply(identity="S2", scores={"1": 1}))
    client = RecognitionClient(model, sleep=SleepRecorder())

    async def both():
        return await client.analyze(b"a", "S1"), await client.analyze(b"b", "S2")

    first, second = asyncio.run(both())
    assert first.identity == "S1"
    assert second.identity == "S2"
    assert second.scores == {"1": 1.0}
