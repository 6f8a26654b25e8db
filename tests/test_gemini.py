import json
from types import SimpleNamespace

import pytest

from docdecode.capture import capture_file, capture_text
from docdecode.chat import ChatContext
from docdecode.config import Config
from docdecode.errors import TransportError
from docdecode.gemini import GeminiClient, _to_sdk_config, _to_sdk_contents
from docdecode.request_builder import build_request
from docdecode.schema import AnalysisRequest, Demographics, GeoPoint, parse_analysis

from conftest import SAMPLE_ANALYSIS


class _FakeModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class _FakeChats:
    def __init__(self):
        self.created = []

    def create(self, **kwargs):
        self.created.append(kwargs)
        return SimpleNamespace(send_message=lambda text: SimpleNamespace(text=f" echo: {text} "))


def _client_with(models, chats=None):
    client = GeminiClient(api_key="test-key", chat_model="chat-model")
    client._client = SimpleNamespace(models=models, chats=chats or _FakeChats())
    return client


def test_text_contents_are_strings():
    outbound = build_request(AnalysisRequest.create(capture_text("take ibuprofen")))
    contents = _to_sdk_contents(outbound)
    assert contents[0] == outbound.instruction
    assert contents[1] == "Discharge Note:\ntake ibuprofen"


def test_binary_contents_become_inline_parts(png_bytes):
    outbound = build_request(AnalysisRequest.create(capture_file(png_bytes, "scan.png")))
    part = _to_sdk_contents(outbound)[1]
    assert part.inline_data.mime_type == "image/png"
    assert part.inline_data.data == png_bytes


def test_config_without_grounding_has_no_tools():
    outbound = build_request(AnalysisRequest.create(capture_text("note")))
    config = _to_sdk_config(outbound)
    assert config.response_mime_type == "application/json"
    assert not config.tools
    assert config.tool_config is None


def test_config_with_grounding_adds_maps_tool():
    request = AnalysisRequest.create(
        capture_text("note"),
        premium=True,
        demographics=Demographics(age="30", gender="female", location="Lyon"),
        geo=GeoPoint(latitude=45.76, longitude=4.84),
    )
    config = _to_sdk_config(build_request(request))
    assert config.tools[0].google_maps is not None
    assert config.tool_config.retrieval_config.lat_lng.latitude == 45.76
    assert config.tool_config.retrieval_config.lat_lng.longitude == 4.84


def test_generate_returns_reply_text(sample_json):
    models = _FakeModels(response=SimpleNamespace(text=sample_json, candidates=[]))
    client = _client_with(models)
    outbound = build_request(AnalysisRequest.create(capture_text("note")), Config(standard_model="std"))

    reply = client.generate(outbound)

    assert reply.text == sample_json
    assert reply.grounding_chunks == 0
    assert models.calls[0]["model"] == "std"


def test_generate_counts_grounding_chunks(sample_json):
    metadata = SimpleNamespace(grounding_chunks=[object(), object()])
    response = SimpleNamespace(
        text=sample_json, candidates=[SimpleNamespace(grounding_metadata=metadata)]
    )
    client = _client_with(_FakeModels(response=response))

    reply = client.generate(build_request(AnalysisRequest.create(capture_text("note"))))

    assert reply.grounding_chunks == 2
    assert parse_analysis(reply.text).overallSummary == SAMPLE_ANALYSIS["overallSummary"]


def test_generate_wraps_sdk_errors():
    client = _client_with(_FakeModels(error=RuntimeError("503 UNAVAILABLE")))
    with pytest.raises(TransportError):
        client.generate(build_request(AnalysisRequest.create(capture_text("note"))))


def test_missing_api_key_is_transport_error():
    client = GeminiClient(api_key="")
    with pytest.raises(TransportError):
        client.generate(build_request(AnalysisRequest.create(capture_text("note"))))


def test_start_chat_uses_system_instruction():
    chats = _FakeChats()
    client = _client_with(_FakeModels(), chats)
    context = ChatContext(
        original_input="note", analysis=parse_analysis(json.dumps(SAMPLE_ANALYSIS))
    )

    chat = client.start_chat(context)

    created = chats.created[0]
    assert created["model"] == "chat-model"
    assert created["config"].system_instruction == context.system_instruction
    assert chat.send_message("hi") == "echo: hi"
