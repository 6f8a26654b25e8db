import io
import json

import pytest
from PIL import Image

from docdecode.errors import TransportError
from docdecode.gemini import ModelReply

SAMPLE_ANALYSIS = {
    "overallSummary": "You were treated for diagnosis X and can recover at home.",
    "slides": [
        {
            "topic": "Diagnosis",
            "content": "Doctors found **diagnosis X**.",
            "laymanSummary": "You had diagnosis X.",
        },
        {
            "topic": "Medications",
            "content": "Take ibuprofen 400mg twice a day.",
            "laymanSummary": "Ibuprofen, morning and evening.",
        },
        {
            "topic": "Follow-up",
            "content": "See your doctor in two weeks.",
            "laymanSummary": "Book a check-up.",
        },
    ],
}


class FakeChat:
    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.sent = []

    def send_message(self, text):
        self.sent.append(text)
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else ""


class FakeModel:
    """Stands in for GeminiClient; records every outbound request."""

    def __init__(self, reply=None, error=None, chat=None):
        self.reply = json.dumps(SAMPLE_ANALYSIS) if reply is None else reply
        self.error = error
        self.chat = chat or FakeChat(replies=["Sure, here is more detail."])
        self.requests = []
        self.contexts = []

    def generate(self, outbound):
        self.requests.append(outbound)
        if self.error is not None:
            raise self.error
        return ModelReply(text=self.reply)

    def start_chat(self, context):
        self.contexts.append(context)
        return self.chat


class FakeFrameSource:
    def __init__(self, frame):
        self.frame = frame
        self.stopped = False

    def read(self):
        return self.frame

    def stop(self):
        self.stopped = True


@pytest.fixture
def sample_json():
    return json.dumps(SAMPLE_ANALYSIS)


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def failing_model():
    return FakeModel(error=TransportError("503 Service Unavailable"))


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (8, 6), color=(200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()
