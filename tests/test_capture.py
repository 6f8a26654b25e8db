import base64
import io

import pytest
from PIL import Image

from docdecode.capture import (
    CAMERA,
    FILE,
    TEXT,
    CameraResource,
    InputSelector,
    capture_file,
    capture_text,
    rasterize_jpeg,
)
from docdecode.errors import CameraUnavailable, InputReadError, NoInputSelected
from docdecode.schema import BinaryPayload, TextPayload

from conftest import FakeFrameSource


class _BrokenUpload:
    def read(self):
        raise OSError("disk gone")


# ── Text ───────────────────────────────────────────────────────────────────────


def test_capture_text_trims():
    assert capture_text("  take ibuprofen 400mg BID \n") == TextPayload("take ibuprofen 400mg BID")


@pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
def test_capture_text_rejects_blank(text):
    with pytest.raises(NoInputSelected):
        capture_text(text)


# ── File ───────────────────────────────────────────────────────────────────────


def test_capture_file_keeps_type_and_bytes(png_bytes):
    payload = capture_file(io.BytesIO(png_bytes), "xray.png", "image/png")
    assert payload.mime_type == "image/png"
    assert payload.filename == "xray.png"
    assert base64.b64decode(payload.data) == png_bytes


def test_capture_file_guesses_type_from_name():
    payload = capture_file(b"%PDF-1.4", "labs.pdf")
    assert payload.mime_type == "application/pdf"


def test_capture_file_read_failure():
    with pytest.raises(InputReadError):
        capture_file(_BrokenUpload(), "note.pdf", "application/pdf")


def test_capture_file_requires_source():
    with pytest.raises(NoInputSelected):
        capture_file(None, "note.pdf")


# ── Camera ─────────────────────────────────────────────────────────────────────


def test_rasterize_jpeg_from_png(png_bytes):
    jpeg = rasterize_jpeg(png_bytes)
    assert Image.open(io.BytesIO(jpeg)).format == "JPEG"


def test_rasterize_jpeg_rejects_garbage():
    with pytest.raises(CameraUnavailable):
        rasterize_jpeg(b"not an image")


def test_snapshot_returns_jpeg_and_releases(png_bytes):
    source = FakeFrameSource(png_bytes)
    camera = CameraResource(lambda: source)
    camera.acquire()

    payload = camera.snapshot()

    assert payload.mime_type == "image/jpeg"
    assert payload.filename == "captured-note.jpg"
    assert Image.open(io.BytesIO(payload.raw_bytes())).format == "JPEG"
    assert source.stopped
    assert not camera.active


def test_snapshot_releases_on_bad_frame():
    source = FakeFrameSource(b"garbage")
    camera = CameraResource(lambda: source)
    camera.acquire()

    with pytest.raises(CameraUnavailable):
        camera.snapshot()
    assert source.stopped
    assert not camera.active


def test_acquire_failure_is_camera_unavailable():
    def opener():
        raise PermissionError("denied")

    camera = CameraResource(opener)
    with pytest.raises(CameraUnavailable):
        camera.acquire()
    assert not camera.active


def test_release_is_idempotent(png_bytes):
    source = FakeFrameSource(png_bytes)
    camera = CameraResource(lambda: source)
    camera.release()
    camera.acquire()
    camera.release()
    camera.release()
    assert source.stopped


def test_camera_context_manager_releases(png_bytes):
    source = FakeFrameSource(png_bytes)
    with CameraResource(lambda: source) as camera:
        assert camera.active
    assert source.stopped


# ── Selector ───────────────────────────────────────────────────────────────────


@pytest.mark.parametrize("modality", [TEXT, FILE, CAMERA])
def test_selector_without_input_raises(modality):
    selector = InputSelector(CameraResource(lambda: FakeFrameSource(b"")))
    selector.select(modality)
    assert not selector.ready
    with pytest.raises(NoInputSelected):
        selector.payload()


def test_switching_away_from_camera_releases(png_bytes):
    source = FakeFrameSource(png_bytes)
    selector = InputSelector(CameraResource(lambda: source))
    selector.select(CAMERA)
    selector.start_camera()

    selector.select(FILE)

    assert source.stopped
    assert not selector.camera.active


def test_capture_photo_becomes_payload(png_bytes):
    source = FakeFrameSource(png_bytes)
    selector = InputSelector(CameraResource(lambda: source))
    selector.select(CAMERA)
    selector.start_camera()

    selector.capture_photo()

    payload = selector.payload()
    assert isinstance(payload, BinaryPayload)
    assert payload.mime_type == "image/jpeg"
    assert source.stopped


def test_start_camera_without_device():
    selector = InputSelector()
    selector.select(CAMERA)
    with pytest.raises(CameraUnavailable):
        selector.start_camera()


def test_clear_releases_camera(png_bytes):
    source = FakeFrameSource(png_bytes)
    selector = InputSelector(CameraResource(lambda: source))
    selector.set_text("note")
    selector.select(CAMERA)
    selector.start_camera()

    selector.clear()

    assert source.stopped
    assert selector.text == ""
    assert selector.selected is None


def test_unknown_modality():
    with pytest.raises(ValueError):
        InputSelector().select("fax")


def test_uploaded_file_does_not_leak_into_camera():
    selector = InputSelector(CameraResource(lambda: FakeFrameSource(b"")))
    selector.select(FILE)
    selector.choose_file(b"%PDF-1.4 fake", "labs.pdf", "application/pdf")

    selector.select(CAMERA)

    assert selector.selected is None
    assert not selector.ready
    with pytest.raises(NoInputSelected):
        selector.payload()


def test_each_modality_keeps_its_own_input(png_bytes):
    source = FakeFrameSource(png_bytes)
    selector = InputSelector(CameraResource(lambda: source))
    selector.select(FILE)
    selector.choose_file(b"%PDF-1.4 fake", "labs.pdf", "application/pdf")
    selector.select(CAMERA)
    selector.start_camera()
    selector.capture_photo()

    assert selector.payload().filename == "captured-note.jpg"
    selector.select(FILE)
    assert selector.payload().filename == "labs.pdf"


def test_retake_clears_only_the_photo(png_bytes):
    selector = InputSelector(CameraResource(lambda: FakeFrameSource(png_bytes)))
    selector.choose_file(png_bytes, "scan.png")
    selector.select(CAMERA)
    selector.start_camera()
    selector.capture_photo()

    selector.start_camera()

    assert selector.photo is None
    assert selector.file.filename == "scan.png"
