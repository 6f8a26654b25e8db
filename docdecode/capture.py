"""
Capture Module for DocDecode
Normalizes pasted text, uploaded files and camera snapshots into a single
InputPayload, and owns the camera as an explicitly acquired resource.
"""

import base64
import io
import logging
import mimetypes
from typing import Any, Callable, Optional, Protocol, Union

from PIL import Image, UnidentifiedImageError

from docdecode.errors import CameraUnavailable, InputReadError, NoInputSelected
from docdecode.schema import BinaryPayload, InputPayload, TextPayload

logger = logging.getLogger(__name__)

TEXT = "text"
FILE = "file"
CAMERA = "camera"
MODALITIES = (TEXT, FILE, CAMERA)

CAPTURED_FILENAME = "captured-note.jpg"
CAPTURED_MIME_TYPE = "image/jpeg"
_JPEG_QUALITY = 92

# ── Text & file ────────────────────────────────────────────────────────────────


def capture_text(text: Optional[str]) -> TextPayload:
    """Return the trimmed note, or raise NoInputSelected if nothing is left."""
    trimmed = (text or "").strip()
    if not trimmed:
        raise NoInputSelected("Type or paste a note first.")
    return TextPayload(trimmed)


def capture_file(
    source: Union[bytes, bytearray, Any, None],
    filename: str,
    mime_type: Optional[str] = None,
) -> BinaryPayload:
    """
    Read an uploaded file fully and inline it as base64.

    *source* is raw bytes or any object with ``read()`` (e.g. a Streamlit
    UploadedFile). The media type comes from the declared type, falling
    back to a guess from the filename.
    """
    if source is None:
        raise NoInputSelected("Choose a file first.")

    try:
        if isinstance(source, (bytes, bytearray)):
            raw = bytes(source)
        else:
            if hasattr(source, "seek"):
                source.seek(0)
            raw = source.read()
    except Exception as exc:
        logger.error("Could not read %s: %s", filename, exc)
        raise InputReadError(f"Could not read {filename}: {exc}") from exc

    if not isinstance(raw, (bytes, bytearray)):
        raise InputReadError(f"Could not read {filename}: expected bytes, got {type(raw).__name__}")

    declared = mime_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return BinaryPayload(
        data=base64.b64encode(bytes(raw)).decode("ascii"),
        mime_type=declared,
        filename=filename,
    )


# ── Camera ─────────────────────────────────────────────────────────────────────


def rasterize_jpeg(frame: Union[bytes, "Image.Image"]) -> bytes:
    """Convert a still frame (encoded bytes or PIL Image) to RGB JPEG bytes."""
    try:
        if isinstance(frame, Image.Image):
            img = frame
        else:
            img = Image.open(io.BytesIO(frame))
        buf = io.BytesIO()
        img.convert("RGB").save(buf, format="JPEG", quality=_JPEG_QUALITY)
    except (UnidentifiedImageError, OSError, TypeError) as exc:
        raise CameraUnavailable(f"Captured frame could not be decoded: {exc}") from exc
    return buf.getvalue()


class FrameSource(Protocol):
    """A live stream from the environment-facing camera."""

    def read(self) -> Union[bytes, "Image.Image"]:
        ...

    def stop(self) -> None:
        ...


class CameraResource:
    """
    Owns the camera stream. acquire() and release() are strictly paired;
    release() is idempotent so every exit path can call it.
    """

    def __init__(self, opener: Callable[[], FrameSource]):
        self._opener = opener
        self._source: Optional[FrameSource] = None

    # ------------------------------------------------------------------
    @property
    def active(self) -> bool:
        return self._source is not None

    # ------------------------------------------------------------------
    def acquire(self) -> None:
        if self._source is not None:
            return
        try:
            self._source = self._opener()
        except CameraUnavailable:
            raise
        except Exception as exc:
            logger.error("Camera acquisition failed: %s", exc)
            raise CameraUnavailable(
                "Could not access camera. Please check permissions."
            ) from exc
        logger.info("Camera stream acquired.")

    # ------------------------------------------------------------------
    def release(self) -> None:
        source, self._source = self._source, None
        if source is None:
            return
        try:
            source.stop()
        finally:
            logger.info("Camera stream released.")

    # ------------------------------------------------------------------
    def snapshot(self) -> BinaryPayload:
        """Capture one still as JPEG. The stream is released afterwards."""
        if self._source is None:
            raise CameraUnavailable("Camera is not active.")
        try:
            frame = self._source.read()
            jpeg = rasterize_jpeg(frame)
        finally:
            self.release()
        return capture_file(jpeg, CAPTURED_FILENAME, CAPTURED_MIME_TYPE)

    # ------------------------------------------------------------------
    def __enter__(self) -> "CameraResource":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


# ── Input selector ─────────────────────────────────────────────────────────────


class InputSelector:
    """
    Per-session capture state: the active modality, the typed note, the
    chosen file, the captured photo, and the camera.

    Each modality keeps its own slot; the payload always comes from the
    slot of the active modality.
    """

    def __init__(self, camera: Optional[CameraResource] = None):
        self.camera = camera
        self.modality = TEXT
        self.text = ""
        self.file: Optional[BinaryPayload] = None
        self.photo: Optional[BinaryPayload] = None

    # ------------------------------------------------------------------
    def select(self, modality: str) -> None:
        if modality not in MODALITIES:
            raise ValueError(f"Unknown input modality: {modality!r}")
        if modality != self.modality and self.modality == CAMERA:
            self.stop_camera()
        self.modality = modality

    # ------------------------------------------------------------------
    @property
    def selected(self) -> Optional[BinaryPayload]:
        """The file or photo for the active modality (None for text)."""
        if self.modality == FILE:
            return self.file
        if self.modality == CAMERA:
            return self.photo
        return None

    # ------------------------------------------------------------------
    def set_text(self, text: str) -> None:
        self.text = text or ""

    # ------------------------------------------------------------------
    def choose_file(self, source: Any, filename: str, mime_type: Optional[str] = None) -> BinaryPayload:
        self.file = capture_file(source, filename, mime_type)
        return self.file

    # ------------------------------------------------------------------
    def clear_file(self) -> None:
        self.file = None

    # ------------------------------------------------------------------
    def start_camera(self) -> None:
        if self.camera is None:
            raise CameraUnavailable("No camera is available in this environment.")
        self.photo = None
        self.camera.acquire()

    # ------------------------------------------------------------------
    def stop_camera(self) -> None:
        if self.camera is not None:
            self.camera.release()

    # ------------------------------------------------------------------
    def capture_photo(self) -> BinaryPayload:
        if self.camera is None:
            raise CameraUnavailable("No camera is available in this environment.")
        self.photo = self.camera.snapshot()
        return self.photo

    # ------------------------------------------------------------------
    def payload(self) -> InputPayload:
        """The payload for the active modality, or NoInputSelected."""
        if self.modality == TEXT:
            return capture_text(self.text)
        if self.selected is None:
            raise NoInputSelected(
                "Take a photo first." if self.modality == CAMERA else "Choose a file first."
            )
        return self.selected

    # ------------------------------------------------------------------
    @property
    def ready(self) -> bool:
        if self.modality == TEXT:
            return bool(self.text.strip())
        return self.selected is not None

    # ------------------------------------------------------------------
    def clear(self) -> None:
        self.stop_camera()
        self.text = ""
        self.file = None
        self.photo = None
