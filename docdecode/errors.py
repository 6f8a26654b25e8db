"""
Error Taxonomy for DocDecode
Every failure the capture, analysis, chat and history layers can raise.
"""

# Shown to the user for any failed analysis; the cause is only logged.
ANALYSIS_RETRY_MESSAGE = "Failed to analyze the note. Please try again."


class DocDecodeError(Exception):
    """Base class for all DocDecode errors."""


class NoInputSelected(DocDecodeError):
    """Text is empty/whitespace, or no file or photo has been chosen."""


class CameraUnavailable(DocDecodeError):
    """Camera permission denied, no device, or no usable frame."""


class InputReadError(DocDecodeError):
    """The chosen file could not be read."""


class TransportError(DocDecodeError):
    """The call to the external model failed (network, non-2xx, SDK error)."""


class MalformedModelResponse(DocDecodeError):
    """The model replied with content that does not parse as DischargeAnalysis."""


class HistoryError(DocDecodeError):
    """The history store could not be read."""


class HistoryWriteError(HistoryError):
    """The history store could not be written. Never blocks a displayed result."""
