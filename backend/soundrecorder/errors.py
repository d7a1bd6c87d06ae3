"""
Error Taxonomy for the Sound Recorder
=====================================
Every failing recorder call raises one of these. Third-party errors
(PortAudio, libsndfile, FFmpeg, binascii) are wrapped with ``raise ... from``.
"""


class RecorderError(Exception):
    """Base class for all sound recorder errors."""


class DeviceUnavailable(RecorderError):
    """No capture/output device, permission denied, or device already in use."""


class CaptureCancelled(RecorderError):
    """Capture was ended before the device grant resolved."""


class EmptyCapture(RecorderError):
    """Capture finished without producing any frames."""


class DecodeError(RecorderError):
    """Raw bytes could not be turned into PCM."""


class UnsupportedFormat(DecodeError):
    """Container or codec is not recognized, or holds no audio stream."""


class CorruptData(DecodeError):
    """Container was recognized but its contents are damaged or empty."""


class SourceUnavailable(RecorderError):
    """Imported file could not be read from disk."""


class InvalidEncoding(RecorderError):
    """Storable string is not a valid data-URI or base64 payload."""


class InvalidParameters(RecorderError, ValueError):
    """Effect parameters outside their allowed range."""


class RenderFailure(RecorderError):
    """Offline evaluation of the effect chain failed."""


class SessionStateError(RecorderError):
    """Operation requested in a state that does not allow it."""
