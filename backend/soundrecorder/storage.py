"""Data-URI codec for storing rendered WAV bytes as a string."""

import base64
import binascii

from .errors import InvalidEncoding

MIME_TYPE = "audio/wav"
DATA_URI_PREFIX = f"data:{MIME_TYPE};base64,"


def to_storable(wav_bytes: bytes) -> str:
    return DATA_URI_PREFIX + base64.b64encode(bytes(wav_bytes)).decode("ascii")


def from_storable(value: str) -> bytes:
    """
    Decode a stored sound back to bytes.

    Accepts a full ``data:<mime>;base64,<payload>`` URI or a bare base64
    payload, as older records were saved without the prefix.
    """
    if not isinstance(value, str):
        raise InvalidEncoding(f"Stored sound must be a string, got {type(value).__name__}")

    text = value.strip()
    if text.startswith("data:"):
        meta, sep, payload = text.partition(",")
        if not sep:
            raise InvalidEncoding("Data URI has no payload separator")
        if ";base64" not in meta:
            raise InvalidEncoding(f"Data URI is not base64 encoded: {meta!r}")
    else:
        payload = text

    payload = "".join(payload.split())
    if not payload:
        raise InvalidEncoding("Stored sound has an empty payload")

    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidEncoding(f"Invalid base64 payload: {exc}") from exc
