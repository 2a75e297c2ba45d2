"""
Cache payload codec.

Values are JSON-encoded and prefixed with a one-byte header: bit 0 marks
JSON, bit 1 marks gzip compression (applied above a size threshold).
"""

import gzip
import json
from typing import Any

JSON_FLAG = 0x01
GZIP_FLAG = 0x02


class PayloadCodec:
    """Encode and decode cache payloads."""

    def __init__(self, compression_threshold: int = 1024, compress: bool = True):
        self.compression_threshold = compression_threshold
        self.compress = compress

    def encode(self, value: Any) -> bytes:
        data = json.dumps(value, default=str, separators=(",", ":")).encode("utf-8")
        header = JSON_FLAG
        if self.compress and len(data) > self.compression_threshold:
            data = gzip.compress(data)
            header |= GZIP_FLAG
        return bytes([header]) + data

    def decode(self, payload: bytes) -> Any:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        if not payload:
            raise ValueError("Empty cache payload")

        header, data = payload[0], payload[1:]
        if not header & JSON_FLAG:
            raise ValueError(f"Unsupported cache payload header: {header:#04x}")
        if header & GZIP_FLAG:
            data = gzip.decompress(data)
        return json.loads(data.decode("utf-8"))
