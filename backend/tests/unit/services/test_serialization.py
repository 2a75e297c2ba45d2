"""
Unit tests for the cache payload codec.
"""

import pytest

from clinic_cache.services.cache.serialization import (
    GZIP_FLAG,
    JSON_FLAG,
    PayloadCodec,
)


class TestPayloadCodec:
    """Test header flags and compression."""

    def test_small_payload_is_plain_json(self):
        codec = PayloadCodec(compression_threshold=1024)

        payload = codec.encode({"id": "p1", "name": "Jane"})

        assert payload[0] == JSON_FLAG
        assert payload[1:] == b'{"id":"p1","name":"Jane"}'
        assert codec.decode(payload) == {"id": "p1", "name": "Jane"}

    def test_large_payload_is_compressed(self):
        """Test payloads above the threshold are gzipped."""
        codec = PayloadCodec(compression_threshold=64)
        value = {"notes": "x" * 500}

        payload = codec.encode(value)

        assert payload[0] == JSON_FLAG | GZIP_FLAG
        assert len(payload) < 500
        assert codec.decode(payload) == value

    def test_compression_can_be_disabled(self):
        codec = PayloadCodec(compression_threshold=0, compress=False)

        assert codec.encode("x" * 100)[0] == JSON_FLAG

    def test_non_json_values_are_stringified(self):
        """Test values without a JSON form fall back to str()."""
        from datetime import date

        codec = PayloadCodec()

        assert codec.decode(codec.encode({"day": date(2024, 1, 15)})) == {
            "day": "2024-01-15"
        }

    def test_empty_payload_rejected(self):
        with pytest.raises(ValueError):
            PayloadCodec().decode(b"")

    def test_unknown_header_rejected(self):
        with pytest.raises(ValueError):
            PayloadCodec().decode(b"\x00{}")
