"""
Protocol metadata wire format tests.

Tests cover:
- Serialize/parse round trip with and without params
- Grammar rejection (wrong protocol prefix, missing issuer, trailing junk)
- Correlation id validation against the action code timestamp
"""
from __future__ import annotations

import pytest

from actioncodes import meta as meta_codec
from actioncodes.codegen import derive_correlation_hash
from actioncodes.meta import ProtocolMetaParser, ProtocolMetaV1

pytestmark = [pytest.mark.protocol_conformance]

FIXED_TS = 1640995200000
INITIATOR = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


def _meta(**overrides) -> ProtocolMetaV1:
    fields = {
        "version": "1",
        "prefix": "DEFAULT",
        "initiator": INITIATOR,
        "id": "abc123",
        "iss": INITIATOR,
        "params": None,
    }
    fields.update(overrides)
    return ProtocolMetaV1(**fields)


def test_serialize_field_order():
    wire = meta_codec.serialize(_meta())
    assert wire == f"actioncodes:v=1&pre=DEFAULT&ini={INITIATOR}&id=abc123&iss={INITIATOR}"


def test_serialize_appends_params():
    wire = meta_codec.serialize(_meta(params='{"amount":5}'))
    assert wire.endswith('&p={"amount":5}')


def test_round_trip_without_params():
    original = _meta()
    assert meta_codec.parse(meta_codec.serialize(original)) == original


def test_round_trip_with_params():
    original = _meta(prefix="TEST", params="order-42")
    parsed = meta_codec.parse(meta_codec.serialize(original))
    assert parsed == original
    assert parsed.params == "order-42"


def test_parse_rejects_foreign_protocol_prefix():
    assert meta_codec.parse("otherproto:v=1&pre=DEFAULT&ini=a&id=b&iss=c") is None


def test_parse_rejects_missing_issuer():
    assert meta_codec.parse("actioncodes:v=1&pre=DEFAULT&ini=a&id=b") is None
    assert meta_codec.parse("actioncodes:v=1&pre=DEFAULT&ini=a&id=b&iss=") is None


def test_parse_rejects_reordered_fields():
    assert meta_codec.parse("actioncodes:v=1&ini=a&pre=DEFAULT&id=b&iss=c") is None


def test_parse_rejects_trailing_junk():
    assert meta_codec.parse("actioncodes:v=1&pre=DEFAULT&ini=a&id=b&iss=c&x=1") is None


def test_parse_rejects_non_numeric_version():
    assert meta_codec.parse("actioncodes:v=one&pre=DEFAULT&ini=a&id=b&iss=c") is None


def test_parse_rejects_non_strings():
    assert meta_codec.parse(None) is None
    assert meta_codec.parse(b"actioncodes:v=1") is None


def test_parse_allows_empty_leading_fields():
    parsed = meta_codec.parse("actioncodes:v=1&pre=&ini=&id=&iss=issuer")
    assert parsed is not None
    assert parsed.prefix == ""
    assert parsed.iss == "issuer"
    assert parsed.params is None


def test_from_initiator_derives_correlation_id():
    built = meta_codec.from_initiator(INITIATOR, "issuer", "TEST", timestamp=FIXED_TS)
    assert built.version == "1"
    assert built.prefix == "TEST"
    assert built.id == derive_correlation_hash(INITIATOR, "TEST", FIXED_TS)
    assert built.params is None


def test_validate_code_matches_timestamp():
    built = meta_codec.from_initiator(INITIATOR, INITIATOR, timestamp=FIXED_TS)
    assert meta_codec.validate_code(built, FIXED_TS) is True
    assert meta_codec.validate_code(built, FIXED_TS + 1) is False


def test_validate_meta_from_string():
    built = meta_codec.from_initiator(INITIATOR, INITIATOR, "TEST", timestamp=FIXED_TS)
    wire = meta_codec.serialize(built)

    assert meta_codec.validate_meta_from_string(wire, FIXED_TS) is True
    assert meta_codec.validate_meta_from_string("garbage", FIXED_TS) is False


def test_validate_meta_with_invalid_prefix_is_false():
    wire = "actioncodes:v=1&pre=AB&ini=a&id=b&iss=c"
    assert meta_codec.validate_meta_from_string(wire, FIXED_TS) is False


def test_to_dict():
    assert _meta(params="x").to_dict() == {
        "version": "1",
        "prefix": "DEFAULT",
        "initiator": INITIATOR,
        "id": "abc123",
        "iss": INITIATOR,
        "params": "x",
    }


def test_parser_namespace():
    wire = ProtocolMetaParser.serialize(_meta())
    assert ProtocolMetaParser.parse(wire) == _meta()


def test_empty_params_normalized():
    built = _meta(params="")
    assert built.params is None
    assert meta_codec.parse(meta_codec.serialize(built)) == built


def test_from_initiator_empty_params():
    built = meta_codec.from_initiator(INITIATOR, INITIATOR, params="", timestamp=FIXED_TS)
    assert built.params is None
    assert "&p=" not in meta_codec.serialize(built)


def test_custom_prefix_bounds():
    built = meta_codec.from_initiator(INITIATOR, INITIATOR, "AB", timestamp=FIXED_TS, min_length=2)
    wire = meta_codec.serialize(built)

    assert built.id == derive_correlation_hash(INITIATOR, "AB", FIXED_TS, min_length=2)
    assert meta_codec.validate_code(built, FIXED_TS, min_length=2) is True
    assert meta_codec.validate_meta_from_string(wire, FIXED_TS, min_length=2) is True
    assert meta_codec.validate_meta_from_string(wire, FIXED_TS) is False
