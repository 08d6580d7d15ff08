"""Tests for the input validators: rejection, never coercion."""

import pytest

from lockwarden.core.types import Severity
from lockwarden.exceptions import InvalidInput
from lockwarden.utils.input_validators import (
    validate_description,
    validate_event_type,
    validate_identity,
    validate_metadata,
    validate_severity,
    validate_source,
)


class TestIdentity:
    @pytest.mark.parametrize("value", ["alice", "alice@example.com", "Ünïcode-user"])
    def test_valid(self, value):
        assert validate_identity(value) == value

    @pytest.mark.parametrize("value", ["", "   ", " alice", "alice\n", "a\x00b", "x" * 256, 42, None])
    def test_rejected(self, value):
        with pytest.raises(InvalidInput) as exc_info:
            validate_identity(value)
        assert exc_info.value.field == "identity"


class TestSource:
    def test_ipv4(self):
        assert validate_source("192.168.1.10") == "192.168.1.10"

    def test_ipv6_canonicalized(self):
        assert validate_source("2001:0DB8:0000::0001") == "2001:db8::1"

    @pytest.mark.parametrize("value", ["", "localhost", "256.1.1.1", "10.0.0.1 ", None])
    def test_rejected(self, value):
        with pytest.raises(InvalidInput):
            validate_source(value)


class TestEventFields:
    @pytest.mark.parametrize("value", ["failed_login", "a", "rule9_hit"])
    def test_valid_types(self, value):
        assert validate_event_type(value) == value

    @pytest.mark.parametrize("value", ["Failed", "9lives", "has space", "x" * 101, ""])
    def test_invalid_types(self, value):
        with pytest.raises(InvalidInput):
            validate_event_type(value)

    def test_severity(self):
        assert validate_severity("high") is Severity.HIGH
        assert validate_severity(Severity.LOW) is Severity.LOW
        with pytest.raises(InvalidInput):
            validate_severity("HIGH")

    def test_description(self):
        assert validate_description("probe") == "probe"
        with pytest.raises(InvalidInput):
            validate_description("  ")
        with pytest.raises(InvalidInput):
            validate_description("x" * 2001)

    def test_metadata(self):
        assert validate_metadata(None) == {}
        assert validate_metadata({"n": 1, "tags": ["a"]}) == {"n": 1, "tags": ["a"]}
        for bad in ([1, 2], {1: "x"}, {"obj": object()}):
            with pytest.raises(InvalidInput):
                validate_metadata(bad)
