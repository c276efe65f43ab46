"""Unit tests for the attribute string codec.

Tests cover:
- Encoding per field kind and declaration order
- Decoding per field kind, case-insensitive keys
- Forward compatibility (unknown keys, pairs without "=")
- Error handling (EncodingError, DecodingError)
- Descriptor table construction
"""

from dataclasses import dataclass

import pytest

from pvekit.attr_codec import (
    AttrField,
    AttributeRecord,
    DecodingError,
    EncodingError,
    FieldKind,
    attr,
    attribute_record,
    decode,
    encode,
)


@attribute_record
class SampleRecord(AttributeRecord):
    """Record exercising every field kind."""

    enabled: bool = attr("enabled", FieldKind.BOOL)
    name: str = attr("name", FieldKind.STRING)
    count: int | None = attr("count", FieldKind.OPT_INT)
    flag: bool | None = attr("flag", FieldKind.OPT_BOOL)
    cpus: list[str] = attr("cpus", FieldKind.STR_LIST)
    trunks: list[int] = attr("trunks", FieldKind.INT_LIST)
    note: str = attr("-", FieldKind.STRING)
    scratch: str = ""


@attribute_record
class OptionalOnly(AttributeRecord):
    """Record without always-emitted fields."""

    bridge: str = attr("bridge", FieldKind.STRING)
    tag: int | None = attr("tag", FieldKind.OPT_INT)
    firewall: bool | None = attr("firewall", FieldKind.OPT_BOOL)
    trunks: list[int] = attr("trunks", FieldKind.INT_LIST)


class TestDescriptorTable:
    """Test descriptor table built by @attribute_record."""

    def test_descriptors_in_declaration_order(self):
        """Descriptors follow field declaration order."""
        names = [d.attr_name for d in SampleRecord.__attr_fields__]
        assert names == ["enabled", "name", "count", "flag", "cpus", "trunks"]

    def test_ignored_and_plain_fields_excluded(self):
        """Fields marked "-" or without metadata are not in the table."""
        field_names = {d.field_name for d in SampleRecord.__attr_fields__}
        assert "note" not in field_names
        assert "scratch" not in field_names

    def test_descriptor_contents(self):
        """Descriptor carries field name, attribute name and kind."""
        assert OptionalOnly.__attr_fields__[1] == AttrField(
            field_name="tag", attr_name="tag", kind=FieldKind.OPT_INT
        )

    def test_defaults_follow_kind(self):
        """Default values depend on the declared kind."""
        record = SampleRecord()
        assert record.enabled is False
        assert record.name == ""
        assert record.count is None
        assert record.flag is None
        assert record.cpus == []
        assert record.trunks == []

    def test_list_defaults_not_shared(self):
        """Each instance gets its own list."""
        first, second = OptionalOnly(), OptionalOnly()
        first.trunks.append(1)
        assert second.trunks == []


class TestEncode:
    """Test encode()."""

    def test_empty_record_encodes_to_empty_string(self):
        """Record with nothing populated encodes to ""."""
        assert encode(OptionalOnly()) == ""

    def test_bool_always_emitted(self):
        """Plain booleans are rendered true/false even when False."""
        assert encode(SampleRecord()) == "enabled=false"
        assert encode(SampleRecord(enabled=True)) == "enabled=true"

    def test_all_kinds(self):
        """Every kind renders per its rule, in declaration order."""
        record = SampleRecord(
            enabled=True,
            name="  web  ",
            count=3,
            flag=False,
            cpus=["0-3", "4-7"],
            trunks=[1, 2],
        )
        assert encode(record) == "enabled=true,name=web,count=3,flag=0,cpus=0-3;4-7,trunks=1;2"

    def test_whitespace_only_string_omitted(self):
        """Strings empty after trimming are omitted."""
        assert encode(OptionalOnly(bridge="   ")) == ""

    def test_optional_bool_rendered_as_digit(self):
        """Optional booleans render 1/0."""
        assert encode(OptionalOnly(firewall=True)) == "firewall=1"
        assert encode(OptionalOnly(firewall=False)) == "firewall=0"

    def test_zero_optional_int_is_emitted(self):
        """Present zero is not absent."""
        assert encode(OptionalOnly(tag=0)) == "tag=0"

    def test_ignored_field_not_encoded(self):
        """Ignored and metadata-free fields never appear."""
        record = SampleRecord(note="secret", scratch="tmp")
        assert encode(record) == "enabled=false"

    def test_deterministic(self):
        """Encoding the same record twice yields identical strings."""
        record = OptionalOnly(bridge="vmbr0", tag=10, firewall=True, trunks=[3, 4])
        assert encode(record) == encode(record)

    def test_to_string_method(self):
        """Records expose to_string()."""
        assert OptionalOnly(bridge="vmbr0").to_string() == "bridge=vmbr0"

    def test_unsupported_value_raises(self):
        """A value that does not match its kind raises EncodingError."""
        with pytest.raises(EncodingError, match="tag"):
            encode(OptionalOnly(tag=1.5))  # type: ignore[arg-type]

    def test_bool_in_int_field_raises(self):
        """bool is not accepted as an integer."""
        with pytest.raises(EncodingError):
            encode(OptionalOnly(tag=True))

    def test_bad_list_member_raises(self):
        """Non-int member of an integer sequence raises EncodingError."""
        with pytest.raises(EncodingError, match="trunks"):
            encode(OptionalOnly(trunks=[1, "2"]))  # type: ignore[list-item]

    def test_non_record_raises(self):
        """Plain objects are rejected."""

        @dataclass
        class Plain:
            bridge: str = ""

        with pytest.raises(EncodingError, match="not an attribute record"):
            encode(Plain())

        with pytest.raises(EncodingError):
            encode({"bridge": "vmbr0"})

    def test_record_class_rejected(self):
        """Encoding the class instead of an instance is an error."""
        with pytest.raises(EncodingError):
            encode(OptionalOnly)


class TestDecode:
    """Test decode()."""

    def test_empty_string_yields_defaults(self):
        """"" decodes to the default record."""
        assert decode("", OptionalOnly) == OptionalOnly()

    def test_all_kinds(self):
        """Every kind parses per its rule."""
        record = decode(
            "enabled=true,name= web ,count=3,flag=1,cpus=0-3;4-7,trunks=1;2", SampleRecord
        )
        assert record == SampleRecord(
            enabled=True, name="web", count=3, flag=True, cpus=["0-3", "4-7"], trunks=[1, 2]
        )

    def test_bool_only_true_literal(self):
        """Plain booleans are True only for "true"."""
        assert decode("enabled=1", SampleRecord).enabled is False
        assert decode("enabled=true", SampleRecord).enabled is True

    def test_case_insensitive_keys(self):
        """Keys match regardless of case."""
        upper = decode("BRIDGE=vmbr0", OptionalOnly)
        lower = decode("bridge=vmbr0", OptionalOnly)
        assert upper == lower
        assert upper.bridge == "vmbr0"

    def test_unknown_keys_ignored(self):
        """Keys the record does not declare are skipped."""
        record = decode("unknownkey=5,bridge=vmbr0", OptionalOnly)
        assert record == OptionalOnly(bridge="vmbr0")

    def test_pairs_without_equals_skipped(self):
        """Pairs without "=" are skipped silently."""
        record = decode("virtio,bridge=vmbr0,,", OptionalOnly)
        assert record == OptionalOnly(bridge="vmbr0")

    def test_value_split_on_first_equals(self):
        """Only the first "=" separates key and value."""
        record = decode("name=a=b", SampleRecord)
        assert record.name == "a=b"

    def test_present_false_optional_bool(self):
        """A present optional boolean is never None, even when false."""
        assert decode("firewall=0", OptionalOnly).firewall is False
        assert decode("firewall=no", OptionalOnly).firewall is False
        assert decode("firewall=true", OptionalOnly).firewall is True
        assert decode("", OptionalOnly).firewall is None

    def test_malformed_int_sequence_raises(self):
        """One bad component fails the whole decode."""
        with pytest.raises(DecodingError, match="trunks"):
            decode("trunks=1;x", OptionalOnly)

    def test_malformed_optional_int_raises(self):
        """Optional integers must be decimal."""
        with pytest.raises(DecodingError):
            decode("tag=ten", OptionalOnly)

    def test_failed_decode_leaves_instance_untouched(self):
        """No partial update when decoding into an instance fails."""
        record = OptionalOnly(bridge="vmbr0")
        with pytest.raises(DecodingError):
            decode("bridge=vmbr9,tag=bad", record)
        assert record.bridge == "vmbr0"

    def test_decode_into_instance_keeps_other_fields(self):
        """Fields not in the string keep their values."""
        record = OptionalOnly(bridge="vmbr0", tag=5)
        result = decode("tag=7", record)
        assert result is record
        assert record == OptionalOnly(bridge="vmbr0", tag=7)

    def test_from_string_method(self):
        """Records expose from_string()."""
        assert OptionalOnly.from_string("tag=10").tag == 10

    def test_non_record_target_raises(self):
        """Targets that are not attribute records are rejected."""
        with pytest.raises(DecodingError, match="not an attribute record"):
            decode("a=b", dict)

    def test_negative_int(self):
        """Signed integers parse."""
        assert decode("tag=-1", OptionalOnly).tag == -1

    def test_empty_string_sequence_value(self):
        """An empty string-sequence value splits to one empty member."""
        record = decode("cpus=", SampleRecord)
        assert record.cpus == [""]
        assert encode(record) == "enabled=false,cpus="

    def test_empty_int_sequence_value(self):
        """An empty integer-sequence value decodes to no members."""
        assert decode("trunks=", OptionalOnly).trunks == []


class TestRoundTrip:
    """Test decode(encode(r)) == r."""

    @pytest.mark.parametrize(
        "record",
        [
            OptionalOnly(),
            OptionalOnly(bridge="vmbr0", tag=0, firewall=False, trunks=[1, 2, 3]),
            SampleRecord(enabled=True, name="x", count=-4, flag=True, cpus=["0-3"], trunks=[7]),
            SampleRecord(cpus=[""]),
        ],
    )
    def test_round_trip(self, record):
        """Supported records survive a round trip."""
        assert decode(encode(record), type(record)) == record
