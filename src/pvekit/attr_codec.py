"""Attribute String Codec - Typed records <-> Proxmox attribute strings.

Philosophy:
- Declarative field metadata drives both directions
- Descriptor table built once at class registration, never per call
- Stateless and side-effect free (safe from any thread)
- Forward compatible: unknown keys and malformed pairs are skipped

Public API (the "studs"):
    FieldKind: Supported field kinds
    AttrField: Descriptor for one encoded field
    AttributeRecord: Mixin providing from_string/to_string
    attribute_record: Class decorator registering a record type
    attr: Field declaration helper
    encode: Render a record as "key=value,key=value"
    decode: Parse an attribute string into a record
    EncodingError / DecodingError: Codec failures

Format:
    Proxmox stores structured settings (netN, numaN, smbios1, ipconfigN, ...)
    as comma-separated key=value pairs. Sequence values are joined with ';'.

Example:
    >>> @attribute_record
    ... class Nic(AttributeRecord):
    ...     bridge: str = attr("bridge", FieldKind.STRING)
    ...     trunks: list[int] = attr("trunks", FieldKind.INT_LIST)
    >>> encode(Nic(bridge="vmbr0", trunks=[1, 2]))
    'bridge=vmbr0,trunks=1;2'
    >>> decode("BRIDGE=vmbr1", Nic).bridge
    'vmbr1'
"""

import dataclasses
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar, TypeVar

# Attribute name that marks a field as excluded from encoding/decoding
IGNORE = "-"

_METADATA_KEY = "pvekit_attr"
_INT_PATTERN = re.compile(r"[+-]?\d+")

R = TypeVar("R", bound="AttributeRecord")


class AttributeCodecError(Exception):
    """Base class for attribute codec failures."""

    pass


class EncodingError(AttributeCodecError):
    """Raised when a record cannot be rendered as an attribute string."""

    pass


class DecodingError(AttributeCodecError):
    """Raised when an attribute string cannot be parsed into a record."""

    pass


class FieldKind(StrEnum):
    """Field kinds understood by the codec."""

    BOOL = "bool"  # true/false, always emitted
    STRING = "string"  # omitted when empty
    OPT_INT = "opt_int"  # omitted when None
    OPT_BOOL = "opt_bool"  # 1/0, omitted when None
    STR_LIST = "str_list"  # ';'-joined, omitted when empty
    INT_LIST = "int_list"  # ';'-joined decimal, omitted when empty


@dataclass(frozen=True)
class AttrField:
    """Descriptor for one encoded field.

    Attributes:
        field_name: Python attribute on the record
        attr_name: Canonical attribute name in the platform string
        kind: How the value is rendered and parsed
    """

    field_name: str
    attr_name: str
    kind: FieldKind


def attr(name: str, kind: FieldKind) -> Any:
    """Declare a record field with attribute metadata.

    The default value follows the kind: False, "", None or an empty list.

    Args:
        name: Canonical attribute name ("-" to ignore the field)
        kind: Field kind

    Returns:
        dataclasses.Field carrying the metadata
    """
    metadata = {_METADATA_KEY: (name, FieldKind(kind))}

    if kind in (FieldKind.STR_LIST, FieldKind.INT_LIST):
        return dataclasses.field(default_factory=list, metadata=metadata)
    if kind == FieldKind.BOOL:
        return dataclasses.field(default=False, metadata=metadata)
    if kind == FieldKind.STRING:
        return dataclasses.field(default="", metadata=metadata)
    return dataclasses.field(default=None, metadata=metadata)


class AttributeRecord:
    """Mixin for records registered with @attribute_record."""

    __attr_fields__: ClassVar[tuple[AttrField, ...]] = ()

    @classmethod
    def from_string(cls: type[R], value: str) -> R:
        """Parse an attribute string into a new record.

        Raises:
            DecodingError: If a component cannot be parsed
        """
        return decode(value, cls)

    def to_string(self) -> str:
        """Render this record as an attribute string.

        Raises:
            EncodingError: If a field holds an unsupported value
        """
        return encode(self)


def attribute_record(cls: type[R]) -> type[R]:
    """Class decorator: make `cls` a dataclass and build its descriptor table.

    Fields are recorded in declaration order. Fields declared without attr()
    or with the ignore marker are left out of the table.
    """
    cls = dataclass(cls)

    descriptors = []
    for f in dataclasses.fields(cls):  # type: ignore[arg-type]
        meta = f.metadata.get(_METADATA_KEY)
        if meta is None:
            continue
        name, kind = meta
        if not name or name == IGNORE:
            continue
        descriptors.append(AttrField(field_name=f.name, attr_name=name, kind=kind))

    cls.__attr_fields__ = tuple(descriptors)
    return cls


def _descriptors(target: Any) -> tuple[AttrField, ...] | None:
    if not dataclasses.is_dataclass(target):
        return None
    return getattr(target, "__attr_fields__", None)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _render(descriptor: AttrField, value: Any) -> str | None:
    """Render a single field value, None when the field is omitted."""
    kind = descriptor.kind

    if kind == FieldKind.BOOL:
        if isinstance(value, bool):
            return "true" if value else "false"
    elif kind == FieldKind.STRING:
        if isinstance(value, str):
            value = value.strip()
            return value or None
    elif kind == FieldKind.OPT_INT:
        if value is None:
            return None
        if _is_int(value):
            return str(value)
    elif kind == FieldKind.OPT_BOOL:
        if value is None:
            return None
        if isinstance(value, bool):
            return "1" if value else "0"
    elif kind == FieldKind.STR_LIST:
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return ";".join(value) if value else None
    elif kind == FieldKind.INT_LIST:
        if isinstance(value, (list, tuple)) and all(_is_int(v) for v in value):
            return ";".join(str(v) for v in value) if value else None

    raise EncodingError(
        f"unsupported value for field {descriptor.attr_name} ({kind}): {type(value).__name__}"
    )


def encode(record: Any) -> str:
    """Encode a record as a comma-separated key=value string.

    Pairs follow field declaration order. Empty strings, empty sequences and
    absent optionals are omitted, so the all-default record encodes to "".

    Args:
        record: Instance of an @attribute_record class

    Returns:
        Attribute string

    Raises:
        EncodingError: If record is not an attribute record or a field value
            does not match its declared kind
    """
    descriptors = _descriptors(record)
    if descriptors is None or isinstance(record, type):
        raise EncodingError(f"not an attribute record: {type(record).__name__}")

    pairs = []
    for descriptor in descriptors:
        rendered = _render(descriptor, getattr(record, descriptor.field_name))
        if rendered is None:
            continue
        pairs.append(f"{descriptor.attr_name}={rendered}")

    return ",".join(pairs)


def _parse_int(descriptor: AttrField, text: str) -> int:
    if not _INT_PATTERN.fullmatch(text.strip()):
        raise DecodingError(f"failed to parse int value for {descriptor.attr_name}: {text!r}")
    return int(text.strip())


def _parse(descriptor: AttrField, value: str) -> Any:
    kind = descriptor.kind

    if kind == FieldKind.BOOL:
        return value == "true"
    if kind == FieldKind.STRING:
        return value.strip()
    if kind == FieldKind.STR_LIST:
        return value.split(";")
    if kind == FieldKind.INT_LIST:
        return [_parse_int(descriptor, part) for part in value.split(";")] if value else []
    if kind == FieldKind.OPT_INT:
        return _parse_int(descriptor, value)
    if kind == FieldKind.OPT_BOOL:
        return value in ("1", "true")

    raise DecodingError(f"unsupported field kind for {descriptor.attr_name}: {kind}")


def decode(value: str, target: type[R] | R) -> R:
    """Decode an attribute string into a record.

    Keys match attribute names case-insensitively. Pairs without "=" and keys
    the record does not declare are skipped. An empty string is valid and
    leaves every field at its default.

    Args:
        value: Attribute string such as "virtio=AA:BB:...,bridge=vmbr0"
        target: Record class (a default instance is created) or record
            instance (populated in place)

    Returns:
        The populated record

    Raises:
        DecodingError: If target is not an attribute record or an integer
            component cannot be parsed
    """
    descriptors = _descriptors(target)
    if descriptors is None:
        raise DecodingError(f"not an attribute record: {target!r}")

    record = target() if isinstance(target, type) else target

    by_name: dict[str, list[AttrField]] = {}
    for descriptor in descriptors:
        by_name.setdefault(descriptor.attr_name.lower(), []).append(descriptor)

    parsed: dict[str, Any] = {}
    for pair in value.split(","):
        key, sep, raw = pair.strip().partition("=")
        if not sep:
            continue
        for descriptor in by_name.get(key.strip().lower(), ()):
            parsed[descriptor.field_name] = _parse(descriptor, raw)

    # Applied only after every pair parsed so a failure leaves the target untouched
    for field_name, field_value in parsed.items():
        setattr(record, field_name, field_value)

    return record


__all__ = [
    "IGNORE",
    "AttrField",
    "AttributeCodecError",
    "AttributeRecord",
    "DecodingError",
    "EncodingError",
    "FieldKind",
    "attr",
    "attribute_record",
    "decode",
    "encode",
]
