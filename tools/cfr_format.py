#!/usr/bin/env python3
"""
cfr_format.py - CFR wire format definition

Single source of truth for tag values, option flags and record layouts.
Encoder and decoder must stay synchronized with this file.

Binary Format:
    Every record starts on a 4-byte boundary with a little-endian header:

    ┌──────────┬──────────┬─────────────────┬──────────────────┐
    │ Tag      │ Size     │ Fixed fields    │ Children         │
    │ u32      │ u32      │ u32 * N         │ records          │
    └──────────┴──────────┴─────────────────┴──────────────────┘

    Size counts the whole record: header, fixed fields and every child,
    rounded up to a multiple of 4. Children are not counted anywhere; the
    parent size bounds them.

Record layouts (fixed part):
    ROOT            tag, size, checksum
    OPTION_FORM     tag, size, object_id, flags
    ENUM_VALUE      tag, size, value
    OPTION_ENUM     tag, size, object_id, flags, default_value
    OPTION_NUMBER   tag, size, object_id, flags, default_value
    OPTION_BOOL     tag, size, object_id, flags, default_value
    OPTION_VARCHAR  tag, size, object_id, flags
    OPTION_COMMENT  tag, size, object_id, flags
    VARCHAR_*       tag, size, data_length, data[data_length] (NUL included)
"""

import struct
from enum import IntEnum, IntFlag


class CfrTag(IntEnum):
    """Record tags. Values are fixed by existing stored blobs."""
    ROOT = 0x0100
    OPTION_FORM = 0x0101
    ENUM_VALUE = 0x0102
    OPTION_ENUM = 0x0103
    OPTION_NUMBER = 0x0104
    OPTION_BOOL = 0x0105
    OPTION_VARCHAR = 0x0106
    VARCHAR_OPT_NAME = 0x0107
    VARCHAR_UI_NAME = 0x0108
    VARCHAR_UI_HELPTEXT = 0x0109
    VARCHAR_DEF_VALUE = 0x010A
    OPTION_COMMENT = 0x010B


class CfrFlags(IntFlag):
    """Option flags. Hints for the front-end, never enforced by the codec."""
    NONE = 0
    READONLY = 1 << 0
    GRAYOUT = 1 << 1
    SUPPRESS = 1 << 2
    VOLATILE = 1 << 3


ENTRY_ALIGN = 4
U32_MAX = 0xFFFFFFFF

# Deepest form nesting accepted by encoder and decoder (a top-level form is 1)
MAX_FORM_DEPTH = 64

# struct formats (little-endian, u32 fields)
RECORD_HEADER_FMT = '<II'
ROOT_FMT = '<III'
FORM_FMT = '<IIII'
ENUM_VALUE_FMT = '<III'
NUMERIC_OPTION_FMT = '<IIIII'
VARCHAR_OPTION_FMT = '<IIII'
COMMENT_FMT = '<IIII'
VARBINARY_FMT = '<III'

RECORD_HEADER_LEN = struct.calcsize(RECORD_HEADER_FMT)
ROOT_LEN = struct.calcsize(ROOT_FMT)
FORM_LEN = struct.calcsize(FORM_FMT)
ENUM_VALUE_LEN = struct.calcsize(ENUM_VALUE_FMT)
NUMERIC_OPTION_LEN = struct.calcsize(NUMERIC_OPTION_FMT)
VARCHAR_OPTION_LEN = struct.calcsize(VARCHAR_OPTION_FMT)
COMMENT_LEN = struct.calcsize(COMMENT_FMT)
VARBINARY_LEN = struct.calcsize(VARBINARY_FMT)

TAG_NAMES = {
    CfrTag.ROOT: 'Root record',
    CfrTag.OPTION_FORM: 'Form',
    CfrTag.ENUM_VALUE: 'Enum value',
    CfrTag.OPTION_ENUM: 'Enum option',
    CfrTag.OPTION_NUMBER: 'Number option',
    CfrTag.OPTION_BOOL: 'Bool option',
    CfrTag.OPTION_VARCHAR: 'Varchar option',
    CfrTag.VARCHAR_OPT_NAME: 'Option name',
    CfrTag.VARCHAR_UI_NAME: 'UI name',
    CfrTag.VARCHAR_UI_HELPTEXT: 'UI help text',
    CfrTag.VARCHAR_DEF_VALUE: 'Default value',
    CfrTag.OPTION_COMMENT: 'Option comment',
}

FLAG_NAMES = [
    (CfrFlags.READONLY, 'read-only'),
    (CfrFlags.GRAYOUT, 'grayed out'),
    (CfrFlags.SUPPRESS, 'suppressed'),
    (CfrFlags.VOLATILE, 'volatile'),
]


class CfrError(ValueError):
    """Base class for CFR codec errors."""


class CfrFormatError(CfrError):
    """Structural violation found while decoding a blob."""

    def __init__(self, message: str, offset: int = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} (at offset 0x{offset:x})"
        super().__init__(message)


class CfrTagMismatchError(CfrFormatError):
    """A record the decoder had to interpret carries the wrong tag."""

    def __init__(self, expected: int, actual: int, offset: int = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"expected a '{tag_to_string(expected)}' (tag 0x{expected:x}) but "
            f"got a '{tag_to_string(actual)}' (tag 0x{actual:x}) instead",
            offset)


class CfrChecksumError(CfrError):
    """Stored root checksum does not match the recomputed one."""

    def __init__(self, stored: int, computed: int):
        self.stored = stored
        self.computed = computed
        super().__init__(
            f"Checksum mismatch: stored 0x{stored:08x}, computed 0x{computed:08x}")


class CfrChecksumWarning(UserWarning):
    """Checksum mismatch reported under the advisory checksum policy."""


class CfrEncodeError(CfrError):
    """Fatal condition while serializing an option tree."""


def tag_to_string(tag: int) -> str:
    """Human readable name of a tag, tolerating unknown values."""
    try:
        return TAG_NAMES[CfrTag(tag)]
    except ValueError:
        return f"UNKNOWN (0x{tag:x})"


def is_known_tag(tag: int) -> bool:
    try:
        CfrTag(tag)
    except ValueError:
        return False
    return True


def flags_to_string(flags: int) -> str:
    """Render flags as '0x5 (read-only, suppressed)'."""
    names = [text for flag, text in FLAG_NAMES if flags & flag]
    if flags == 0:
        names.append('none')
    return f"0x{flags:x} ({', '.join(names)})"


def align_up(value: int, align: int = ENTRY_ALIGN) -> int:
    return (value + align - 1) & ~(align - 1)


def is_aligned(value: int, align: int = ENTRY_ALIGN) -> bool:
    return value & (align - 1) == 0
