#!/usr/bin/env python3
"""
cfr_encoder.py - Serialize a setup menu option tree into a CFR blob

Design Rationale
----------------
A record's size covers all of its children, and children are variable
length, so no size is known until the record is finished. Every record is
therefore written as:

    1. reserve the header and fixed fields (size = placeholder)
    2. encode the children in wire order
    3. pad to the 4-byte entry alignment
    4. back-patch size = end - start into the reserved header

The root is finished the same way, then its checksum is computed over the
whole blob with the checksum field zero and patched in last.

Usage:
    from cfr_encoder import encode_setup_menu

    blob = encode_setup_menu(root)
"""

import struct
from typing import Optional, Union

from cfr_checksum import root_checksum, ROOT_CHECKSUM_OFFSET
from cfr_format import (
    CfrTag, CfrEncodeError, ENTRY_ALIGN, U32_MAX, MAX_FORM_DEPTH,
    ROOT_FMT, FORM_FMT, ENUM_VALUE_FMT, NUMERIC_OPTION_FMT,
    VARCHAR_OPTION_FMT, COMMENT_FMT, VARBINARY_FMT,
    align_up,
)
from cfr_tree import (
    SetupMenuRoot, Form, EnumOption, EnumValue, NumberOption, BoolOption,
    VarcharOption, CommentOption, OptionObject,
)

# Placeholder written into size fields until the record is finished
SIZE_PLACEHOLDER = 0


class CfrEncoder:
    """Encodes one option tree per call into a growable buffer."""

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size
        self.buf = bytearray()
        self.depth = 0

    # ------------------------------------------------------------------
    # Low-level record helpers
    # ------------------------------------------------------------------

    def _begin_record(self, fmt: str, tag: int, *fields: int) -> int:
        """Write a record's fixed part with a placeholder size.

        Returns the record start offset, to be passed to _end_record().
        """
        for value in fields:
            self._check_u32(value, tag)
        start = len(self.buf)
        self.buf.extend(struct.pack(fmt, tag, SIZE_PLACEHOLDER, *fields))
        return start

    def _end_record(self, start: int) -> int:
        """Pad to alignment and back-patch the record size."""
        padded = align_up(len(self.buf), ENTRY_ALIGN)
        self.buf.extend(bytes(padded - len(self.buf)))

        size = self._record_size(start, len(self.buf))
        if self.max_size is not None and len(self.buf) > self.max_size:
            raise CfrEncodeError(
                f"CFR blob exceeds buffer of {self.max_size} bytes "
                f"(needs at least {len(self.buf)})")

        struct.pack_into('<I', self.buf, start + 4, size)
        return size

    @staticmethod
    def _record_size(start: int, end: int) -> int:
        if start > end or end - start > U32_MAX:
            # Only reachable through a cursor bug or a >4 GiB tree
            raise CfrEncodeError(f"bad record size (start: 0x{start:x}, end: 0x{end:x})")
        return end - start

    @staticmethod
    def _check_u32(value: int, tag: int) -> None:
        if not isinstance(value, int) or not 0 <= value <= U32_MAX:
            raise CfrEncodeError(
                f"Field value {value!r} of record 0x{tag:x} does not fit in 32 bits")

    @staticmethod
    def _check_object_id(obj) -> None:
        if obj.object_id == 0:
            raise CfrEncodeError(
                f"Object '{obj.ui_name}' has object ID 0, which is reserved")

    # ------------------------------------------------------------------
    # String leaves
    # ------------------------------------------------------------------

    def _write_varchar(self, string: str, tag: CfrTag) -> int:
        if string is None:
            raise CfrEncodeError(f"Missing required string for tag 0x{tag:x}")
        if not isinstance(string, str):
            raise CfrEncodeError(
                f"String for tag 0x{tag:x} must be str, got {type(string).__name__}")
        data = string.encode('utf-8')
        if b'\x00' in data:
            raise CfrEncodeError(f"String {string!r} contains a NUL byte")
        data += b'\x00'

        start = len(self.buf)
        self.buf.extend(struct.pack(VARBINARY_FMT, tag, SIZE_PLACEHOLDER, len(data)))
        self.buf.extend(data)
        return self._end_record(start)

    def _write_default_value(self, string: str) -> int:
        return self._write_varchar(string, CfrTag.VARCHAR_DEF_VALUE)

    def _write_opt_name(self, string: str) -> int:
        return self._write_varchar(string, CfrTag.VARCHAR_OPT_NAME)

    def _write_ui_name(self, string: str) -> int:
        return self._write_varchar(string, CfrTag.VARCHAR_UI_NAME)

    def _write_ui_helptext(self, string: Optional[str]) -> int:
        """Help text is optional: nothing at all is written when empty."""
        if not string:
            return 0
        return self._write_varchar(string, CfrTag.VARCHAR_UI_HELPTEXT)

    # ------------------------------------------------------------------
    # Option records
    # ------------------------------------------------------------------

    def _write_enum_value(self, value: EnumValue) -> int:
        start = self._begin_record(ENUM_VALUE_FMT, CfrTag.ENUM_VALUE, value.value)
        self._write_ui_name(value.ui_name)
        return self._end_record(start)

    def _write_numeric_option(self, tag: CfrTag, obj, default_value: int) -> int:
        self._check_object_id(obj)
        start = self._begin_record(NUMERIC_OPTION_FMT, tag, obj.object_id,
                                   int(obj.flags), default_value)
        self._write_opt_name(obj.opt_name)
        self._write_ui_name(obj.ui_name)
        self._write_ui_helptext(obj.ui_helptext)

        if tag == CfrTag.OPTION_ENUM:
            for value in obj.values:
                self._write_enum_value(value)

        return self._end_record(start)

    def _write_varchar_option(self, obj: VarcharOption) -> int:
        self._check_object_id(obj)
        start = self._begin_record(VARCHAR_OPTION_FMT, CfrTag.OPTION_VARCHAR,
                                   obj.object_id, int(obj.flags))
        self._write_default_value(obj.default_value)
        self._write_opt_name(obj.opt_name)
        self._write_ui_name(obj.ui_name)
        self._write_ui_helptext(obj.ui_helptext)
        return self._end_record(start)

    def _write_comment(self, obj: CommentOption) -> int:
        self._check_object_id(obj)
        start = self._begin_record(COMMENT_FMT, CfrTag.OPTION_COMMENT,
                                   obj.object_id, int(obj.flags))
        self._write_ui_name(obj.ui_name)
        self._write_ui_helptext(obj.ui_helptext)
        return self._end_record(start)

    def _write_form(self, form: Form) -> int:
        self._check_object_id(form)
        if self.depth >= MAX_FORM_DEPTH:
            raise CfrEncodeError(
                f"Form '{form.ui_name}' is nested deeper than {MAX_FORM_DEPTH} levels")
        start = self._begin_record(FORM_FMT, CfrTag.OPTION_FORM,
                                   form.object_id, int(form.flags))
        self._write_ui_name(form.ui_name)
        self.depth += 1
        try:
            for obj in form.objects:
                self._write_object(obj)
        finally:
            self.depth -= 1
        return self._end_record(start)

    def _write_object(self, obj: OptionObject) -> int:
        if isinstance(obj, EnumOption):
            return self._write_numeric_option(CfrTag.OPTION_ENUM, obj, obj.default_value)
        elif isinstance(obj, NumberOption):
            return self._write_numeric_option(CfrTag.OPTION_NUMBER, obj, obj.default_value)
        elif isinstance(obj, BoolOption):
            return self._write_numeric_option(CfrTag.OPTION_BOOL, obj,
                                              1 if obj.default_value else 0)
        elif isinstance(obj, VarcharOption):
            return self._write_varchar_option(obj)
        elif isinstance(obj, CommentOption):
            return self._write_comment(obj)
        elif isinstance(obj, Form):
            return self._write_form(obj)
        raise CfrEncodeError(f"Unknown setup menu object kind {type(obj).__name__}")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def encode(self, root: SetupMenuRoot) -> bytes:
        """Encode a complete setup menu, returning the checksummed blob."""
        self.buf = bytearray()
        self.depth = 0

        start = self._begin_record(ROOT_FMT, CfrTag.ROOT, 0)
        for form in root.forms:
            if not isinstance(form, Form):
                raise CfrEncodeError(
                    f"Root may only contain forms, got {type(form).__name__}")
            self._write_form(form)
        size = self._end_record(start)

        struct.pack_into('<I', self.buf, start + ROOT_CHECKSUM_OFFSET, 0)
        checksum = root_checksum(self.buf, size)
        struct.pack_into('<I', self.buf, start + ROOT_CHECKSUM_OFFSET, checksum)

        return bytes(self.buf)


def encode_setup_menu(root: SetupMenuRoot, max_size: Optional[int] = None) -> bytes:
    """Encode a setup menu tree to a CFR blob."""
    return CfrEncoder(max_size=max_size).encode(root)


def write_setup_menu_into(buffer: Union[bytearray, memoryview], root: SetupMenuRoot) -> int:
    """Encode into a caller-allocated buffer. Returns the number of bytes used."""
    view = memoryview(buffer)
    blob = CfrEncoder(max_size=len(view)).encode(root)
    view[:len(blob)] = blob
    return len(blob)
