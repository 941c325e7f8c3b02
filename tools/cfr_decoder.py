#!/usr/bin/env python3
"""
cfr_decoder.py - Validating CFR decoder with visitor callbacks

The decoder never builds a tree. It walks the blob once, validates every
record as it reaches it, and hands a transient record object to a visitor.
Decoding and presentation are interleaved: container records (root, forms,
enum options) are passed together with a `children` callable, and the
visitor decides when the children are decoded (typically between writing
an opening and a closing line).

If a visitor does not call `children()`, the children are still walked
and validated after its visit method returns, with nothing reported.

Validation performed:
    - every record starts on a 4-byte boundary
    - header fits, size >= 8, size % 4 == 0, record ends inside its parent
    - records the decoder must interpret carry the expected tag
    - child loops consume exactly the parent's declared size
    - string leaves are NUL-terminated UTF-8 of the declared length, and
      their record size is that length padded to 4 bytes
    - forms nest at most MAX_FORM_DEPTH levels
    - the root checksum matches (see ChecksumPolicy)

Usage:
    from cfr_decoder import CfrVisitor, decode_cfr

    class Names(CfrVisitor):
        def visit_bool_option(self, record):
            print(record.opt_name, record.default_value)

    decode_cfr(blob, Names())
"""

import struct
import warnings
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, List, Optional, Tuple

from cfr_checksum import root_checksum
from cfr_format import (
    CfrTag, CfrFormatError, CfrTagMismatchError, CfrChecksumError,
    CfrChecksumWarning, ENTRY_ALIGN, MAX_FORM_DEPTH,
    RECORD_HEADER_FMT, RECORD_HEADER_LEN, ROOT_FMT, ROOT_LEN,
    FORM_FMT, FORM_LEN, ENUM_VALUE_FMT, ENUM_VALUE_LEN,
    NUMERIC_OPTION_FMT, NUMERIC_OPTION_LEN, VARCHAR_OPTION_FMT,
    VARCHAR_OPTION_LEN, COMMENT_FMT, COMMENT_LEN, VARBINARY_FMT,
    VARBINARY_LEN, align_up, is_aligned, is_known_tag, tag_to_string,
)


class ChecksumPolicy(Enum):
    """What to do when the stored root checksum does not match."""
    STRICT = 'strict'  # raise CfrChecksumError before any visitor call
    WARN = 'warn'      # warn with CfrChecksumWarning and keep decoding


# =============================================================================
# Decoded records
# =============================================================================

@dataclass
class RecordHeader:
    """Generic record header, also used for records of unknown kind."""
    tag: int
    size: int
    offset: int

    @property
    def end(self) -> int:
        return self.offset + self.size

    @property
    def kind(self) -> Optional[CfrTag]:
        return CfrTag(self.tag) if is_known_tag(self.tag) else None

    def string_leaf(self, tag: int) -> Optional['CfrString']:
        """The decoded string leaf with this tag, None if absent."""
        for leaf in getattr(self, 'strings', ()):
            if leaf.tag == tag:
                return leaf
        return None


@dataclass
class CfrString(RecordHeader):
    """String leaf. `value` has the terminator stripped."""
    data_length: int
    value: str


@dataclass
class RootRecord(RecordHeader):
    checksum: int
    computed_checksum: int

    @property
    def checksum_valid(self) -> bool:
        return self.checksum == self.computed_checksum


@dataclass
class FormRecord(RecordHeader):
    object_id: int
    flags: int
    ui_name: str
    strings: List[CfrString] = field(default_factory=list)


@dataclass
class EnumValueRecord(RecordHeader):
    value: int
    ui_name: str
    strings: List[CfrString] = field(default_factory=list)


@dataclass
class EnumOptionRecord(RecordHeader):
    object_id: int
    flags: int
    default_value: int
    opt_name: str
    ui_name: str
    ui_helptext: str
    strings: List[CfrString] = field(default_factory=list)


@dataclass
class NumberOptionRecord(RecordHeader):
    object_id: int
    flags: int
    default_value: int
    opt_name: str
    ui_name: str
    ui_helptext: str
    strings: List[CfrString] = field(default_factory=list)


@dataclass
class BoolOptionRecord(RecordHeader):
    object_id: int
    flags: int
    default_value: bool
    opt_name: str
    ui_name: str
    ui_helptext: str
    strings: List[CfrString] = field(default_factory=list)


@dataclass
class VarcharOptionRecord(RecordHeader):
    object_id: int
    flags: int
    default_value: str
    opt_name: str
    ui_name: str
    ui_helptext: str
    strings: List[CfrString] = field(default_factory=list)


@dataclass
class CommentRecord(RecordHeader):
    object_id: int
    flags: int
    ui_name: str
    ui_helptext: str
    strings: List[CfrString] = field(default_factory=list)


# =============================================================================
# Visitor contract
# =============================================================================

class CfrVisitor:
    """Base visitor. Every method is optional.

    Container methods receive `children`, a callable decoding the child
    records into this same visitor. The defaults just descend.
    """

    def visit_root(self, record: RootRecord, children: 'ChildSequence') -> None:
        children()

    def visit_form(self, record: FormRecord, children: 'ChildSequence') -> None:
        children()

    def visit_enum_option(self, record: EnumOptionRecord, children: 'ChildSequence') -> None:
        children()

    def visit_enum_value(self, record: EnumValueRecord) -> None:
        pass

    def visit_number_option(self, record: NumberOptionRecord) -> None:
        pass

    def visit_bool_option(self, record: BoolOptionRecord) -> None:
        pass

    def visit_varchar_option(self, record: VarcharOptionRecord) -> None:
        pass

    def visit_comment(self, record: CommentRecord) -> None:
        pass

    def visit_unknown(self, header: RecordHeader) -> None:
        """A record with a tag outside the vocabulary, skipped by size."""
        pass


class ChildSequence:
    """Deferred decoding of one container's children."""

    def __init__(self, decode: Callable[[CfrVisitor], None], visitor: CfrVisitor):
        self._decode = decode
        self._visitor = visitor
        self.consumed = False

    def __call__(self) -> None:
        if self.consumed:
            raise RuntimeError("Children of this record were already decoded")
        self.consumed = True
        self._decode(self._visitor)

    def finish(self) -> None:
        """Validate the children if the visitor chose not to look at them."""
        if not self.consumed:
            self.consumed = True
            self._decode(CfrVisitor())


# =============================================================================
# Decoder
# =============================================================================

class CfrDecoder:
    """Walks one CFR blob. The blob is copied, the caller may reuse its buffer."""

    def __init__(self, data: bytes, checksum_policy: ChecksumPolicy = ChecksumPolicy.STRICT):
        self.data = bytes(data)
        self.checksum_policy = checksum_policy
        self.depth = 0

    # ------------------------------------------------------------------
    # Headers and fixed fields
    # ------------------------------------------------------------------

    def _read_header(self, offset: int, limit: int, expected: int = None) -> RecordHeader:
        """Read and check a record header that must end at or before limit."""
        if not is_aligned(offset, ENTRY_ALIGN):
            raise CfrFormatError("Record address is not aligned", offset)
        if offset + RECORD_HEADER_LEN > limit:
            raise CfrFormatError("Truncated record header", offset)

        tag, size = struct.unpack_from(RECORD_HEADER_FMT, self.data, offset)
        if expected is not None and tag != expected:
            raise CfrTagMismatchError(expected, tag, offset)

        if size < RECORD_HEADER_LEN:
            raise CfrFormatError(
                f"'{tag_to_string(tag)}' record size {size} is smaller than its header", offset)
        if not is_aligned(size, ENTRY_ALIGN):
            raise CfrFormatError(
                f"'{tag_to_string(tag)}' record size {size} is not a multiple of {ENTRY_ALIGN}",
                offset)
        if offset + size > limit:
            raise CfrFormatError(
                f"'{tag_to_string(tag)}' record of {size} bytes overruns its parent "
                f"by {offset + size - limit} bytes", offset)

        return RecordHeader(tag, size, offset)

    def _read_fixed(self, header: RecordHeader, fmt: str) -> Tuple[int, ...]:
        """Fixed fields following tag and size."""
        length = struct.calcsize(fmt)
        if header.size < length:
            raise CfrFormatError(
                f"'{tag_to_string(header.tag)}' record of {header.size} bytes is too short "
                f"for its {length}-byte fixed part", header.offset)
        return struct.unpack_from(fmt, self.data, header.offset)[2:]

    def _peek_tag(self, offset: int) -> int:
        return struct.unpack_from('<I', self.data, offset)[0]

    @staticmethod
    def _expect_end(cursor: int, header: RecordHeader) -> None:
        if cursor != header.end:
            raise CfrFormatError(
                f"'{tag_to_string(header.tag)}' record declares {header.size} bytes "
                f"but its contents span {cursor - header.offset}", header.offset)

    # ------------------------------------------------------------------
    # String leaves
    # ------------------------------------------------------------------

    def _read_string(self, offset: int, limit: int, tag: CfrTag,
                     strings: List[CfrString]) -> Tuple[str, int]:
        """Decode a string leaf, returning (value, next offset).

        Help text is the only optional string: when the next record is not
        a help text record it resolves to '' and the cursor stays put.
        """
        if tag == CfrTag.VARCHAR_UI_HELPTEXT:
            if offset + RECORD_HEADER_LEN > limit or self._peek_tag(offset) != tag:
                return '', offset
        elif offset >= limit:
            raise CfrFormatError(
                f"expected a '{tag_to_string(tag)}' but reached the end of the enclosing record",
                offset)

        header = self._read_header(offset, limit, expected=tag)
        data_length, = self._read_fixed(header, VARBINARY_FMT)
        if data_length < 1:
            raise CfrFormatError(
                f"'{tag_to_string(tag)}' has zero data length (terminator missing)", offset)
        if VARBINARY_LEN + data_length > header.size:
            raise CfrFormatError(
                f"'{tag_to_string(tag)}' data of {data_length} bytes overruns its "
                f"record of {header.size} bytes", offset)
        if header.size != align_up(VARBINARY_LEN + data_length):
            raise CfrFormatError(
                f"'{tag_to_string(tag)}' record of {header.size} bytes does not match "
                f"its {data_length} bytes of data", offset)

        start = offset + VARBINARY_LEN
        raw = self.data[start:start + data_length]
        if raw[-1] != 0:
            raise CfrFormatError(f"'{tag_to_string(tag)}' is not NUL-terminated", offset)
        text = raw[:-1]
        if b'\x00' in text:
            raise CfrFormatError(f"'{tag_to_string(tag)}' contains an embedded NUL", offset)
        try:
            value = text.decode('utf-8')
        except UnicodeDecodeError as e:
            raise CfrFormatError(f"'{tag_to_string(tag)}' is not valid UTF-8: {e}", offset) from e

        strings.append(CfrString(header.tag, header.size, header.offset, data_length, value))
        return value, header.end

    # ------------------------------------------------------------------
    # Child sections
    # ------------------------------------------------------------------

    def _scan(self, start: int, end: int,
              decode_child: Callable[[int, int, CfrVisitor], int],
              visitor: CfrVisitor) -> None:
        """Decode children until the parent's declared end is reached."""
        cursor = start
        while cursor < end:
            cursor = decode_child(cursor, end, visitor)
        if cursor != end:
            raise CfrFormatError(
                f"Children end at 0x{cursor:x} but the parent ends at 0x{end:x}", cursor)

    def _skip_unknown(self, header: RecordHeader, section: str, visitor: CfrVisitor) -> int:
        if is_known_tag(header.tag):
            raise CfrFormatError(
                f"'{tag_to_string(header.tag)}' record is not allowed in {section}",
                header.offset)
        visitor.visit_unknown(header)
        return header.end

    def _decode_object(self, offset: int, limit: int, visitor: CfrVisitor) -> int:
        """One entry of a form's object list."""
        header = self._read_header(offset, limit)
        if header.tag == CfrTag.OPTION_FORM:
            return self._read_form(header, visitor)
        if header.tag in (CfrTag.OPTION_ENUM, CfrTag.OPTION_NUMBER, CfrTag.OPTION_BOOL):
            return self._read_numeric_option(header, visitor)
        if header.tag == CfrTag.OPTION_VARCHAR:
            return self._read_varchar_option(header, visitor)
        if header.tag == CfrTag.OPTION_COMMENT:
            return self._read_comment(header, visitor)
        return self._skip_unknown(header, 'an object list', visitor)

    def _decode_root_form(self, offset: int, limit: int, visitor: CfrVisitor) -> int:
        """One entry of the root's form list."""
        header = self._read_header(offset, limit)
        if header.tag == CfrTag.OPTION_FORM:
            return self._read_form(header, visitor)
        return self._skip_unknown(header, 'the root form list', visitor)

    def _decode_enum_value_entry(self, offset: int, limit: int, visitor: CfrVisitor) -> int:
        """One entry of an enum option's value list."""
        header = self._read_header(offset, limit)
        if header.tag == CfrTag.ENUM_VALUE:
            return self._read_enum_value(header, visitor)
        return self._skip_unknown(header, 'an enum value list', visitor)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _read_enum_value(self, header: RecordHeader, visitor: CfrVisitor) -> int:
        value, = self._read_fixed(header, ENUM_VALUE_FMT)
        strings: List[CfrString] = []
        cursor = header.offset + ENUM_VALUE_LEN
        ui_name, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_UI_NAME, strings)
        self._expect_end(cursor, header)

        visitor.visit_enum_value(EnumValueRecord(
            header.tag, header.size, header.offset, value, ui_name, strings))
        return header.end

    def _read_numeric_option(self, header: RecordHeader, visitor: CfrVisitor) -> int:
        object_id, flags, default_value = self._read_fixed(header, NUMERIC_OPTION_FMT)
        strings: List[CfrString] = []
        cursor = header.offset + NUMERIC_OPTION_LEN
        opt_name, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_OPT_NAME, strings)
        ui_name, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_UI_NAME, strings)
        helptext, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_UI_HELPTEXT, strings)

        fields = (header.tag, header.size, header.offset, object_id, flags)
        if header.tag == CfrTag.OPTION_ENUM:
            record = EnumOptionRecord(*fields, default_value, opt_name, ui_name, helptext, strings)
            children = ChildSequence(
                partial(self._scan, cursor, header.end, self._decode_enum_value_entry), visitor)
            visitor.visit_enum_option(record, children)
            children.finish()
            return header.end

        self._expect_end(cursor, header)
        if header.tag == CfrTag.OPTION_NUMBER:
            visitor.visit_number_option(NumberOptionRecord(
                *fields, default_value, opt_name, ui_name, helptext, strings))
        else:
            visitor.visit_bool_option(BoolOptionRecord(
                *fields, bool(default_value), opt_name, ui_name, helptext, strings))
        return header.end

    def _read_varchar_option(self, header: RecordHeader, visitor: CfrVisitor) -> int:
        object_id, flags = self._read_fixed(header, VARCHAR_OPTION_FMT)
        strings: List[CfrString] = []
        cursor = header.offset + VARCHAR_OPTION_LEN
        default_value, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_DEF_VALUE, strings)
        opt_name, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_OPT_NAME, strings)
        ui_name, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_UI_NAME, strings)
        helptext, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_UI_HELPTEXT, strings)
        self._expect_end(cursor, header)

        visitor.visit_varchar_option(VarcharOptionRecord(
            header.tag, header.size, header.offset, object_id, flags,
            default_value, opt_name, ui_name, helptext, strings))
        return header.end

    def _read_comment(self, header: RecordHeader, visitor: CfrVisitor) -> int:
        object_id, flags = self._read_fixed(header, COMMENT_FMT)
        strings: List[CfrString] = []
        cursor = header.offset + COMMENT_LEN
        ui_name, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_UI_NAME, strings)
        helptext, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_UI_HELPTEXT, strings)
        self._expect_end(cursor, header)

        visitor.visit_comment(CommentRecord(
            header.tag, header.size, header.offset, object_id, flags,
            ui_name, helptext, strings))
        return header.end

    def _read_form(self, header: RecordHeader, visitor: CfrVisitor) -> int:
        if self.depth >= MAX_FORM_DEPTH:
            raise CfrFormatError(
                f"forms nested deeper than {MAX_FORM_DEPTH} levels", header.offset)
        object_id, flags = self._read_fixed(header, FORM_FMT)
        strings: List[CfrString] = []
        cursor = header.offset + FORM_LEN
        ui_name, cursor = self._read_string(cursor, header.end, CfrTag.VARCHAR_UI_NAME, strings)

        record = FormRecord(header.tag, header.size, header.offset,
                            object_id, flags, ui_name, strings)
        children = ChildSequence(
            partial(self._scan, cursor, header.end, self._decode_object), visitor)
        self.depth += 1
        try:
            visitor.visit_form(record, children)
            children.finish()
        finally:
            self.depth -= 1
        return header.end

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def decode(self, visitor: CfrVisitor = None) -> RootRecord:
        """Validate the whole blob, reporting records to the visitor."""
        if visitor is None:
            visitor = CfrVisitor()

        header = self._read_header(0, len(self.data), expected=CfrTag.ROOT)
        checksum, = self._read_fixed(header, ROOT_FMT)
        computed = root_checksum(self.data, header.size)

        record = RootRecord(header.tag, header.size, header.offset, checksum, computed)
        if not record.checksum_valid:
            if self.checksum_policy == ChecksumPolicy.STRICT:
                raise CfrChecksumError(checksum, computed)
            warnings.warn(
                f"CFR checksum mismatch: stored 0x{checksum:08x}, computed 0x{computed:08x}",
                CfrChecksumWarning, stacklevel=3)

        children = ChildSequence(
            partial(self._scan, header.offset + ROOT_LEN, header.end, self._decode_root_form),
            visitor)
        visitor.visit_root(record, children)
        children.finish()
        return record


def decode_cfr(data: bytes, visitor: CfrVisitor = None,
               checksum_policy: ChecksumPolicy = ChecksumPolicy.STRICT) -> RootRecord:
    """Decode a CFR blob into a visitor. With no visitor it only validates."""
    return CfrDecoder(data, checksum_policy=checksum_policy).decode(visitor)
