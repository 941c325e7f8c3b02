#!/usr/bin/env python3
"""
cfr_dump.py - Structural debug dump of a CFR blob (cfr_read)

Prints every record as a nested, brace-delimited block annotating each
field: tag name and value, size, object ID, flags, default value and every
string leaf with its data length.

Usage:
    python tools/cfr_dump.py menu.cfr
    python tools/cfr_dump.py menu.cfr --ignore-checksum
"""

import argparse
import sys
from typing import List, Optional

from cfr_decoder import (
    CfrVisitor, ChecksumPolicy, ChildSequence, RecordHeader, RootRecord,
    FormRecord, EnumOptionRecord, EnumValueRecord, NumberOptionRecord,
    BoolOptionRecord, VarcharOptionRecord, CommentRecord, decode_cfr,
)
from cfr_file import read_cfr_file
from cfr_format import CfrTag, CfrError, tag_to_string, flags_to_string


class CfrDumpPrinter(CfrVisitor):
    """Visitor collecting the dump as a list of lines."""

    def __init__(self, indent: str = '\t'):
        self.indent = indent
        self.lines: List[str] = []
        self.depth = 0

    def _log(self, text: str) -> None:
        self.lines.append(self.indent * self.depth + text)

    def _prop(self, name: str, value) -> None:
        self._log(f"{name + ':':<12} {value}")

    def _open(self) -> None:
        self._log('{')
        self.depth += 1

    def _close(self) -> None:
        self.depth -= 1
        self._log('},' if self.depth > 0 else '};')

    def _record(self, header: RecordHeader) -> None:
        self._log(f"CFR '{tag_to_string(header.tag)}':")
        self._prop('tag', f"0x{header.tag:x}")
        self._prop('size', header.size)

    def _option(self, record) -> None:
        self._record(record)
        self._prop('object ID', record.object_id)
        self._prop('flags', flags_to_string(record.flags))

    def _string(self, label: str, record: RecordHeader, tag: CfrTag) -> None:
        leaf = record.string_leaf(tag)
        if leaf is None:
            self._log(f"{label}: <not found>")
            return
        self._log(f"{label}:")
        self._open()
        self._record(leaf)
        self._prop('data length', leaf.data_length)
        self._prop('data', f'"{leaf.value}"')
        self._close()

    def _names(self, record) -> None:
        self._string('option name', record, CfrTag.VARCHAR_OPT_NAME)
        self._string('UI name', record, CfrTag.VARCHAR_UI_NAME)
        self._string('UI help text', record, CfrTag.VARCHAR_UI_HELPTEXT)

    def visit_root(self, record: RootRecord, children: ChildSequence) -> None:
        self._record(record)
        status = 'valid' if record.checksum_valid else \
            f"MISMATCH, computed 0x{record.computed_checksum:08x}"
        self._prop('checksum', f"0x{record.checksum:08x} ({status})")
        self._log('form list:')
        children()

    def visit_form(self, record: FormRecord, children: ChildSequence) -> None:
        self._open()
        self._option(record)
        self._string('UI name', record, CfrTag.VARCHAR_UI_NAME)
        self._log('object list:')
        children()
        self._close()

    def visit_enum_option(self, record: EnumOptionRecord, children: ChildSequence) -> None:
        self._open()
        self._option(record)
        self._prop('defval', record.default_value)
        self._names(record)
        self._log('enum values:')
        children()
        self._close()

    def visit_enum_value(self, record: EnumValueRecord) -> None:
        self._open()
        self._record(record)
        self._prop('value', record.value)
        self._string('UI name', record, CfrTag.VARCHAR_UI_NAME)
        self._close()

    def visit_number_option(self, record: NumberOptionRecord) -> None:
        self._open()
        self._option(record)
        self._prop('defval', record.default_value)
        self._names(record)
        self._close()

    def visit_bool_option(self, record: BoolOptionRecord) -> None:
        self._open()
        self._option(record)
        self._prop('defval', int(record.default_value))
        self._names(record)
        self._close()

    def visit_varchar_option(self, record: VarcharOptionRecord) -> None:
        self._open()
        self._option(record)
        self._string('defval', record, CfrTag.VARCHAR_DEF_VALUE)
        self._names(record)
        self._close()

    def visit_comment(self, record: CommentRecord) -> None:
        self._open()
        self._option(record)
        self._string('UI name', record, CfrTag.VARCHAR_UI_NAME)
        self._string('UI help text', record, CfrTag.VARCHAR_UI_HELPTEXT)
        self._close()

    def visit_unknown(self, header: RecordHeader) -> None:
        self._open()
        self._record(header)
        self._close()


def dump_cfr(data: bytes, checksum_policy: ChecksumPolicy = ChecksumPolicy.STRICT) -> str:
    """Decode a blob and return its debug dump."""
    printer = CfrDumpPrinter()
    root = decode_cfr(data, printer, checksum_policy=checksum_policy)
    printer.lines.append(f"length:  {len(data)}")
    printer.lines.append(f"size:    {root.size}")
    return '\n'.join(printer.lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Print a debug dump of a CFR file')
    parser.add_argument('input', help='Input CFR file')
    parser.add_argument('--ignore-checksum', action='store_true',
                        help='Report a checksum mismatch as a warning instead of failing')
    args = parser.parse_args(argv)

    policy = ChecksumPolicy.WARN if args.ignore_checksum else ChecksumPolicy.STRICT
    try:
        data = read_cfr_file(args.input)
        output = dump_cfr(data, checksum_policy=policy)
    except OSError as e:
        print(f"Error reading '{args.input}': {e}", file=sys.stderr)
        return 1
    except CfrError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == '__main__':
    sys.exit(main())
