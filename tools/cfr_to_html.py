#!/usr/bin/env python3
"""
cfr_to_html.py - Render a CFR blob as an HTML setup form

Each top-level form becomes a radio-button tab holding a table with one row
per option:

    bool     -> <input type='checkbox'>
    number   -> <input type='number'>
    varchar  -> <input type='text'>
    enum     -> <select> with the default value selected
    comment  -> <span>
    form     -> nested <div> with its own table

Flags become attributes: read-only -> readonly, grayed out -> disabled,
suppressed -> hidden. Volatile has no HTML equivalent.

Usage:
    python tools/cfr_to_html.py menu.cfr
    python tools/cfr_to_html.py menu.cfr menu.html
"""

import argparse
import sys
from html import escape
from pathlib import Path
from typing import List, Optional

from cfr_decoder import (
    CfrVisitor, ChecksumPolicy, ChildSequence, RootRecord, FormRecord,
    EnumOptionRecord, EnumValueRecord, NumberOptionRecord, BoolOptionRecord,
    VarcharOptionRecord, CommentRecord, decode_cfr,
)
from cfr_file import read_cfr_file
from cfr_format import CfrFlags, CfrError

STYLESHEET = 'style.css'

FLAG_ATTRIBUTES = [
    (CfrFlags.READONLY, ' readonly'),
    (CfrFlags.GRAYOUT, ' disabled'),
    (CfrFlags.SUPPRESS, ' hidden'),
]


def flag_attributes(flags: int) -> str:
    return ''.join(attr for flag, attr in FLAG_ATTRIBUTES if flags & flag)


class CfrHtmlRenderer(CfrVisitor):
    """Visitor writing an HTML page into a list of lines."""

    def __init__(self, stylesheet: str = STYLESHEET):
        self.stylesheet = stylesheet
        self.lines: List[str] = []
        self.depth = 0
        self.tab_index = 0
        self.form_depth = 0
        self._enum_default: Optional[int] = None

    def _emit(self, text: str) -> None:
        self.lines.append('\t' * self.depth + text)

    def _push(self, text: str) -> None:
        self._emit(text)
        self.depth += 1

    def _pop(self, text: str) -> None:
        self.depth -= 1
        self._emit(text)

    def _label_cell(self, object_id: int, ui_name: str) -> None:
        self._push("<td class='ui-name'>")
        self._emit(f"<label for='object-{object_id}'>{escape(ui_name)}</label>")
        self._pop("</td>")

    def _help_cell(self, helptext: str) -> None:
        self._push("<td>")
        self._emit(f"<span>{escape(helptext)}</span>")
        self._pop("</td>")

    def _input_row(self, record, control: str) -> None:
        self._push("<tr>")
        self._label_cell(record.object_id, record.ui_name)
        self._push("<td class='ui-input'>")
        self._emit(control)
        self._pop("</td>")
        self._help_cell(record.ui_helptext)
        self._pop("</tr>")

    def visit_root(self, record: RootRecord, children: ChildSequence) -> None:
        self._emit("<!DOCTYPE html>")
        self._push("<html>")
        self._push("<head>")
        self._emit(f"<link rel='stylesheet' href='{escape(self.stylesheet, quote=True)}'>")
        self._pop("</head>")
        self._push("<body>")
        self._push("<label>checksum")
        self._emit(f"<input type='text' name='checksum' value='0x{record.checksum:08x}' readonly>")
        self._pop("</label>")
        self._push("<div class='tabs'>")
        children()
        self._pop("</div>")
        self._pop("</body>")
        self._pop("</html>")

    def visit_form(self, record: FormRecord, children: ChildSequence) -> None:
        ui_name = escape(record.ui_name)
        flags = flag_attributes(record.flags)

        if self.form_depth == 0:
            self.tab_index += 1
            checked = ' checked' if self.tab_index == 1 else ''
            self._push(f"<div class='tab' id='object-{record.object_id}'{flags}>")
            self._emit(f"<input type='radio' id='tab-{record.object_id}' name='tab-group'{checked}>")
            self._emit(f"<label class='tab-label' for='tab-{record.object_id}'>{ui_name}</label>")
            self._push("<div class='tab-content'>")
        else:
            self._push("<tr>")
            self._push("<td colspan='3'>")
            self._push(f"<div class='form' id='object-{record.object_id}'{flags}>")
            self._emit(f"<span class='form-name'>{ui_name}</span>")

        self._push("<table>")
        self.form_depth += 1
        children()
        self.form_depth -= 1
        self._pop("</table>")

        if self.form_depth == 0:
            self._pop("</div>")
            self._pop("</div>")
        else:
            self._pop("</div>")
            self._pop("</td>")
            self._pop("</tr>")

    def visit_enum_option(self, record: EnumOptionRecord, children: ChildSequence) -> None:
        self._push("<tr>")
        self._label_cell(record.object_id, record.ui_name)
        self._push("<td class='ui-input'>")
        self._push(f"<select id='object-{record.object_id}' "
                   f"name='{escape(record.opt_name, quote=True)}'{flag_attributes(record.flags)}>")
        self._enum_default = record.default_value
        children()
        self._enum_default = None
        self._pop("</select>")
        self._pop("</td>")
        self._help_cell(record.ui_helptext)
        self._pop("</tr>")

    def visit_enum_value(self, record: EnumValueRecord) -> None:
        selected = ' selected' if record.value == self._enum_default else ''
        self._emit(f"<option value='{record.value}'{selected}>{escape(record.ui_name)}</option>")

    def visit_number_option(self, record: NumberOptionRecord) -> None:
        self._input_row(record, (
            f"<input type='number' id='object-{record.object_id}' "
            f"name='{escape(record.opt_name, quote=True)}' value='{record.default_value}'"
            f"{flag_attributes(record.flags)}>"))

    def visit_bool_option(self, record: BoolOptionRecord) -> None:
        checked = ' checked' if record.default_value else ''
        self._input_row(record, (
            f"<input type='checkbox' id='object-{record.object_id}' "
            f"name='{escape(record.opt_name, quote=True)}'{checked}"
            f"{flag_attributes(record.flags)}>"))

    def visit_varchar_option(self, record: VarcharOptionRecord) -> None:
        self._input_row(record, (
            f"<input type='text' id='object-{record.object_id}' "
            f"name='{escape(record.opt_name, quote=True)}' "
            f"value='{escape(record.default_value, quote=True)}'"
            f"{flag_attributes(record.flags)}>"))

    def visit_comment(self, record: CommentRecord) -> None:
        self._push("<tr>")
        self._push("<td class='ui-name' colspan='2'>")
        self._emit(f"<span id='object-{record.object_id}'{flag_attributes(record.flags)}>"
                   f"{escape(record.ui_name)}</span>")
        self._pop("</td>")
        self._help_cell(record.ui_helptext)
        self._pop("</tr>")


def render_html(data: bytes, checksum_policy: ChecksumPolicy = ChecksumPolicy.STRICT,
                stylesheet: str = STYLESHEET) -> str:
    """Decode a blob and return the HTML page."""
    renderer = CfrHtmlRenderer(stylesheet=stylesheet)
    decode_cfr(data, renderer, checksum_policy=checksum_policy)
    return '\n'.join(renderer.lines) + '\n'


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Render a CFR file as an HTML form')
    parser.add_argument('input', help='Input CFR file')
    parser.add_argument('output', nargs='?', type=Path,
                        help='Output HTML file (default: stdout)')
    parser.add_argument('--stylesheet', default=STYLESHEET,
                        help=f'Stylesheet linked from the page (default: {STYLESHEET})')
    parser.add_argument('--ignore-checksum', action='store_true',
                        help='Report a checksum mismatch as a warning instead of failing')
    args = parser.parse_args(argv)

    policy = ChecksumPolicy.WARN if args.ignore_checksum else ChecksumPolicy.STRICT
    try:
        data = read_cfr_file(args.input)
        page = render_html(data, checksum_policy=policy, stylesheet=args.stylesheet)
    except OSError as e:
        print(f"Error reading '{args.input}': {e}", file=sys.stderr)
        return 1
    except CfrError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.output:
        try:
            args.output.write_text(page, encoding='utf-8')
        except OSError as e:
            print(f"Error writing '{args.output}': {e}", file=sys.stderr)
            return 1
    else:
        sys.stdout.write(page)
    return 0


if __name__ == '__main__':
    sys.exit(main())
