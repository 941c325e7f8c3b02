"""
Tests for the debug dump and HTML renderers.
"""

import re
import struct
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from cfr_checksum import root_checksum
from cfr_decoder import ChecksumPolicy, decode_cfr
from cfr_dump import CfrDumpPrinter, dump_cfr
from cfr_format import (
    CfrFlags, CfrChecksumError, CfrChecksumWarning, CfrFormatError,
    flags_to_string, tag_to_string,
)
from cfr_to_html import flag_attributes, render_html


def corrupt_checksum(blob):
    blob = bytearray(blob)
    blob[8] ^= 0xFF
    return bytes(blob)


class TestFormatHelpers:

    def test_tag_names(self):
        assert tag_to_string(0x100) == 'Root record'
        assert tag_to_string(0x10B) == 'Option comment'
        assert tag_to_string(0x1FF) == 'UNKNOWN (0x1ff)'

    def test_flags_to_string(self):
        assert flags_to_string(0) == '0x0 (none)'
        assert flags_to_string(CfrFlags.READONLY | CfrFlags.VOLATILE) == '0x9 (read-only, volatile)'
        assert flags_to_string(0x6) == '0x6 (grayed out, suppressed)'

    def test_flag_attributes(self):
        assert flag_attributes(0) == ''
        assert flag_attributes(CfrFlags.VOLATILE) == ''
        assert flag_attributes(CfrFlags.READONLY | CfrFlags.GRAYOUT | CfrFlags.SUPPRESS) == \
            ' readonly disabled hidden'


class TestDump:
    """Structural dump of the mixed sample menu."""

    def test_root_block(self, mixed_blob):
        output = dump_cfr(mixed_blob)
        lines = output.splitlines()
        assert lines[0] == "CFR 'Root record':"
        assert re.match(r'tag:\s+0x100$', lines[1])
        assert re.match(rf'size:\s+{len(mixed_blob)}$', lines[2])
        assert re.match(r'checksum:\s+0x[0-9a-f]{8} \(valid\)$', lines[3])
        assert lines[4] == 'form list:'

    def test_footer(self, mixed_blob):
        lines = dump_cfr(mixed_blob + bytes(8)).splitlines()
        assert lines[-2] == f"length:  {len(mixed_blob) + 8}"
        assert lines[-1] == f"size:    {len(mixed_blob)}"

    def test_option_fields(self, mixed_blob):
        output = dump_cfr(mixed_blob)
        assert "CFR 'Varchar option':" in output
        assert re.search(r'flags:\s+0x9 \(read-only, volatile\)', output)
        assert re.search(r'defval:\s+42', output)
        assert re.search(r'data:\s+"serialnumber"', output)
        assert re.search(r'data length:\s+13', output)
        assert 'enum values:' in output
        assert 'object list:' in output

    def test_absent_help_text(self, minimal_blob):
        output = dump_cfr(minimal_blob)
        assert '\tUI help text: <not found>' in output

    def test_nesting_braces(self, minimal_blob):
        lines = dump_cfr(minimal_blob).splitlines()
        assert lines.count('{') == 1
        assert lines.count('};') == 1
        assert '\t{' in lines
        assert '\t},' in lines

    def test_unknown_records_listed(self):
        blob = bytearray(struct.pack('<IIIII', 0x100, 20, 0, 0x1234, 8))
        struct.pack_into('<I', blob, 8, root_checksum(blob, 20))
        output = dump_cfr(bytes(blob))
        assert "CFR 'UNKNOWN (0x1234)':" in output

    def test_checksum_mismatch_strict(self, mixed_blob):
        with pytest.raises(CfrChecksumError):
            dump_cfr(corrupt_checksum(mixed_blob))

    def test_checksum_mismatch_warn(self, mixed_blob):
        with pytest.warns(CfrChecksumWarning):
            output = dump_cfr(corrupt_checksum(mixed_blob), checksum_policy=ChecksumPolicy.WARN)
        assert 'MISMATCH, computed 0x' in output

    def test_custom_indent(self, minimal_blob):
        printer = CfrDumpPrinter(indent='  ')
        decode_cfr(minimal_blob, printer)
        assert "  CFR 'Form':" in printer.lines


class TestHtml:
    """HTML form for the mixed sample menu."""

    @pytest.fixture
    def page(self, mixed_blob):
        return render_html(mixed_blob)

    def test_document_skeleton(self, page):
        lines = page.splitlines()
        assert lines[0] == '<!DOCTYPE html>'
        assert lines[-1] == '</html>'
        assert "<link rel='stylesheet' href='style.css'>" in page
        assert re.search(r"<input type='text' name='checksum' value='0x[0-9a-f]{8}' readonly>", page)

    def test_tabs(self, page):
        assert "<div class='tab' id='object-1'>" in page
        assert "<input type='radio' id='tab-1' name='tab-group' checked>" in page
        assert "<label class='tab-label' for='tab-1'>Main</label>" in page
        assert "<input type='radio' id='tab-8' name='tab-group'>" in page

    def test_nested_form(self, page):
        assert "<td colspan='3'>" in page
        assert "<div class='form' id='object-6' disabled>" in page
        assert "<span class='form-name'>Advanced</span>" in page

    def test_enum_select(self, page):
        assert "<select id='object-5' name='primary_display'>" in page
        assert "<option value='0'>Intel iGPU</option>" in page
        assert "<option value='3' selected>Auto</option>" in page

    def test_inputs(self, page):
        assert "<input type='text' id='object-2' name='serial_number' " \
               "value='serialnumber' readonly>" in page
        assert "<input type='number' id='object-4' name='profile' value='42'>" in page
        assert "<input type='checkbox' id='object-7' name='vmx' checked>" in page
        assert "<label for='object-4'>Profile code</label>" in page
        assert "<span>From EEPROM</span>" in page

    def test_comment_escaped(self, page):
        assert "<span id='object-3' hidden>Hello &lt;world&gt;</span>" in page
        assert "<world>" not in page

    def test_balanced_tags(self, page):
        for tag in ('div', 'table', 'tr', 'td', 'select'):
            assert page.count(f'<{tag}') == page.count(f'</{tag}>'), tag

    def test_stylesheet_option(self, mixed_blob):
        page = render_html(mixed_blob, stylesheet='theme.css')
        assert "href='theme.css'" in page

    def test_bad_blob_renders_nothing(self, mixed_blob):
        with pytest.raises(CfrFormatError):
            render_html(mixed_blob[:40])
