"""
Command-line tests for cfr_read (cfr_dump.py), cfr_to_html and cfr_write.

Each tool is driven through main(argv) and judged by exit code, stdout,
stderr and the files it leaves behind.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

import cfr_dump
import cfr_to_html
import cfr_write
from cfr_decoder import decode_cfr
from cfr_encoder import encode_setup_menu
from cfr_file import read_cfr_file
from cfr_format import CfrChecksumWarning
from cfr_menu_loader import load_setup_menu

MENUS_DIR = Path(__file__).parent.parent / 'menus'

pytestmark = pytest.mark.integration


@pytest.fixture
def bad_checksum_file(tmp_path, mixed_blob):
    blob = bytearray(mixed_blob)
    blob[8] ^= 0x55
    path = tmp_path / 'bad.cfr'
    path.write_bytes(bytes(blob))
    return path


class TestCfrRead:

    def test_dump(self, blob_file, capsys):
        assert cfr_dump.main([str(blob_file)]) == 0
        out = capsys.readouterr().out
        assert out.startswith("CFR 'Root record':")
        assert "CFR 'Enum option':" in out
        assert out.rstrip().endswith(f"size:    {blob_file.stat().st_size}")

    def test_missing_file(self, tmp_path, capsys):
        missing = tmp_path / 'missing.cfr'
        assert cfr_dump.main([str(missing)]) == 1
        captured = capsys.readouterr()
        assert captured.out == ''
        assert f"Error reading '{missing}'" in captured.err

    def test_not_a_cfr_file(self, tmp_path, capsys):
        path = tmp_path / 'text.cfr'
        path.write_text('definitely not a CFR blob')
        assert cfr_dump.main([str(path)]) == 1
        assert 'is not a CFR root' in capsys.readouterr().err

    def test_checksum_mismatch(self, bad_checksum_file, capsys):
        assert cfr_dump.main([str(bad_checksum_file)]) == 1
        captured = capsys.readouterr()
        assert captured.out == ''
        assert 'Checksum mismatch' in captured.err

    def test_ignore_checksum(self, bad_checksum_file, capsys):
        with pytest.warns(CfrChecksumWarning):
            assert cfr_dump.main([str(bad_checksum_file), '--ignore-checksum']) == 0
        assert 'MISMATCH' in capsys.readouterr().out

    def test_structural_error(self, tmp_path, mixed_blob, capsys):
        blob = bytearray(mixed_blob)
        blob[16] = 0x03  # form size no longer a multiple of 4
        path = tmp_path / 'broken.cfr'
        path.write_bytes(bytes(blob))
        assert cfr_dump.main([str(path), '--ignore-checksum']) == 1
        captured = capsys.readouterr()
        assert captured.out == ''
        assert captured.err.startswith('Error: ')


class TestCfrToHtml:

    def test_stdout(self, blob_file, capsys):
        assert cfr_to_html.main([str(blob_file)]) == 0
        out = capsys.readouterr().out
        assert out.startswith('<!DOCTYPE html>')
        assert out.rstrip().endswith('</html>')

    def test_output_file(self, blob_file, tmp_path, capsys):
        output = tmp_path / 'menu.html'
        assert cfr_to_html.main([str(blob_file), str(output), '--stylesheet', 'menu.css']) == 0
        assert capsys.readouterr().out == ''
        page = output.read_text(encoding='utf-8')
        assert "href='menu.css'" in page
        assert "<select id='object-5' name='primary_display'>" in page

    def test_no_partial_output(self, bad_checksum_file, tmp_path, capsys):
        output = tmp_path / 'menu.html'
        assert cfr_to_html.main([str(bad_checksum_file), str(output)]) == 1
        assert not output.exists()
        assert 'Checksum mismatch' in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert cfr_to_html.main([str(tmp_path / 'nope.cfr')]) == 1
        assert 'Error reading' in capsys.readouterr().err


class TestCfrWrite:

    def test_c_array_on_stdout(self, capsys):
        assert cfr_write.main([]) == 0
        captured = capsys.readouterr()
        assert captured.out.startswith(
            'static __attribute__((aligned(4))) uint8_t cfr_raw_data[] = {\n')
        assert captured.out.endswith('};\n')
        assert captured.err.startswith('CFR: Written ')
        assert 'bytes of CFR structures, with CRC32 0x' in captured.err

    def test_binary_output(self, tmp_path, capsys):
        output = tmp_path / 'board.cfr'
        assert cfr_write.main([str(output)]) == 0
        err = capsys.readouterr().err
        assert f"Saving to '{output}'" in err

        blob = read_cfr_file(output)
        assert blob == encode_setup_menu(cfr_write.board_setup_menu())
        assert f"Written {len(blob)} bytes" in err
        assert decode_cfr(blob).checksum_valid

    def test_yaml_menu(self, tmp_path):
        menu = MENUS_DIR / 'atlas_board.yaml'
        output = tmp_path / 'atlas.cfr'
        assert cfr_write.main(['-m', str(menu), str(output)]) == 0
        assert read_cfr_file(output) == encode_setup_menu(load_setup_menu(menu))

    def test_written_blob_reads_back(self, tmp_path, capsys):
        output = tmp_path / 'board.cfr'
        cfr_write.main([str(output)])
        capsys.readouterr()
        assert cfr_dump.main([str(output)]) == 0
        assert '"Power on (S0)"' in capsys.readouterr().out

    def test_max_size_exceeded(self, tmp_path, capsys):
        output = tmp_path / 'board.cfr'
        assert cfr_write.main([str(output), '--max-size', '128']) == 1
        assert 'exceeds buffer of 128 bytes' in capsys.readouterr().err
        assert not output.exists()

    def test_invalid_menu(self, tmp_path, capsys):
        menu = tmp_path / 'bad.yaml'
        menu.write_text('forms:\n  - ui_name: Main\n    objects:\n      - kind: slider\n')
        assert cfr_write.main(['-m', str(menu)]) == 1
        captured = capsys.readouterr()
        assert captured.out == ''
        assert "unknown kind 'slider'" in captured.err

    def test_malformed_yaml(self, tmp_path, capsys):
        menu = tmp_path / 'bad.yaml'
        menu.write_text('forms: [unclosed\n')
        assert cfr_write.main(['-m', str(menu)]) == 1
        assert capsys.readouterr().err.startswith('Error: ')

    def test_missing_menu(self, tmp_path, capsys):
        assert cfr_write.main(['-m', str(tmp_path / 'nope.yaml')]) == 1
        assert 'Error reading' in capsys.readouterr().err

    def test_menu_not_utf8(self, tmp_path, capsys):
        menu = tmp_path / 'latin1.yaml'
        menu.write_bytes(b'forms: [{ui_name: \xff\xfe}]\n')
        assert cfr_write.main(['-m', str(menu)]) == 1
        captured = capsys.readouterr()
        assert captured.out == ''
        assert captured.err.startswith('Error: ')
        assert 'utf-8' in captured.err
