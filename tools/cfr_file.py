#!/usr/bin/env python3
"""
cfr_file.py - Persisted CFR blobs

A standalone CFR file is exactly one root record: the 8-byte root header
followed by size - 8 further bytes. Loading reads the header first, checks
the root tag, then reads the full `size` bytes from the start.

Usage:
    from cfr_file import read_cfr_file, write_cfr_file, format_c_array

    blob = read_cfr_file('menu.cfr')
    print(format_c_array(blob))
"""

import struct
from pathlib import Path
from typing import Union

from cfr_format import CfrTag, CfrFormatError, RECORD_HEADER_FMT, RECORD_HEADER_LEN

C_ARRAY_NAME = 'cfr_raw_data'
C_ARRAY_BYTES_PER_LINE = 16


def read_cfr_file(path: Union[str, Path]) -> bytes:
    """Load one CFR blob from disk.

    Raises OSError when the file cannot be opened or read and
    CfrFormatError when it is truncated or not a CFR root.
    """
    with open(path, 'rb') as f:
        header = f.read(RECORD_HEADER_LEN)
        if len(header) < RECORD_HEADER_LEN:
            raise CfrFormatError("Unexpected end of file while reading record")

        tag, size = struct.unpack(RECORD_HEADER_FMT, header)
        if tag != CfrTag.ROOT:
            raise CfrFormatError(f"Root record tag 0x{tag:x} is not a CFR root")

        f.seek(0)
        data = f.read(size)
        if len(data) != size:
            raise CfrFormatError(
                f"Unexpected end of file while reading data "
                f"(expected {size} bytes, got {len(data)})")

    return data


def write_cfr_file(path: Union[str, Path], data: bytes) -> None:
    Path(path).write_bytes(data)


def format_c_array(data: bytes, name: str = C_ARRAY_NAME) -> str:
    """Render a blob as a C byte array literal, 16 bytes per line."""
    lines = [f"static __attribute__((aligned(4))) uint8_t {name}[] = {{"]
    for pos in range(0, len(data), C_ARRAY_BYTES_PER_LINE):
        chunk = data[pos:pos + C_ARRAY_BYTES_PER_LINE]
        lines.append('\t' + ' '.join(f"0x{b:02x}," for b in chunk))
    lines.append("};")
    return '\n'.join(lines) + '\n'
