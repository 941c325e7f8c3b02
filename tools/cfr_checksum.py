#!/usr/bin/env python3
"""
cfr_checksum.py - Bit-serial CRC used to protect CFR blobs

The CFR root record carries a 32-bit checksum of the whole structure,
computed with the checksum field itself set to zero.

Algorithm:
    polynomial 0x04C11DB7, MSB-first, seed 0, no reflection, no final XOR.
    Each byte is XORed into bits 24..31 of the running value, then 8
    shift steps follow, XORing in the polynomial whenever bit 31 was set.

Usage:
    from cfr_checksum import cfr_checksum

    crc = cfr_checksum(blob)
"""

from typing import Union

CRC32_POLY = 0x04C11DB7
CRC32_MASK = 0xFFFFFFFF

# Offset and width of the checksum field inside the root record
ROOT_CHECKSUM_OFFSET = 8
ROOT_CHECKSUM_SIZE = 4


def crc32_byte(crc: int, byte: int) -> int:
    """Fold one byte into the running CRC."""
    crc ^= (byte & 0xFF) << 24
    for _ in range(8):
        if crc & 0x80000000:
            crc = ((crc << 1) ^ CRC32_POLY) & CRC32_MASK
        else:
            crc = (crc << 1) & CRC32_MASK
    return crc


def cfr_checksum(data: Union[bytes, bytearray, memoryview], length: int = None) -> int:
    """Compute the CFR checksum over the first `length` bytes of data.

    With no length the whole buffer is covered.
    """
    view = memoryview(data)
    if length is None:
        length = len(view)
    if length < 0 or length > len(view):
        raise ValueError(f"Checksum length {length} outside buffer of {len(view)} bytes")

    crc = 0
    for byte in view[:length].tobytes():
        crc = crc32_byte(crc, byte)
    return crc


def root_checksum(data: Union[bytes, bytearray, memoryview], size: int) -> int:
    """Checksum of a root record spanning `size` bytes, checksum field as zero."""
    view = memoryview(data)
    if size < ROOT_CHECKSUM_OFFSET + ROOT_CHECKSUM_SIZE or size > len(view):
        raise ValueError(f"Root extent of {size} bytes does not fit buffer of {len(view)} bytes")

    crc = 0
    end = ROOT_CHECKSUM_OFFSET + ROOT_CHECKSUM_SIZE
    for byte in view[:ROOT_CHECKSUM_OFFSET].tobytes():
        crc = crc32_byte(crc, byte)
    for _ in range(ROOT_CHECKSUM_SIZE):
        crc = crc32_byte(crc, 0)
    for byte in view[end:size].tobytes():
        crc = crc32_byte(crc, byte)
    return crc
