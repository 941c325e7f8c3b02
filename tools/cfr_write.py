#!/usr/bin/env python3
"""
cfr_write.py - Encode a setup menu into a CFR blob (cfr_write)

Encodes the built-in board menu, or a YAML menu description, and either
saves the blob or prints it as a C byte array.

Usage:
    python tools/cfr_write.py                       # C array on stdout
    python tools/cfr_write.py menu.cfr              # binary file
    python tools/cfr_write.py -m menus/atlas_board.yaml menu.cfr
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from cfr_encoder import encode_setup_menu
from cfr_file import write_cfr_file, format_c_array
from cfr_format import CfrFlags, CfrError
from cfr_menu_loader import MenuDefinitionError, load_setup_menu
from cfr_tree import (
    ObjectIdAllocator, SetupMenuRoot, Form, EnumOption, EnumValue,
    NumberOption, BoolOption, VarcharOption, CommentOption,
)

# Size of the statically allocated table the firmware reserves for CFR
DEFAULT_BUFFER_SIZE = 32 * 1024

NUM_PCIE_SSC_SETTINGS = 20


def board_setup_menu(ids: Optional[ObjectIdAllocator] = None,
                     rt_perf: bool = False, profile_ok: bool = True) -> SetupMenuRoot:
    """The sample board menu: one 'Main' form of CPU and platform options.

    rt_perf selects the real-time performance defaults, which suppress the
    power saving options.
    """
    ids = ids or ObjectIdAllocator()
    perf_suppress = CfrFlags.SUPPRESS if rt_perf else CfrFlags.NONE

    serial_number = VarcharOption(
        ids(), 'serial_number', 'Serial Number',
        default_value='serialnumber',
        flags=CfrFlags.READONLY | CfrFlags.VOLATILE)

    part_number = VarcharOption(
        ids(), 'part_number', 'Part Number',
        default_value='partnumber',
        flags=CfrFlags.READONLY | CfrFlags.VOLATILE)

    bad_profile = CommentOption(
        ids(), 'WARNING: Profile code is invalid',
        flags=CfrFlags.READONLY | (CfrFlags.SUPPRESS if profile_ok else CfrFlags.NONE))

    profile = NumberOption(
        ids(), 'profile', 'Profile code',
        default_value=42,
        flags=CfrFlags.READONLY | CfrFlags.VOLATILE,
        ui_helptext='The profile code obtained from the EEPROM')

    power_on_after_fail = EnumOption(
        ids(), 'power_on_after_fail', 'Restore AC Power Loss',
        default_value=0,
        # No support for previous/last power state
        values=[
            EnumValue('Power off (S5)', 0),
            EnumValue('Power on (S0)', 1),
        ],
        ui_helptext='Specify what to do when power is re-applied after a power '
                    'loss. This option has no effect on systems without a RTC battery.')

    primary_display = EnumOption(
        ids(), 'primary_display', 'Primary display device',
        default_value=3,
        values=[
            EnumValue('Intel iGPU', 0),
            EnumValue('CPU PEG dGPU', 1),
            EnumValue('PCH PCIe dGPU', 2),
            EnumValue('Auto', 3),
        ],
        ui_helptext='Specify which display device to use as primary.')

    pkg_c_state_limit = EnumOption(
        ids(), 'pkg_c_state_limit', 'Package C-state limit',
        default_value=0 if rt_perf else 255,
        flags=perf_suppress,
        values=[EnumValue(name, value) for name, value in [
            ('C0/C1', 0), ('C2', 1), ('C3', 2), ('C6', 3), ('C7', 4),
            ('C7S', 5), ('C8', 6), ('C9', 7), ('C10', 8),
            ('Default', 254), ('Auto', 255),
        ]])

    ssc_values = [EnumValue(f"{i // 10}.{i % 10}%", i) for i in range(NUM_PCIE_SSC_SETTINGS)]
    ssc_values.append(EnumValue('Auto', 0xFF))
    pch_pcie_pll_ssc = EnumOption(
        ids(), 'pch_pcie_pll_ssc', 'PCH PCIe PLL Spread Spectrum Clocking',
        default_value=0xFF,
        values=ssc_values)

    c_states = BoolOption(
        ids(), 'c_states', 'CPU power states (C-states)',
        default_value=not rt_perf,
        flags=perf_suppress,
        ui_helptext='Specify whether C-states are supported.')

    hyper_threading = BoolOption(
        ids(), 'hyper_threading', 'Hyper-Threading Technology',
        default_value=not rt_perf,
        flags=perf_suppress)

    turbo_mode = BoolOption(ids(), 'turbo_mode', 'Turbo Boost', default_value=True)

    energy_eff_turbo = BoolOption(
        ids(), 'energy_eff_turbo', 'Energy Efficient Turbo',
        default_value=False,
        flags=perf_suppress)

    vmx = BoolOption(ids(), 'vmx', 'Intel Virtualization Technology (VT-x)')

    vtd = BoolOption(ids(), 'vtd', 'Intel Virtualization Technology for Directed I/O (VT-d)')

    ibecc = BoolOption(
        ids(), 'ibecc', 'In-Band ECC',
        ui_helptext='Specify whether In-Band error checking and correction is to be '
                    'enabled. Enabling this option will reduce the amount of available '
                    'RAM because some memory is needed to store ECC codes.')

    llc_dead_line = BoolOption(ids(), 'llc_dead_line', 'LLC Dead Line Allocation')

    pcie_sris = BoolOption(
        ids(), 'pcie_sris', 'PCIe Separate Reference Clock with Independent SSC')

    main_contents = [
        serial_number, part_number, bad_profile, profile,
        power_on_after_fail, primary_display, pkg_c_state_limit, pch_pcie_pll_ssc,
        c_states, hyper_threading, turbo_mode, energy_eff_turbo,
        vmx, vtd, ibecc, llc_dead_line, pcie_sris,
    ]

    return SetupMenuRoot(forms=[Form(ids(), 'Main', objects=main_contents)])


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Encode a setup menu into a CFR blob')
    parser.add_argument('output', nargs='?', type=Path,
                        help='Output CFR file (default: C array on stdout)')
    parser.add_argument('-m', '--menu', type=Path,
                        help='YAML menu description (default: built-in board menu)')
    parser.add_argument('--max-size', type=int, default=DEFAULT_BUFFER_SIZE,
                        help=f'Largest blob accepted in bytes (default: {DEFAULT_BUFFER_SIZE})')
    args = parser.parse_args(argv)

    try:
        root = load_setup_menu(args.menu) if args.menu else board_setup_menu()
        blob = encode_setup_menu(root, max_size=args.max_size)
    except OSError as e:
        print(f"Error reading '{args.menu}': {e}", file=sys.stderr)
        return 1
    except (yaml.YAMLError, MenuDefinitionError, CfrError, UnicodeDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    checksum = int.from_bytes(blob[8:12], 'little')
    print(f"CFR: Written {len(blob)} bytes of CFR structures, with CRC32 0x{checksum:08x}",
          file=sys.stderr)

    if args.output is None:
        sys.stdout.write(format_c_array(blob))
        return 0

    print(f"Saving to '{args.output}'", file=sys.stderr)
    try:
        write_cfr_file(args.output, blob)
    except OSError as e:
        print(f"Error writing '{args.output}': {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
