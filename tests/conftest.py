"""
pytest configuration and fixtures for the CFR codec tests.

Provides reusable fixtures for:
- Sample option trees (minimal, nested, full board menu)
- Encoded sample blobs and blob files on disk
- Hypothesis property-based testing configuration
"""

import os
import sys
from pathlib import Path

import pytest

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

from cfr_encoder import encode_setup_menu
from cfr_format import CfrFlags
from cfr_tree import (
    ObjectIdAllocator, SetupMenuRoot, Form, EnumOption, EnumValue,
    NumberOption, BoolOption, VarcharOption, CommentOption,
)
from cfr_write import board_setup_menu

# Configure Hypothesis profiles
try:
    from hypothesis import settings, Verbosity, Phase

    # Default profile: balanced speed and coverage
    settings.register_profile(
        "default",
        max_examples=100,
        deadline=None,  # bit-serial CRC is slow on large blobs
    )

    # CI profile: more thorough testing
    settings.register_profile(
        "ci",
        max_examples=500,
        deadline=None,
        phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    )

    # Dev profile: fast iteration
    settings.register_profile(
        "dev",
        max_examples=10,
        deadline=None,
    )

    # Debug profile: verbose output
    settings.register_profile(
        "debug",
        max_examples=10,
        verbosity=Verbosity.verbose,
        deadline=None,
    )

    settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))

except ImportError:
    pass  # Hypothesis not installed


@pytest.fixture
def minimal_menu():
    """One form 'Main' (ID 1) holding one bool option 'x' (ID 2) defaulting to true."""
    return SetupMenuRoot(forms=[
        Form(1, 'Main', objects=[BoolOption(2, 'x', 'X', default_value=True)]),
    ])


@pytest.fixture
def mixed_menu():
    """Every object kind once, including a nested form and help texts."""
    ids = ObjectIdAllocator()
    return SetupMenuRoot(forms=[
        Form(ids(), 'Main', objects=[
            VarcharOption(ids(), 'serial_number', 'Serial Number',
                          default_value='serialnumber',
                          flags=CfrFlags.READONLY | CfrFlags.VOLATILE),
            CommentOption(ids(), 'Hello <world>', flags=CfrFlags.SUPPRESS,
                          ui_helptext='Just a comment'),
            NumberOption(ids(), 'profile', 'Profile code', default_value=42,
                         ui_helptext='From EEPROM'),
            EnumOption(ids(), 'primary_display', 'Primary display device',
                       default_value=3,
                       values=[EnumValue('Intel iGPU', 0), EnumValue('Auto', 3)]),
            Form(ids(), 'Advanced', flags=CfrFlags.GRAYOUT, objects=[
                BoolOption(ids(), 'vmx', 'VT-x', default_value=True),
            ]),
        ]),
        Form(ids(), 'Empty'),
    ])


@pytest.fixture
def board_menu():
    return board_setup_menu()


@pytest.fixture
def minimal_blob(minimal_menu):
    return encode_setup_menu(minimal_menu)


@pytest.fixture
def mixed_blob(mixed_menu):
    return encode_setup_menu(mixed_menu)


@pytest.fixture
def board_blob(board_menu):
    return encode_setup_menu(board_menu)


@pytest.fixture
def blob_file(tmp_path, mixed_blob):
    """The mixed menu blob saved as menu.cfr."""
    path = tmp_path / "menu.cfr"
    path.write_bytes(mixed_blob)
    return path


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as command-line integration tests"
    )
