#!/usr/bin/env python3
"""
cfr_menu_loader.py - Build a setup menu option tree from YAML

Menu description format:

    forms:
      - ui_name: Main
        flags: [readonly]             # optional
        objects:
          - kind: varchar             # enum|number|bool|varchar|comment|form
            opt_name: serial_number
            ui_name: Serial Number
            flags: [readonly, volatile]
            default: serialnumber
          - kind: enum
            opt_name: primary_display
            ui_name: Primary display device
            help: Specify which display device to use as primary.
            default: 3
            values:
              - {ui_name: Intel iGPU, value: 0}
              - {ui_name: Auto, value: 3}
          - kind: form
            ui_name: Advanced
            objects: [...]

Object IDs are assigned in document order (a form before its contents)
starting at 1.

Usage:
    from cfr_menu_loader import load_setup_menu

    root = load_setup_menu(Path('menus/atlas_board.yaml'))
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from cfr_format import CfrFlags, U32_MAX
from cfr_tree import (
    ObjectIdAllocator, SetupMenuRoot, Form, EnumOption, EnumValue,
    NumberOption, BoolOption, VarcharOption, CommentOption, OptionObject,
)

FLAG_KEYWORDS = {
    'readonly': CfrFlags.READONLY,
    'read-only': CfrFlags.READONLY,
    'grayout': CfrFlags.GRAYOUT,
    'grayed-out': CfrFlags.GRAYOUT,
    'suppress': CfrFlags.SUPPRESS,
    'suppressed': CfrFlags.SUPPRESS,
    'volatile': CfrFlags.VOLATILE,
}

KNOWN_KINDS = ('enum', 'number', 'bool', 'varchar', 'comment', 'form')


class MenuDefinitionError(ValueError):
    """The YAML menu description is invalid."""


class MenuLoader:
    """Turns a parsed menu description into option tree objects."""

    def __init__(self, ids: Optional[ObjectIdAllocator] = None):
        self.ids = ids or ObjectIdAllocator()

    def _require(self, obj: Dict[str, Any], key: str, path: str) -> Any:
        if key not in obj or obj[key] is None:
            raise MenuDefinitionError(f"{path}: missing required '{key}'")
        return obj[key]

    def _string(self, obj: Dict[str, Any], key: str, path: str,
                required: bool = True, default: Optional[str] = None) -> Optional[str]:
        if required:
            value = self._require(obj, key, path)
        else:
            value = obj.get(key, default)
            if value is None:
                return default
        if not isinstance(value, str):
            raise MenuDefinitionError(f"{path}.{key}: must be a string")
        return value

    def _u32(self, obj: Dict[str, Any], key: str, path: str, default: int = 0) -> int:
        value = obj.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise MenuDefinitionError(f"{path}.{key}: must be an integer")
        if not 0 <= value <= U32_MAX:
            raise MenuDefinitionError(f"{path}.{key}: {value} does not fit in 32 bits")
        return value

    def _flags(self, obj: Dict[str, Any], path: str) -> CfrFlags:
        raw = obj.get('flags', [])
        if isinstance(raw, int) and not isinstance(raw, bool):
            return CfrFlags(raw)
        if isinstance(raw, str):
            raw = [raw]
        if not isinstance(raw, list):
            raise MenuDefinitionError(f"{path}.flags: must be a list of flag names")

        flags = CfrFlags.NONE
        for name in raw:
            key = str(name).lower().replace('_', '-')
            if key not in FLAG_KEYWORDS:
                raise MenuDefinitionError(
                    f"{path}.flags: unknown flag '{name}' "
                    f"(expected one of readonly, grayout, suppress, volatile)")
            flags |= FLAG_KEYWORDS[key]
        return flags

    def _enum_values(self, raw: Any, path: str) -> List[EnumValue]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise MenuDefinitionError(f"{path}: must be a list")

        values = []
        for i, entry in enumerate(raw):
            entry_path = f"{path}[{i}]"
            if not isinstance(entry, dict):
                raise MenuDefinitionError(f"{entry_path}: must be an object")
            if 'value' not in entry:
                raise MenuDefinitionError(f"{entry_path}: missing required 'value'")
            values.append(EnumValue(
                ui_name=self._string(entry, 'ui_name', entry_path),
                value=self._u32(entry, 'value', entry_path),
            ))
        return values

    def load_object(self, obj: Any, path: str) -> OptionObject:
        if not isinstance(obj, dict):
            raise MenuDefinitionError(f"{path}: must be an object")

        kind = self._require(obj, 'kind', path)
        if kind not in KNOWN_KINDS:
            raise MenuDefinitionError(
                f"{path}: unknown kind '{kind}' (expected one of {', '.join(KNOWN_KINDS)})")

        if kind == 'form':
            return self.load_form(obj, path)

        object_id = self.ids()
        flags = self._flags(obj, path)
        ui_name = self._string(obj, 'ui_name', path)
        helptext = self._string(obj, 'help', path, required=False)

        if kind == 'comment':
            return CommentOption(object_id, ui_name, flags=flags, ui_helptext=helptext)

        opt_name = self._string(obj, 'opt_name', path)
        if kind == 'enum':
            return EnumOption(object_id, opt_name, ui_name,
                              default_value=self._u32(obj, 'default', path),
                              values=self._enum_values(obj.get('values'), f"{path}.values"),
                              flags=flags, ui_helptext=helptext)
        if kind == 'number':
            return NumberOption(object_id, opt_name, ui_name,
                                default_value=self._u32(obj, 'default', path),
                                flags=flags, ui_helptext=helptext)
        if kind == 'bool':
            default = obj.get('default', False)
            if not isinstance(default, bool):
                raise MenuDefinitionError(f"{path}.default: must be true or false")
            return BoolOption(object_id, opt_name, ui_name, default_value=default,
                              flags=flags, ui_helptext=helptext)

        return VarcharOption(object_id, opt_name, ui_name,
                             default_value=self._string(obj, 'default', path,
                                                        required=False, default=''),
                             flags=flags, ui_helptext=helptext)

    def load_form(self, obj: Any, path: str) -> Form:
        if not isinstance(obj, dict):
            raise MenuDefinitionError(f"{path}: must be an object")

        object_id = self.ids()
        ui_name = self._string(obj, 'ui_name', path)
        flags = self._flags(obj, path)

        raw_objects = obj.get('objects') or []
        if not isinstance(raw_objects, list):
            raise MenuDefinitionError(f"{path}.objects: must be a list")
        objects = [self.load_object(o, f"{path}.objects[{i}]")
                   for i, o in enumerate(raw_objects)]

        return Form(object_id, ui_name, objects=objects, flags=flags)

    def load(self, menu: Any) -> SetupMenuRoot:
        if not isinstance(menu, dict):
            raise MenuDefinitionError("menu: must be an object with a 'forms' list")
        forms = menu.get('forms')
        if not isinstance(forms, list):
            raise MenuDefinitionError("forms: missing or not a list")
        return SetupMenuRoot(forms=[self.load_form(f, f"forms[{i}]")
                                    for i, f in enumerate(forms)])


def parse_setup_menu(text: str, ids: Optional[ObjectIdAllocator] = None) -> SetupMenuRoot:
    """Build an option tree from YAML text."""
    return MenuLoader(ids).load(yaml.safe_load(text))


def load_setup_menu(path: Union[str, Path],
                    ids: Optional[ObjectIdAllocator] = None) -> SetupMenuRoot:
    """Build an option tree from a YAML file."""
    return parse_setup_menu(Path(path).read_text(encoding='utf-8'), ids)
