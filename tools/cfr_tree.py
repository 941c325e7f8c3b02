#!/usr/bin/env python3
"""
cfr_tree.py - Setup menu option tree (encoder input)

The option tree is built once by whoever describes the product's menu
(see cfr_menu_loader.py and cfr_write.py) and handed to the encoder.
It is never modified by the codec.

Usage:
    from cfr_tree import ObjectIdAllocator, Form, BoolOption, SetupMenuRoot

    ids = ObjectIdAllocator()
    c_states = BoolOption(ids(), 'c_states', 'CPU power states (C-states)',
                          default_value=True)
    root = SetupMenuRoot(forms=[Form(ids(), 'Main', objects=[c_states])])
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from cfr_format import CfrFlags


class ObjectIdAllocator:
    """Hands out object IDs 1, 2, 3, ...

    ID 0 is never returned: an option with object ID 0 means someone
    forgot to assign one.
    """

    def __init__(self, start: int = 1):
        if start < 1:
            raise ValueError("Object IDs start at 1 (0 is reserved)")
        self._next = start

    def __call__(self) -> int:
        object_id = self._next
        self._next += 1
        return object_id

    @property
    def last(self) -> int:
        """Most recently allocated ID, 0 if none yet."""
        return self._next - 1


@dataclass(frozen=True)
class EnumValue:
    """One selectable value of an enum option."""
    ui_name: str
    value: int


@dataclass(frozen=True)
class EnumOption:
    object_id: int
    opt_name: str
    ui_name: str
    default_value: int = 0
    values: Sequence[EnumValue] = ()
    flags: int = CfrFlags.NONE
    ui_helptext: Optional[str] = None


@dataclass(frozen=True)
class NumberOption:
    object_id: int
    opt_name: str
    ui_name: str
    default_value: int = 0
    flags: int = CfrFlags.NONE
    ui_helptext: Optional[str] = None


@dataclass(frozen=True)
class BoolOption:
    object_id: int
    opt_name: str
    ui_name: str
    default_value: bool = False
    flags: int = CfrFlags.NONE
    ui_helptext: Optional[str] = None


@dataclass(frozen=True)
class VarcharOption:
    object_id: int
    opt_name: str
    ui_name: str
    default_value: str = ''
    flags: int = CfrFlags.NONE
    ui_helptext: Optional[str] = None


@dataclass(frozen=True)
class CommentOption:
    """Static text shown in a form, roughly a Kconfig comment."""
    object_id: int
    ui_name: str
    flags: int = CfrFlags.NONE
    ui_helptext: Optional[str] = None


@dataclass(frozen=True)
class Form:
    """A named group of options. Forms nest inside other forms."""
    object_id: int
    ui_name: str
    objects: Sequence['OptionObject'] = ()
    flags: int = CfrFlags.NONE


OptionObject = Union[EnumOption, NumberOption, BoolOption, VarcharOption,
                     CommentOption, Form]


@dataclass(frozen=True)
class SetupMenuRoot:
    """The top-level list of forms."""
    forms: Sequence[Form] = field(default_factory=list)


def iter_objects(root: SetupMenuRoot):
    """Yield every form and option in encoding (pre-)order."""
    stack: List[OptionObject] = list(reversed(list(root.forms)))
    while stack:
        obj = stack.pop()
        yield obj
        if isinstance(obj, Form):
            stack.extend(reversed(list(obj.objects)))
