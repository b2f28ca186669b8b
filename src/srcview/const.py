"""Various useful constants and enums."""
from typing import Any, MutableMapping
from enum import Flag
import functools
import operator
import sys


__all__ = ['add_unknown', 'SurfFlags']


def add_unknown(ns: MutableMapping[str, Any], long: bool = False) -> None:
    """Add dummy members for :external:class:`enum.Flag` to allow all bits to be set.

    It should be called at the end of the class body. This allows files from
    unhandled games to be decoded, keeping any extra bits. All existing bits
    will be skipped.

    :param ns: The class namespace to add members to. This should be set to \
        :external:func:`locals()` or :external:func:`vars()`.
    :param long: If set, extend to 64 bits, not 32 bits.
    """

    # Don't alias bits we already have.
    used_bits = functools.reduce(
        operator.or_,
        # Skip dunder names etc added to the namespace.
        filter(lambda n: isinstance(n, int), ns.values()),
    )
    for i in range(64 if long else 32):
        bit = 1 << i
        if not bit & used_bits:
            # We don't have to stick to var naming rules, so just name it
            # after the number. Intern so repeated calls share strings.
            ns[sys.intern(str(i))] = bit


class SurfFlags(Flag):
    """The various surface flags, stored in texinfo records."""
    NONE = 0
    LIGHT = 0x1  #: The surface emits light.
    SKY2D = 0x2  #: The 2D skybox is drawn, without the 3D skybox.
    SKY = 0x4  #: The 3D skybox is visible through this surface.
    WARP = 0x8  #: Water surfaces.
    TRANS = 0x10  #: Translucent.
    NOPORTAL = 0x20  #: Portals cannot be placed here.
    TRIGGER = 0x40  #: Xbox hack to work around elimination of trigger surfaces, which breaks occluders.
    NODRAW = 0x80  #: The surface is not drawn.

    HINT = 0x100  #: A hint brush.
    SKIP = 0x200  #: Faces which are ignored by VBSP.
    NOLIGHT = 0x400  #: The face is not lit.
    BUMPLIGHT = 0x800  #: Calculate three lightmaps for bump mapping.
    NOSHADOWS = 0x1000  #: Shadows are not cast on this surface.
    NODECALS = 0x2000  #: Decals cannot be placed on this surface.
    NOCHOP = 0x4000  #: Don't subdivide patches on this surface.
    HITBOX = 0x8000  #: This surface is part of a hitbox.

    add_unknown(locals())
