"""Decoders for Source engine game content.

This covers VPK archives, VTF textures, VMT materials, the MDL/VTX/VVD studio
model files and BSP levels, producing plain Python data for a renderer.
"""
from typing import TYPE_CHECKING, Union
from typing_extensions import TypeAlias
import os as _os
import sys as _sys


__version__: str
if not TYPE_CHECKING:
    try:
        from ._version import __version__
    except ImportError:
        __version__ = '<unknown>'
    else:
        # Discard the now-useless module. Use globals so static analysis ignores this.
        del _sys.modules[globals().pop('_version').__name__]

__all__ = [
    '__version__', 'StringPath',

    # Submodules:
    'binformat', 'bsp', 'errors', 'game', 'lazy', 'logger', 'math',  # pyright: ignore
    'mdl', 'meshes', 'studio', 'vmt', 'vpath', 'vpk', 'vtf', 'vtx', 'vvd',  # pyright: ignore
]

StringPath: TypeAlias = Union[str, '_os.PathLike[str]']
"""A type hint for anything which can be passed to :external:py:func:`open`."""
