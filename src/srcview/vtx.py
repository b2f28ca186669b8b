"""Reads the optimised strip data of studio models, stored in ``.vtx`` files.

The file is a tree of body parts, models, LODs, meshes and strip groups. Every
level refers to its children with a (count, offset) pair, where the offset is
relative to the start of the structure containing the pair.
"""
from typing import IO, List, Tuple
from typing_extensions import Final
from enum import Flag
import struct

import attrs

from srcview import logger
from srcview.binformat import Cursor
from srcview.errors import FormatError


__all__ = [
    'VTX', 'BodyPart', 'Model', 'ModelLOD', 'Mesh', 'StripGroup', 'Strip',
    'Vertex', 'StripGroupFlags', 'StripFlags',
]
LOGGER = logger.get_logger(__name__)

#: MDL versions from this onward add 8 bytes to strip groups and strips.
EXTENDED_MDL_VERSION: Final = 49

ST_HEADER: Final = struct.Struct(
    '<'
    'i'   # Version
    'i'   # Vertex cache size
    'H'   # Max bones per strip
    'H'   # Max bones per triangle
    'i'   # Max bones per vertex
    'i'   # Checksum, matching the MDL.
    'i'   # LOD count
    'i'   # Material replacement list offset
    'ii'  # Body parts
)
ST_BODYPART: Final = struct.Struct('<ii')
ST_MODEL: Final = struct.Struct('<ii')
ST_MODEL_LOD: Final = struct.Struct('<iif')
ST_MESH: Final = struct.Struct('<iiB')
ST_STRIP_GROUP: Final = struct.Struct('<iiiiiiB')
ST_STRIP_GROUP_EXT: Final = struct.Struct('<iiiiiiB8x')
ST_STRIP: Final = struct.Struct('<iiiihBii')
ST_STRIP_EXT: Final = struct.Struct('<iiiihBii8x')
ST_VERTEX: Final = struct.Struct('<3BBH3b')
ST_INDEX: Final = struct.Struct('<H')


class StripGroupFlags(Flag):
    """Flags set on strip groups."""
    NONE = 0
    IS_FLEXED = 0x01
    IS_HWSKINNED = 0x02
    IS_DELTA_FLEXED = 0x04
    SUPPRESS_HW_MORPH = 0x08


class StripFlags(Flag):
    """Flags set on strips, indicating the primitive type."""
    NONE = 0
    IS_TRILIST = 0x01
    IS_TRISTRIP = 0x02


@attrs.frozen
class Vertex:
    """A vertex in a strip group, referring to a vertex in the VVD file."""
    bone_weight_index: Tuple[int, int, int]
    bone_count: int
    orig_mesh_vert_id: int
    bone_ids: Tuple[int, int, int]


@attrs.frozen
class Strip:
    """A range of indices and vertices inside a strip group."""
    index_count: int
    index_offset: int
    vert_count: int
    vert_offset: int
    bone_count: int
    flags: StripFlags
    bone_state_change_count: int
    bone_state_change_offset: int


@attrs.define(eq=False)
class StripGroup:
    """A set of strips sharing a vertex and index pool."""
    vertices: List[Vertex] = attrs.field(repr=lambda verts: f'<{len(verts)} verts>')
    indices: List[int] = attrs.field(repr=lambda inds: f'<{len(inds)} indices>')
    strips: List[Strip]
    flags: StripGroupFlags


@attrs.define(eq=False)
class Mesh:
    """Matches a mesh in the MDL."""
    strip_groups: List[StripGroup]
    flags: int


@attrs.define(eq=False)
class ModelLOD:
    """A level of detail for a model."""
    meshes: List[Mesh]
    switch_point: float


@attrs.define(eq=False)
class Model:
    """A model, with each of its LODs."""
    lods: List[ModelLOD]


@attrs.define(eq=False)
class BodyPart:
    """A body part, with its model options."""
    models: List[Model]


def _read_strip_group(cur: Cursor, base: int, values: Tuple[int, ...], extended: bool) -> StripGroup:
    """Read the vertices, indices and strips of a strip group."""
    (
        vert_count, vert_offset,
        index_count, index_offset,
        strip_count, strip_offset,
        flags,
    ) = values
    vertices = [
        Vertex((w1, w2, w3), bone_count, orig_id, (b1, b2, b3))
        for _, (w1, w2, w3, bone_count, orig_id, b1, b2, b3)
        in cur.records(ST_VERTEX, vert_count, base, vert_offset)
    ]
    indices = [
        index for _, (index, ) in
        cur.records(ST_INDEX, index_count, base, index_offset)
    ]
    strips = [
        Strip(
            num_indices, ind_offset, num_verts, vert_off,
            num_bones, StripFlags(strip_flags & 0x03),
            bone_change_count, bone_change_offset,
        )
        for _, (
            num_indices, ind_offset, num_verts, vert_off,
            num_bones, strip_flags, bone_change_count, bone_change_offset,
        ) in cur.records(ST_STRIP_EXT if extended else ST_STRIP, strip_count, base, strip_offset)
    ]
    for strip in strips:
        if strip.index_offset < 0 or strip.index_offset + strip.index_count > len(indices):
            raise FormatError(
                f'Strip indices [{strip.index_offset}, +{strip.index_count}) '
                f'exceed the {len(indices)} in the group!'
            )
    return StripGroup(vertices, indices, strips, StripGroupFlags(flags & 0x0F))


@attrs.define(eq=False)
class VTX:
    """The strip data for a model."""
    version: int
    vert_cache_size: int
    max_bones_per_strip: int
    max_bones_per_tri: int
    max_bones_per_vert: int
    checksum: int
    lod_count: int
    material_replacement_offset: int
    body_parts: List[BodyPart]

    @classmethod
    def read(cls, file: IO[bytes], mdl_version: int = 0) -> 'VTX':
        """Read a VTX file.

        :param mdl_version: The version of the matching MDL file, which changes the layout.
        """
        extended = mdl_version >= EXTENDED_MDL_VERSION
        st_strip_group = ST_STRIP_GROUP_EXT if extended else ST_STRIP_GROUP
        cur = Cursor(file)
        (
            version, vert_cache_size,
            max_bones_per_strip, max_bones_per_tri, max_bones_per_vert,
            checksum, lod_count, mat_replace_offset,
            bodypart_count, bodypart_offset,
        ) = cur.struct(ST_HEADER)

        body_parts = []
        # Read depth-first, each level's offsets are relative to its own start.
        for body_pos, (model_count, model_offset) in cur.records(ST_BODYPART, bodypart_count, 0, bodypart_offset):
            models = []
            for model_pos, (lod_count_mdl, lod_offset) in cur.records(ST_MODEL, model_count, body_pos, model_offset):
                lods = []
                for lod_pos, (mesh_count, mesh_offset, switch_point) in cur.records(ST_MODEL_LOD, lod_count_mdl, model_pos, lod_offset):
                    meshes = []
                    for mesh_pos, (group_count, group_offset, mesh_flags) in cur.records(ST_MESH, mesh_count, lod_pos, mesh_offset):
                        groups = [
                            _read_strip_group(cur, group_pos, group_values, extended)
                            for group_pos, group_values in cur.records(st_strip_group, group_count, mesh_pos, group_offset)
                        ]
                        meshes.append(Mesh(groups, mesh_flags))
                    lods.append(ModelLOD(meshes, switch_point))
                models.append(Model(lods))
            body_parts.append(BodyPart(models))

        LOGGER.debug('VTX v{}: {} body parts, {} LODs', version, len(body_parts), lod_count)
        return cls(
            version, vert_cache_size,
            max_bones_per_strip, max_bones_per_tri, max_bones_per_vert,
            checksum, lod_count, mat_replace_offset,
            body_parts,
        )
