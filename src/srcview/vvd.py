"""Reads the vertex data of studio models, stored in ``.vvd`` files."""
from typing import IO, List, Tuple
from typing_extensions import Final
import struct

import attrs

from srcview import logger
from srcview.binformat import Cursor
from srcview.errors import FormatError
from srcview.math import FrozenVec


__all__ = ['VVD', 'Vertex', 'Fixup', 'build_fixups', 'VVD_ID', 'MAX_LODS']
LOGGER = logger.get_logger(__name__)

VVD_ID: Final = b'IDSV'
MAX_LODS: Final = 8
ST_HEADER: Final = struct.Struct(
    '<'
    '4s'  # ID
    'i'   # Version
    'i'   # Checksum, matching the MDL.
    'i'   # LOD count
    '8i'  # Vertex count per LOD
    'i'   # Fixup count
    'i'   # Fixup table offset
    'i'   # Vertex data offset
    'i'   # Tangent data offset
)
ST_VERTEX: Final = struct.Struct('<3f3BB3f3f2f')
ST_TANGENT: Final = struct.Struct('<4f')
ST_FIXUP: Final = struct.Struct('<3i')


@attrs.frozen
class Vertex:
    """A single vertex, with up to three bone weights."""
    weights: Tuple[float, float, float]
    bones: Tuple[int, int, int]
    bone_count: int
    pos: FrozenVec
    normal: FrozenVec
    uv: Tuple[float, float]


@attrs.frozen
class Fixup:
    """Maps the range ``[dst, dst+count)`` of mesh vertex IDs onto ``[src, src+count)``."""
    lod: int
    dst: int
    src: int
    count: int

    def __contains__(self, vert_id: int) -> bool:
        return self.dst <= vert_id < self.dst + self.count


def build_fixups(raw: List[Tuple[int, int, int]]) -> List[Fixup]:
    """Convert the stored ``(lod, src, count)`` table, computing each destination.

    The destinations are the running total of the counts, so the ranges are
    laid end to end.
    """
    fixups = []
    dst = 0
    for lod, src, count in raw:
        if count < 0:
            raise FormatError(f'Fixup has negative count {count}!')
        fixups.append(Fixup(lod, dst, src, count))
        dst += count
    return fixups


@attrs.define(eq=False)
class VVD:
    """The vertex data for a model."""
    version: int
    checksum: int
    lod_count: int
    lod_vertex_counts: List[int]
    vertices: List[Vertex] = attrs.field(repr=lambda verts: f'<{len(verts)} verts>')
    tangents: List[Tuple[float, float, float, float]] = attrs.field(repr=False)
    fixups: List[Fixup]

    @classmethod
    def read(cls, file: IO[bytes]) -> 'VVD':
        """Read a VVD file."""
        cur = Cursor(file)
        (
            vvd_id, version, checksum, lod_count,
            *lod_vertex_counts,
            fixup_count, fixup_start, vertex_start, tangent_start,
        ) = cur.struct(ST_HEADER)
        if vvd_id != VVD_ID:
            raise FormatError(f'Bad VVD identifier {vvd_id!r}!')
        if not 0 <= lod_count <= MAX_LODS:
            raise FormatError(f'Invalid LOD count {lod_count}!')

        root_count = lod_vertex_counts[0]
        if vertex_start + root_count * ST_VERTEX.size != tangent_start:
            raise FormatError(
                f'Tangents start at {tangent_start}, but {root_count} vertices '
                f'from {vertex_start} end at {vertex_start + root_count * ST_VERTEX.size}!'
            )

        vertices = [
            Vertex(
                (w1, w2, w3), (b1, b2, b3), bone_count,
                FrozenVec(px, py, pz), FrozenVec(nx, ny, nz), (u, v),
            )
            for _, (
                w1, w2, w3, b1, b2, b3, bone_count,
                px, py, pz, nx, ny, nz, u, v,
            ) in cur.records(ST_VERTEX, root_count, 0, vertex_start)
        ]
        tangents = [
            values for _, values in
            cur.records(ST_TANGENT, root_count, 0, tangent_start)
        ]
        fixups = build_fixups([
            values for _, values in
            cur.records(ST_FIXUP, fixup_count, 0, fixup_start)
        ])
        LOGGER.debug('VVD v{}: {} verts, {} fixups', version, root_count, len(fixups))
        return cls(
            version, checksum, lod_count, list(lod_vertex_counts),
            vertices, tangents, fixups,
        )

    def remap(self, orig_id: int) -> int:
        """Convert a mesh vertex ID from the strip data into an index into :py:attr:`vertices`.

        IDs outside every fixup range are returned unchanged.
        """
        for fixup in self.fixups:
            if orig_id in fixup:
                return fixup.src + (orig_id - fixup.dst)
        return orig_id
