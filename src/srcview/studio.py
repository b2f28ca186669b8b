"""Assembles the three studio model files into drawable meshes.

The MDL file names the materials, the VTX file holds the triangle strips and
the VVD file holds the vertex positions the strips refer to.
"""
from typing import List

import attrs

from srcview import logger
from srcview.errors import FormatError
from srcview.mdl import MDL
from srcview.vtx import VTX
from srcview.vvd import VVD, Vertex


__all__ = ['SubMesh', 'Model', 'build_model']
LOGGER = logger.get_logger(__name__)


@attrs.define(eq=False)
class SubMesh:
    """A single strip, ready to draw.

    ``indices`` point into ``vertices``, which is shared between every
    submesh of the model.
    """
    vertices: List[Vertex] = attrs.field(repr=lambda verts: f'<{len(verts)} verts>')
    indices: List[int] = attrs.field(repr=lambda inds: f'<{len(inds)} indices>')
    material: str


@attrs.define(eq=False)
class Model:
    """A fully assembled studio model."""
    submeshes: List[SubMesh]

    def __len__(self) -> int:
        return len(self.submeshes)

    @property
    def triangle_count(self) -> int:
        """The total number of triangles, treating each strip as a list."""
        return sum(len(sub.indices) // 3 for sub in self.submeshes)


def build_model(mdl: MDL, vtx: VTX, vvd: VVD) -> Model:
    """Combine the model files, producing a submesh for each strip.

    Only the first body part, model and LOD are used. Every submesh is given
    the first material of the model.

    :raises FormatError: If the strip data was compiled for a different model.
    """
    if vtx.checksum != mdl.checksum:
        raise FormatError(
            f'VTX checksum {vtx.checksum:#x} does not match MDL checksum {mdl.checksum:#x}!'
        )
    if vvd.checksum != mdl.checksum:
        LOGGER.warning(
            'VVD checksum {:#x} does not match MDL checksum {:#x}',
            vvd.checksum, mdl.checksum,
        )

    material = mdl.first_texture or ''
    submeshes: List[SubMesh] = []
    if not vtx.body_parts or not vtx.body_parts[0].models:
        LOGGER.warning('Model "{}" has no body parts', mdl.name)
        return Model(submeshes)
    model = vtx.body_parts[0].models[0]
    if not model.lods:
        LOGGER.warning('Model "{}" has no LODs', mdl.name)
        return Model(submeshes)

    for mesh in model.lods[0].meshes:
        for group in mesh.strip_groups:
            try:
                pool = [
                    vvd.remap(group.vertices[index].orig_mesh_vert_id)
                    for index in group.indices
                ]
            except IndexError:
                raise FormatError(
                    f'Strip group index exceeds its {len(group.vertices)} vertices!'
                ) from None
            for strip in group.strips:
                submeshes.append(SubMesh(
                    vvd.vertices,
                    pool[strip.index_offset:strip.index_offset + strip.index_count],
                    material,
                ))
    LOGGER.debug('Built model "{}" with {} submeshes', mdl.name, len(submeshes))
    return Model(submeshes)
