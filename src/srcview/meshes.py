"""Converts BSP faces and displacements into triangle meshes.

Brush faces are grouped by their texture, so each texture can be drawn in a
single call. Displacements each produce their own mesh, since they blend
between two materials using the per-vertex alpha.
"""
from typing import Dict, List, Optional, Sequence, Tuple

import attrs

from srcview import logger
from srcview.bsp import BSP, DispInfo, DispVert, Face, TexInfo
from srcview.errors import FormatError
from srcview.math import FrozenVec


__all__ = [
    'LevelVertex', 'MeshBuilder', 'LevelMeshes', 'Axis',
    'build_meshes', 'build_face', 'build_displacement',
]
LOGGER = logger.get_logger(__name__)

# A texture axis, applied as dot(axis, [x, y, z, 1]).
Axis = Tuple[float, float, float, float]


def _project(axis: Axis, pos: FrozenVec) -> float:
    return axis[0] * pos.x + axis[1] * pos.y + axis[2] * pos.z + axis[3]


@attrs.frozen
class LevelVertex:
    """A vertex in the level geometry."""
    pos: FrozenVec
    uv: Tuple[float, float]
    lightmap_uv: Tuple[float, float]
    alpha: float = 1.0
    #: Index of the face's first sample in the lighting lump.
    light_index: int = 0
    #: Width of the face's lightmap in luxels, to find the row of a sample.
    lightmap_width: int = 0


@attrs.define(eq=False)
class MeshBuilder:
    """Accumulates vertices and triangles for a single mesh."""
    vertices: List[LevelVertex] = attrs.field(factory=list, repr=lambda verts: f'<{len(verts)} verts>')
    indices: List[int] = attrs.field(factory=list, repr=lambda inds: f'<{len(inds)} indices>')

    def __len__(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        """The number of triangles added so far."""
        return len(self.indices) // 3

    def add_vert(
        self,
        pos: FrozenVec,
        tex_s: Axis, tex_t: Axis,
        light_s: Axis, light_t: Axis,
        alpha: float = 1.0,
        light_mins: Tuple[int, int] = (0, 0),
        light_data: Tuple[int, int] = (0, 0),
    ) -> int:
        """Add a vertex, computing its texture coordinates. This returns the new index.

        ``light_data`` is the index of the first light sample, and the lightmap width.
        """
        self.vertices.append(LevelVertex(
            pos,
            (_project(tex_s, pos), _project(tex_t, pos)),
            (_project(light_s, pos) - light_mins[0], _project(light_t, pos) - light_mins[1]),
            alpha,
            *light_data,
        ))
        return len(self.vertices) - 1

    def add_tri(self, a: int, b: int, c: int) -> None:
        """Add a triangle from existing vertex indices."""
        self.indices += (a, b, c)

    def push_tri(self) -> None:
        """Add a triangle using the last three vertices."""
        count = len(self.vertices)
        if count < 3:
            raise ValueError('Need at least 3 vertices to add a triangle!')
        self.indices += (count - 3, count - 2, count - 1)

    def tris_to_lines(self) -> List[int]:
        """Convert the triangles into a line list, for wireframe drawing."""
        lines: List[int] = []
        for i in range(0, len(self.indices) - 2, 3):
            a, b, c = self.indices[i:i + 3]
            lines += (a, b, b, c, c, a)
        return lines


@attrs.define(eq=False)
class LevelMeshes:
    """All the geometry built from a level."""
    #: Brush faces, grouped by texdata index.
    textured: Dict[int, MeshBuilder] = attrs.Factory(dict)
    #: Each displacement, with its texdata index.
    displacements: List[Tuple[int, MeshBuilder]] = attrs.Factory(list)
    #: The material name used by each texdata index.
    materials: Dict[int, str] = attrs.Factory(dict)

    def __len__(self) -> int:
        return len(self.textured) + len(self.displacements)


def _scale_axis(axis: Axis, size: int) -> Axis:
    if size == 0:
        return axis
    return (axis[0] / size, axis[1] / size, axis[2] / size, axis[3] / size)


def _light_data(face: Face) -> Tuple[int, int]:
    # Lightmap sizes are stored minus one.
    return face.light_ofs // 4, face.lightmap_size[0] + 1


def build_displacement(
    builder: MeshBuilder,
    disp: DispInfo,
    corners: Sequence[FrozenVec],
    disp_verts: Sequence[DispVert],
    tex_s: Axis, tex_t: Axis,
    texinfo: TexInfo,
    light_data: Tuple[int, int] = (0, 0),
) -> None:
    """Tessellate a displacement into the builder.

    The corners are in the order lower-left, upper-left, upper-right,
    lower-right. The grid is interpolated between them, then offset by the
    stored displacement vectors.
    """
    side = disp.side
    if disp.vert_start < 0 or disp.vert_start + side * side > len(disp_verts):
        raise FormatError(
            f'Displacement vertices [{disp.vert_start}, +{side * side}) '
            f'exceed the {len(disp_verts)} in the map!'
        )
    start = len(builder.vertices)
    for y in range(side):
        dy = y / (side - 1)
        v0 = corners[0].lerp(corners[3], dy)
        v1 = corners[1].lerp(corners[2], dy)
        for x in range(side):
            vert = disp_verts[disp.vert_start + x + side * y]
            pos = v0.lerp(v1, x / (side - 1)) + vert.vec
            builder.add_vert(
                pos, tex_s, tex_t,
                texinfo.lightmap_s, texinfo.lightmap_t,
                vert.alpha, (0, 0), light_data,
            )

    for y in range(side - 1):
        for x in range(side - 1):
            base = start + y * side + x
            builder.add_tri(base, base + side, base + side + 1)
            builder.add_tri(base, base + side + 1, base + 1)


def build_face(
    builder: MeshBuilder,
    face: Face,
    loop: Sequence[int],
    vertexes: Sequence[FrozenVec],
    tex_s: Axis, tex_t: Axis,
    texinfo: TexInfo,
) -> None:
    """Triangulate a convex face as a fan, pivoting on the first vertex."""
    try:
        points = [vertexes[ind] for ind in loop]
    except IndexError:
        raise FormatError('Face references a missing vertex!') from None
    if len(points) < 3:
        LOGGER.debug('Skipping degenerate face with {} vertices', len(points))
        return
    pivot = points[0]
    for i in range(1, len(points) - 1):
        for pos in (points[i], pivot, points[i + 1]):
            builder.add_vert(
                pos, tex_s, tex_t,
                texinfo.lightmap_s, texinfo.lightmap_t,
                1.0, face.lightmap_mins, _light_data(face),
            )
        builder.push_tri()


def build_meshes(bsp: BSP) -> LevelMeshes:
    """Build the geometry for every face in the level.

    Faces without lighting data are skipped, along with their geometry.

    :raises FormatError: If the lumps refer to missing data.
    """
    faces = bsp.faces
    texinfos = bsp.texinfo
    texdatas = bsp.texdata
    vertexes = bsp.vertexes
    edges = bsp.edges
    surfedges = bsp.surfedges
    # Only parse displacement lumps if needed.
    dispinfos: Optional[List[DispInfo]] = None

    result = LevelMeshes()
    skipped = 0
    for face_ind, face in enumerate(faces):
        if face.light_ofs == -1:
            skipped += 1
            continue
        # Light offsets are in bytes, into an array of 4-byte samples.
        if face.light_ofs % 4 != 0:
            raise FormatError(f'Face {face_ind} has misaligned light offset {face.light_ofs}!')
        try:
            texinfo = texinfos[face.texinfo]
            texdata_ind = texinfo.texdata
            texdata = texdatas[texdata_ind]
        except IndexError:
            raise FormatError(f'Face {face_ind} has invalid texinfo {face.texinfo}!') from None

        tex_s = _scale_axis(texinfo.s, texdata.width)
        tex_t = _scale_axis(texinfo.t, texdata.height)
        loop = face.vertex_indices(edges, surfedges)

        if face.is_displacement:
            if dispinfos is None:
                dispinfos = bsp.dispinfo
            try:
                disp = dispinfos[face.dispinfo]
            except IndexError:
                raise FormatError(f'Face {face_ind} has invalid dispinfo {face.dispinfo}!') from None
            if disp.map_face != face_ind:
                raise FormatError(
                    f'Displacement {face.dispinfo} is for face {disp.map_face}, '
                    f'but used by face {face_ind}!'
                )
            if len(loop) < 4:
                raise FormatError(f'Displacement face {face_ind} has only {len(loop)} vertices!')
            try:
                corners = [vertexes[ind] for ind in loop[:4]]
            except IndexError:
                raise FormatError(f'Face {face_ind} references a missing vertex!') from None
            builder = MeshBuilder()
            build_displacement(
                builder, disp, corners, bsp.dispverts,
                tex_s, tex_t, texinfo, _light_data(face),
            )
            result.displacements.append((texdata_ind, builder))
        else:
            try:
                builder = result.textured[texdata_ind]
            except KeyError:
                builder = result.textured[texdata_ind] = MeshBuilder()
            build_face(builder, face, loop, vertexes, tex_s, tex_t, texinfo)

        if texdata_ind not in result.materials:
            result.materials[texdata_ind] = bsp.texture_name(texdata_ind)

    LOGGER.debug(
        'Built {} textured meshes, {} displacements, skipped {} unlit faces',
        len(result.textured), len(result.displacements), skipped,
    )
    return result
