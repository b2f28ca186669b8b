"""Reads the header of studio models, stored in ``.mdl`` files.

Only the data needed to assemble the model is decoded: the texture names,
the material search folders and the body part tree. Bones, animations and
sequences are left for a later pass.
"""
from typing import IO, List, Optional
from typing_extensions import Final
import struct

import attrs

from srcview import logger
from srcview.binformat import Cursor
from srcview.errors import FormatError
from srcview.math import FrozenVec


__all__ = ['MDL', 'BodyPart', 'Model', 'Mesh', 'Texture', 'MDL_ID']
LOGGER = logger.get_logger(__name__)

MDL_ID: Final = b'IDST'
ST_HEADER: Final = struct.Struct(
    '<'
    '4s'   # ID
    'i'    # Version
    'i'    # Checksum
    '64s'  # Name
    'i'    # Length
    '3f'   # Eye position
    '3f'   # Illumination position
    '3f'   # Hull min
    '3f'   # Hull max
    '3f'   # View bounding box min
    '3f'   # View bounding box max
    'i'    # Flags
    'ii'   # Bones
    'ii'   # Bone controllers
    'ii'   # Hitbox sets
    'ii'   # Local animations
    'ii'   # Local sequences
    'i'    # Activity list version
    'i'    # Events indexed
    'ii'   # Textures
    'ii'   # CD textures (material folders)
    'i'    # Skin reference count
    'i'    # Skin family count
    'i'    # Skin index
    'ii'   # Body parts
)
ST_TEXTURE: Final = struct.Struct('<iiii 4x4x 40x')
ST_CDTEXTURE: Final = struct.Struct('<i')
ST_BODYPART: Final = struct.Struct('<iiii')
ST_MODEL: Final = struct.Struct('<64s i f ii i i i i i i i ii 32x')
ST_MESH: Final = struct.Struct('<i i i i i i i i i 3f 4x 8i 32x')
VERTEX_SIZE: Final = 48
TANGENT_SIZE: Final = 16


@attrs.frozen
class Texture:
    """A material used by the model."""
    name: str
    flags: int
    used: int


@attrs.frozen
class Mesh:
    """A mesh inside a model, using a single material."""
    material: int
    vertex_count: int
    vertex_offset: int
    material_type: int
    material_param: int
    mesh_id: int
    center: FrozenVec
    lod_vertex_counts: List[int]


@attrs.frozen
class Model:
    """One of the options for a body part."""
    name: str
    type: int
    bounding_radius: float
    meshes: List[Mesh]
    vertex_count: int
    vertex_index: int
    tangent_index: int

    @property
    def first_vertex(self) -> int:
        """The index of this model's first vertex in the VVD data."""
        return self.vertex_index // VERTEX_SIZE


@attrs.frozen
class BodyPart:
    """A group of models, one of which is shown at a time."""
    name: str
    base: int
    models: List[Model]


def _decode_name(name: bytes) -> str:
    return name.split(b'\0', 1)[0].decode('ascii', 'surrogateescape')


@attrs.define(eq=False)
class MDL:
    """The parsed model header."""
    version: int
    checksum: int
    name: str
    length: int
    eye_pos: FrozenVec
    illum_pos: FrozenVec
    hull_min: FrozenVec
    hull_max: FrozenVec
    view_min: FrozenVec
    view_max: FrozenVec
    flags: int
    textures: List[Texture]
    cdmaterials: List[str]
    skinref_count: int
    skin_family_count: int
    body_parts: List[BodyPart]

    @classmethod
    def read(cls, file: IO[bytes]) -> 'MDL':
        """Read the MDL file."""
        cur = Cursor(file)
        (
            mdl_id, version, checksum, name, file_len,
            eye_x, eye_y, eye_z,
            illum_x, illum_y, illum_z,
            hull_min_x, hull_min_y, hull_min_z,
            hull_max_x, hull_max_y, hull_max_z,
            view_min_x, view_min_y, view_min_z,
            view_max_x, view_max_y, view_max_z,
            flags,
            bone_count, bone_off,
            bone_controller_count, bone_controller_off,
            hitbox_count, hitbox_off,
            anim_count, anim_off,
            sequence_count, sequence_off,
            activity_list_version, events_indexed,
            texture_count, texture_offset,
            cdmat_count, cdmat_offset,
            skinref_count, skin_family_count, skin_index,
            bodypart_count, bodypart_offset,
        ) = cur.struct(ST_HEADER)
        if mdl_id != MDL_ID:
            raise FormatError(f'Bad MDL identifier {mdl_id!r}!')

        # Texture names are relative to each texture record.
        texture_info = cur.records(ST_TEXTURE, texture_count, 0, texture_offset)
        textures = [
            Texture(cur.nullstr(tex_pos, name_offset).lower(), tex_flags, used)
            for tex_pos, (name_offset, tex_flags, used, unused) in texture_info
        ]

        # The folder offsets are from the start of the file.
        cdmat_offsets = cur.records(ST_CDTEXTURE, cdmat_count, 0, cdmat_offset)
        cdmaterials: List[str] = []
        for _, (off, ) in cdmat_offsets:
            if 0 < off < file_len:
                cdmaterials.append(cur.nullstr(0, off).replace('\\', '/').lower())

        body_parts = []
        for part_pos, (name_index, model_count, base, model_index) in cur.records(
            ST_BODYPART, bodypart_count, 0, bodypart_offset,
        ):
            models = []
            for model_pos, (
                model_name, model_type, radius,
                mesh_count, mesh_index,
                vert_count, vert_index, tangent_index,
                attach_count, attach_index,
                eyeball_count, eyeball_index,
                vertex_data, tangent_data,
            ) in cur.records(ST_MODEL, model_count, part_pos, model_index):
                if vert_index % VERTEX_SIZE or tangent_index % TANGENT_SIZE:
                    raise FormatError(
                        f'Model vertex offsets {vert_index}, {tangent_index} are misaligned!'
                    )
                meshes = [
                    Mesh(
                        material, mesh_verts, vertex_offset,
                        material_type, material_param, mesh_id,
                        FrozenVec(cx, cy, cz), list(lod_verts),
                    )
                    for _, (
                        material, mesh_model, mesh_verts, vertex_offset,
                        flex_count, flex_index, material_type, material_param, mesh_id,
                        cx, cy, cz, *lod_verts,
                    ) in cur.records(ST_MESH, mesh_count, model_pos, mesh_index)
                ]
                models.append(Model(
                    _decode_name(model_name), model_type, radius,
                    meshes, vert_count, vert_index, tangent_index,
                ))
            part_name = cur.nullstr(part_pos, name_index) if name_index else ''
            body_parts.append(BodyPart(part_name, base, models))

        LOGGER.debug(
            'MDL v{} "{}": {} textures, {} body parts',
            version, _decode_name(name), len(textures), len(body_parts),
        )
        return cls(
            version, checksum, _decode_name(name), file_len,
            FrozenVec(eye_x, eye_y, eye_z),
            FrozenVec(illum_x, illum_y, illum_z),
            FrozenVec(hull_min_x, hull_min_y, hull_min_z),
            FrozenVec(hull_max_x, hull_max_y, hull_max_z),
            FrozenVec(view_min_x, view_min_y, view_min_z),
            FrozenVec(view_max_x, view_max_y, view_max_z),
            flags,
            textures,
            cdmaterials,
            skinref_count,
            skin_family_count,
            body_parts,
        )

    def material_paths(self, tex_index: int = 0) -> List[str]:
        """Return the possible material paths for a texture, for each search folder."""
        name = self.textures[tex_index].name
        if not self.cdmaterials:
            return [f'materials/{name}.vmt']
        return [
            f'materials/{folder.rstrip("/")}/{name}.vmt' if folder else f'materials/{name}.vmt'
            for folder in self.cdmaterials
        ]

    @property
    def first_texture(self) -> Optional[str]:
        """The first texture name, used as the material for every mesh."""
        return self.textures[0].name if self.textures else None
