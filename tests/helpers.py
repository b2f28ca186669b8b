"""Helpers for performing tests.

These build small but valid copies of each file format in memory, so the
readers can be tested without shipping game content.
"""
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from io import BytesIO
from pathlib import Path
import lzma
import struct
import zipfile
import zlib

from srcview import bsp as bsp_mod, mdl as mdl_mod, vtx as vtx_mod, vvd as vvd_mod
from srcview.bsp import BSP_LUMPS
from srcview.vpk import DIR_ARCH_INDEX, ENTRY_TERMINATOR, VPK_SIG, get_arch_filename
from srcview.vtf import ImageFormats, ResourceID


__all__ = [
    'lzma_compress', 'make_zip', 'make_vpk',
    'make_vtf', 'make_mdl', 'make_vvd', 'make_vtx',
    'make_bsp', 'pack_rows', 'make_square_map',
    'SQUARE_CORNERS', 'EPSILON',
]

# Floats are stored in single precision.
EPSILON = 1e-5


def lzma_compress(data: bytes) -> bytes:
    """Compress data, using Valve's LZMA header."""
    dict_size = 1 << 16
    compressed = lzma.compress(data, lzma.FORMAT_RAW, filters=[{
        'id': lzma.FILTER_LZMA1,
        'dict_size': dict_size,
        'lc': 3, 'lp': 0, 'pb': 2,
    }])
    props = (2 * 5 + 0) * 9 + 3
    return struct.pack('<4sIIBI', b'LZMA', len(data), len(compressed), props, dict_size) + compressed


def make_zip(files: Mapping[str, bytes], compression: int = zipfile.ZIP_STORED) -> bytes:
    """Build a ZIP archive, like a BSP pakfile."""
    buf = BytesIO()
    with zipfile.ZipFile(buf, 'w', compression) as zipf:
        for name, data in files.items():
            zipf.writestr(name, data)
    return buf.getvalue()


def _split(path: str) -> Tuple[str, str, str]:
    folder, _, name = path.rpartition('/')
    filename, dot, ext = name.rpartition('.')
    if not dot:
        filename, ext = name, ''
    return folder, filename, ext


def make_vpk(
    folder: Path,
    files: Mapping[str, bytes],
    name: str = 'pak01_dir.vpk',
    *,
    version: int = 1,
    preload_size: int = 0,
    chunk: Optional[int] = None,
    terminator: int = ENTRY_TERMINATOR,
) -> Path:
    """Write a VPK to the folder, returning the path to the directory file.

    The first ``preload_size`` bytes of each file are stored in the tree. The
    remainder goes into the numbered chunk if given, otherwise after the tree.
    """
    tree_map: Dict[str, Dict[str, Dict[str, bytes]]] = {}
    for path, data in files.items():
        directory, filename, ext = _split(path)
        tree_map.setdefault(ext, {}).setdefault(directory, {})[filename] = data

    tree = bytearray()
    archive = bytearray()
    arch_index = DIR_ARCH_INDEX if chunk is None else chunk
    for ext, dirs in tree_map.items():
        tree += (ext or ' ').encode('ascii') + b'\0'
        for directory, dir_files in dirs.items():
            tree += (directory or ' ').encode('ascii') + b'\0'
            for filename, data in dir_files.items():
                preload = data[:preload_size]
                rest = data[preload_size:]
                tree += filename.encode('ascii') + b'\0'
                tree += struct.pack(
                    '<IHHIIH',
                    zlib.crc32(data), len(preload), arch_index,
                    len(archive), len(rest), terminator,
                )
                tree += preload
                archive += rest
            tree += b'\0'
        tree += b'\0'
    tree += b'\0'

    header = struct.pack('<III', VPK_SIG, version, len(tree))
    if version >= 2:
        header += struct.pack('<4I', 0 if chunk is not None else len(archive), 0, 0, 0)

    dir_path = folder / name
    if chunk is None:
        dir_path.write_bytes(header + tree + archive)
    else:
        dir_path.write_bytes(header + tree)
        (folder / get_arch_filename(name, chunk)).write_bytes(bytes(archive))
    return dir_path


def make_vtf(
    width: int,
    height: int,
    fmt: ImageFormats = ImageFormats.RGBA8888,
    mip_count: int = 1,
    *,
    minor: int = 2,
    frame_count: int = 1,
    flags: int = 0,
    low_res: Optional[Tuple[ImageFormats, int, int]] = None,
    extra_resources: Sequence[Tuple[bytes, int, int]] = (),
) -> bytes:
    """Build a VTF file.

    Each mipmap is filled with its level number, so tests can tell which
    data was read. The thumbnail is filled with ``0xAA``.
    """
    low_fmt, low_width, low_height = low_res or (ImageFormats.NONE, 0, 0)
    low_data = b'' if low_fmt is ImageFormats.NONE else b'\xAA' * low_fmt.bytes_for_size(low_width, low_height)
    high_data = b''.join([
        bytes([level]) * (fmt.bytes_for_size(width, height, level) * frame_count)
        for level in reversed(range(mip_count))
    ])

    header_len = 12 + 51  # Signature, version, then the main header.
    if minor >= 2:
        header_len += 2
    resources: List[Tuple[bytes, int, int]] = []
    if minor >= 3:
        if low_data:
            resources.append((ResourceID.LOW_RES.value, 0, 0))
        resources.append((ResourceID.HIGH_RES.value, 0, 0))
        resources += extra_resources
        header_len += 15 + 8 * len(resources)
    header_size = (header_len + 15) // 16 * 16

    header = b'VTF\0' + struct.pack(
        '<II I HHIHH4x3f4xfiBiBB',
        7, minor,
        header_size,
        width, height, flags,
        frame_count, 0,
        0.25, 0.5, 0.75,
        1.0,
        fmt.ind,
        mip_count,
        low_fmt.ind if low_fmt is not ImageFormats.NONE else -1,
        low_width, low_height,
    )
    if minor >= 2:
        header += struct.pack('<H', 1)
    if minor >= 3:
        header += struct.pack('<3xI8x', len(resources))
        for res_id, res_flags, value in resources:
            if res_id == ResourceID.LOW_RES.value:
                value = header_size
            elif res_id == ResourceID.HIGH_RES.value:
                value = header_size + len(low_data)
            header += struct.pack('<3sBI', res_id, res_flags, value)
    assert len(header) == header_len, (len(header), header_len)
    return header.ljust(header_size, b'\0') + low_data + high_data


def make_mdl(
    textures: Sequence[str],
    cdmaterials: Sequence[str] = (),
    models: Sequence[Tuple[str, int, int]] = (('body', 4, 0),),
    *,
    checksum: int = 0x1234,
    version: int = 48,
    name: str = 'props/test.mdl',
    part_name: str = 'body',
) -> bytes:
    """Build an MDL file with a single body part.

    Each model is given as ``(name, vertex_count, first_vertex)``, and has a
    single mesh.
    """
    st_header = mdl_mod.ST_HEADER
    st_tex = mdl_mod.ST_TEXTURE
    st_part = mdl_mod.ST_BODYPART
    st_model = mdl_mod.ST_MODEL
    st_mesh = mdl_mod.ST_MESH

    tex_off = st_header.size
    cd_off = tex_off + len(textures) * st_tex.size
    part_off = cd_off + 4 * len(cdmaterials)
    model_off = part_off + st_part.size
    mesh_off = model_off + len(models) * st_model.size
    str_off = mesh_off + len(models) * st_mesh.size

    strings = bytearray()

    def add_string(text: str) -> int:
        pos = str_off + len(strings)
        strings.extend(text.encode('ascii') + b'\0')
        return pos

    body = bytearray()
    for i, tex in enumerate(textures):
        record_pos = tex_off + i * st_tex.size
        body += st_tex.pack(add_string(tex) - record_pos, 0, 1, 0)
    for folder in cdmaterials:
        body += struct.pack('<i', add_string(folder))
    body += st_part.pack(add_string(part_name) - part_off, len(models), 1, model_off - part_off)
    for i, (model_name, vert_count, first_vert) in enumerate(models):
        model_pos = model_off + i * st_model.size
        body += st_model.pack(
            model_name.encode('ascii'), 0, 32.0,
            1, mesh_off + i * st_mesh.size - model_pos,
            vert_count, first_vert * mdl_mod.VERTEX_SIZE, first_vert * mdl_mod.TANGENT_SIZE,
            0, 0, 0, 0, 0, 0,
        )
    for i, (model_name, vert_count, first_vert) in enumerate(models):
        mesh_pos = mesh_off + i * st_mesh.size
        body += st_mesh.pack(
            0, model_off + i * st_model.size - mesh_pos, vert_count, 0,
            0, 0, 0, 0, i,
            0.0, 0.0, 0.0,
            vert_count, 0, 0, 0, 0, 0, 0, 0,
        )
    assert len(body) + tex_off == str_off
    length = str_off + len(strings)

    header = st_header.pack(
        mdl_mod.MDL_ID, version, checksum, name.encode('ascii'), length,
        *[0.0] * 18,
        0,
        0, 0, 0, 0, 0, 0, 0, 0, 0, 0,
        0, 0,
        len(textures), tex_off,
        len(cdmaterials), cd_off,
        len(textures), 1, 0,
        1, part_off,
    )
    return header + bytes(body) + bytes(strings)


def make_vvd(
    positions: Sequence[Tuple[float, float, float]],
    *,
    checksum: int = 0x1234,
    fixups: Sequence[Tuple[int, int, int]] = (),
) -> bytes:
    """Build a VVD file with a single LOD.

    Each vertex has a UV of ``(index / 10, 0)``.
    """
    vertex_start = vvd_mod.ST_HEADER.size + len(fixups) * vvd_mod.ST_FIXUP.size
    tangent_start = vertex_start + len(positions) * vvd_mod.ST_VERTEX.size
    lod_counts = [len(positions)] + [0] * 7
    data = vvd_mod.ST_HEADER.pack(
        vvd_mod.VVD_ID, 4, checksum, 1, *lod_counts,
        len(fixups), vvd_mod.ST_HEADER.size, vertex_start, tangent_start,
    )
    for fixup in fixups:
        data += vvd_mod.ST_FIXUP.pack(*fixup)
    for i, (x, y, z) in enumerate(positions):
        data += vvd_mod.ST_VERTEX.pack(
            1.0, 0.0, 0.0, 0, 0, 0, 1,
            x, y, z,
            0.0, 0.0, 1.0,
            i / 10, 0.0,
        )
    for _ in positions:
        data += vvd_mod.ST_TANGENT.pack(1.0, 0.0, 0.0, 1.0)
    return data


def make_vtx(
    groups: Sequence[Tuple[Sequence[int], Sequence[int], Sequence[Tuple[int, int]]]],
    *,
    checksum: int = 0x1234,
    mdl_version: int = 48,
) -> bytes:
    """Build a VTX file with one body part, model, LOD and mesh.

    Each strip group is given as ``(vertex_ids, indices, strips)``, with each
    strip an ``(index_offset, index_count)`` pair.
    """
    extended = mdl_version >= vtx_mod.EXTENDED_MDL_VERSION
    st_group = vtx_mod.ST_STRIP_GROUP_EXT if extended else vtx_mod.ST_STRIP_GROUP
    st_strip = vtx_mod.ST_STRIP_EXT if extended else vtx_mod.ST_STRIP

    part_pos = vtx_mod.ST_HEADER.size
    model_pos = part_pos + vtx_mod.ST_BODYPART.size
    lod_pos = model_pos + vtx_mod.ST_MODEL.size
    mesh_pos = lod_pos + vtx_mod.ST_MODEL_LOD.size
    group_start = mesh_pos + vtx_mod.ST_MESH.size
    data_pos = group_start + len(groups) * st_group.size

    data = bytearray(vtx_mod.ST_HEADER.pack(
        7, 24, 53, 9, 3, checksum, 1, 0, 1, part_pos,
    ))
    data += vtx_mod.ST_BODYPART.pack(1, model_pos - part_pos)
    data += vtx_mod.ST_MODEL.pack(1, lod_pos - model_pos)
    data += vtx_mod.ST_MODEL_LOD.pack(1, mesh_pos - lod_pos, 0.0)
    data += vtx_mod.ST_MESH.pack(len(groups), group_start - mesh_pos, 0)

    tail = bytearray()
    for i, (vert_ids, indices, strips) in enumerate(groups):
        group_pos = group_start + i * st_group.size
        vert_off = data_pos + len(tail)
        for vert_id in vert_ids:
            tail += vtx_mod.ST_VERTEX.pack(0, 1, 2, 1, vert_id, 0, 0, 0)
        index_off = data_pos + len(tail)
        for index in indices:
            tail += vtx_mod.ST_INDEX.pack(index)
        strip_off = data_pos + len(tail)
        for strip_ind_off, strip_ind_count in strips:
            tail += st_strip.pack(
                strip_ind_count, strip_ind_off,
                len(vert_ids), 0,
                1, vtx_mod.StripFlags.IS_TRILIST.value,
                0, 0,
            )
        data += st_group.pack(
            len(vert_ids), vert_off - group_pos,
            len(indices), index_off - group_pos,
            len(strips), strip_off - group_pos,
            0,
        )
    assert len(data) == data_pos
    return bytes(data + tail)


def pack_rows(fmt: struct.Struct, rows: Iterable[Sequence[object]]) -> bytes:
    """Pack a list of rows into a lump."""
    return b''.join([fmt.pack(*row) for row in rows])


def make_bsp(
    lumps: Mapping[BSP_LUMPS, bytes],
    *,
    version: int = 20,
    compressed: Iterable[BSP_LUMPS] = (),
    lump_versions: Optional[Mapping[BSP_LUMPS, int]] = None,
    game_lumps: Optional[Mapping[bytes, Tuple[int, bytes]]] = None,
) -> bytes:
    """Build a BSP file.

    Game lumps are given as ``{id: (version, data)}``, and are placed last
    since their offsets are absolute.
    """
    compressed = set(compressed)
    lump_versions = lump_versions or {}
    header_size = bsp_mod.HEADER_SIZE
    headers: Dict[BSP_LUMPS, Tuple[int, int, int, int]] = {}
    body = bytearray()
    for lump_id, data in lumps.items():
        fourcc = 0
        if lump_id in compressed:
            fourcc = len(data)
            data = lzma_compress(data)
        headers[lump_id] = (header_size + len(body), len(data), lump_versions.get(lump_id, 0), fourcc)
        body += data
        # Lumps are aligned to 4 bytes.
        body += b'\0' * (-len(body) % 4)

    if game_lumps:
        game_pos = header_size + len(body)
        table = struct.pack('<i', len(game_lumps))
        data_pos = game_pos + 4 + len(game_lumps) * bsp_mod.ST_GAME_LUMP.size
        contents = bytearray()
        for lump_name, (lump_ver, lump_data) in game_lumps.items():
            table += bsp_mod.ST_GAME_LUMP.pack(
                lump_name[::-1], 0, lump_ver,
                data_pos + len(contents), len(lump_data),
            )
            contents += lump_data
        headers[BSP_LUMPS.GAME_LUMP] = (game_pos, len(table) + len(contents), 0, 0)
        body += table + contents

    header = bytearray(bsp_mod.HEADER_1.pack(bsp_mod.BSP_MAGIC, version))
    for lump_id in BSP_LUMPS:
        header += bsp_mod.HEADER_LUMP.pack(*headers.get(lump_id, (0, 0, 0, 0)))
    header += bsp_mod.HEADER_2.pack(42)
    assert len(header) == header_size
    return bytes(header + body)


# A 64x64 square on the XY plane.
SQUARE_CORNERS = [(0.0, 0.0, 0.0), (0.0, 64.0, 0.0), (64.0, 64.0, 0.0), (64.0, 0.0, 0.0)]


def make_square_map(
    *,
    light_ofs: Sequence[int] = (0, ),
    texture: str = 'BRICK/WALL01',
    disp_power: Optional[int] = None,
    disp_offset: Tuple[float, float, float] = (0.0, 0.0, 0.0),
    lightmap_mins: Tuple[int, int] = (0, 0),
    lighting: Optional[bytes] = None,
    pakfile: Optional[bytes] = None,
    game_lumps: Optional[Mapping[bytes, Tuple[int, bytes]]] = None,
) -> bytes:
    """Build a map with a face on the square for each light offset.

    Odd faces use reversed surfedges, giving the loop ``0, 3, 2, 1``. If a
    power is given, the first face is a displacement with every vertex offset
    by ``disp_offset``. The texture is 64x64, and the lightmap axes scale by
    1/16.
    """
    edges = [(0, 0), (0, 1), (1, 2), (2, 3), (3, 0)]
    surfedges = [1, 2, 3, 4, -4, -3, -2, -1]
    faces = []
    for i, ofs in enumerate(light_ofs):
        first_edge = 0 if i % 2 == 0 else 4
        dispinfo = 0 if i == 0 and disp_power is not None else -1
        faces.append((
            0, 0, 0, first_edge, 4, 0, dispinfo, -1,
            0, -1, -1, -1, ofs, 4096.0,
            lightmap_mins[0], lightmap_mins[1], 4, 4,
            i, 0, 0, 0,
        ))
    lumps = {
        BSP_LUMPS.PLANES: pack_rows(bsp_mod.ST_PLANE, [(0.0, 0.0, 1.0, 0.0, 2)]),
        BSP_LUMPS.VERTEXES: pack_rows(bsp_mod.ST_VERTEX, SQUARE_CORNERS),
        BSP_LUMPS.EDGES: pack_rows(bsp_mod.ST_EDGE, edges),
        BSP_LUMPS.SURFEDGES: pack_rows(bsp_mod.ST_SURFEDGE, [(edge, ) for edge in surfedges]),
        BSP_LUMPS.FACES: pack_rows(bsp_mod.ST_FACE, faces),
        BSP_LUMPS.TEXINFO: pack_rows(bsp_mod.ST_TEXINFO, [(
            1.0, 0.0, 0.0, 0.0,
            0.0, 1.0, 0.0, 0.0,
            0.0625, 0.0, 0.0, 0.0,
            0.0, 0.0625, 0.0, 0.0,
            0, 0,
        )]),
        BSP_LUMPS.TEXDATA: pack_rows(bsp_mod.ST_TEXDATA, [(0.5, 0.5, 0.5, 0, 64, 64, 64, 64)]),
        BSP_LUMPS.TEXDATA_STRING_DATA: texture.encode('ascii') + b'\0',
        BSP_LUMPS.TEXDATA_STRING_TABLE: struct.pack('<i', 0),
        BSP_LUMPS.MODELS: pack_rows(bsp_mod.ST_MODEL, [(
            0.0, 0.0, 0.0, 64.0, 64.0, 0.0, 0.0, 0.0, 0.0, 0, 0, len(faces),
        )]),
    }
    if disp_power is not None:
        side = (1 << disp_power) + 1
        lumps[BSP_LUMPS.DISPINFO] = pack_rows(bsp_mod.ST_DISPINFO, [(
            0.0, 0.0, 0.0, 0, 0, disp_power, 0, 0.0, 1, 0, 0, 0,
        )])
        lumps[BSP_LUMPS.DISP_VERTS] = pack_rows(bsp_mod.ST_DISPVERT, [
            (*disp_offset, 1.0, 0.5)
            for _ in range(side * side)
        ])
    if lighting is not None:
        lumps[BSP_LUMPS.LIGHTING] = lighting
    if pakfile is not None:
        lumps[BSP_LUMPS.PAKFILE] = pakfile
    return make_bsp(lumps, game_lumps=game_lumps)
