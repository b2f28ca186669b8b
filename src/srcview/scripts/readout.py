"""Print a summary of a Source engine file.

The file can be a BSP, VPK, VTF, VMT or MDL. If a VPK is given along with
a path inside it, that file is read from the archive instead.
"""
from typing import Callable, Dict, List, Optional
import argparse
import sys

from srcview import logger
from srcview.bsp import BSP
from srcview.errors import SourceError
from srcview.mdl import MDL
from srcview.meshes import build_meshes
from srcview.vmt import VMT
from srcview.vpath import GlobalPath
from srcview.vpk import VPK
from srcview.vtf import VTF


def show_bsp(filename: str) -> None:
    """Summarise the lumps and geometry of a map."""
    bsp = BSP.open(filename)
    print(f'{filename}: BSP v{bsp.version}, revision {bsp.map_revision}')
    for lump in bsp.lumps.values():
        if lump.length:
            comp = ' (compressed)' if lump.is_compressed else ''
            print(f'  {lump.type.name:<32} v{lump.version} {lump.length:>10} bytes{comp}')
    meshes = build_meshes(bsp)
    print(f'Faces: {len(bsp.faces)}, textures: {len(bsp.textures)}')
    print(f'Textured meshes: {len(meshes.textured)}, displacements: {len(meshes.displacements)}')
    for texdata, mesh in sorted(meshes.textured.items()):
        print(f'  {meshes.materials[texdata]}: {mesh.triangle_count} tris')
    try:
        props = bsp.props
    except SourceError as exc:
        print(f'Static props unavailable: {exc}')
    else:
        print(f'Static props: {len(props)}')
    try:
        pak = bsp.pakfile
    except SourceError as exc:
        print(f'Pakfile unavailable: {exc}')
    else:
        print(f'Pakfile: {len(pak)} files')


def show_vpk(vpk: VPK) -> None:
    """List the files in an archive."""
    print(f'{vpk.path}: VPK v{vpk.version}, {len(vpk)} files')
    for entry in vpk:
        print(f'  {entry.filename} ({entry.size} bytes, archive {entry.arch_index})')


def show_vtf(vtf: VTF) -> None:
    """Describe a texture's header and mipmaps."""
    print(
        f'VTF {vtf.version[0]}.{vtf.version[1]}: {vtf.width}x{vtf.height} '
        f'{vtf.format.name}, {vtf.frame_count} frames, {vtf.mipmap_count} mipmaps'
    )
    try:
        tex = vtf.get_high_res()
    except SourceError as exc:
        print(f'High-res data unavailable: {exc}')
    else:
        print(f'Decoded as {tex.format.name}, {len(tex.mips)} mips')
        for level, mip in enumerate(tex.mips):
            width, height = tex.mip_size(level)
            print(f'  {level}: {width}x{height}, {len(mip)} bytes')


def show_vmt(vmt: VMT) -> None:
    """Print a material's parameters."""
    print(f'Shader: {vmt.shader}')
    for key, value in vmt.data.items():
        print(f'  {key} = {value}')
    for name, block in vmt.blocks.items():
        print(f'  {name} {{')
        for key, value in block.items():
            print(f'    {key} = {value}')
        print('  }')


def show_mdl(mdl: MDL) -> None:
    """Print a model's materials and body parts."""
    print(f'MDL v{mdl.version} "{mdl.name}", checksum {mdl.checksum:#x}')
    print('Materials:')
    for tex in mdl.textures:
        print(f'  {tex.name}')
    print('Search folders:')
    for folder in mdl.cdmaterials:
        print(f'  {folder}')
    for part in mdl.body_parts:
        print(f'Body part "{part.name}":')
        for model in part.models:
            print(f'  {model.name}: {len(model.meshes)} meshes, {model.vertex_count} verts')


def main(args: List[str]) -> None:
    """Main script."""
    parser = argparse.ArgumentParser(description=__doc__)

    parser.add_argument(
        "file",
        help="the file to summarise, or a VPK to read from.",
    )
    parser.add_argument(
        "path",
        nargs='?',
        default=None,
        help="if set, a path inside the VPK to summarise.",
    )
    result = parser.parse_args(args)
    logger.init_logging(main_logger='srcview.readout')

    filename: str = result.file
    inner: Optional[str] = result.path
    ext = filename.rpartition('.')[2].casefold()

    if ext == 'vpk':
        vpk = VPK(filename)
        if inner is None:
            show_vpk(vpk)
            return
        inner_ext = GlobalPath(inner).ext.casefold()
        loaders: Dict[str, Callable[[], None]] = {
            'vtf': lambda: show_vtf(vpk.load_vtf(inner)),
            'vmt': lambda: show_vmt(vpk.load_vmt(inner)),
            'mdl': lambda: show_mdl(vpk.load_mdl(inner)),
        }
        try:
            loader = loaders[inner_ext]
        except KeyError:
            print(f'{inner}: {vpk[inner].size} bytes')
        else:
            loader()
        return

    if inner is not None:
        parser.error('A path can only be given for VPK files.')
    if ext == 'bsp':
        show_bsp(filename)
        return
    with open(filename, 'rb') as file:
        if ext == 'vtf':
            show_vtf(VTF.read(file))
        elif ext == 'vmt':
            show_vmt(VMT.from_bytes(file.read()))
        elif ext == 'mdl':
            show_mdl(MDL.read(file))
        else:
            parser.error(f'Unknown file type "{ext}"!')


def run() -> None:
    """Entry point for the installed script."""
    main(sys.argv[1:])


if __name__ == '__main__':
    run()
