"""Mounts the archives of a game, and loads assets by searching through them.

The game is described by an INI file::

    [launch]
    game = hl2
    root = /path/to/steamapps/common/Half-Life 2

    [hl2]
    name = hl2
    maps = maps
    map = d1_trainstation_01.bsp
    vpk = hl2_textures_dir.vpk
          hl2_misc_dir.vpk
"""
from typing import Callable, List, Optional, Tuple, TypeVar
from pathlib import Path
import configparser

import attrs

from srcview import StringPath, logger
from srcview.bsp import BSP, StaticProp
from srcview.errors import FormatError, NotFound, SourceError
from srcview.mdl import MDL
from srcview.meshes import LevelMeshes, MeshBuilder, build_meshes
from srcview.studio import Model, build_model
from srcview.vmt import VMT
from srcview.vpath import LocalPath, PathLike, as_path, join
from srcview.vpk import VPK
from srcview.vtf import VTF, Texture
from srcview.vtx import VTX
from srcview.vvd import VVD


__all__ = ['GameData', 'Level', 'MaterialGroup', 'texture_params']
LOGGER = logger.get_logger(__name__)
T = TypeVar('T')

#: The strip data variant used for models, there are several for different hardware.
VTX_SUFFIX = '.dx90.vtx'


def texture_params(shader: str) -> List[str]:
    """Return the texture parameters a shader needs, in binding order."""
    if shader == 'worldvertextransition':
        return ['$basetexture2', '$basetexture']
    return ['$basetexture']


@attrs.define(eq=False)
class MaterialGroup:
    """A mesh from a level, with its material and textures resolved."""
    texdata: int
    material: str
    vmt: VMT
    textures: List[Texture]
    mesh: MeshBuilder
    is_displacement: bool = False


@attrs.define(eq=False)
class Level:
    """A loaded level, ready to draw."""
    bsp: BSP
    meshes: LevelMeshes
    groups: List[MaterialGroup]
    props: List[StaticProp]
    #: Groups which were dropped, with the reason.
    failures: List[Tuple[str, SourceError]] = attrs.Factory(list)


class GameData:
    """The archives for a game, searched in order."""
    path: Path
    maps_dir: Path
    starter_map: Path
    dirs: List[VPK]

    def __init__(self, path: StringPath, maps_dir: StringPath, starter_map: StringPath, dirs: List[VPK]) -> None:
        self.path = Path(path)
        self.maps_dir = Path(maps_dir)
        self.starter_map = Path(starter_map)
        self.dirs = dirs

    def __repr__(self) -> str:
        return f'<GameData "{self.path}", {len(self.dirs)} VPKs>'

    @classmethod
    def from_ini(cls, filename: StringPath) -> 'GameData':
        """Read the launch configuration, and mount each archive it lists.

        :raises FormatError: If a required section or key is missing.
        :raises NotFound: If an archive does not exist.
        """
        config = configparser.ConfigParser(interpolation=None)
        try:
            with open(filename, encoding='utf8') as file:
                config.read_file(file)
        except FileNotFoundError:
            raise NotFound(f'Config "{filename}" does not exist!') from None
        except configparser.Error as exc:
            raise FormatError(f'Could not parse config "{filename}": {exc}') from exc

        def get(section: str, key: str) -> str:
            try:
                return config[section][key]
            except KeyError:
                raise FormatError(f'Config is missing "{key}" in section [{section}]!') from None

        game = get('launch', 'game')
        path = Path(get('launch', 'root'), get(game, 'name'))
        maps_dir = path / get(game, 'maps')
        starter_map = maps_dir / get(game, 'map')

        dirs = []
        for vpk_name in get(game, 'vpk').splitlines():
            vpk_name = vpk_name.strip()
            if not vpk_name:
                continue
            LOGGER.info('Mounting {}', vpk_name)
            dirs.append(VPK(path / vpk_name))
        LOGGER.info('Mounted {} VPKs for "{}"', len(dirs), game)
        return cls(path, maps_dir, starter_map, dirs)

    def _search(self, path: PathLike, func: Callable[[VPK, PathLike], T]) -> T:
        """Try each archive in turn, returning the first successful result."""
        for vpk in self.dirs:
            try:
                return func(vpk, path)
            except SourceError as exc:
                LOGGER.debug('Could not load "{}" from {}: {}', path, vpk, exc)
        raise NotFound(f'"{join(as_path(path))}" was not found in any VPK!')

    def _find_vmt(self, path: PathLike) -> VMT:
        """Find and parse a material, leaving patches unresolved."""
        return self._search(path, VPK.load_vmt)

    def load_vmt(self, path: PathLike) -> VMT:
        """Find and parse a material, resolving patches."""
        vmt = self._find_vmt(path)
        vmt.resolve_patch(self._find_vmt)
        return vmt

    def load_vtf(self, path: PathLike) -> VTF:
        """Find and parse a texture."""
        return self._search(path, VPK.load_vtf)

    def load_mdl(self, path: PathLike) -> MDL:
        """Find and parse a model header."""
        return self._search(path, VPK.load_mdl)

    def load_vvd(self, path: PathLike) -> VVD:
        """Find and parse model vertex data."""
        return self._search(path, VPK.load_vvd)

    def load_vtx(self, path: PathLike, mdl_version: int = 0) -> VTX:
        """Find and parse model strip data."""
        return self._search(path, lambda vpk, vtx_path: vpk.load_vtx(vtx_path, mdl_version))

    def load_model(self, path: PathLike) -> Model:
        """Load the three files of a studio model, then assemble them."""
        mdl_name = join(as_path(path))
        base = mdl_name[:-4] if mdl_name.casefold().endswith('.mdl') else mdl_name
        with logger.context(mdl_name):
            mdl = self.load_mdl(mdl_name)
            vvd = self.load_vvd(base + '.vvd')
            vtx = self.load_vtx(base + VTX_SUFFIX, mdl.version)
            return build_model(mdl, vtx, vvd)

    def resolve_material(self, name: str, pak: Optional[VPK] = None) -> Tuple[VMT, List[Texture]]:
        """Load a material used in a level, and the textures it needs.

        Materials are checked in the map's pakfile first, textures are checked
        in the game's archives first.
        """
        mat_path = LocalPath('materials', name.replace('\\', '/').lower(), 'vmt')
        vmt: Optional[VMT] = None
        if pak is not None:
            try:
                vmt = pak.load_vmt(mat_path)
            except SourceError as exc:
                LOGGER.debug('Material "{}" not in pakfile: {}', name, exc)
            else:
                vmt.resolve_patch(self._find_vmt)
        if vmt is None:
            vmt = self.load_vmt(mat_path)
        vmt.check_supported()

        textures = []
        for param in texture_params(vmt.effective_shader):
            tex_name = vmt.get(param)
            if tex_name is None:
                LOGGER.warning('Material "{}" has no {} parameter', name, param)
                continue
            tex_path = LocalPath('materials', tex_name.replace('\\', '/'), 'vtf')
            try:
                vtf = self.load_vtf(tex_path)
            except NotFound:
                if pak is None:
                    raise
                vtf = pak.load_vtf(tex_path)
            textures.append(vtf.get_high_res())
        return vmt, textures

    def load_level(self, filename: Optional[StringPath] = None) -> Level:
        """Load a BSP and build its geometry, resolving every material.

        If not specified, the starter map is loaded. Groups whose material or
        textures fail to load are logged and dropped.
        """
        if filename is None:
            filename = self.starter_map
        bsp = BSP.open(filename)
        with logger.context(Path(filename).name):
            meshes = build_meshes(bsp)
            try:
                pak: Optional[VPK] = bsp.pakfile
            except SourceError:  # Logged by the lump cache.
                pak = None

            level = Level(bsp, meshes, [], [])
            todo = [
                (texdata, mesh, False)
                for texdata, mesh in meshes.textured.items()
            ] + [
                (texdata, mesh, True)
                for texdata, mesh in meshes.displacements
            ]
            for texdata, mesh, is_disp in todo:
                material = meshes.materials[texdata]
                try:
                    vmt, textures = self.resolve_material(material, pak)
                except SourceError as exc:
                    LOGGER.warning('Dropping mesh for "{}": {}', material, exc)
                    level.failures.append((material, exc))
                    continue
                level.groups.append(MaterialGroup(texdata, material, vmt, textures, mesh, is_disp))

            try:
                level.props = bsp.props
            except SourceError:  # Logged by the lump cache.
                level.props = []
            LOGGER.info(
                'Loaded {}: {} groups, {} dropped, {} props',
                filename, len(level.groups), len(level.failures), len(level.props),
            )
        return level
