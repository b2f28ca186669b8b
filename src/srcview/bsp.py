"""Reads the lumps of compiled ``.bsp`` maps.

The header is parsed up front, and each lump is decoded the first time its
attribute is accessed. Only the lumps needed to draw the level are parsed.
Others can be fetched raw with :py:meth:`BSP.raw_lump`.
"""
from typing import (
    IO, Any, Callable, ClassVar, Dict, Generic, Iterator, List, Optional, Tuple, Type,
    TypeVar, Union, overload,
)
from typing_extensions import Final
from enum import Enum
import inspect
import struct

import attrs

from srcview import StringPath, logger
from srcview.binformat import Cursor, decompress_lzma
from srcview.const import SurfFlags
from srcview.errors import FormatError, NotFound, Truncated, Unsupported
from srcview.lazy import LazyCache
from srcview.math import FrozenVec
from srcview.vpk import VPK


__all__ = [
    'BSP_LUMPS', 'BSP', 'BSP_MAGIC', 'Lump', 'GameLump',
    'Plane', 'Face', 'TexInfo', 'TexData', 'DispInfo', 'DispVert', 'BModel', 'StaticProp',
    'LightSample',
]
LOGGER = logger.get_logger(__name__)
T = TypeVar('T')

BSP_MAGIC: Final = b'VBSP'  # All BSP files start with this
LUMP_COUNT: Final = 64
HEADER_1: Final = struct.Struct('<4si')  # Magic, version
HEADER_LUMP: Final = struct.Struct('<4i')  # Offset, length, version, fourCC
HEADER_2: Final = struct.Struct('<i')  # Map revision
HEADER_SIZE: Final = HEADER_1.size + LUMP_COUNT * HEADER_LUMP.size + HEADER_2.size

LMP_ID_STATIC_PROPS: Final = b'sprp'
STATIC_PROP_VERSION: Final = 5
TEXTURE_NAME_LIMIT: Final = 128

ST_PLANE: Final = struct.Struct('<4fi')
ST_VERTEX: Final = struct.Struct('<3f')
ST_EDGE: Final = struct.Struct('<HH')
ST_SURFEDGE: Final = struct.Struct('<i')
ST_FACE: Final = struct.Struct(
    '<'
    'H'   # Plane
    'b'   # Side
    'b'   # On node
    'i'   # First surfedge
    'h'   # Surfedge count
    'h'   # Texinfo
    'h'   # Dispinfo
    'h'   # Fog volume
    '4b'  # Light styles
    'i'   # Light offset
    'f'   # Area
    '2i'  # Lightmap mins
    '2i'  # Lightmap size
    'i'   # Original face
    'H'   # Primitive count
    'H'   # First primitive
    'I'   # Smoothing groups
)
ST_TEXINFO: Final = struct.Struct('<16fii')
ST_TEXDATA: Final = struct.Struct('<3f5i')
ST_TEXTABLE: Final = struct.Struct('<i')
ST_DISPINFO: Final = struct.Struct(
    '<'
    '3f'   # Start position
    'i'    # Displacement vertex start
    'i'    # Displacement triangle start
    'i'    # Power
    'i'    # Min tesselation
    'f'    # Smoothing angle
    'i'    # Contents
    'H2x'  # Map face
    'i'    # Lightmap alpha start
    'i'    # Lightmap sample position start
    '128x'  # Neighbours and allowed vertices
)
ST_DISPVERT: Final = struct.Struct('<3fff')
ST_LIGHT_SAMPLE: Final = struct.Struct('<3Bb')  # RGB, signed exponent
ST_MODEL: Final = struct.Struct('<9fiii')
ST_GAME_LUMP: Final = struct.Struct('<4sHHii')
ST_STATIC_PROP_V5: Final = struct.Struct(
    '<'
    '3f'  # Origin
    '3f'  # Angles
    'H'   # Model index
    'H'   # First leaf
    'H'   # Leaf count
    'B'   # Solidity
    'B'   # Flags
    'i'   # Skin
    'ff'  # Min, max fade
    '3f'  # Lighting origin
    'f'   # Fade scale
)


class BSP_LUMPS(Enum):
    """All the lumps in a BSP file.

    The values represent the order lumps appear in the index.
    """
    ENTITIES = 0
    PLANES = 1  #: self.planes
    TEXDATA = 2  #: self.texdata
    VERTEXES = 3  #: self.vertexes
    VISIBILITY = 4
    NODES = 5
    TEXINFO = 6  #: self.texinfo
    FACES = 7  #: self.faces
    LIGHTING = 8
    OCCLUSION = 9
    LEAFS = 10
    FACEIDS = 11
    EDGES = 12  #: self.edges
    SURFEDGES = 13  #: self.surfedges
    MODELS = 14  #: self.bmodels
    WORLDLIGHTS = 15
    LEAFFACES = 16
    LEAFBRUSHES = 17
    BRUSHES = 18
    BRUSHSIDES = 19
    AREAS = 20
    AREAPORTALS = 21
    PORTALS = 22
    CLUSTERS = 23
    PORTALVERTS = 24
    CLUSTERPORTALS = 25
    DISPINFO = 26  #: self.dispinfo
    ORIGINALFACES = 27
    PHYSDISP = 28
    PHYSCOLLIDE = 29
    VERTNORMALS = 30
    VERTNORMALINDICES = 31
    DISP_LIGHTMAP_ALPHAS = 32
    DISP_VERTS = 33  #: self.dispverts
    DISP_LIGHTMAP_SAMPLE_POSITIONS = 34
    GAME_LUMP = 35  #: self.game_lumps
    LEAFWATERDATA = 36
    PRIMITIVES = 37
    PRIMVERTS = 38
    PRIMINDICES = 39
    PAKFILE = 40  #: self.pakfile
    CLIPPORTALVERTS = 41
    CUBEMAPS = 42
    TEXDATA_STRING_DATA = 43  # Inside self.textures
    TEXDATA_STRING_TABLE = 44  #: self.textures
    OVERLAYS = 45
    LEAFMINDISTTOWATER = 46
    FACE_MACRO_TEXTURE_INFO = 47
    DISP_TRIS = 48
    PHYSCOLLIDESURFACE = 49
    WATEROVERLAYS = 50
    LEAF_AMBIENT_INDEX_HDR = 51
    LEAF_AMBIENT_INDEX = 52
    LIGHTING_HDR = 53
    WORLDLIGHTS_HDR = 54
    LEAF_AMBIENT_LIGHTING_HDR = 55
    LEAF_AMBIENT_LIGHTING = 56
    XZIPPAKFILE = 57
    FACES_HDR = 58
    MAP_FLAGS = 59
    OVERLAY_FADES = 60
    OVERLAY_SYSTEM_LEVELS = 61
    PHYSLEVEL = 62
    DISP_MULTIBLEND = 63


@attrs.define(eq=False, repr=False)
class Lump:
    """Represents a lump header in a BSP file."""
    type: BSP_LUMPS
    offset: int
    length: int
    version: int
    # For LZMA-compressed lumps, this is the uncompressed size instead.
    fourcc: int

    @property
    def is_compressed(self) -> bool:
        """If set, the lump is LZMA compressed."""
        return self.fourcc != 0

    def __repr__(self) -> str:
        return f'<BSP Lump {self.type.name!r}, v{self.version}, {self.length} bytes>'


@attrs.define(eq=False, repr=False)
class GameLump:
    """Represents a game lump, a sub-lump identified by a 4-character ID."""
    id: bytes
    flags: int
    version: int
    offset: int
    length: int

    @property
    def is_compressed(self) -> bool:
        """This flag indicates if the lump was compressed."""
        return self.flags & 0x1 != 0

    def __repr__(self) -> str:
        return (
            f'<GameLump {repr(self.id)[1:]}, flags={self.flags}, '
            f'v{self.version}, {self.length} bytes>'
        )


@attrs.frozen
class Plane:
    """A plane, used for the BSP tree and brush faces."""
    normal: FrozenVec
    dist: float
    type: int


@attrs.frozen
class TexInfo:
    """Maps world positions onto texture and lightmap coordinates.

    Each axis is a 4-tuple, used as ``dot(axis, [x, y, z, 1])``.
    """
    s: Tuple[float, float, float, float]
    t: Tuple[float, float, float, float]
    lightmap_s: Tuple[float, float, float, float]
    lightmap_t: Tuple[float, float, float, float]
    flags: SurfFlags
    texdata: int


@attrs.frozen
class TexData:
    """The size and material of a texture."""
    reflectivity: FrozenVec
    name_id: int
    width: int
    height: int
    view_width: int
    view_height: int


@attrs.frozen
class Face:
    """A brush face or displacement."""
    plane_num: int
    side: int
    on_node: int
    first_edge: int
    num_edges: int
    texinfo: int
    dispinfo: int
    fog_volume: int
    styles: Tuple[int, int, int, int]
    light_ofs: int
    area: float
    lightmap_mins: Tuple[int, int]
    lightmap_size: Tuple[int, int]
    orig_face: int
    prim_count: int
    first_prim: int
    smoothing_groups: int

    @property
    def is_displacement(self) -> bool:
        """Check if this face is replaced by a displacement."""
        return self.dispinfo != -1

    def vertex_indices(self, edges: List[Tuple[int, int]], surfedges: List[int]) -> List[int]:
        """Return the vertex indices around this face, in order.

        Each surfedge contributes the vertex it starts at. A negative
        surfedge runs along the edge backwards.
        """
        indices = []
        for i in range(self.first_edge, self.first_edge + self.num_edges):
            try:
                surf = surfedges[i]
                if surf >= 0:
                    indices.append(edges[surf][0])
                else:
                    indices.append(edges[-surf][1])
            except IndexError:
                raise FormatError(f'Face references missing edge (surfedge {i})!') from None
        return indices


@attrs.frozen
class DispInfo:
    """The header for a displacement, replacing a 4-sided face."""
    start_pos: FrozenVec
    vert_start: int
    tri_start: int
    power: int
    min_tess: int
    smoothing_angle: float
    contents: int
    map_face: int
    lightmap_alpha_start: int
    lightmap_sample_start: int

    @property
    def side(self) -> int:
        """The number of vertices along each edge."""
        return (1 << self.power) + 1

    @property
    def vert_count(self) -> int:
        """The total number of vertices."""
        return self.side ** 2


@attrs.frozen
class DispVert:
    """A vertex in a displacement grid."""
    vec: FrozenVec
    dist: float
    alpha: float


@attrs.frozen
class LightSample:
    """A lightmap luxel, stored as ``ColorRGBExp32``."""
    r: int
    g: int
    b: int
    exponent: int

    @property
    def color(self) -> Tuple[float, float, float]:
        """The linear colour, scaled so 255 with no exponent is 1.0."""
        scale = 2.0 ** self.exponent / 255.0
        return (self.r * scale, self.g * scale, self.b * scale)


@attrs.frozen
class BModel:
    """A brush model, either the world or a brush entity."""
    mins: FrozenVec
    maxes: FrozenVec
    origin: FrozenVec
    head_node: int
    first_face: int
    face_count: int


@attrs.frozen
class StaticProp:
    """Represents a ``prop_static`` in the BSP."""
    model: str
    origin: FrozenVec
    angles: FrozenVec
    first_leaf: int
    leaf_count: int
    solidity: int
    flags: int
    skin: int
    min_fade: float
    max_fade: float
    lighting: FrozenVec
    fade_scale: float

    def __repr__(self) -> str:
        return f'<Prop "{self.model}#{self.skin}" @ {self.origin} rot {self.angles}>'


class ParsedLump(Generic[T]):
    """Allows access to parsed versions of lumps.

    When first accessed, the reader method ``_lmp_read_<name>`` is called to
    parse the lump. The result, or the failure, is cached for later accesses.
    """
    __name__: str

    def __init__(self, lump: Union[bytes, BSP_LUMPS]) -> None:
        self.lump = lump
        self.__name__ = ''
        self._read: Optional[Callable[..., Any]] = None

    def __set_name__(self, owner: Type['BSP'], name: str) -> None:
        self.__name__ = name
        self.__objclass__ = owner
        self._read = getattr(owner, '_lmp_read_' + name)
        owner._parsed_names.append(name)

    def __repr__(self) -> str:
        return f'<srcview.BSP.{self.__name__} member>'

    @overload
    def __get__(self, instance: None, owner: Optional[type] = None) -> 'ParsedLump[T]': ...
    @overload
    def __get__(self, instance: 'BSP', owner: Optional[type] = None) -> T: ...

    def __get__(self, instance: Optional['BSP'], owner: Optional[type] = None) -> Union['ParsedLump[T]', T]:
        """Parse the lump, or return the cached copy."""
        if instance is None:  # Accessed on the class.
            return self
        if self._read is None:
            raise TypeError('ParsedLump.__set_name__ was never called!')
        # noinspection PyProtectedMember
        cache: LazyCache[T] = instance._parsed[self.__name__]
        return cache.get(lambda: self._parse(instance))

    def _parse(self, instance: 'BSP') -> T:
        assert self._read is not None
        if isinstance(self.lump, BSP_LUMPS):
            LOGGER.debug('Load lump {} ({} bytes)', self.lump, instance.lumps[self.lump].length)
        else:
            LOGGER.debug('Load game lump {}', self.lump)
        result = self._read(instance)
        if inspect.isgenerator(result):  # Convenience, yield to accumulate into a list.
            result = list(result)
        return result


class BSP:
    """A BSP file, with its lumps parsed on demand.

    The whole file is held in memory, so lumps may be decoded from several
    threads at once.
    """
    _parsed_names: ClassVar[List[str]] = []
    version: int
    map_revision: int
    lumps: Dict[BSP_LUMPS, Lump]

    def __init__(self, data: bytes, filename: str = '<memory>') -> None:
        self.filename = filename
        self._data = data
        self.lumps = {}
        self._parsed: Dict[str, LazyCache[Any]] = {
            name: LazyCache(f'{filename}:{name}')
            for name in self._parsed_names
        }
        cur = Cursor.from_bytes(data)
        self.magic, self.version = cur.struct(HEADER_1)
        for index, (_, (offset, length, version, fourcc)) in enumerate(
            cur.records(HEADER_LUMP, LUMP_COUNT)
        ):
            lump_id = BSP_LUMPS(index)
            self.lumps[lump_id] = Lump(lump_id, offset, length, version, fourcc)
        [self.map_revision] = cur.struct(HEADER_2)
        self.validate()

    @classmethod
    def open(cls, filename: StringPath) -> 'BSP':
        """Read a BSP from disk."""
        try:
            with open(filename, 'rb') as file:
                data = file.read()
        except FileNotFoundError:
            raise NotFound(f'BSP "{filename}" does not exist!') from None
        return cls(data, str(filename))

    @classmethod
    def read(cls, file: IO[bytes], filename: str = '<file>') -> 'BSP':
        """Read a BSP from an open file."""
        return cls(file.read(), filename)

    def __repr__(self) -> str:
        return f'<BSP "{self.filename}" v{self.version}>'

    def validate(self) -> None:
        """Check the header.

        :raises FormatError: If the file is not a BSP.
        """
        if self.magic != BSP_MAGIC:
            raise FormatError(f'File is not a BSP file! (magic {self.magic!r})')

    def raw_lump(self, lump: BSP_LUMPS) -> bytes:
        """Return the contents of the given lump, decompressing if required."""
        info = self.lumps[lump]
        if info.offset < 0 or info.length < 0:
            raise FormatError(f'{info!r} has a negative offset or length!')
        if info.offset + info.length > len(self._data):
            raise Truncated(
                f'{info!r} at {info.offset} extends past the end of the file '
                f'({len(self._data)} bytes)!'
            )
        data = self._data[info.offset:info.offset + info.length]
        if info.is_compressed:
            data = decompress_lzma(data)
        return data

    def get_lump(self, lump: BSP_LUMPS, fmt: struct.Struct) -> List[Tuple[Any, ...]]:
        """Decode a lump which is an array of a single structure.

        :raises FormatError: If the lump length is not a multiple of the structure size.
        """
        data = self.raw_lump(lump)
        if len(data) % fmt.size != 0:
            raise FormatError(
                f'{lump.name} lump is {len(data)} bytes, '
                f'not a multiple of {fmt.size}!'
            )
        cur = Cursor.from_bytes(data)
        return [values for _, values in cur.records(fmt, len(data) // fmt.size)]

    def get_game_lump(self, lump_id: bytes) -> Tuple[GameLump, bytes]:
        """Get a given game-lump, given the 4-character byte ID."""
        try:
            lump = self.game_lumps[lump_id]
        except KeyError:
            raise NotFound(f'Game lump {lump_id!r} not in {list(self.game_lumps)}') from None
        if lump.offset < 0 or lump.offset + lump.length > len(self._data):
            raise Truncated(f'{lump!r} extends past the end of the file!')
        data = self._data[lump.offset:lump.offset + lump.length]
        if lump.is_compressed:
            data = decompress_lzma(data)
        return lump, data

    def texture_name(self, texdata: int) -> str:
        """Look up the material name used by a texdata."""
        try:
            return self.textures[self.texdata[texdata].name_id]
        except IndexError:
            raise FormatError(f'Texdata {texdata} has no texture name!') from None

    # Lump readers, called by the ParsedLump descriptors below.

    def _lmp_read_planes(self) -> Iterator[Plane]:
        for nx, ny, nz, dist, plane_type in self.get_lump(BSP_LUMPS.PLANES, ST_PLANE):
            yield Plane(FrozenVec(nx, ny, nz), dist, plane_type)

    def _lmp_read_vertexes(self) -> List[FrozenVec]:
        return [FrozenVec(x, y, z) for x, y, z in self.get_lump(BSP_LUMPS.VERTEXES, ST_VERTEX)]

    def _lmp_read_edges(self) -> List[Tuple[int, int]]:
        return [(a, b) for a, b in self.get_lump(BSP_LUMPS.EDGES, ST_EDGE)]

    def _lmp_read_surfedges(self) -> List[int]:
        return [ind for (ind, ) in self.get_lump(BSP_LUMPS.SURFEDGES, ST_SURFEDGE)]

    def _lmp_read_faces(self) -> Iterator[Face]:
        for (
            plane_num, side, on_node,
            first_edge, num_edges,
            texinfo, dispinfo, fog_volume,
            style1, style2, style3, style4,
            light_ofs, area,
            mins_x, mins_y, size_x, size_y,
            orig_face, prim_count, first_prim, smoothing,
        ) in self.get_lump(BSP_LUMPS.FACES, ST_FACE):
            yield Face(
                plane_num, side, on_node,
                first_edge, num_edges,
                texinfo, dispinfo, fog_volume,
                (style1, style2, style3, style4),
                light_ofs, area,
                (mins_x, mins_y), (size_x, size_y),
                orig_face, prim_count, first_prim, smoothing,
            )

    def _lmp_read_texinfo(self) -> Iterator[TexInfo]:
        for values in self.get_lump(BSP_LUMPS.TEXINFO, ST_TEXINFO):
            yield TexInfo(
                values[0:4], values[4:8], values[8:12], values[12:16],
                SurfFlags(values[16]), values[17],
            )

    def _lmp_read_texdata(self) -> Iterator[TexData]:
        for (
            ref_r, ref_g, ref_b, name_id, width, height, view_width, view_height,
        ) in self.get_lump(BSP_LUMPS.TEXDATA, ST_TEXDATA):
            yield TexData(
                FrozenVec(ref_r, ref_g, ref_b), name_id,
                width, height, view_width, view_height,
            )

    def _lmp_read_textures(self) -> Iterator[str]:
        # The table is an array of int offsets into the data, which is a
        # block of null-terminated strings.
        tex_data = self.raw_lump(BSP_LUMPS.TEXDATA_STRING_DATA)
        for (off, ) in self.get_lump(BSP_LUMPS.TEXDATA_STRING_TABLE, ST_TEXTABLE):
            # Look for the NULL at the end of the string. They're limited to 128 chars long.
            try:
                str_off = tex_data.index(b'\0', off, off + TEXTURE_NAME_LIMIT)
            except ValueError:
                raise FormatError(
                    f'Bad string at {off} in BSP! ({tex_data[off:off + TEXTURE_NAME_LIMIT]!r})'
                ) from None
            yield tex_data[off:str_off].decode('ascii', 'surrogateescape')

    def _lmp_read_dispinfo(self) -> Iterator[DispInfo]:
        for (
            sx, sy, sz, vert_start, tri_start, power, min_tess, smoothing, contents,
            map_face, alpha_start, sample_start,
        ) in self.get_lump(BSP_LUMPS.DISPINFO, ST_DISPINFO):
            yield DispInfo(
                FrozenVec(sx, sy, sz), vert_start, tri_start, power, min_tess,
                smoothing, contents, map_face, alpha_start, sample_start,
            )

    def _lmp_read_dispverts(self) -> Iterator[DispVert]:
        for x, y, z, dist, alpha in self.get_lump(BSP_LUMPS.DISP_VERTS, ST_DISPVERT):
            yield DispVert(FrozenVec(x, y, z), dist, alpha)

    def _lmp_read_lighting(self) -> Iterator[LightSample]:
        for r, g, b, exponent in self.get_lump(BSP_LUMPS.LIGHTING, ST_LIGHT_SAMPLE):
            yield LightSample(r, g, b, exponent)

    def _lmp_read_bmodels(self) -> Iterator[BModel]:
        for (
            min_x, min_y, min_z, max_x, max_y, max_z, org_x, org_y, org_z,
            head_node, first_face, face_count,
        ) in self.get_lump(BSP_LUMPS.MODELS, ST_MODEL):
            yield BModel(
                FrozenVec(min_x, min_y, min_z),
                FrozenVec(max_x, max_y, max_z),
                FrozenVec(org_x, org_y, org_z),
                head_node, first_face, face_count,
            )

    def _lmp_read_game_lumps(self) -> Dict[bytes, GameLump]:
        data = self.raw_lump(BSP_LUMPS.GAME_LUMP)
        if not data:
            return {}
        cur = Cursor.from_bytes(data)
        [lump_count] = cur.struct('<i')
        game_lumps = {}
        for _, (lump_id, flags, version, offset, length) in cur.records(ST_GAME_LUMP, lump_count):
            # The lump ID is backward..
            lump_id = lump_id[::-1]
            game_lumps[lump_id] = GameLump(lump_id, flags, version, offset, length)
        return game_lumps

    def _lmp_read_props(self) -> List[StaticProp]:
        try:
            lump, data = self.get_game_lump(LMP_ID_STATIC_PROPS)
        except NotFound:
            return []
        if lump.version != STATIC_PROP_VERSION:
            raise Unsupported(f'Static prop version {lump.version} is not supported!')

        cur = Cursor.from_bytes(data)
        # Array of model filenames.
        [dict_num] = cur.struct('<i')
        model_dict = [
            padded_name.rstrip(b'\x00').decode('ascii', 'surrogateescape')
            for _, (padded_name, ) in cur.records('<128s', dict_num)
        ]
        # The leaf table is not needed to draw props.
        [leaf_count] = cur.struct('<i')
        cur.seek_relative(2 * leaf_count)

        [prop_count] = cur.struct('<i')
        props = []
        for _, (
            ox, oy, oz, pitch, yaw, roll,
            model_ind, first_leaf, leaf_count,
            solidity, flags, skin, min_fade, max_fade,
            lx, ly, lz, fade_scale,
        ) in cur.records(ST_STATIC_PROP_V5, prop_count):
            try:
                model_name = model_dict[model_ind]
            except IndexError:
                raise FormatError(
                    f'Static prop uses model {model_ind}, '
                    f'but only {len(model_dict)} are defined!'
                ) from None
            props.append(StaticProp(
                model_name,
                FrozenVec(ox, oy, oz),
                FrozenVec(pitch, yaw, roll),
                first_leaf, leaf_count, solidity, flags, skin,
                min_fade, max_fade,
                FrozenVec(lx, ly, lz),
                fade_scale,
            ))
        return props

    def _lmp_read_pakfile(self) -> VPK:
        return VPK.load_packfile(self.raw_lump(BSP_LUMPS.PAKFILE))

    planes: ParsedLump[List[Plane]] = ParsedLump(BSP_LUMPS.PLANES)
    vertexes: ParsedLump[List[FrozenVec]] = ParsedLump(BSP_LUMPS.VERTEXES)
    edges: ParsedLump[List[Tuple[int, int]]] = ParsedLump(BSP_LUMPS.EDGES)
    surfedges: ParsedLump[List[int]] = ParsedLump(BSP_LUMPS.SURFEDGES)
    faces: ParsedLump[List[Face]] = ParsedLump(BSP_LUMPS.FACES)
    texinfo: ParsedLump[List[TexInfo]] = ParsedLump(BSP_LUMPS.TEXINFO)
    texdata: ParsedLump[List[TexData]] = ParsedLump(BSP_LUMPS.TEXDATA)
    textures: ParsedLump[List[str]] = ParsedLump(BSP_LUMPS.TEXDATA_STRING_TABLE)
    dispinfo: ParsedLump[List[DispInfo]] = ParsedLump(BSP_LUMPS.DISPINFO)
    dispverts: ParsedLump[List[DispVert]] = ParsedLump(BSP_LUMPS.DISP_VERTS)
    lighting: ParsedLump[List[LightSample]] = ParsedLump(BSP_LUMPS.LIGHTING)
    bmodels: ParsedLump[List[BModel]] = ParsedLump(BSP_LUMPS.MODELS)
    game_lumps: ParsedLump[Dict[bytes, GameLump]] = ParsedLump(BSP_LUMPS.GAME_LUMP)
    props: ParsedLump[List[StaticProp]] = ParsedLump(LMP_ID_STATIC_PROPS)
    pakfile: ParsedLump[VPK] = ParsedLump(BSP_LUMPS.PAKFILE)
