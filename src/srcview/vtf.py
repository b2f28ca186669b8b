"""Reads Valve's texture format, VTF.

Only the metadata and the raw mipmap payloads are decoded here. Block-compressed
formats are handed to the renderer unchanged, while the common 8-bit layouts are
rearranged into RGBA8888 so they can be uploaded directly.
"""
from typing import IO, Dict, List, Optional, Tuple, Union
from enum import Enum, Flag
import math
import struct

import attrs

from srcview import logger
from srcview.binformat import Cursor
from srcview.const import add_unknown
from srcview.errors import FormatError, NotAvailable, Unsupported
from srcview.lazy import LazyCache
from srcview.math import FrozenVec


__all__ = [
    'VTF', 'Texture', 'Resource',
    'ResourceID', 'ImageFormats', 'VTFFlags', 'FORMAT_ORDER',
    'MAX_SIZE', 'wanted_mip_count', 'convert_to_rgba',
]
LOGGER = logger.get_logger(__name__)
MAX_SIZE = 4096  #: Textures must be smaller than this on both axes.
NO_DATA_FLAG = 0x02  #: Set on resources which only have the value in the header.


def _mk_fmt(
    r: int = 0, g: int = 0, b: int = 0,
    a: int = 0, *,
    grey: int = 0, size: int = 0,
) -> Tuple[int, int, int, int, int, int]:
    """Helper function to construct ImageFormats."""
    global _mk_fmt_ind
    if grey:
        r = g = b = grey
        size = grey + a
    if not size:
        size = r + g + b + a
    _mk_fmt_ind += 1

    return r, g, b, a, size, _mk_fmt_ind


_mk_fmt_ind = -1  # Incremented first time to 0


class ImageFormats(Enum):
    """All VTF image formats, with their data sizes in the value.

    For uncompressed formats the size is the bits per pixel, for block-compressed
    formats it is the bits per 4x4 block.
    """
    def __init__(self, r: int, g: int, b: int, a: int, size: int, ind: int) -> None:
        self.r = r
        self.g = g
        self.b = b
        self.a = a
        self.size = size
        self.ind = ind

    RGBA8888 = _mk_fmt(8, 8, 8, 8)
    ABGR8888 = _mk_fmt(8, 8, 8, 8)
    RGB888 = _mk_fmt(8, 8, 8, 0)
    BGR888 = _mk_fmt(8, 8, 8)
    RGB565 = _mk_fmt(5, 6, 5, 0)
    I8 = _mk_fmt(a=0, grey=8)
    IA88 = _mk_fmt(a=8, grey=8)
    P8 = _mk_fmt(size=8)  # Using a palette somehow - was never implemented by Valve.
    A8 = _mk_fmt(a=8)
    # Blue = alpha channel too
    RGB888_BLUESCREEN = _mk_fmt(8, 8, 8)
    BGR888_BLUESCREEN = _mk_fmt(8, 8, 8)
    ARGB8888 = _mk_fmt(8, 8, 8, 8)
    BGRA8888 = _mk_fmt(8, 8, 8, 8)
    DXT1 = _mk_fmt(size=64)
    DXT3 = _mk_fmt(size=128)
    DXT5 = _mk_fmt(size=128)
    BGRX8888 = _mk_fmt(8, 8, 8, 8)
    BGR565 = _mk_fmt(5, 6, 5)
    BGRX5551 = _mk_fmt(5, 5, 5, 1)
    BGRA4444 = _mk_fmt(4, 4, 4, 4)
    DXT1_ONEBITALPHA = _mk_fmt(size=64)
    BGRA5551 = _mk_fmt(5, 5, 5, 1)
    UV88 = _mk_fmt(size=16)
    UVWQ8888 = _mk_fmt(size=32)
    RGBA16161616F = _mk_fmt(16, 16, 16, 16)
    RGBA16161616 = _mk_fmt(16, 16, 16, 16)

    UVLX8888 = _mk_fmt(size=32)
    NONE = _mk_fmt()
    # These two aren't supported by VTEX & VTFEdit, but are by the engine.
    # They're useful for normal maps.
    ATI1N = _mk_fmt(size=64)
    ATI2N = _mk_fmt(size=128)

    def __repr__(self) -> str:
        return f'<ImageFormats[{self.ind:02}] {self._name_}: size={self.size}>'

    @property
    def is_compressed(self) -> bool:
        """Checks if the format is compressed in 4x4 blocks."""
        return self.name.startswith('DXT') or self.name in ('ATI1N', 'ATI2N')

    def frame_size(self, width: int, height: int) -> int:
        """Compute the number of bytes needed for this image size."""
        if self.is_compressed:
            block_wid, mod = divmod(width, 4)
            if mod:
                block_wid += 1

            block_height, mod = divmod(height, 4)
            if mod:
                block_height += 1
            return self.size * block_wid * block_height // 8
        else:
            return self.size * width * height // 8

    def bytes_for_size(self, width: int, height: int, mip: int = 0) -> int:
        """Compute the size of a single frame of the specified mipmap level."""
        return self.frame_size(max(width >> mip, 1), max(height >> mip, 1))


del _mk_fmt, _mk_fmt_ind


FORMAT_ORDER: Dict[int, ImageFormats] = {
    fmt.ind: fmt
    for fmt in ImageFormats.__members__.values()
    if fmt.name not in ('NONE', 'ATI1N', 'ATI2N')
}
FORMAT_ORDER[-1] = ImageFormats.NONE
# Since these are semi-"internal" formats, the position has changed
# in the enum. They're either 37 in 2013, or 34 in ASW+.
# They're backward because why not.
FORMAT_ORDER[34] = FORMAT_ORDER[37] = ImageFormats.ATI2N
FORMAT_ORDER[35] = FORMAT_ORDER[38] = ImageFormats.ATI1N


class VTFFlags(Flag):
    """The various image flags that may be set."""
    EMPTY = 0
    # Flags from the *.txt config file
    POINT_SAMPLE = 0x00000001
    TRILINEAR = 0x00000002
    CLAMP_S = 0x00000004
    CLAMP_T = 0x00000008
    ANISOTROPIC = 0x00000010
    HINT_DXT5 = 0x00000020
    PWL_CORRECTED = 0x00000040
    NORMAL = 0x00000080
    NO_MIP = 0x00000100
    NO_LOD = 0x00000200
    ALL_MIPS = 0x00000400
    PROCEDURAL = 0x00000800

    # These are automatically generated by vtex from the texture data.
    ONEBITALPHA = 0x00001000
    EIGHTBITALPHA = 0x00002000

    ENVMAP = 0x00004000
    RENDER_TARGET = 0x00008000
    DEPTH_RENDER_TARGET = 0x00010000
    NO_DEBUG_OVERRIDE = 0x00020000
    SINGLE_COPY = 0x00040000
    PRE_SRGB = 0x00080000

    NO_DEPTH_BUFFER = 0x00800000

    CLAMP_U = 0x02000000
    VERTEX_TEXTURE = 0x04000000
    SS_BUMP = 0x08000000
    BORDER = 0x20000000

    add_unknown(locals())


class ResourceID(bytes, Enum):
    """For VTF format 7.3+, there is an extensible resource system.

    These are the IDs defined by Valve, but any 3-byte ID may be used.
    """
    LOW_RES = b'\x01\0\0'  #: The low-res thumbnail. This is in a fixed position in earlier versions.
    HIGH_RES = b'\x30\0\0'  #: The main image. This is in a fixed position in earlier versions.

    #: Used for particle spritesheets.
    PARTICLE_SHEET = b'\x10\0\0'
    #: Cyclic Redundancy Checksum.
    CRC = b'CRC'

    #: Allows forcing specific mipmaps to be used for 'medium' shader settings.
    LOD_SETTINGS = b'LOD'

    #: 4 extra bytes of bitflags.
    EXTRA_FLAGS = b'TSO'

    #: Block of keyvalues data.
    KEYVALUES = b'KVD'


@attrs.define
class Resource:
    """An entry in the resource table of a 7.3+ VTF.

    If the no-data flag is set, ``offset`` is instead the 32-bit value itself.
    """
    flags: int
    offset: int

    @property
    def has_data(self) -> bool:
        """Check if this resource points to a block elsewhere in the file."""
        return not self.flags & NO_DATA_FLAG


@attrs.frozen
class Texture:
    """A decoded image, ready for uploading.

    ``mips`` holds the bytes for each mipmap level, with level 0 the largest.
    """
    width: int
    height: int
    format: ImageFormats
    mips: List[bytes] = attrs.field(repr=lambda mips: f'<{len(mips)} mips>')

    def mip_size(self, level: int) -> Tuple[int, int]:
        """Return the dimensions of this mipmap level."""
        return max(self.width >> level, 1), max(self.height >> level, 1)


_HEADER = struct.Struct(
    '<'    # Align
    'I'    # Header size
    'HH'   # Width, height
    'I'    # Flags
    'H'    # Frame count
    'H'    # First frame index
    '4x'
    'fff'  # Reflectivity vector
    '4x'
    'f'    # Bumpmap scale
    'i'    # High-res image format
    'B'    # Mipmap count
    'i'    # Low-res format (DXT1 usually)
    'BB'   # Low-res width, height
)
_HEADER_DEPTH = struct.Struct('<H')
_HEADER_RESOURCES = struct.Struct('<3xI8x')
_RESOURCE = struct.Struct('<3sBI')


def wanted_mip_count(width: int, height: int, mip_count: int) -> int:
    """Compute how many mipmaps to keep, discarding any smaller than 4x4."""
    smallest = min(width, height)
    if smallest <= 0:
        return 0
    return max(0, min(mip_count, int(math.log2(smallest)) - 1))


def convert_to_rgba(
    fmt: ImageFormats,
    data: bytes,
    pixels: int,
) -> Tuple[ImageFormats, bytes]:
    """Rearrange 8-bit pixel data into RGBA8888.

    Formats which can't be handled this way are returned unchanged.
    """
    if fmt is ImageFormats.BGR888:
        src = data[:pixels * 3]
        out = bytearray(pixels * 4)
        out[0::4] = src[2::3]
        out[1::4] = src[1::3]
        out[2::4] = src[0::3]
    elif fmt is ImageFormats.RGB888:
        src = data[:pixels * 3]
        out = bytearray(pixels * 4)
        out[0::4] = src[0::3]
        out[1::4] = src[1::3]
        out[2::4] = src[2::3]
    elif fmt is ImageFormats.ABGR8888:
        src = data[:pixels * 4]
        out = bytearray(pixels * 4)
        out[0::4] = src[3::4]
        out[1::4] = src[2::4]
        out[2::4] = src[1::4]
        out[3::4] = src[0::4]
        return ImageFormats.RGBA8888, bytes(out)
    elif fmt is ImageFormats.BGRA8888:
        src = data[:pixels * 4]
        out = bytearray(pixels * 4)
        out[0::4] = src[2::4]
        out[1::4] = src[1::4]
        out[2::4] = src[0::4]
        out[3::4] = src[3::4]
        return ImageFormats.RGBA8888, bytes(out)
    elif fmt is ImageFormats.BGRX8888:
        src = data[:pixels * 4]
        out = bytearray(pixels * 4)
        out[0::4] = src[2::4]
        out[1::4] = src[1::4]
        out[2::4] = src[0::4]
    elif fmt is ImageFormats.I8:
        src = data[:pixels]
        out = bytearray(pixels * 4)
        out[0::4] = src
        out[1::4] = src
        out[2::4] = src
    else:
        return fmt, data
    # Remaining formats have no alpha.
    out[3::4] = b'\xFF' * pixels
    return ImageFormats.RGBA8888, bytes(out)


def _lookup_format(index: int) -> ImageFormats:
    try:
        return FORMAT_ORDER[index]
    except KeyError:
        raise Unsupported(f'Unknown image format index {index}!') from None


class VTF:
    """A decoded VTF file.

    Use :py:meth:`read` to construct. The pixel payloads are kept in their
    stored layout until :py:meth:`get_high_res` or :py:meth:`get_low_res`
    is called.
    """
    version: Tuple[int, int]
    width: int
    height: int
    depth: int
    flags: VTFFlags
    frame_count: int
    first_frame_index: int
    reflectivity: FrozenVec
    bumpmap_scale: float
    format: ImageFormats
    mipmap_count: int
    low_format: ImageFormats
    low_width: int
    low_height: int
    resources: Dict[Union[ResourceID, bytes], Resource]

    _low_res_data: bytes
    _high_res_data: List[bytes]
    _low_res: LazyCache[Texture]
    _high_res: LazyCache[Texture]

    def __init__(
        self,
        width: int,
        height: int,
        fmt: ImageFormats = ImageFormats.RGBA8888,
        *,
        version: Tuple[int, int] = (7, 5),
        frame_count: int = 1,
        mipmap_count: int = 0,
        low_format: ImageFormats = ImageFormats.NONE,
        low_width: int = 0,
        low_height: int = 0,
    ) -> None:
        """Create a texture with no pixel data."""
        self.version = version
        self.width = width
        self.height = height
        self.depth = 1
        self.flags = VTFFlags.EMPTY
        self.frame_count = frame_count
        self.first_frame_index = 0
        self.reflectivity = FrozenVec()
        self.bumpmap_scale = 1.0
        self.format = fmt
        self.mipmap_count = mipmap_count
        self.low_format = low_format
        self.low_width = low_width
        self.low_height = low_height
        self.resources = {}

        self._low_res_data = b''
        self._high_res_data = []
        self._low_res = LazyCache('low-res')
        self._high_res = LazyCache('high-res')

    def __repr__(self) -> str:
        return (
            f'<VTF {self.version[0]}.{self.version[1]} {self.width}x{self.height} '
            f'{self.format.name}, {len(self._high_res_data)}/{self.mipmap_count} mips>'
        )

    @classmethod
    def read(cls, file: IO[bytes]) -> 'VTF':
        """Read in a VTF file.

        :param file: The file to read from, it must support relative seeks.
        """
        cur = Cursor(file)
        signature = cur.read(4)
        if signature != b'VTF\0':
            raise FormatError(f'Bad VTF signature {signature!r}!')
        version_major, version_minor = cur.struct('<II')

        if version_major != 7 or not (0 <= version_minor <= 5):
            raise FormatError(
                f"VTF version {version_major}.{version_minor} is not between 7.0-7.5!"
            )

        (
            header_size,
            width,
            height,
            flags,
            frame_count,
            first_frame_index,
            ref_r, ref_g, ref_b,
            bumpmap_scale,
            high_format,
            mipmap_count,
            low_format,
            low_width, low_height,
        ) = cur.struct(_HEADER)

        if width >= MAX_SIZE or height >= MAX_SIZE:
            raise FormatError(f'VTF size {width}x{height} is too large!')

        vtf = cls(
            width, height,
            _lookup_format(high_format),
            version=(version_major, version_minor),
            frame_count=frame_count,
            mipmap_count=mipmap_count,
            low_format=_lookup_format(low_format),
            low_width=low_width,
            low_height=low_height,
        )
        vtf.flags = VTFFlags(flags)
        vtf.first_frame_index = first_frame_index
        vtf.reflectivity = FrozenVec(ref_r, ref_g, ref_b)
        vtf.bumpmap_scale = bumpmap_scale

        if version_minor >= 2:
            [depth] = cur.struct(_HEADER_DEPTH)
            vtf.depth = max(depth, 1)

        if version_minor >= 3:
            [num_resources] = cur.struct(_HEADER_RESOURCES)
            order: List[Tuple[Union[ResourceID, bytes], Resource]] = []
            for _, (res_id, res_flags, offset) in cur.records(_RESOURCE, num_resources):
                try:
                    res_id = ResourceID(res_id)
                except ValueError:
                    pass  # Custom.
                resource = Resource(res_flags, offset)
                if res_id in vtf.resources:
                    raise FormatError(f'Duplicate resource ID {res_id!r}!')
                vtf.resources[res_id] = resource
                order.append((res_id, resource))

            vtf._skip_header(cur, header_size)

            for res_id, resource in order:
                if not resource.has_data:
                    continue
                if res_id is ResourceID.LOW_RES:
                    cur.seek_to(resource.offset)
                    vtf._read_low_res(cur)
                elif res_id is ResourceID.HIGH_RES:
                    cur.seek_to(resource.offset)
                    vtf._read_high_res(cur)
                elif isinstance(res_id, ResourceID):
                    LOGGER.debug('Skipping {} resource', res_id.name)
                else:
                    LOGGER.warning('Unknown VTF resource {!r}, skipping.', res_id)
        else:
            # The image data follows directly, 7.1 has a single pad byte.
            vtf._skip_header(cur, header_size)
            vtf._read_low_res(cur)
            vtf._read_high_res(cur)
        return vtf

    def _skip_header(self, cur: Cursor, header_size: int) -> None:
        """Advance over padding at the end of the header."""
        remaining = header_size - cur.tell()
        if remaining > 0:
            LOGGER.debug(
                '[{}.{}] Not all header has been read, skipping {} bytes',
                self.version[0], self.version[1], remaining,
            )
            cur.seek_relative(remaining)

    def _read_low_res(self, cur: Cursor) -> None:
        """Read the thumbnail image."""
        if self.low_format is ImageFormats.NONE:
            return
        self._low_res_data = cur.read(self.low_format.bytes_for_size(self.low_width, self.low_height))

    def _read_high_res(self, cur: Cursor) -> None:
        """Read the mipmaps we want.

        These are stored smallest first, so skip over the tiny mipmaps and
        then read the remainder in decreasing level order.
        """
        fmt = self.format
        wanted = wanted_mip_count(self.width, self.height, self.mipmap_count)
        skip = 0
        for mip_level in range(wanted, self.mipmap_count):
            skip += fmt.bytes_for_size(self.width, self.height, mip_level) * self.frame_count
        cur.seek_relative(skip)

        mips: List[bytes] = [b''] * wanted
        for mip_level in reversed(range(wanted)):
            mips[mip_level] = cur.read(
                fmt.bytes_for_size(self.width, self.height, mip_level) * self.frame_count
            )
        self._high_res_data = mips

    def get_high_res(self) -> Texture:
        """Return the main image, converting pixels to RGBA where possible.

        :raises NotAvailable: If the file had no usable mipmaps.
        """
        return self._high_res.get(self._build_high_res)

    def get_low_res(self) -> Texture:
        """Return the thumbnail image.

        :raises NotAvailable: If the file has no thumbnail.
        """
        return self._low_res.get(self._build_low_res)

    def _build_high_res(self) -> Texture:
        if not self._high_res_data:
            raise NotAvailable(f'No high-res data in {self!r}')
        fmt = self.format
        mips: List[bytes] = []
        for level, data in enumerate(self._high_res_data):
            pixels = max(self.width >> level, 1) * max(self.height >> level, 1)
            fmt, converted = convert_to_rgba(self.format, data, pixels * self.frame_count)
            mips.append(converted)
        return Texture(self.width, self.height, fmt, mips)

    def _build_low_res(self) -> Texture:
        if not self._low_res_data:
            raise NotAvailable(f'No low-res data in {self!r}')
        fmt, data = convert_to_rgba(
            self.low_format, self._low_res_data,
            self.low_width * self.low_height,
        )
        return Texture(self.low_width, self.low_height, fmt, [data])

    @property
    def high_res_mips(self) -> List[bytes]:
        """The raw mipmap payloads, in the stored pixel format."""
        return self._high_res_data

    @property
    def low_res_data(self) -> Optional[bytes]:
        """The raw thumbnail payload, if present."""
        return self._low_res_data or None
