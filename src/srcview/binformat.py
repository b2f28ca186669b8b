"""
The binformat module :mod:`binformat` contains functionality for handling binary formats, \
essentially expanding on :external:mod:`struct`'s functionality.

All of Valve's formats are little-endian, so every helper here reads explicitly
little-endian fields instead of relying on the native layout.
"""
from typing import IO, Any, Final, List, Mapping, Optional, Tuple, Union
from binascii import crc32
from io import BytesIO
from struct import Struct
import functools
import lzma
import os

from srcview.errors import FormatError, Truncated


__all__ = [
    'SIZES', 'SIZE_CHAR', 'SIZE_FLOAT', 'SIZE_INT', 'SIZE_SHORT',
    'struct_read',
    'checksum', 'EMPTY_CHECKSUM', 'decompress_lzma',
    'Cursor',
]

SIZES: Final[Mapping[str, int]] = {
    fmt: Struct('<' + fmt).size
    for fmt in 'cbB?hHiIlLqQfd'
}
SIZE_CHAR: Final = 1
SIZE_SHORT: Final = 2
SIZE_INT: Final = 4
SIZE_FLOAT: Final = 4

assert SIZE_CHAR == SIZES['b']
assert SIZE_SHORT == SIZES['h']
assert SIZE_INT == SIZES['i']
assert SIZE_FLOAT == SIZES['f']

LZMA_DIC_MIN: Final = (1 << 12)
ST_LZMA_SOURCE: Final = Struct('<4sIIBI')
_cached_struct = functools.lru_cache()(Struct)


def _get_struct(fmt: Union[Struct, str]) -> Struct:
    if isinstance(fmt, Struct):
        return fmt
    return _cached_struct(fmt)


def struct_read(fmt: Union[Struct, str], file: IO[bytes]) -> Tuple[Any, ...]:
    """Read a structure from the file, automatically computing the required number of bytes.

    :raises Truncated: If the file ends before the structure does.
    """
    fmt = _get_struct(fmt)
    data = file.read(fmt.size)
    if len(data) != fmt.size:
        raise Truncated(f'Expected {fmt.size} bytes for "{fmt.format}", got {len(data)}!')
    return fmt.unpack(data)


def checksum(data: bytes, prior: int = 0) -> int:
    """Compute the VPK checksum for a file (CRC32).

    Pass a previous computation to allow continuing a previous checksum.
    """
    return crc32(data, prior)


EMPTY_CHECKSUM: Final[int] = checksum(b'')
"""CRC32 checksum of an empty bytes buffer."""


def decompress_lzma(data: bytes) -> bytes:
    """Decompress LZMA-encoded data, using the settings Source uses in BSP lumps.

    Data without the ``LZMA`` signature is returned unchanged.
    """
    if data[:4] != b'LZMA':
        return data
    (sig, uncomp_size, comp_size, props, dict_size) = ST_LZMA_SOURCE.unpack_from(data)

    # Unpack the lc/lp/pb properties byte.
    if props >= (9 * 5 * 5):
        raise FormatError('Incorrect LZMA properties')
    lc = props % 9
    props //= 9
    pb = props // 5
    lp = props % 5
    if dict_size < LZMA_DIC_MIN:
        dict_size = LZMA_DIC_MIN

    decomp = lzma.LZMADecompressor(lzma.FORMAT_RAW, None, filters=[{
        'id': lzma.FILTER_LZMA1,
        'dict_size': dict_size,
        'lc': lc,
        'lp': lp,
        'pb': pb,
    }])
    # Valve omits the end marker, so the decompressor is left incomplete.
    res = decomp.decompress(memoryview(data)[ST_LZMA_SOURCE.size:])
    if len(res) > uncomp_size:
        return res[:uncomp_size]
    return res


class Cursor:
    """Reads from a seekable byte stream, tracking the absolute position.

    The stream is only ever moved with relative seeks, so any source supporting
    ``read()`` and ``seek(delta, SEEK_CUR)`` can be used. Structures which store
    offsets relative to their own position (the studio model formats) use
    :py:meth:`seek_to` with the structure's base.
    """
    file: IO[bytes]
    pos: int

    def __init__(self, file: IO[bytes], pos: int = 0) -> None:
        self.file = file
        self.pos = pos

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Cursor':
        """Wrap an in-memory buffer."""
        return cls(BytesIO(data))

    def __repr__(self) -> str:
        return f'<Cursor @ {self.pos:#x}>'

    def tell(self) -> int:
        """Return the current absolute position."""
        return self.pos

    def read(self, size: int) -> bytes:
        """Read exactly ``size`` bytes.

        :raises Truncated: If fewer bytes are available.
        """
        if size < 0:
            raise FormatError(f'Negative read size {size}!')
        data = self.file.read(size)
        self.pos += len(data)
        if len(data) != size:
            raise Truncated(f'Expected {size} bytes at {self.pos - len(data):#x}, got {len(data)}!')
        return data

    def seek_relative(self, delta: int) -> None:
        """Move by a signed number of bytes."""
        if delta:
            self.file.seek(delta, os.SEEK_CUR)
            self.pos += delta

    def seek_to(self, base: int, offset: int = 0) -> None:
        """Move to ``base + offset``, where both are absolute file positions or offsets."""
        self.seek_relative(base + offset - self.pos)

    def struct(self, fmt: Union[Struct, str]) -> Tuple[Any, ...]:
        """Read a single structure."""
        fmt = _get_struct(fmt)
        return fmt.unpack(self.read(fmt.size))

    def records(
        self,
        fmt: Union[Struct, str],
        count: int,
        base: Optional[int] = None,
        offset: int = 0,
    ) -> List[Tuple[int, Tuple[Any, ...]]]:
        """Read ``count`` consecutive structures.

        If ``base`` is given, first seek to ``base + offset``. Each result is
        paired with its absolute position, for nested offsets relative to it.
        """
        fmt = _get_struct(fmt)
        if base is not None:
            self.seek_to(base, offset)
        if count < 0:
            raise FormatError(f'Negative array count {count}!')
        result = []
        if count:
            start = self.pos
            data = self.read(fmt.size * count)
            for i, values in enumerate(fmt.iter_unpack(data)):
                result.append((start + i * fmt.size, values))
        return result

    def nullstr(self, base: Optional[int] = None, offset: int = 0, encoding: str = 'ascii') -> str:
        """Read a null-terminated string, optionally first seeking to ``base + offset``."""
        if base is not None:
            self.seek_to(base, offset)
        text = bytearray()
        while True:
            char = self.read(1)
            if char == b'\0':
                return text.decode(encoding, 'surrogateescape')
            text += char
