"""Classes for reading Valve's VPK format, versions 1 and 2.

Each file also owns a set of :py:class:`~srcview.lazy.LazyCache` slots, so
decoded textures, materials and models are produced at most once.
"""
from typing import IO, TYPE_CHECKING, Callable, Dict, Iterable, Iterator, TypeVar
from typing_extensions import Final
from io import BytesIO
import os
import struct
import zipfile

import attrs

from srcview import StringPath, logger
from srcview.binformat import checksum, struct_read
from srcview.errors import FormatError, NotFound, Truncated
from srcview.lazy import LazyCache
from srcview.vpath import PathLike, as_path, join as join_path, join_parts


if TYPE_CHECKING:
    from srcview.mdl import MDL
    from srcview.vmt import VMT
    from srcview.vtf import VTF
    from srcview.vtx import VTX
    from srcview.vvd import VVD


__all__ = [
    'VPK_SIG', 'DIR_ARCH_INDEX', 'ENTRY_TERMINATOR',
    'iter_nullstr', 'get_arch_filename',
    'ArchiveEntry', 'VPK',
]
LOGGER = logger.get_logger(__name__)
VPK_SIG: Final = 0x55aa1234  #: The first bytes of VPK files.
DIR_ARCH_INDEX: Final = 0x7fff  #: The file index used for the ``_dir`` file.
ENTRY_TERMINATOR: Final = 0xffff  #: Ends each directory entry.
ST_HEADER: Final = struct.Struct('<III')
ST_HEADER_V2: Final = struct.Struct('<4I')
ST_ENTRY: Final = struct.Struct('<IHHIIH')
T = TypeVar('T')


def iter_nullstr(file: IO[bytes]) -> Iterator[str]:
    """Read null-terminated ASCII strings from the file.

    This continuously yields strings, with empty strings
    indicating the end of a section.
    """
    chars = bytearray()
    while True:
        char = file.read(1)
        if char == b'\x00':
            string = chars.decode('ascii', 'surrogateescape')
            chars.clear()

            if string == ' ':  # Blank strings are saved as ' '
                yield ''
            elif string == '':
                return  # Actual blanks end the array.
            else:
                yield string
        elif char == b'':
            raise Truncated(f'Reached EOF without null-terminator in {bytes(chars)!r}!')
        else:
            chars.extend(char)


def get_arch_filename(dir_name: str, index: int) -> str:
    """Generate the name for a numbered VPK chunk.

    ``_dir`` in the directory file's name is replaced by the zero-padded index,
    so ``pak01_dir.vpk`` with index 3 gives ``pak01_003.vpk``.
    """
    return dir_name.replace('_dir', f'_{index:03}')


@attrs.define(eq=False)
class ArchiveEntry:
    """Represents a file stored inside a VPK.

    Do not call the constructor, it is only meant for VPK's use.
    """
    vpk: 'VPK' = attrs.field(repr=False)
    dir: str = attrs.field(on_setattr=attrs.setters.frozen)
    _filename: str = attrs.field(on_setattr=attrs.setters.frozen)
    ext: str = attrs.field(on_setattr=attrs.setters.frozen)
    crc: int
    arch_index: int  # pak01_000.vpk file to use, or DIR_ARCH_INDEX for _dir.
    offset: int  # Offset into the archive file, or past the directory tree if in _dir
    arch_len: int  # Number of bytes in archive files
    preload: bytes = attrs.field(repr=False)  # The bytes saved into the directory tree

    _texture: 'LazyCache[VTF]' = attrs.field(init=False, repr=False)
    _material: 'LazyCache[VMT]' = attrs.field(init=False, repr=False)
    _model: 'LazyCache[MDL]' = attrs.field(init=False, repr=False)
    _vertices: 'LazyCache[VVD]' = attrs.field(init=False, repr=False)
    _strips: 'LazyCache[VTX]' = attrs.field(init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        name = self.filename
        self._texture = LazyCache(name)
        self._material = LazyCache(name)
        self._model = LazyCache(name)
        self._vertices = LazyCache(name)
        self._strips = LazyCache(name)

    @property
    def filename(self) -> str:
        """The full filename for this file."""
        return join_parts(self.dir, self._filename, self.ext)

    name = filename

    def __repr__(self) -> str:
        return f'<VPK File: "{self.filename}">'

    @property
    def size(self) -> int:
        """The total size of this file."""
        return self.arch_len + len(self.preload)

    def _read_archived(self) -> bytes:
        """Read the portion of the file stored outside the directory tree."""
        if not self.arch_len:
            return b''
        if self.arch_index == DIR_ARCH_INDEX:
            data = self.vpk.footer_data[self.offset: self.offset + self.arch_len]
        else:
            arch_file = os.path.join(
                self.vpk.folder,
                get_arch_filename(self.vpk.file_name, self.arch_index),
            )
            try:
                file = open(arch_file, 'rb')
            except FileNotFoundError:
                raise NotFound(f'Archive chunk "{arch_file}" not present for "{self.filename}"') from None
            with file:
                file.seek(self.offset)
                data = file.read(self.arch_len)
        if len(data) != self.arch_len:
            raise Truncated(
                f'"{self.filename}" expected {self.arch_len} archived bytes, got {len(data)}!'
            )
        return data

    def read(self) -> bytes:
        """Return the contents for this file."""
        if self.arch_len:
            return self.preload + self._read_archived()
        else:
            return self.preload

    def verify(self) -> bool:
        """Check this file matches the checksum."""
        return checksum(self._read_archived(), checksum(self.preload)) == self.crc

    def _decode(self, slot: 'LazyCache[T]', func: Callable[[bytes], T]) -> T:
        """Decode this file's data with the function, caching the result."""
        def compute() -> T:
            with logger.context(self.filename):
                LOGGER.debug('Decoding {} ({} bytes)', self.filename, self.size)
                return func(self.read())
        return slot.get(compute)

    def load_vtf(self) -> 'VTF':
        """Decode this file as a texture."""
        from srcview.vtf import VTF
        return self._decode(self._texture, lambda data: VTF.read(BytesIO(data)))

    def load_vmt(self) -> 'VMT':
        """Decode this file as a material."""
        from srcview.vmt import VMT
        return self._decode(self._material, VMT.from_bytes)

    def load_mdl(self) -> 'MDL':
        """Decode this file as a model header."""
        from srcview.mdl import MDL
        return self._decode(self._model, lambda data: MDL.read(BytesIO(data)))

    def load_vvd(self) -> 'VVD':
        """Decode this file as model vertex data."""
        from srcview.vvd import VVD
        return self._decode(self._vertices, lambda data: VVD.read(BytesIO(data)))

    def load_vtx(self, mdl_version: int = 0) -> 'VTX':
        """Decode this file as model strip data.

        The layout depends on the version of the matching MDL, which must be
        the same for every call.
        """
        from srcview.vtx import VTX
        return self._decode(self._strips, lambda data: VTX.read(BytesIO(data), mdl_version))


class VPK:
    """Represents a VPK file set in a directory, or a packfile embedded in a BSP."""
    folder: str
    """The directory the VPK is located in, used to find the numeric files."""

    file_name: str
    """The name of the directory file, usually ``pak01_dir.vpk``."""

    # fileinfo[extension][directory][filename]
    _fileinfo: Dict[str, Dict[str, Dict[str, ArchiveEntry]]]

    footer_data: bytes
    """The block of data after the tree, which contains the file data for files stored in the ``_dir`` file, not numeric files."""

    version: int
    """The VPK version, 1 or 2."""

    def __init__(self, dir_file: StringPath) -> None:
        """Read a VPK directory file.

        :param dir_file: The path to the directory file, usually ending in ``_dir.vpk``.
        """
        self.folder, self.file_name = os.path.split(os.fspath(dir_file))
        self._fileinfo = {}
        self.footer_data = b''
        self.version = 1
        self.load_dirfile()

    @classmethod
    def load_packfile(cls, data: bytes) -> 'VPK':
        """Parse a ZIP archive, such as the one embedded in a BSP's pakfile lump.

        Each entry is split into directory, filename and extension, then stored
        inline so it can be read like any other file. Empty data, from a map
        without a pakfile, gives an empty archive.
        """
        vpk = cls.__new__(cls)
        vpk.folder = ''
        vpk.file_name = ''
        vpk._fileinfo = {}
        vpk.footer_data = b''
        vpk.version = 1
        if not data:
            return vpk

        try:
            zipf = zipfile.ZipFile(BytesIO(data))
        except (zipfile.BadZipFile, EOFError) as exc:
            raise FormatError(f'Could not parse packfile: {exc}') from exc

        with zipf:
            for info in zipf.infolist():
                if info.is_dir():
                    continue
                path = info.filename.replace('\\', '/')
                folder, slash, name = path.rpartition('/')
                if not slash:
                    LOGGER.warning('Packfile entry "{}" has no directory, skipping.', path)
                    continue
                # Split like the directory tree, so 'x.dx90.vtx' has the extension 'vtx'.
                filename, dot, ext = name.rpartition('.')
                if not dot:
                    filename, ext = name, ''
                try:
                    contents = zipf.read(info)
                except (zipfile.BadZipFile, NotImplementedError, EOFError) as exc:
                    raise FormatError(f'Could not read packfile entry "{path}": {exc}') from exc
                vpk._add_entry(ArchiveEntry(
                    vpk, folder, filename, ext,
                    info.CRC, DIR_ARCH_INDEX, 0, 0, contents,
                ))
        LOGGER.debug('Loaded packfile with {} files', len(vpk))
        return vpk

    @property
    def path(self) -> str:
        """The filename of the directory VPK file."""
        return os.path.join(self.folder, self.file_name)

    def __repr__(self) -> str:
        if self.file_name:
            return f'<VPK "{self.path}", {len(self)} files>'
        return f'<Packfile, {len(self)} files>'

    def _add_entry(self, entry: ArchiveEntry) -> None:
        self._fileinfo.setdefault(entry.ext, {}).setdefault(entry.dir, {})[entry._filename] = entry

    def load_dirfile(self) -> None:
        """Read in the directory file to get all filenames."""
        try:
            dirfile = open(self.path, 'rb')
        except FileNotFoundError:
            raise NotFound(f'VPK directory "{self.path}" not present') from None

        with dirfile:
            vpk_sig, version, tree_length = struct_read(ST_HEADER, dirfile)

            if vpk_sig != VPK_SIG:
                raise FormatError(f'Bad VPK directory signature {vpk_sig:#x}!')

            if version not in (1, 2):
                raise FormatError(f'Bad VPK version {version}!')

            self.version = version

            if version >= 2:
                (
                    data_size,
                    ext_md5_size,
                    dir_md5_size,
                    sig_size,
                ) = struct_read(ST_HEADER_V2, dirfile)

            header_len = dirfile.tell() + tree_length

            self._fileinfo.clear()
            # Read directory contents
            # These are in a tree of extension, directory, file. '' terminates a part.
            for ext in iter_nullstr(dirfile):
                ext_dict = self._fileinfo.setdefault(ext, {})
                for directory in iter_nullstr(dirfile):
                    dir_dict = ext_dict.setdefault(directory, {})
                    for file in iter_nullstr(dirfile):
                        crc, index_len, arch_ind, offset, arch_len, end = struct_read(ST_ENTRY, dirfile)

                        if end != ENTRY_TERMINATOR:
                            raise FormatError(
                                f'"{directory}/{file}.{ext}" has bad terminator {end:#x}!'
                            )
                        preload = dirfile.read(index_len)
                        if len(preload) != index_len:
                            raise Truncated(f'Preload data for "{directory}/{file}.{ext}" is truncated!')
                        dir_dict[file] = ArchiveEntry(
                            self,
                            directory,
                            file,
                            ext,
                            crc,
                            arch_ind,
                            offset if arch_len else 0,
                            arch_len,
                            preload,
                        )

            dirfile.seek(header_len)
            self.footer_data = dirfile.read()
        LOGGER.debug('Loaded VPK "{}" (v{}, {} files)', self.path, self.version, len(self))

    def entry(self, path: PathLike) -> ArchiveEntry:
        """Look up the entry for a file.

        :raises NotFound: If the extension, directory or file is not present.
        """
        vpath = as_path(path)
        try:
            folders = self._fileinfo[vpath.ext]
        except KeyError:
            raise NotFound(f'Extension {vpath.ext} not present') from None
        try:
            files = folders[vpath.dir]
        except KeyError:
            raise NotFound(
                f'Directory Prefix {vpath.dir} not present while loading {join_path(vpath)}'
            ) from None
        try:
            return files[vpath.filename]
        except KeyError:
            raise NotFound(
                f'File {vpath.filename} not present in {vpath.dir}'
            ) from None

    __getitem__ = entry

    def read_bytes(self, entry: ArchiveEntry) -> bytes:
        """Return the contents of an entry."""
        return entry.read()

    def file_data(self, path: PathLike) -> bytes:
        """Return the contents of the file at this path."""
        return self.entry(path).read()

    def load_vtf(self, path: PathLike) -> 'VTF':
        """Load a texture from a global path (``materials/x/y.vtf``)."""
        return self.entry(path).load_vtf()

    def load_vmt(self, path: PathLike) -> 'VMT':
        """Load a material from a global path (``materials/x/y.vmt``)."""
        return self.entry(path).load_vmt()

    def load_mdl(self, path: PathLike) -> 'MDL':
        """Load a model header."""
        return self.entry(path).load_mdl()

    def load_vvd(self, path: PathLike) -> 'VVD':
        """Load model vertex data."""
        return self.entry(path).load_vvd()

    def load_vtx(self, path: PathLike, mdl_version: int = 0) -> 'VTX':
        """Load model strip data."""
        return self.entry(path).load_vtx(mdl_version)

    def __iter__(self) -> Iterator[ArchiveEntry]:
        """Yield all entries."""
        for folders in self._fileinfo.values():
            for files in folders.values():
                yield from files.values()

    def fileinfos(self, ext: str = '', folder: str = '') -> Iterator[ArchiveEntry]:
        """Yield entries from this VPK.

        If an extension or folder is specified, only files with this extension
        or in this folder are returned.
        """
        all_folders: Iterable[Dict[str, Dict[str, ArchiveEntry]]]
        if ext:
            all_folders = [self._fileinfo.get(ext, {})]
        else:
            all_folders = self._fileinfo.values()

        for folders in all_folders:
            for subfolder, files in folders.items():
                if not subfolder.startswith(folder):
                    continue
                yield from files.values()

    def filenames(self, ext: str = '', folder: str = '') -> Iterator[str]:
        """Yield filenames from this VPK.

        If an extension or folder is specified, only files with this extension
        or in this folder are returned.
        """
        for info in self.fileinfos(ext, folder):
            yield info.filename

    def __len__(self) -> int:
        """Returns the number of files we have."""
        count = 0
        for folders in self._fileinfo.values():
            for files in folders.values():
                count += len(files)
        return count

    def __contains__(self, item: PathLike) -> bool:
        """Check if the specified filename is present in the VPK."""
        vpath = as_path(item)
        try:
            return vpath.filename in self._fileinfo[vpath.ext][vpath.dir]
        except KeyError:
            return False

    def verify_all(self) -> bool:
        """Check all files have a correct checksum."""
        return all(file.verify() for file in self)
