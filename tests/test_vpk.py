"""Test the VPK archive reader."""
from pathlib import Path
import struct
import zipfile

import pytest

from helpers import *
from srcview.errors import FormatError, NotFound, Truncated
from srcview.vpath import LocalPath, SplitPath
from srcview.vpk import DIR_ARCH_INDEX, VPK, VPK_SIG, get_arch_filename

FILES = {
    'materials/brick/wall01.vmt': b'LightmappedGeneric { "$basetexture" "brick/wall01" }',
    'materials/brick/wall01.vtf': b'not really a texture',
    'models/props/crate.dx90.vtx': b'\x07\0\0\0strips',
    'scripts/readme': b'no extension',
    'root.txt': b'in the root folder',
}


@pytest.mark.parametrize('dir_name, index, expected', [
    ('foo_dir.vpk', 3, 'foo_003.vpk'),
    ('pak01_dir.vpk', 0, 'pak01_000.vpk'),
    ('pak01_dir.vpk', 127, 'pak01_127.vpk'),
])
def test_arch_filename(dir_name: str, index: int, expected: str) -> None:
    """Test the generation of the numbered chunk names."""
    assert get_arch_filename(dir_name, index) == expected


@pytest.mark.parametrize('version', [1, 2])
def test_read_directory(tmp_path: Path, version: int) -> None:
    """Test parsing the directory tree, with files stored after it."""
    vpk = VPK(make_vpk(tmp_path, FILES, version=version))
    assert vpk.version == version
    assert len(vpk) == len(FILES)
    assert sorted(vpk.filenames()) == sorted(FILES)
    for filename, data in FILES.items():
        assert filename in vpk
        entry = vpk[filename]
        assert entry.arch_index == DIR_ARCH_INDEX
        assert entry.size == len(data)
        assert entry.read() == data
        assert vpk.file_data(filename) == data

    assert 'materials/brick/missing.vmt' not in vpk
    assert sorted(vpk.filenames('vmt')) == ['materials/brick/wall01.vmt']
    assert sorted(vpk.filenames(folder='materials/')) == [
        'materials/brick/wall01.vmt',
        'materials/brick/wall01.vtf',
    ]


def test_path_forms(tmp_path: Path) -> None:
    """Entries can be looked up with any form of virtual path."""
    vpk = VPK(make_vpk(tmp_path, FILES))
    entry = vpk['materials/brick/wall01.vmt']
    assert vpk.entry(LocalPath('materials', 'brick/wall01', 'vmt')) is entry
    assert vpk.entry(SplitPath('materials/brick', 'wall01', 'vmt')) is entry
    # Only the final dot splits off the extension.
    vtx = vpk['models/props/crate.dx90.vtx']
    assert vtx.ext == 'vtx'
    assert vtx.filename == 'models/props/crate.dx90.vtx'
    # Blank directories and extensions are stored as a single space.
    assert vpk['root.txt'].dir == ''
    assert vpk['scripts/readme'].ext == ''


def test_preload(tmp_path: Path) -> None:
    """Data can be split between the directory tree and the archive."""
    vpk = VPK(make_vpk(tmp_path, FILES, preload_size=4))
    for filename, data in FILES.items():
        entry = vpk[filename]
        assert entry.preload == data[:4]
        assert entry.arch_len == len(data) - 4
        assert entry.read() == data
    assert vpk.verify_all()

    # Files entirely inside the tree never touch the archive.
    vpk = VPK(make_vpk(tmp_path, FILES, name='big_dir.vpk', preload_size=1000))
    entry = vpk['root.txt']
    assert entry.arch_len == 0
    assert entry.offset == 0
    assert vpk.footer_data == b''
    assert entry.read() == FILES['root.txt']


def test_numbered_chunk(tmp_path: Path) -> None:
    """Test reading from a separate numbered archive file."""
    vpk = VPK(make_vpk(tmp_path, FILES, name='game_dir.vpk', chunk=2))
    assert (tmp_path / 'game_002.vpk').exists()
    entry = vpk['materials/brick/wall01.vtf']
    assert entry.arch_index == 2
    assert entry.read() == FILES['materials/brick/wall01.vtf']
    assert vpk.verify_all()


def test_missing_chunk(tmp_path: Path) -> None:
    """A missing chunk file raises NotFound, also a FileNotFoundError."""
    vpk = VPK(make_vpk(tmp_path, FILES, name='game_dir.vpk', chunk=5))
    (tmp_path / 'game_005.vpk').unlink()
    with pytest.raises(NotFound, match='game_005.vpk'):
        vpk['root.txt'].read()
    with pytest.raises(FileNotFoundError):
        vpk['root.txt'].read()


def test_missing_entry(tmp_path: Path) -> None:
    """Looking up a missing extension, directory or file raises NotFound."""
    vpk = VPK(make_vpk(tmp_path, FILES))
    with pytest.raises(NotFound, match='Extension'):
        vpk['materials/brick/wall01.wav']
    with pytest.raises(NotFound, match='Directory'):
        vpk['materials/metal/wall01.vmt']
    with pytest.raises(NotFound, match='File'):
        vpk['materials/brick/wall02.vmt']


def test_missing_directory_file(tmp_path: Path) -> None:
    """A missing directory file raises NotFound."""
    with pytest.raises(NotFound):
        VPK(tmp_path / 'nothing_dir.vpk')


def test_bad_terminator(tmp_path: Path) -> None:
    """Entries must end with 0xFFFF."""
    path = make_vpk(tmp_path, FILES, terminator=0x1234)
    with pytest.raises(FormatError, match='terminator'):
        VPK(path)


@pytest.mark.parametrize('sig, version, message', [
    (0x12345678, 1, 'signature'),
    (VPK_SIG, 3, 'version'),
])
def test_bad_header(tmp_path: Path, sig: int, version: int, message: str) -> None:
    """Test the signature and version are checked."""
    path = tmp_path / 'bad_dir.vpk'
    path.write_bytes(struct.pack('<III', sig, version, 1) + b'\0')
    with pytest.raises(FormatError, match=message):
        VPK(path)


def test_truncated_tree(tmp_path: Path) -> None:
    """A tree cut off partway through raises Truncated."""
    path = make_vpk(tmp_path, FILES)
    path.write_bytes(path.read_bytes()[:40])
    with pytest.raises(Truncated):
        VPK(path)


def test_verify_crc(tmp_path: Path) -> None:
    """Corrupted archive data fails verification."""
    vpk = VPK(make_vpk(tmp_path, FILES, name='crc_dir.vpk', chunk=0))
    assert vpk.verify_all()
    chunk = tmp_path / 'crc_000.vpk'
    data = bytearray(chunk.read_bytes())
    data[0] ^= 0xFF
    chunk.write_bytes(bytes(data))
    assert not vpk.verify_all()


def test_decode_cached(tmp_path: Path) -> None:
    """Decoded materials are produced once per entry."""
    vpk = VPK(make_vpk(tmp_path, FILES))
    first = vpk.load_vmt('materials/brick/wall01.vmt')
    assert first.shader == 'lightmappedgeneric'
    assert first.get('$basetexture') == 'brick/wall01'
    assert vpk.load_vmt('materials/brick/wall01.vmt') is first


def test_decode_failure_cached(tmp_path: Path) -> None:
    """A failed decode raises the same exception each time."""
    vpk = VPK(make_vpk(tmp_path, FILES))
    with pytest.raises(FormatError) as first:
        vpk.load_vtf('materials/brick/wall01.vtf')
    with pytest.raises(FormatError) as second:
        vpk.load_vtf('materials/brick/wall01.vtf')
    assert first.value is second.value


def test_packfile() -> None:
    """Test reading a ZIP archive as if it was a VPK."""
    data = make_zip({
        'materials/maps/test/cubemap.vmt': b'patch { include "materials/x.vmt" }',
        'materials\\brick\\wall01.vtf': b'texture',
        'models/props/crate.dx90.vtx': b'strips',
        'noext/file': b'abc',
        'loose.txt': b'skipped',
    }, zipfile.ZIP_DEFLATED)
    pak = VPK.load_packfile(data)
    assert len(pak) == 4
    assert 'loose.txt' not in pak
    assert pak.file_data('materials/maps/test/cubemap.vmt').startswith(b'patch')
    assert pak.file_data('materials/brick/wall01.vtf') == b'texture'
    assert pak['noext/file'].read() == b'abc'
    assert pak.verify_all()
    assert repr(pak) == '<Packfile, 4 files>'


def test_packfile_multiple_dots(tmp_path: Path) -> None:
    """Names with several dots are split the same way in packfiles and directory files."""
    files = {'models/props/crate.dx90.vtx': b'strips'}
    pak = VPK.load_packfile(make_zip(files))
    dir_vpk = VPK(make_vpk(tmp_path, files))
    for archive in [pak, dir_vpk]:
        entry = archive['models/props/crate.dx90.vtx']
        assert (entry.dir, entry._filename, entry.ext) == ('models/props', 'crate.dx90', 'vtx')
        assert archive.entry(SplitPath('models/props', 'crate.dx90', 'vtx')) is entry
        assert list(archive.filenames('vtx')) == ['models/props/crate.dx90.vtx']
        assert entry.read() == b'strips'


def test_packfile_invalid() -> None:
    """Data which isn't a ZIP raises FormatError."""
    with pytest.raises(FormatError):
        VPK.load_packfile(b'PK\x03\x04 but not really')


def test_packfile_empty() -> None:
    """Maps without a pakfile have an empty archive."""
    pak = VPK.load_packfile(b'')
    assert len(pak) == 0
    assert 'materials/a.vmt' not in pak
