"""Test the virtual path forms."""
import pytest

from srcview.vpath import GlobalPath, LocalPath, SplitPath, VPath, as_path, join


@pytest.mark.parametrize('path, dir, filename, ext', [
    ('materials/x/y.vmt', 'materials/x', 'y', 'vmt'),
    ('models/props/crate.dx90.vtx', 'models/props', 'crate.dx90', 'vtx'),
    ('readme', '', 'readme', ''),
    ('folder.d/noext', 'folder.d', 'noext', ''),
    ('materials\\brick\\wall.vtf', 'materials/brick', 'wall', 'vtf'),
    ('/leading/slash.txt', 'leading', 'slash', 'txt'),
    ('Materials/Brick/Wall01.VMT', 'Materials/Brick', 'Wall01', 'VMT'),
])
def test_global_path(path: str, dir: str, filename: str, ext: str) -> None:
    """Test splitting full paths. Case is kept as given."""
    vpath = GlobalPath(path)
    assert vpath.dir == dir
    assert vpath.filename == filename
    assert vpath.ext == ext


def test_local_path() -> None:
    """Local paths are relative to a root, with a fixed extension."""
    path = LocalPath('materials', 'brick/wall01', 'vmt')
    assert path.dir == 'materials/brick'
    assert path.filename == 'wall01'
    assert path.ext == 'vmt'
    assert str(path) == 'materials/brick/wall01.vmt'

    flat = LocalPath('materials', 'tools', 'vtf')
    assert flat.dir == 'materials'
    assert str(flat) == 'materials/tools.vtf'

    no_root = LocalPath('', 'dev/dev_measure', 'vmt')
    assert no_root.dir == 'dev'


def test_split_path() -> None:
    """Split paths store each part."""
    path = SplitPath('sound/ambient', 'wind', 'wav')
    assert (path.dir, path.filename, path.ext) == ('sound/ambient', 'wind', 'wav')
    assert str(path) == 'sound/ambient/wind.wav'
    assert str(SplitPath('', 'root', '')) == 'root'


def test_protocol() -> None:
    """All forms satisfy the protocol, and join to the same string."""
    forms = [
        GlobalPath('materials/a/b.vmt'),
        LocalPath('materials', 'a/b', 'vmt'),
        SplitPath('materials/a', 'b', 'vmt'),
    ]
    for form in forms:
        assert isinstance(form, VPath)
        assert join(form) == 'materials/a/b.vmt'


def test_as_path() -> None:
    """Strings are converted to global paths, paths are passed through."""
    converted = as_path('maps/test.bsp')
    assert isinstance(converted, GlobalPath)
    assert converted.ext == 'bsp'
    split = SplitPath('a', 'b', 'c')
    assert as_path(split) is split
