"""Virtual paths, which identify a file inside the mounted archives.

Archive lookups need a path split into directory, filename and extension.
Three forms are provided, which all produce the same parts:

- :py:class:`GlobalPath` parses a full ``materials/x/y.vmt`` style string.
- :py:class:`LocalPath` combines a fixed root folder and extension with a
  relative name, as is done for material and texture references.
- :py:class:`SplitPath` holds the parts directly.
"""
from typing import Union
from typing_extensions import Protocol, runtime_checkable

import attrs


__all__ = ['VPath', 'GlobalPath', 'LocalPath', 'SplitPath', 'as_path', 'join', 'join_parts', 'PathLike']


@runtime_checkable
class VPath(Protocol):
    """A path inside an archive, split into its three parts."""
    @property
    def dir(self) -> str: ...
    @property
    def filename(self) -> str: ...
    @property
    def ext(self) -> str: ...


def join_parts(dir: str, filename: str, ext: str) -> str:
    """Join together path components to the full path.

    Any of the segments can be blank, to skip them.
    """
    return f"{dir}{'/' if dir else ''}{filename}{'.' if ext else ''}{ext}"


def _normalise(path: str) -> str:
    """Use forward slashes, and strip slashes from either end."""
    return path.replace('\\', '/').strip('/')


@attrs.frozen(repr=False)
class GlobalPath:
    """A full path like ``materials/x/y.vmt``."""
    path: str = attrs.field(converter=_normalise)

    @property
    def ext(self) -> str:
        """The text after the last ``.``."""
        name = self.path.rpartition('/')[2]
        return name.rpartition('.')[2] if '.' in name else ''

    @property
    def filename(self) -> str:
        """The text between the last ``/`` and the last ``.``."""
        name = self.path.rpartition('/')[2]
        return name.rpartition('.')[0] if '.' in name else name

    @property
    def dir(self) -> str:
        """The text before the last ``/``."""
        return self.path.rpartition('/')[0]

    def __str__(self) -> str:
        return self.path

    def __repr__(self) -> str:
        return f'GlobalPath({self.path!r})'


@attrs.frozen(repr=False)
class LocalPath:
    """A path relative to a root folder, with a fixed extension.

    For example ``LocalPath('materials', 'brick/wall01', 'vmt')``.
    """
    root: str = attrs.field(converter=_normalise)
    local: str = attrs.field(converter=_normalise)
    ext: str

    @property
    def dir(self) -> str:
        """The root, joined to the folder portion of the local path."""
        local_dir = self.local.rpartition('/')[0]
        if not local_dir:
            return self.root
        if not self.root:
            return local_dir
        return f'{self.root}/{local_dir}'

    @property
    def filename(self) -> str:
        """The last component of the local path."""
        return self.local.rpartition('/')[2]

    def __str__(self) -> str:
        return join_parts(self.dir, self.filename, self.ext)

    def __repr__(self) -> str:
        return f'LocalPath({self.root!r}, {self.local!r}, {self.ext!r})'


@attrs.frozen(repr=False)
class SplitPath:
    """A path with each part given separately."""
    dir: str = attrs.field(converter=_normalise)
    filename: str
    ext: str

    def __str__(self) -> str:
        return join_parts(self.dir, self.filename, self.ext)

    def __repr__(self) -> str:
        return f'SplitPath({self.dir!r}, {self.filename!r}, {self.ext!r})'


PathLike = Union[str, VPath]


def as_path(value: PathLike) -> VPath:
    """Convert a string into a :py:class:`GlobalPath`, passing through existing paths."""
    if isinstance(value, str):
        return GlobalPath(value)
    return value


def join(path: VPath) -> str:
    """Produce the full string form of any path."""
    return join_parts(path.dir, path.filename, path.ext)
