"""Parses material files.

Only the parts a viewer needs are kept: the shader name, the top-level
parameters, and the contents of any sub-blocks such as ``Proxies``. Keys and
values are lowercased, since the engine treats them case-insensitively.
"""
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple
from typing_extensions import Final
import re

from srcview import logger
from srcview.errors import FormatError, NotFound, SourceError, Unsupported
from srcview.lazy import LazyCache
from srcview.vpath import GlobalPath


__all__ = ['VMT', 'SUPPORTED_SHADERS', 'tokenize_line']
LOGGER = logger.get_logger(__name__)

#: Shaders which the renderer knows how to draw.
SUPPORTED_SHADERS: Final = frozenset({
    'lightmappedgeneric',
    'unlittwotexture',
    'unlitgeneric',
    'worldvertextransition',
    'vertexlitgeneric',
    'water',
})

_COMMENT = re.compile(r'//[^\n]*')
_TOKEN = re.compile(r'"([^"]*)"|([{}])|([^\s"{}]+)')

# Patch materials fetch their target through a loader callback.
PatchLoader = Callable[[GlobalPath], 'VMT']


def tokenize_line(line: str) -> Optional[List[Tuple[bool, str]]]:
    """Split a line into tokens.

    Each token is a ``(is_brace, text)`` pair. If the line contains an
    unterminated quote, None is returned.
    """
    if line.count('"') % 2:
        return None
    tokens = []
    for match in _TOKEN.finditer(line):
        quoted, brace, bare = match.groups()
        if brace is not None:
            tokens.append((True, brace))
        elif quoted is not None:
            tokens.append((False, quoted))
        else:
            tokens.append((False, bare))
    return tokens


class VMT:
    """A parsed material.

    ``data`` holds the top-level parameters, in file order. Pairs found inside
    nested blocks are stored in ``blocks``, under the lowercase block name.
    """
    shader: str
    data: Dict[str, str]
    blocks: Dict[str, Dict[str, str]]
    _patch: 'LazyCache[VMT]'

    def __init__(
        self,
        shader: str,
        data: Optional[Mapping[str, str]] = None,
        blocks: Optional[Mapping[str, Mapping[str, str]]] = None,
    ) -> None:
        self.shader = shader.lower()
        self.data = dict(data) if data is not None else {}
        self.blocks = {
            name: dict(block)
            for name, block in blocks.items()
        } if blocks is not None else {}
        self._patch = LazyCache(f'patch of {self.shader}')

    def __repr__(self) -> str:
        return f'<VMT {self.shader}, {len(self.data)} params>'

    @classmethod
    def from_bytes(cls, data: bytes) -> 'VMT':
        """Decode the file contents, then parse."""
        return cls.parse(data.decode('utf-8-sig', 'replace'))

    @classmethod
    def parse(cls, text: str) -> 'VMT':
        """Parse a VMT from text.

        :raises FormatError: If no shader name is present.
        """
        lines = _COMMENT.sub('', text).splitlines()
        line_iter: Iterator[Tuple[int, str]] = enumerate(lines, 1)

        shader = ''
        rest: List[Tuple[bool, str]] = []
        for line_num, line in line_iter:
            tokens = tokenize_line(line)
            if tokens is None:
                raise FormatError(f'Unterminated string on line {line_num}!')
            if not tokens:
                continue
            is_brace, shader = tokens[0]
            if is_brace:
                raise FormatError(f'Expected shader name, got "{shader}" on line {line_num}!')
            rest = tokens[1:]
            break
        if not shader:
            raise FormatError('No shader name present in material!')

        vmt = cls(shader)
        depth = 0
        block_stack: List[str] = []
        lone_name: Optional[str] = None

        def handle_line(line_num: int, tokens: List[Tuple[bool, str]]) -> None:
            nonlocal depth, lone_name
            words: List[str] = []
            for is_brace, text in tokens:
                if not is_brace:
                    words.append(text.lower())
                    continue
                if text == '{':
                    if words:
                        name = words.pop()
                    else:
                        name = lone_name or ''
                    lone_name = None
                    if words:
                        LOGGER.warning('Skipping malformed line {} before block', line_num)
                        words.clear()
                    depth += 1
                    if depth > 1:
                        block_stack.append(name)
                else:  # '}'
                    if lone_name is not None:
                        LOGGER.warning('Skipping lone value "{}" in material', lone_name)
                        lone_name = None
                    if words:
                        vmt._store(words, depth, block_stack, line_num)
                        words.clear()
                    if depth > 1:
                        block_stack.pop()
                    if depth > 0:
                        depth -= 1
            if not words:
                return
            if lone_name is not None:
                LOGGER.warning('Skipping lone value "{}" in material', lone_name)
                lone_name = None
            if len(words) == 1:
                # Either a block name with the brace on the next line, or junk.
                lone_name = words[0]
            else:
                vmt._store(words, depth, block_stack, line_num)

        handle_line(0, rest)
        for line_num, line in line_iter:
            tokens = tokenize_line(line)
            if tokens is None:
                LOGGER.warning('Skipping unterminated string on line {}', line_num)
                continue
            handle_line(line_num, tokens)
        if lone_name is not None:
            LOGGER.warning('Skipping lone value "{}" at end of material', lone_name)
        return vmt

    def _store(self, words: List[str], depth: int, block_stack: List[str], line_num: int) -> None:
        """Store key/value pairs parsed from a line."""
        if len(words) % 2:
            LOGGER.warning('Skipping malformed line {}: {}', line_num, ' '.join(words))
            return
        if depth <= 1:
            target = self.data
        else:
            target = self.blocks.setdefault(block_stack[-1], {})
        for i in range(0, len(words), 2):
            target[words[i]] = words[i + 1]

    @property
    def patch(self) -> Optional['VMT']:
        """The resolved patch target, if resolution succeeded."""
        if not self._patch.is_set:
            return None
        try:
            return self._patch.peek()
        except SourceError:
            return None

    def resolve_patch(self, loader: PatchLoader) -> Optional['VMT']:
        """If this is a ``patch`` material, fetch the material it includes.

        This is done only once, later calls return the same result or raise the
        same error. The loader should return materials without resolving them,
        chains of patches are followed here. Each material in the chain has its
        patch filled in too, unless another thread is already resolving it.

        :raises NotFound: If the ``include`` key is missing.
        :raises FormatError: If the includes loop back on themselves.
        """
        if self.shader != 'patch':
            return None
        return self._patch.get(lambda: self._load_patch(loader))

    def _load_patch(self, loader: PatchLoader) -> 'VMT':
        chain: List[VMT] = [self]
        while True:
            try:
                include = chain[-1].data['include']
            except KeyError:
                raise NotFound('Patch material is missing the "include" key') from None
            LOGGER.debug('Resolving patch to "{}"', include)
            target = loader(GlobalPath(include))
            if any(target is mat for mat in chain):
                raise FormatError(f'Patch include cycle through "{include}"!')
            if target.shader != 'patch':
                break
            chain.append(target)
        chain.append(target)
        for mat, mat_target in zip(chain[1:-1], chain[2:]):
            mat._patch.offer(mat_target)
        return chain[1]

    @property
    def effective_shader(self) -> str:
        """The shader used to render this material, following patches."""
        patch = self.patch
        if patch is not None:
            return patch.effective_shader
        return self.shader

    def check_supported(self) -> None:
        """Check if the renderer can draw this material.

        :raises Unsupported: If the shader is not recognised.
        """
        shader = self.effective_shader
        if shader not in SUPPORTED_SHADERS:
            raise Unsupported(f'Unknown shader "{shader}"')

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Look up a parameter, checking the patch target if not present here."""
        key = key.lower()
        try:
            return self.data[key]
        except KeyError:
            pass
        patch = self.patch
        if patch is not None:
            return patch.get(key, default)
        return default

    def __getitem__(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    @property
    def basetexture(self) -> Optional[str]:
        """The ``$basetexture`` parameter."""
        return self.get('$basetexture')

    @property
    def basetexture2(self) -> Optional[str]:
        """The ``$basetexture2`` parameter, used for blended displacements."""
        return self.get('$basetexture2')

    @property
    def envmap(self) -> Optional[str]:
        """The ``$envmap`` parameter."""
        return self.get('$envmap')
