"""Immutable 3D vectors, used when reconstructing level geometry.

Valve's coordinate system is right-handed with Z pointing up. Positions read
from lumps are converted into :py:class:`FrozenVec` so they can be used as
dictionary keys and shared freely between meshes.
"""
from typing import Callable, Iterable, Iterator, Tuple, Union


__all__ = ['FrozenVec', 'format_float', 'AnyVec']

Tuple3 = Tuple[float, float, float]
AnyVec = Union['FrozenVec', Tuple3]


def format_float(x: float, places: int = 6) -> str:
    """Convert the specified float to a string, stripping off a .0 if it ends with that."""
    result = f'{x:.{places}f}'.rstrip('0')
    if result.endswith('.'):
        result = result[:-1]
    if result == '-0':
        return '0'
    return result


class FrozenVec:
    """An immutable XYZ vector, which is hashable."""
    __slots__ = ('_x', '_y', '_z')
    _x: float
    _y: float
    _z: float

    def __init__(
        self,
        x: Union[float, Iterable[float]] = 0.0,
        y: float = 0.0,
        z: float = 0.0,
    ) -> None:
        """Create a vector.

        An iterable can be passed in as the ``x`` argument, which is unpacked.
        """
        if isinstance(x, (int, float)):
            self._x = float(x)
            self._y = float(y)
            self._z = float(z)
        else:
            it = iter(x)
            self._x = float(next(it, 0.0))
            self._y = float(next(it, y))
            self._z = float(next(it, z))

    @property
    def x(self) -> float:
        """The X axis."""
        return self._x

    @property
    def y(self) -> float:
        """The Y axis."""
        return self._y

    @property
    def z(self) -> float:
        """The Z axis."""
        return self._z

    def __repr__(self) -> str:
        return f'FrozenVec({format_float(self._x)}, {format_float(self._y)}, {format_float(self._z)})'

    def __str__(self) -> str:
        return f'{format_float(self._x)} {format_float(self._y)} {format_float(self._z)}'

    def __iter__(self) -> Iterator[float]:
        yield self._x
        yield self._y
        yield self._z

    def __len__(self) -> int:
        return 3

    def __getitem__(self, ind: int) -> float:
        return (self._x, self._y, self._z)[ind]

    def as_tuple(self) -> Tuple3:
        """Return the vector as a plain tuple."""
        return self._x, self._y, self._z

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FrozenVec):
            return self.as_tuple() == other.as_tuple()
        elif isinstance(other, tuple) and len(other) == 3:
            return self.as_tuple() == other
        return NotImplemented

    def __hash__(self) -> int:
        """Hashing is the same as hashing the rounded tuple form."""
        return hash((round(self._x, 6), round(self._y, 6), round(self._z, 6)))

    def __add__(self, other: AnyVec) -> 'FrozenVec':
        try:
            ox, oy, oz = other
        except (TypeError, ValueError):
            return NotImplemented
        return FrozenVec(self._x + ox, self._y + oy, self._z + oz)

    __radd__ = __add__

    def __sub__(self, other: AnyVec) -> 'FrozenVec':
        try:
            ox, oy, oz = other
        except (TypeError, ValueError):
            return NotImplemented
        return FrozenVec(self._x - ox, self._y - oy, self._z - oz)

    def __rsub__(self, other: AnyVec) -> 'FrozenVec':
        try:
            ox, oy, oz = other
        except (TypeError, ValueError):
            return NotImplemented
        return FrozenVec(ox - self._x, oy - self._y, oz - self._z)

    def __mul__(self, other: float) -> 'FrozenVec':
        if isinstance(other, (int, float)):
            return FrozenVec(self._x * other, self._y * other, self._z * other)
        return NotImplemented

    __rmul__ = __mul__

    def __truediv__(self, other: float) -> 'FrozenVec':
        if isinstance(other, (int, float)):
            return FrozenVec(self._x / other, self._y / other, self._z / other)
        return NotImplemented

    def __neg__(self) -> 'FrozenVec':
        return FrozenVec(-self._x, -self._y, -self._z)

    def dot(self, other: AnyVec) -> float:
        """Return the dot product of both Vectors.

        Tip: using this in the form ``FrozenVec.dot(a, b)`` may be more readable.
        """
        return (
            self._x * other[0] +
            self._y * other[1] +
            self._z * other[2]
        )

    def lerp(self, other: AnyVec, amount: float) -> 'FrozenVec':
        """Interpolate towards ``other``, with ``0`` giving this vector and ``1`` giving the other."""
        return FrozenVec(
            self._x + (other[0] - self._x) * amount,
            self._y + (other[1] - self._y) * amount,
            self._z + (other[2] - self._z) * amount,
        )

    def __reduce__(self) -> Tuple[Callable[[float, float, float], 'FrozenVec'], Tuple3]:
        return FrozenVec, (self._x, self._y, self._z)

