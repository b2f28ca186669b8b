"""Test assembling studio models from their three files."""
from typing import Sequence, Tuple
from io import BytesIO
import logging

import pytest

from helpers import *
from srcview.errors import FormatError
from srcview.mdl import MDL
from srcview.studio import build_model
from srcview.vtx import VTX
from srcview.vvd import VVD

POSITIONS = [(float(i), 0.0, 0.0) for i in range(8)]


def load(
    vtx_groups: Sequence[Tuple[Sequence[int], Sequence[int], Sequence[Tuple[int, int]]]],
    *,
    mdl_checksum: int = 0x1234,
    vtx_checksum: int = 0x1234,
    vvd_checksum: int = 0x1234,
    fixups: Sequence[Tuple[int, int, int]] = (),
    textures: Sequence[str] = ('Crate01', ),
) -> Tuple[MDL, VTX, VVD]:
    """Build and parse each file."""
    mdl = MDL.read(BytesIO(make_mdl(list(textures), checksum=mdl_checksum)))
    vtx = VTX.read(BytesIO(make_vtx(vtx_groups, checksum=vtx_checksum)), mdl.version)
    vvd = VVD.read(BytesIO(make_vvd(POSITIONS, checksum=vvd_checksum, fixups=fixups)))
    return mdl, vtx, vvd


def test_build() -> None:
    """Each strip becomes a submesh, with indices resolved to VVD vertices."""
    mdl, vtx, vvd = load([
        ([0, 1, 2, 3], [0, 1, 2, 2, 1, 3], [(0, 6)]),
        ([4, 5, 6, 7], [0, 1, 2, 3, 2, 1], [(0, 3), (3, 3)]),
    ])
    model = build_model(mdl, vtx, vvd)
    assert len(model) == 3
    assert model.triangle_count == 4
    first, second, third = model.submeshes
    assert first.indices == [0, 1, 2, 2, 1, 3]
    assert second.indices == [4, 5, 6]
    assert third.indices == [7, 6, 5]
    for sub in model.submeshes:
        assert sub.material == 'crate01'
        assert sub.vertices is vvd.vertices
    assert [first.vertices[i].pos.x for i in first.indices] == [0.0, 1.0, 2.0, 2.0, 1.0, 3.0]


def test_build_fixups() -> None:
    """Mesh vertex IDs are remapped through the fixup table."""
    mdl, vtx, vvd = load(
        [([0, 1, 2], [0, 1, 2], [(0, 3)])],
        fixups=[(0, 5, 2), (0, 0, 1)],
    )
    [sub] = build_model(mdl, vtx, vvd).submeshes
    assert sub.indices == [5, 6, 0]


def test_no_material() -> None:
    """Models without textures get a blank material."""
    mdl, vtx, vvd = load([([0, 1, 2], [0, 1, 2], [(0, 3)])], textures=[])
    [sub] = build_model(mdl, vtx, vvd).submeshes
    assert sub.material == ''


def test_vtx_checksum() -> None:
    """Strip data for a different model is rejected."""
    mdl, vtx, vvd = load([([0, 1, 2], [0, 1, 2], [(0, 3)])], vtx_checksum=0x9999)
    with pytest.raises(FormatError, match='checksum'):
        build_model(mdl, vtx, vvd)


def test_vvd_checksum(caplog: pytest.LogCaptureFixture) -> None:
    """A mismatched vertex file is only a warning."""
    mdl, vtx, vvd = load([([0, 1, 2], [0, 1, 2], [(0, 3)])], vvd_checksum=0x9999)
    with caplog.at_level(logging.WARNING, logger='srcview'):
        model = build_model(mdl, vtx, vvd)
    assert len(model) == 1
    assert any('VVD checksum' in rec.getMessage() for rec in caplog.records)


def test_bad_index() -> None:
    """Indices past the end of the strip group's vertices are rejected."""
    mdl, vtx, vvd = load([([0, 1], [0, 1, 2], [(0, 3)])])
    with pytest.raises(FormatError):
        build_model(mdl, vtx, vvd)
