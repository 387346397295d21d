"""Tests for helices, strands, sheets and coils."""

import math

import numpy as np
import pytest

from inertial_fold.segments import (
    HELIX_GEOMETRY,
    Coil,
    Helix,
    SegmentKind,
    Sense,
    Sheet,
    Strand,
    make_helix,
)


# ═══════════════════════════════════════════════════════════════════
# Helix
# ═══════════════════════════════════════════════════════════════════

class TestHelix:

    def test_limits_swapped(self):
        h = Helix(14, 3)
        assert (h.start, h.end) == (3, 14)
        assert h.length == 12

    def test_alias_and_unknown_type(self):
        assert Helix(1, 5, "HELIX").helix_type == "ALPHA"
        with pytest.raises(ValueError):
            Helix(1, 5, "BENT")

    def test_strictness(self):
        assert Helix(1, 5, strictness=3.0).strictness == 1.0
        with pytest.raises(ValueError):
            Helix(1, 5, strictness=0.0)

    def test_negative_limits(self):
        with pytest.raises(ValueError):
            Helix(-1, 5)

    def test_members_and_mask(self):
        h = Helix(2, 4)
        assert list(h.members()) == [2, 3, 4]
        assert list(h.mask(6)) == [False, False, True, True, True, False]
        assert h.kind == SegmentKind.HELIX
        assert h.strand_count == 1

    @pytest.mark.parametrize("start,end,expected", [
        (1, 3, []),
        (1, 4, [(1, 2, 3, 4)]),
        (1, 5, [(1, 2, 3, 4), (2, 3, 4, 5)]),
        (1, 6, [(1, 3, 4, 6), (2, 3, 4, 5)]),
        (1, 8, [(1, 3, 5, 7), (2, 4, 6, 8)]),
        (10, 20, [(10, 12, 17, 19), (11, 13, 18, 20)]),
    ])
    def test_tetrahedra(self, start, end, expected):
        assert Helix(start, end).tetrahedra() == expected

    def test_ideal_structure(self):
        members, coords = Helix(5, 12, "HX310").ideal_structure()
        assert list(members) == list(range(5, 13))
        assert coords.shape == (8, 3)
        steps = np.linalg.norm(np.diff(coords, axis=0), axis=1)
        assert np.allclose(steps, steps[0])


class TestMakeHelix:

    def test_geometry(self):
        radius, pitch, turn = HELIX_GEOMETRY["ALPHA"]
        coords = make_helix(5, radius, pitch, turn)
        assert np.allclose(coords[:, 0], pitch * np.arange(5))
        assert np.allclose(np.hypot(coords[:, 1], coords[:, 2]), radius)
        assert coords[0, 1] == pytest.approx(radius)

    def test_phasing_mirrors(self):
        up = make_helix(6, 2.0, 1.5, 1.7, phasing=1)
        down = make_helix(6, 2.0, 1.5, 1.7, phasing=0)
        assert np.allclose(up[:, 0], down[:, 0])
        assert np.allclose(up[:, 1:], -down[:, 1:])

    def test_geometry_table(self):
        assert HELIX_GEOMETRY["HXPI"][2] == pytest.approx(1.46)
        assert math.isclose(HELIX_GEOMETRY["HX310"][0], 1.9)


# ═══════════════════════════════════════════════════════════════════
# Sheet
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def anti_sheet():
    return Sheet.begin(Strand(3, 7)).add_strand(Strand(12, 16, Sense.ANTI), 14, 5)


class TestSheet:

    def test_begin_clears_sense(self):
        sheet = Sheet.begin(Strand(3, 7, Sense.PAR, 4))
        assert sheet.strands[0].sense == Sense.NONE
        assert sheet.strands[0].phase == 0
        assert sheet.strand_count == 1

    def test_parallel_phase(self):
        sheet = Sheet.begin(Strand(3, 7)).add_strand(
            Strand(12, 16, Sense.PAR), 14, 6)
        assert sheet.strands[1].phase == 1

    def test_antiparallel_phase(self, anti_sheet):
        assert anti_sheet.strands[1].phase == 0

    def test_add_strand_is_pure(self):
        first = Sheet.begin(Strand(3, 7))
        first.add_strand(Strand(12, 16, Sense.PAR), 14, 5)
        assert first.strand_count == 1

    @pytest.mark.parametrize("strand,this_res,other_res", [
        (Strand(12, 16), 14, 5),                 # no sense
        (Strand(12, 16, Sense.PAR), 11, 5),      # outside new strand
        (Strand(12, 16, Sense.PAR), 14, 9),      # outside last strand
        (Strand(6, 10, Sense.ANTI), 8, 6),       # overlaps strand 0
    ])
    def test_add_strand_errors(self, strand, this_res, other_res):
        with pytest.raises(ValueError):
            Sheet.begin(Strand(3, 7)).add_strand(strand, this_res, other_res)

    def test_members_and_tetrahedra(self, anti_sheet):
        assert list(anti_sheet.members()) == [3, 4, 5, 6, 7, 12, 13, 14, 15, 16]
        assert anti_sheet.tetrahedra() == [(3, 7, 12, 16)]
        assert anti_sheet.kind == SegmentKind.SHEET

    def test_relative_sense(self, anti_sheet):
        sheet = anti_sheet.add_strand(Strand(20, 24, Sense.ANTI), 22, 14)
        assert sheet.relative_sense(0, 1) == Sense.ANTI
        assert sheet.relative_sense(0, 2) == Sense.PAR
        assert sheet.relative_sense(1, 1) == Sense.NONE

    def test_offset_on_first(self, anti_sheet):
        # residue 12 pairs with residue 7, the last of strand 0
        assert anti_sheet.offset_on_first(1, 0) == 4
        assert anti_sheet.offset_on_first(1, 4) == 0

    def test_ideal_structure(self, anti_sheet):
        members, coords = anti_sheet.ideal_structure()
        assert coords.shape == (10, 3)
        assert np.allclose(coords.mean(axis=0), 0.0, atol=1e-9)
        first = coords[:5].mean(axis=0)
        second = coords[5:].mean(axis=0)
        assert np.linalg.norm(first - second) == pytest.approx(4.90, rel=0.2)

    def test_ideal_structure_phasing(self, anti_sheet):
        _, up = anti_sheet.ideal_structure(1)
        _, down = anti_sheet.ideal_structure(0)
        assert not np.allclose(up, down)


class TestCoil:

    def test_no_tetrahedra(self):
        coil = Coil(5, 2)
        assert (coil.start, coil.end) == (2, 5)
        assert coil.tetrahedra() == []
        assert coil.ideal_structure() is None
        assert coil.kind == SegmentKind.COIL

    def test_mask_clipped_to_size(self):
        assert Coil(0, 9).mask(4).all()
