"""Secondary-structure segments: helices, sheets and coils.

A closed set of frozen value types sharing one geometric interface:

================  =====================================================
``kind``          :class:`SegmentKind` tag used for dispatch
``members()``     sorted chain positions covered
``mask(size)``    boolean membership mask of length *size*
``tetrahedra()``  apex quadruples used by the tangle test
``strand_count``  number of linear pieces
``ideal_structure()``  ``(members, coords)`` of the ideal 3-D geometry
================  =====================================================

Positions follow the residue numbering of the chain (1..N); 0 and N+1
are the terminus sentinels and never belong to a secondary structure.

Helix tetrahedra
----------------
Length < 4: none.  4: ``(b, b+1, b+2, b+3)``.  5: two sharing the middle
three.  6: ``(b, b+2, b+3, e)`` and ``(b+1, b+2, b+3, e-1)``.
>= 7: ``(b, b+2, e-3, e-1)`` and ``(b+1, b+3, e-2, e)``.

Sheet tetrahedra
----------------
One per neighbouring strand pair: both ends of strand *i* and both ends
of strand *i+1*.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, replace
from typing import ClassVar, Dict, List, Optional, Tuple, Union

import numpy as np

__all__ = [
    "SegmentKind",
    "Sense",
    "Tetrahedron",
    "HELIX_GEOMETRY",
    "make_helix",
    "Helix",
    "Strand",
    "Sheet",
    "Coil",
    "Segment",
]

Tetrahedron = Tuple[int, int, int, int]


class SegmentKind(enum.Enum):
    HELIX = "helix"
    SHEET = "sheet"
    COIL = "coil"


class Sense(enum.IntEnum):
    """Orientation of a strand relative to the previous one."""

    ANTI = -1
    NONE = 0
    PAR = 1


# (radius, rise per residue, turn per residue in radians)
HELIX_GEOMETRY: Dict[str, Tuple[float, float, float]] = {
    "ALPHA": (2.3, 1.5, 1.75),
    "HX310": (1.9, 2.0, 2.09),
    "HXPI": (2.8, 1.1, 1.46),
}
HELIX_ALIASES = {"HELIX": "ALPHA"}

# radius, rise, turn, strand separation, twist per strand
_BETA_GEOMETRY = (0.96, 3.32, 3.25, 4.90, -0.349)


def make_helix(length: int, radius: float, pitch: float, turn: float,
               phasing: int = 1) -> np.ndarray:
    """Ideal helix of *length* points grown along +X.

    ``phasing <= 0`` mirrors the helix through the X axis (first point
    on -Y instead of +Y).
    """
    if phasing <= 0:
        radius = -radius
    i = np.arange(length, dtype=float)
    return np.column_stack([i * pitch,
                            radius * np.cos(i * turn),
                            radius * np.sin(i * turn)])


def _mask(members: np.ndarray, size: int) -> np.ndarray:
    out = np.zeros(size, dtype=bool)
    inside = members[members < size]
    out[inside] = True
    return out


def _check_limits(start: int, end: int, what: str) -> None:
    if start < 0 or end < 0:
        raise ValueError(f"{what} limits must be non-negative: {start}, {end}")


# ═══════════════════════════════════════════════════════════════════
# Helix
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Helix:
    """Helix from *start* to *end* inclusive.

    Limits given in reverse order are swapped.  ``helix_type`` is one
    of ``ALPHA`` (alias ``HELIX``), ``HX310`` or ``HXPI``.  Strictness
    must be positive and is capped at 1.0.
    """

    start: int
    end: int
    helix_type: str = "ALPHA"
    strictness: float = 1.0

    kind: ClassVar[SegmentKind] = SegmentKind.HELIX
    strand_count: ClassVar[int] = 1

    def __post_init__(self):
        _check_limits(self.start, self.end, "helix")
        if self.start > self.end:
            s, e = self.end, self.start
            object.__setattr__(self, "start", s)
            object.__setattr__(self, "end", e)
        htype = HELIX_ALIASES.get(self.helix_type, self.helix_type)
        if htype not in HELIX_GEOMETRY:
            raise ValueError(f"unknown helix type {self.helix_type!r}")
        object.__setattr__(self, "helix_type", htype)
        if self.strictness <= 0.0:
            raise ValueError(f"strictness {self.strictness} <= 0")
        object.__setattr__(self, "strictness", min(float(self.strictness), 1.0))

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def members(self) -> np.ndarray:
        return np.arange(self.start, self.end + 1)

    def mask(self, size: int) -> np.ndarray:
        return _mask(self.members(), size)

    def tetrahedra(self) -> List[Tetrahedron]:
        b, e, n = self.start, self.end, self.length
        if n < 4:
            return []
        if n == 4:
            return [(b, b + 1, b + 2, b + 3)]
        if n == 5:
            return [(b, b + 1, b + 2, b + 3), (b + 1, b + 2, b + 3, e)]
        if n == 6:
            return [(b, b + 2, b + 3, e), (b + 1, b + 2, b + 3, e - 1)]
        return [(b, b + 2, e - 3, e - 1), (b + 1, b + 3, e - 2, e)]

    def ideal_structure(self) -> Tuple[np.ndarray, np.ndarray]:
        radius, pitch, turn = HELIX_GEOMETRY[self.helix_type]
        return self.members(), make_helix(self.length, radius, pitch, turn)


# ═══════════════════════════════════════════════════════════════════
# Strand / Sheet
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Strand:
    """One beta-strand; *sense* and *phase* refer to the previous strand.

    For a parallel strand the phase is ``beg(this) - beg(prev)`` of the
    paired residues, for an antiparallel one ``beg(this) - end(prev)``.
    """

    start: int
    end: int
    sense: Sense = Sense.NONE
    phase: int = 0

    def __post_init__(self):
        _check_limits(self.start, self.end, "strand")
        if self.start > self.end:
            s, e = self.end, self.start
            object.__setattr__(self, "start", s)
            object.__setattr__(self, "end", e)
        object.__setattr__(self, "sense", Sense(self.sense))

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def member(self, pos: int) -> bool:
        return self.start <= pos <= self.end


@dataclass(frozen=True)
class Sheet:
    """Beta-sheet of two or more strands, built with :meth:`add_strand`.

    >>> sheet = Sheet.begin(Strand(3, 7)).add_strand(
    ...     Strand(12, 16, Sense.ANTI), 14, 5)
    """

    strands: Tuple[Strand, ...]
    strictness: float = 1.0

    kind: ClassVar[SegmentKind] = SegmentKind.SHEET

    def __post_init__(self):
        if not self.strands:
            raise ValueError("a sheet needs at least one strand")
        if self.strictness <= 0.0:
            raise ValueError(f"strictness {self.strictness} <= 0")
        object.__setattr__(self, "strands", tuple(self.strands))
        object.__setattr__(self, "strictness", min(float(self.strictness), 1.0))

    @classmethod
    def begin(cls, first: Strand, strictness: float = 1.0) -> "Sheet":
        """Start a sheet; the first strand has no sense and zero phase."""
        return cls((replace(first, sense=Sense.NONE, phase=0),), strictness)

    def add_strand(self, strand: Strand, this_res: int,
                   other_res: int) -> "Sheet":
        """Return a new sheet with *strand* appended.

        *this_res* on the new strand is paired with *other_res* on the
        current last strand.

        Raises
        ------
        ValueError
            If the strand has no sense, a pairing residue lies outside
            its strand, or the new strand overlaps an existing one.
        """
        if strand.sense == Sense.NONE:
            raise ValueError("new strand needs a sense (PAR or ANTI)")
        if not strand.member(this_res):
            raise ValueError(f"residue {this_res} is not in the new strand")
        last = self.strands[-1]
        if not last.member(other_res):
            raise ValueError(f"residue {other_res} is not in the last strand")
        for i, s in enumerate(self.strands):
            if not (s.end < strand.start or strand.end < s.start):
                raise ValueError(f"new strand overlaps strand {i}")
        if strand.sense == Sense.PAR:
            phase = other_res - this_res + strand.start - last.start
        else:
            phase = last.end - other_res - this_res + strand.start
        added = replace(strand, phase=phase)
        return Sheet(self.strands + (added,), self.strictness)

    @property
    def strand_count(self) -> int:
        return len(self.strands)

    def members(self) -> np.ndarray:
        return np.unique(np.concatenate(
            [np.arange(s.start, s.end + 1) for s in self.strands]))

    def mask(self, size: int) -> np.ndarray:
        return _mask(self.members(), size)

    def tetrahedra(self) -> List[Tetrahedron]:
        return [(a.start, a.end, b.start, b.end)
                for a, b in zip(self.strands[:-1], self.strands[1:])]

    def relative_sense(self, first: int, second: int) -> Sense:
        """Orientation of strand *second* with respect to strand *first*."""
        if first == second:
            return Sense.NONE
        lo, hi = sorted((first, second))
        sign = 1
        for s in self.strands[lo + 1:hi + 1]:
            sign *= int(s.sense)
        return Sense.ANTI if sign < 0 else Sense.PAR

    def offset_on_first(self, strand: int, offset: int) -> int:
        """Offset on strand 0 of the position *offset* along *strand*."""
        for sno in range(strand, 0, -1):
            s = self.strands[sno]
            if s.sense == Sense.PAR:
                offset += s.phase
            else:
                offset = self.strands[sno - 1].length - 1 - (offset + s.phase)
        return offset

    def ideal_structure(self, phasing: int = 1
                        ) -> Tuple[np.ndarray, np.ndarray]:
        """Ideal twisted sheet, centred on its centroid.

        Strands are cut from one prototype strand in the sheet's own
        register, stacked ``STRSEP`` apart along Z and twisted about Z
        by a fixed angle per strand.  ``phasing`` selects the "up"
        (> 0) or "down" (<= 0) pleat.
        """
        radius, pitch, turn, strsep, twist = _BETA_GEOMETRY
        begins, lows, highs = [], [], []
        for i, s in enumerate(self.strands):
            b_off = self.offset_on_first(i, 0)
            e_off = self.offset_on_first(i, s.length - 1)
            lows.append(min(b_off, e_off))
            highs.append(max(b_off, e_off))
            begins.append(e_off if self.relative_sense(0, i) == Sense.ANTI
                          else b_off)
        lo, width = min(lows), max(highs) - min(lows) + 1

        proto = make_helix(width, radius, pitch, turn, phasing)
        ang = (turn - math.pi) * width / 2.0
        rot_x = np.array([[1.0, 0.0, 0.0],
                          [0.0, math.cos(ang), math.sin(ang)],
                          [0.0, -math.sin(ang), math.cos(ang)]])
        proto = proto @ rot_x.T

        members = self.members()
        where = {int(p): k for k, p in enumerate(members)}
        coords = np.zeros((members.size, 3))
        direction = 1
        for i, s in enumerate(self.strands):
            if s.sense == Sense.ANTI:
                direction = -direction
            seg = proto[begins[i] - lo:begins[i] - lo + s.length].copy()
            if direction < 0:
                seg = seg[::-1]
            seg[:, 2] += i * strsep
            rows = [where[p] for p in range(s.start, s.end + 1)]
            coords[rows[:len(seg)]] = seg
        coords -= coords.mean(axis=0)

        for i, s in enumerate(self.strands[1:], start=1):
            c, sn = math.cos(twist * i), math.sin(twist * i)
            rot_z = np.array([[c, -sn, 0.0], [sn, c, 0.0], [0.0, 0.0, 1.0]])
            rows = [where[p] for p in range(s.start, s.end + 1)]
            coords[rows] = coords[rows] @ rot_z.T
        coords -= coords.mean(axis=0)
        return members, coords


# ═══════════════════════════════════════════════════════════════════
# Coil
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Coil:
    """Irregular stretch of chain; carries no tetrahedra."""

    start: int
    end: int

    kind: ClassVar[SegmentKind] = SegmentKind.COIL
    strand_count: ClassVar[int] = 1

    def __post_init__(self):
        _check_limits(self.start, self.end, "coil")
        if self.start > self.end:
            s, e = self.end, self.start
            object.__setattr__(self, "start", s)
            object.__setattr__(self, "end", e)

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def members(self) -> np.ndarray:
        return np.arange(self.start, self.end + 1)

    def mask(self, size: int) -> np.ndarray:
        return _mask(self.members(), size)

    def tetrahedra(self) -> List[Tetrahedron]:
        return []

    def ideal_structure(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        return None


Segment = Union[Helix, Sheet, Coil]
