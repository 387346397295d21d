"""SegmentLayout: secondary structures, coils and their clusters.

A chain of N residues has positions ``0 .. N+1``; 0 and N+1 are the
terminus sentinels and always belong to coils.  The layout keeps the
accepted secondary structures, derives the coils between them and
exposes one cluster per structure (helix or sheet, in input order)
followed by one cluster per coil (in chain order).  Overlapping sheets
share a cluster.

It is the *cluster type* service of the tangle engine:
:meth:`SegmentLayout.cluster_type` says whether a cluster is a helix,
a sheet or a coil, and :meth:`SegmentLayout.tetrahedra` lists the
tetrahedra erected on it.

Text format
-----------
Read by :func:`parse_secondary`::

    # comment
    HELIX 3 14            (also ALPHA, HX310, HXPI; optional strictness)
    SHEET 0.8             (optional strictness)
    STRAND 20 25
    STRAND 30 35 ANTI 32 23
    END

``STRAND b e PAR|ANTI this other`` pairs residue *this* of the new
strand with residue *other* of the previous one.  Malformed items are
reported and skipped.
"""

from __future__ import annotations

import enum
import logging
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .segments import (
    HELIX_ALIASES, HELIX_GEOMETRY, Coil, Helix, Segment, SegmentKind, Sense,
    Sheet, Strand, Tetrahedron,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ClusterType",
    "SegmentLayout",
    "parse_secondary",
]


class ClusterType(enum.IntEnum):
    UNKNOWN = -1
    COIL = 0
    HELIX = 1
    SHEET = 2


_KIND_TYPE = {
    SegmentKind.HELIX: ClusterType.HELIX,
    SegmentKind.SHEET: ClusterType.SHEET,
    SegmentKind.COIL: ClusterType.COIL,
}


# ═══════════════════════════════════════════════════════════════════
# SegmentLayout
# ═══════════════════════════════════════════════════════════════════

class SegmentLayout:
    """Cluster layout of a chain derived from its secondary structure.

    Parameters
    ----------
    n_residues : int
        Chain length N; the layout covers ``N + 2`` positions.
    segments : sequence of Helix/Sheet, optional
        Passed to :meth:`set_secondary`.
    """

    def __init__(self, n_residues: int,
                 segments: Optional[Sequence[Segment]] = None):
        if n_residues < 1:
            raise ValueError(f"chain needs at least one residue, got {n_residues}")
        self.n_residues = int(n_residues)
        self.reset()
        if segments:
            self.set_secondary(segments)

    def __repr__(self) -> str:
        return (f"SegmentLayout(n_residues={self.n_residues}, "
                f"clusters={self.cluster_count}, "
                f"secondary={len(self._secondary)})")

    @classmethod
    def from_text(cls, text: str, n_residues: int) -> "SegmentLayout":
        return cls(n_residues, parse_secondary(text))

    # ── access ──────────────────────────────────────────────────

    @property
    def size(self) -> int:
        return self.n_residues + 2

    @property
    def segments(self) -> Tuple[Segment, ...]:
        """Accepted secondary structures, in input order."""
        return self._secondary

    @property
    def coils(self) -> Tuple[Coil, ...]:
        return self._coils

    @property
    def masks(self) -> Tuple[np.ndarray, ...]:
        return self._masks

    @property
    def types(self) -> Tuple[ClusterType, ...]:
        return self._types

    @property
    def cluster_count(self) -> int:
        return len(self._masks)

    @property
    def secondary_mask(self) -> np.ndarray:
        return self._secondary_mask

    @property
    def secondary_clusters(self) -> Tuple[int, ...]:
        return tuple(i for i, t in enumerate(self._types)
                     if t in (ClusterType.HELIX, ClusterType.SHEET))

    @property
    def point_cluster(self) -> np.ndarray:
        return self._point_cluster

    def cluster_type(self, cluster: int) -> ClusterType:
        if 0 <= cluster < self.cluster_count:
            return self._types[cluster]
        return ClusterType.UNKNOWN

    def cluster_segments(self, cluster: int) -> Tuple[Segment, ...]:
        return self._cluster_segments[cluster]

    def cluster_of(self, position: int) -> int:
        return int(self._point_cluster[position])

    def member(self, position: int) -> bool:
        """True if *position* lies in some secondary structure."""
        return bool(self._secondary_mask[position])

    def members(self, first: int, second: int) -> bool:
        """True if both positions lie in the same cluster."""
        return self.cluster_of(first) == self.cluster_of(second)

    def tetrahedra(self, cluster: int) -> List[Tetrahedron]:
        """Tetrahedra of every structure merged into *cluster*."""
        out: List[Tetrahedron] = []
        for seg in self._cluster_segments[cluster]:
            out.extend(seg.tetrahedra())
        return out

    # ── building ────────────────────────────────────────────────

    def reset(self) -> None:
        """Represent the chain as one long coil."""
        size = self.size
        self._secondary: Tuple[Segment, ...] = ()
        self._secondary_mask = np.zeros(size, dtype=bool)
        coil = Coil(0, size - 1)
        self._coils: Tuple[Coil, ...] = (coil,)
        self._cluster_segments: Tuple[Tuple[Segment, ...], ...] = ((coil,),)
        self._masks: Tuple[np.ndarray, ...] = (np.ones(size, dtype=bool),)
        self._types: Tuple[ClusterType, ...] = (ClusterType.COIL,)
        self._point_cluster = np.zeros(size, dtype=np.intp)

    def set_secondary(self, segments: Sequence[Segment]) -> int:
        """Install a new secondary-structure assignment.

        Structures that do not fit into residues ``1..N``, helices that
        overlap anything, and sheets that overlap a helix are reported
        and dropped.  Sheet/sheet overlaps are accepted with a warning.
        The layout is only replaced if at least one structure survives.

        Returns
        -------
        int
            Number of accepted structures.
        """
        size = self.size
        accepted: List[Segment] = []
        sec_mask = np.zeros(size, dtype=bool)
        helix_mask = np.zeros(size, dtype=bool)

        for seg in segments:
            if seg.kind == SegmentKind.COIL:
                logger.debug("set_secondary: coil segments are derived, skipped")
                continue
            members = seg.members()
            if members.min() < 1 or members.max() > self.n_residues:
                logger.warning(f"set_secondary: {seg} does not fit, ignored")
                continue
            mask = seg.mask(size)
            if seg.kind == SegmentKind.HELIX:
                if np.any(mask & sec_mask):
                    logger.warning(
                        f"set_secondary: {seg} overlaps another structure, "
                        f"ignored")
                    continue
                helix_mask |= mask
            else:
                if np.any(mask & helix_mask):
                    logger.warning(
                        f"set_secondary: {seg} overlaps a helix, ignored")
                    continue
                if np.any(mask & sec_mask):
                    logger.warning(
                        f"set_secondary: {seg} overlaps other sheet(s), "
                        f"bifurcation assumed")
            accepted.append(seg)
            sec_mask |= mask

        if not accepted:
            logger.warning("set_secondary: no valid secondary structure, "
                           "layout unchanged")
            return 0
        self._install(accepted, sec_mask)
        return len(accepted)

    def _install(self, accepted: List[Segment], sec_mask: np.ndarray) -> None:
        size = self.size
        masks: List[np.ndarray] = []
        types: List[ClusterType] = []
        groups: List[List[Segment]] = []

        for seg in accepted:
            mask = seg.mask(size)
            if seg.kind == SegmentKind.SHEET:
                hits = [j for j, m in enumerate(masks) if np.any(m & mask)]
                if hits:
                    keep = hits[0]
                    masks[keep] = masks[keep] | mask
                    groups[keep].append(seg)
                    for j in reversed(hits[1:]):
                        masks[keep] |= masks.pop(j)
                        groups[keep].extend(groups.pop(j))
                        types.pop(j)
                    continue
            masks.append(mask)
            types.append(_KIND_TYPE[seg.kind])
            groups.append([seg])

        coils: List[Coil] = []
        start = None
        for pos in range(size + 1):
            inside = pos < size and not sec_mask[pos]
            if inside and start is None:
                start = pos
            elif not inside and start is not None:
                coils.append(Coil(start, pos - 1))
                start = None
        for coil in coils:
            masks.append(coil.mask(size))
            types.append(ClusterType.COIL)
            groups.append([coil])

        self._secondary = tuple(accepted)
        self._secondary_mask = sec_mask.copy()
        self._coils = tuple(coils)
        self._masks = tuple(masks)
        self._types = tuple(types)
        self._cluster_segments = tuple(tuple(g) for g in groups)
        self._point_cluster = np.argmax(np.vstack(masks), axis=0).astype(np.intp)


# ═══════════════════════════════════════════════════════════════════
# Text parser
# ═══════════════════════════════════════════════════════════════════

_HELIX_WORDS = set(HELIX_GEOMETRY) | set(HELIX_ALIASES)


def _content_lines(text: str) -> Iterator[Tuple[int, str]]:
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if line and not line.startswith("#"):
            yield lineno, line


def _parse_helix(tokens: List[str]) -> Helix:
    if tokens[0] not in _HELIX_WORDS:
        raise ValueError(f"invalid helix type {tokens[0]!r}")
    if len(tokens) < 3:
        raise ValueError("helix limits missing")
    start, end = int(tokens[1]), int(tokens[2])
    if start <= 0 or end <= 0:
        raise ValueError(f"invalid limits {start}, {end}")
    strictness = float(tokens[3]) if len(tokens) > 3 else 1.0
    return Helix(start, end, tokens[0], strictness)


def _parse_strand_limits(tokens: List[str]) -> Tuple[int, int]:
    if tokens[0] != "STRAND" or len(tokens) < 3:
        raise ValueError("STRAND <beg> <end> expected")
    start, end = int(tokens[1]), int(tokens[2])
    if start <= 0 or end <= 0:
        raise ValueError(f"invalid strand limits {start}, {end}")
    return start, end


def _parse_sheet(header: List[str], block: List[List[str]],
                 finished: bool) -> Sheet:
    strictness = 1.0
    if len(header) > 1:
        try:
            strictness = float(header[1])
        except ValueError:
            pass
    if strictness <= 0.0:
        raise ValueError(f"strictness {strictness} <= 0")

    sheet: Optional[Sheet] = None
    for tokens in block:
        start, end = _parse_strand_limits(tokens)
        if sheet is None:
            sheet = Sheet.begin(Strand(start, end), strictness)
            continue
        if len(tokens) < 6 or tokens[3] not in ("PAR", "ANTI"):
            raise ValueError("STRAND <beg> <end> PAR|ANTI <this> <other> expected")
        this_res, other_res = int(tokens[4]), int(tokens[5])
        if this_res <= 0 or other_res <= 0:
            raise ValueError(f"invalid pairing {this_res}, {other_res}")
        sheet = sheet.add_strand(
            Strand(start, end, Sense[tokens[3]]), this_res, other_res)

    if sheet is None or sheet.strand_count < 2:
        raise ValueError("sheets must have at least two strands")
    if not finished:
        logger.warning("parse_secondary: sheet description not closed by END")
    return sheet


def parse_secondary(text: str) -> List[Segment]:
    """Parse helices and sheets from *text*.

    Returns the successfully parsed structures in input order; nothing
    is checked against a chain length here (see
    :meth:`SegmentLayout.set_secondary`).  A sheet block ends at its
    ``END`` line or, if that is missing, at the first line that is not
    a ``STRAND``.
    """
    out: List[Segment] = []
    lines = list(_content_lines(text))
    k = 0
    while k < len(lines):
        lineno, line = lines[k]
        tokens = line.split()
        k += 1
        if tokens[0] == "SHEET":
            block: List[List[str]] = []
            finished = False
            while k < len(lines):
                words = lines[k][1].split()
                if words[0] == "END":
                    finished = True
                    k += 1
                    break
                if words[0] != "STRAND":
                    break
                block.append(words)
                k += 1
            try:
                out.append(_parse_sheet(tokens, block, finished))
            except ValueError as exc:
                logger.warning(f"parse_secondary: line {lineno}: sheet "
                               f"ignored ({exc})")
            continue
        try:
            out.append(_parse_helix(tokens))
        except ValueError as exc:
            logger.warning(f"parse_secondary: line {lineno}: cannot parse "
                           f"{line!r} ({exc})")
    return out
