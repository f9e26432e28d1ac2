"""Core data models used by the femtoscopy trigger filter.

This module defines:
- closed enumerations for selected species, rejection references and V0 daughters
- immutable input records (`Collision`, `Track`, `EventInput`)
- calibration records (`CalibrationCurve`)
- output table rows (`OutputCollision`, `OutputParticle`) and their container.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

CALIBRATION_LABELS: tuple[str, ...] = ("bb1", "bb2", "bb3", "bb4", "bb5", "Resolution")


class Species(IntEnum):
    """Particle species the filter selects."""

    PROTON = 0
    DEUTERON = 1
    LAMBDA = 2

    @property
    def label(self) -> str:
        return _SPECIES_LABELS[self]

    def anti_label(self) -> str:
        return "Anti" + _SPECIES_LABELS[self]


_SPECIES_LABELS = {
    Species.PROTON: "Proton",
    Species.DEUTERON: "Deuteron",
    Species.LAMBDA: "Lambda",
}


class RejectionSpecies(IntEnum):
    """Contaminating species vetoed for deuteron candidates."""

    PROTON = 0
    PION = 1
    ELECTRON = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()


class V0Daughter(IntEnum):
    """Decay daughters of a V0 (Lambda) candidate."""

    PION = 0
    PROTON = 1

    @property
    def label(self) -> str:
        return self.name.capitalize()


class ParticleType(IntEnum):
    """Role tag written into the output particle table."""

    TRACK = 0
    V0 = 1
    V0_CHILD = 2


@dataclass(frozen=True)
class Collision:
    """One beam-crossing event with vertex, selection flag and multiplicities."""

    collision_id: str
    pos_z: float
    run_number: int
    timestamp: int = 0
    pos_x: float = 0.0
    pos_y: float = 0.0
    sel8: bool = True  # offline event selection
    mult_fv0m: float = 0.0
    mult_ntracks_pv: float = 0.0


@dataclass(frozen=True)
class Track:
    """Single reconstructed charged track with quality counters and PID scores.

    `tpc_inner_param` is the momentum at the inner wall of the TPC, `p` the
    momentum at the primary vertex. `tpc_nsigma_*` and `tof_nsigma_*` are the
    precomputed deviation scores of the central PID framework.
    """

    track_id: str
    pt: float
    eta: float
    phi: float
    sign: int
    p: float
    tpc_inner_param: float
    tpc_n_cls_found: int = 0
    tpc_crossed_rows_over_findable_cls: float = 0.0
    tpc_n_cls_crossed_rows: int = 0
    tpc_n_cls_shared: int = 0
    its_n_cls: int = 0
    its_n_cls_inner_barrel: int = 0
    tpc_chi2_ncl: float = 0.0
    its_chi2_ncl: float = 0.0
    has_tpc: bool = True
    has_its: bool = True
    dca_xy: float = 0.0
    dca_z: float = 0.0
    tpc_signal: float = 0.0
    tpc_nsigma_el: float = -999.0
    tpc_nsigma_pi: float = -999.0
    tpc_nsigma_pr: float = -999.0
    tpc_nsigma_de: float = -999.0
    tof_nsigma_pr: float = -999.0
    tof_nsigma_de: float = -999.0


@dataclass(frozen=True)
class EventInput:
    """One event payload: the collision and the tracks attached to it."""

    collision: Collision
    tracks: tuple[Track, ...]


@dataclass(frozen=True)
class CalibrationCurve:
    """Bethe-Bloch shape parameters plus relative resolution.

    Only a curve with exactly six entries (bb1..bb5, Resolution) is usable;
    anything else is carried along but treated as missing.
    """

    values: tuple[float, ...] = ()

    @property
    def is_valid(self) -> bool:
        return len(self.values) == len(CALIBRATION_LABELS)

    @property
    def bethe_bloch(self) -> tuple[float, float, float, float, float]:
        """The five shape parameters of a valid curve."""
        if not self.is_valid:
            raise ValueError(
                f"Calibration curve needs {len(CALIBRATION_LABELS)} entries, got {len(self.values)}."
            )
        b = self.values
        return (b[0], b[1], b[2], b[3], b[4])

    @property
    def resolution(self) -> float:
        if not self.is_valid:
            raise ValueError(
                f"Calibration curve needs {len(CALIBRATION_LABELS)} entries, got {len(self.values)}."
            )
        return self.values[5]


@dataclass(frozen=True)
class OutputCollision:
    """Row of the output collision table."""

    pos_z: float
    mult_fv0m: float
    mult_ntracks_pv: float
    spherocity: int = -2
    mag_field: int = -2


@dataclass(frozen=True)
class OutputParticle:
    """Row of the output particle table consumed by the pair/triplet stage."""

    collision_index: int
    pt: float
    eta: float
    phi: float
    part_type: ParticleType
    cut: int  # selection bitmask, particle vs antiparticle
    pid_cut: int  # species bitmask
    temp_fit_var: float  # dcaXY for tracks
    children: tuple[int, int] = (0, 0)
    m_lambda: float = 0.0
    m_antilambda: float = 0.0


@dataclass
class FilterOutput:
    """Output tables accumulated over processed events."""

    collisions: list[OutputCollision] = field(default_factory=list)
    particles: list[OutputParticle] = field(default_factory=list)

    @property
    def last_collision_index(self) -> int:
        return len(self.collisions) - 1
