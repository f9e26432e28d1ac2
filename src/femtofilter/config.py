"""Typed configuration store for the trigger filter.

Scalar parameters are plain dataclass fields. The labeled 2-D tables of the
task configuration (rows = species, columns = cut kind) become mappings keyed
by the species enums whose values are small frozen dataclasses. A raw
key/value configuration is converted with `config_from_dict`, which checks
every key, label and cell so that a malformed configuration fails before the
first event is processed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

from .models import RejectionSpecies, Species, V0Daughter


class ConfigurationError(ValueError):
    """Unrecoverable misconfiguration of the filter."""


@dataclass(frozen=True)
class MomentumCuts:
    """Transverse-momentum window and PID momentum threshold of one species."""

    pt_min: float
    pt_max: float
    p_threshold: float


@dataclass(frozen=True)
class PIDWindow:
    """nSigma windows of one species and charge."""

    tpc_min: float
    tpc_max: float
    tof_min: float
    tof_max: float
    tpctof_max: float


@dataclass(frozen=True)
class TPCWindow:
    """Open TPC nSigma interval."""

    tpc_min: float
    tpc_max: float

    def contains(self, nsigma: float) -> bool:
        return self.tpc_min < nsigma < self.tpc_max


@dataclass(frozen=True)
class TPCTOFAverage:
    """Mean TPC and TOF nSigma subtracted before combining the two detectors."""

    tpc_avg: float = 0.0
    tof_avg: float = 0.0


def _default_pt_cuts() -> dict[Species, MomentumCuts]:
    return {
        Species.PROTON: MomentumCuts(0.35, 6.0, 0.75),
        Species.DEUTERON: MomentumCuts(0.35, 1.6, 99.0),
        Species.LAMBDA: MomentumCuts(0.35, 6.0, 99.0),
    }


def _default_pid_cuts() -> dict[Species, PIDWindow]:
    return {
        Species.PROTON: PIDWindow(-6.0, 6.0, -6.0, 6.0, 6.0),
        Species.DEUTERON: PIDWindow(-6.0, 6.0, -99.0, 99.0, 99.0),
    }


def _default_tpc_nclusters_min() -> dict[Species, float]:
    return {Species.PROTON: 60.0, Species.DEUTERON: 60.0}


def _default_pid_rejection() -> dict[RejectionSpecies, TPCWindow]:
    return {species: TPCWindow(-2.0, 2.0) for species in RejectionSpecies}


def _default_pid_tpctof_avg() -> dict[tuple[Species, int], TPCTOFAverage]:
    return {
        (species, sign): TPCTOFAverage()
        for species in (Species.PROTON, Species.DEUTERON)
        for sign in (1, -1)
    }


def _default_daughter_pid_cuts() -> dict[V0Daughter, TPCWindow]:
    return {daughter: TPCWindow(-6.0, 6.0) for daughter in V0Daughter}


@dataclass(frozen=True)
class FilterConfig:
    """All selection parameters of the femtoscopy trigger filter."""

    is_run3: bool = True

    # events
    evt_select_zvtx: bool = True
    evt_zvtx_max: float = 10.0
    evt_offline_check: bool = False

    # output bitmasks
    cut_bit_part: int = 8190
    cut_bit_antipart: int = 8189
    pid_bit_proton: int = 1
    pid_bit_deuteron: int = 4
    select_deuterons: bool = False

    # tracks
    deuteron_threshold_pv_momentum: bool = False
    reject_not_propagated_tracks: bool = False
    trk_eta_max: float = 0.85
    trk_tpc_fcls_min: float = 0.83
    trk_tpc_crossed_rows_min: float = 70.0
    trk_tpc_shared_cls_max: float = 160.0
    trk_its_ncls_min: float = 0.0
    trk_its_ncls_ib_min: float = 0.0
    trk_dca_xy_max: float = 0.15
    trk_dca_z_max: float = 0.3
    trk_require_chi2_max_tpc: bool = False
    trk_require_chi2_max_its: bool = False
    trk_max_chi2_per_cluster_tpc: float = 4.0
    trk_max_chi2_per_cluster_its: float = 36.0
    trk_tpc_refit: bool = False
    trk_its_refit: bool = False

    # manual PID from calibration objects
    use_manual_pid_proton: bool = False
    use_manual_pid_deuteron: bool = False
    use_manual_pid_pion: bool = False
    use_manual_pid_electron: bool = False
    use_manual_pid_daughter_pion: bool = False
    use_manual_pid_daughter_proton: bool = False
    bb_path_proton: str = "Users/l/lserksny/PIDProton"
    bb_path_antiproton: str = "Users/l/lserksny/PIDAntiProton"
    bb_path_deuteron: str = "Users/l/lserksny/PIDDeuteron"
    bb_path_antideuteron: str = "Users/l/lserksny/PIDAntiDeuteron"
    bb_path_pion: str = "Users/l/lserksny/PIDPion"
    bb_path_antipion: str = "Users/l/lserksny/PIDAntiPion"
    bb_path_electron: str = "Users/l/lserksny/PIDElectron"
    bb_path_antielectron: str = "Users/l/lserksny/PIDAntiElectron"

    # deuteron contamination veto
    reject_not_deuteron: bool = False

    # V0 daughters
    daugh_eta_max: float = 0.85
    daugh_tpc_ncls_min: float = 60.0
    daugh_dca_min: float = 0.04

    # labeled tables
    pt_cuts: dict[Species, MomentumCuts] = field(default_factory=_default_pt_cuts)
    pid_cuts: dict[Species, PIDWindow] = field(default_factory=_default_pid_cuts)
    pid_cuts_anti: dict[Species, PIDWindow] = field(default_factory=_default_pid_cuts)
    tpc_nclusters_min: dict[Species, float] = field(default_factory=_default_tpc_nclusters_min)
    pid_rejection: dict[RejectionSpecies, TPCWindow] = field(default_factory=_default_pid_rejection)
    pid_tpctof_avg: dict[tuple[Species, int], TPCTOFAverage] = field(
        default_factory=_default_pid_tpctof_avg
    )
    daughter_pid_cuts: dict[V0Daughter, TPCWindow] = field(default_factory=_default_daughter_pid_cuts)

    @property
    def manual_pid_enabled(self) -> bool:
        """True if any species asks for recalibrated TPC scores."""
        return (
            self.use_manual_pid_proton
            or self.use_manual_pid_deuteron
            or self.use_manual_pid_pion
            or self.use_manual_pid_electron
            or self.use_manual_pid_daughter_pion
            or self.use_manual_pid_daughter_proton
        )

    def pid_window(self, species: Species, charge: int) -> PIDWindow:
        """PID window of a species, from the antiparticle table for negative charge."""
        table = self.pid_cuts if charge > 0 else self.pid_cuts_anti
        try:
            return table[species]
        except KeyError as exc:
            raise ConfigurationError(f"No PID selection for {species.label}") from exc

    def tpctof_average(self, species: Species, charge: int) -> TPCTOFAverage:
        sign = 1 if charge > 0 else -1
        try:
            return self.pid_tpctof_avg[(species, sign)]
        except KeyError as exc:
            raise ConfigurationError(f"No TPC/TOF average for {species.label}") from exc

    def validate(self) -> None:
        """Check that the configuration is complete and usable."""
        if not self.is_run3:
            raise ConfigurationError("Run 2 processing is not implemented!")
        _require_keys("pt_cuts", self.pt_cuts, tuple(Species))
        _require_keys("pid_cuts", self.pid_cuts, _PID_SPECIES)
        _require_keys("pid_cuts_anti", self.pid_cuts_anti, _PID_SPECIES)
        _require_keys("tpc_nclusters_min", self.tpc_nclusters_min, _PID_SPECIES)
        _require_keys("pid_rejection", self.pid_rejection, tuple(RejectionSpecies))
        _require_keys(
            "pid_tpctof_avg",
            self.pid_tpctof_avg,
            tuple((s, sign) for s in _PID_SPECIES for sign in (1, -1)),
        )
        _require_keys("daughter_pid_cuts", self.daughter_pid_cuts, tuple(V0Daughter))
        for species, cuts in self.pt_cuts.items():
            if cuts.pt_min > cuts.pt_max:
                raise ConfigurationError(
                    f"pt_cuts[{species.label}]: 'Pt min' {cuts.pt_min} exceeds 'Pt max' {cuts.pt_max}."
                )
        for species, window in self.pid_cuts.items():
            _require_open_window(f"pid_cuts[{species.label}]", "TPC", window.tpc_min, window.tpc_max)
            _require_open_window(f"pid_cuts[{species.label}]", "TOF", window.tof_min, window.tof_max)
        for species, window in self.pid_cuts_anti.items():
            _require_open_window(f"pid_cuts_anti[{species.anti_label()}]", "TPC", window.tpc_min, window.tpc_max)
            _require_open_window(f"pid_cuts_anti[{species.anti_label()}]", "TOF", window.tof_min, window.tof_max)
        # min == max is an empty veto window and disables that rejection
        for rejected, window in self.pid_rejection.items():
            _require_ordered_window(f"pid_rejection[{rejected.label}]", window.tpc_min, window.tpc_max)
        for daughter, window in self.daughter_pid_cuts.items():
            _require_ordered_window(f"daughter_pid_cuts[{daughter.label}]", window.tpc_min, window.tpc_max)


_PID_SPECIES = (Species.PROTON, Species.DEUTERON)

_PT_COLUMNS = {"Pt min": "pt_min", "Pt max": "pt_max", "P thres": "p_threshold"}
_PID_COLUMNS = {
    "TPC min": "tpc_min",
    "TPC max": "tpc_max",
    "TOF min": "tof_min",
    "TOF max": "tof_max",
    "TPCTOF max": "tpctof_max",
}
_TPC_COLUMNS = {"TPC min": "tpc_min", "TPC max": "tpc_max"}
_AVG_COLUMNS = {"TPC Avg": "tpc_avg", "TOF Avg": "tof_avg"}

# table key -> (row label -> row key, column label -> field name)
_TABLES: dict[str, tuple[dict[str, Any], dict[str, str]]] = {
    "pt_cuts": ({s.label: s for s in Species}, _PT_COLUMNS),
    "pid_cuts": ({s.label: s for s in _PID_SPECIES}, _PID_COLUMNS),
    "pid_cuts_anti": ({s.anti_label(): s for s in _PID_SPECIES}, _PID_COLUMNS),
    "pid_rejection": ({s.label: s for s in RejectionSpecies}, _TPC_COLUMNS),
    "pid_tpctof_avg": (
        {
            label: (s, sign)
            for s in _PID_SPECIES
            for label, sign in ((s.label, 1), (s.anti_label(), -1))
        },
        _AVG_COLUMNS,
    ),
    "daughter_pid_cuts": ({d.label: d for d in V0Daughter}, _TPC_COLUMNS),
}


def config_from_dict(raw: Mapping[str, Any]) -> FilterConfig:
    """Build a validated `FilterConfig` from a raw key/value mapping.

    Scalars are given by field name. Tables use the row/column labels of the
    task configuration, e.g. ``{"pid_cuts": {"Proton": {"TPC min": -3}}}``;
    cells that are not given keep their defaults.
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Configuration must be an object.")
    defaults = FilterConfig()
    scalar_fields = {f.name: f for f in fields(FilterConfig) if f.name not in _TABLES}
    scalar_fields.pop("tpc_nclusters_min")
    updates: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _TABLES:
            rows, columns = _TABLES[key]
            updates[key] = _merge_table(key, value, getattr(defaults, key), rows, columns)
        elif key == "tpc_nclusters_min":
            updates[key] = _merge_cluster_table(value, defaults.tpc_nclusters_min)
        elif key in scalar_fields:
            updates[key] = _coerce_scalar(key, value, getattr(defaults, key))
        else:
            raise ConfigurationError(f"Unknown configuration key '{key}'.")
    config = replace(defaults, **updates)
    config.validate()
    return config


def load_config_json(path: str | Path) -> FilterConfig:
    """Read a JSON configuration document and validate it."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration document at {path} must be an object.")
    return config_from_dict(data)


def _merge_table(
    name: str,
    raw: Any,
    defaults: Mapping[Any, Any],
    rows: Mapping[str, Any],
    columns: Mapping[str, str],
) -> dict[Any, Any]:
    """Overlay labeled cells onto a default table."""
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Table '{name}' must be an object of rows.")
    out = dict(defaults)
    for row_label, cells in raw.items():
        if row_label not in rows:
            supported = ", ".join(rows)
            raise ConfigurationError(
                f"Unknown row '{row_label}' in table '{name}'. Supported rows: {supported}"
            )
        if not isinstance(cells, Mapping):
            raise ConfigurationError(f"Row '{row_label}' of table '{name}' must be an object.")
        values: dict[str, float] = {}
        for col_label, value in cells.items():
            if col_label not in columns:
                supported = ", ".join(columns)
                raise ConfigurationError(
                    f"Unknown column '{col_label}' in table '{name}'. Supported columns: {supported}"
                )
            values[columns[col_label]] = _as_float(value, f"{name}[{row_label}][{col_label}]")
        key = rows[row_label]
        out[key] = replace(out[key], **values)
    return out


def _merge_cluster_table(raw: Any, defaults: Mapping[Species, float]) -> dict[Species, float]:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Table 'tpc_nclusters_min' must map species to a value.")
    rows = {s.label: s for s in _PID_SPECIES}
    out = dict(defaults)
    for label, value in raw.items():
        if label not in rows:
            raise ConfigurationError(f"Unknown row '{label}' in table 'tpc_nclusters_min'.")
        out[rows[label]] = _as_float(value, f"tpc_nclusters_min[{label}]")
    return out


def _coerce_scalar(name: str, value: Any, default: Any) -> Any:
    """Check a scalar against the type of its default."""
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigurationError(f"Parameter '{name}' must be a boolean.")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"Parameter '{name}' must be an integer.")
        return value
    if isinstance(default, float):
        return _as_float(value, name)
    if not isinstance(value, str):
        raise ConfigurationError(f"Parameter '{name}' must be a string.")
    return value


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"Parameter '{name}' must be a number, got {value!r}.")
    return float(value)


def _require_open_window(table: str, detector: str, low: float, high: float) -> None:
    """Windows compared strictly must have a non-empty interior."""
    if not low < high:
        raise ConfigurationError(
            f"{table}: '{detector} min' {low} must be below '{detector} max' {high}."
        )


def _require_ordered_window(table: str, low: float, high: float) -> None:
    if low > high:
        raise ConfigurationError(f"{table}: 'TPC min' {low} exceeds 'TPC max' {high}.")


def _require_keys(name: str, table: Mapping[Any, Any], keys: tuple[Any, ...]) -> None:
    missing = [k for k in keys if k not in table]
    if missing:
        raise ConfigurationError(f"Table '{name}' is missing rows: {missing!r}")
