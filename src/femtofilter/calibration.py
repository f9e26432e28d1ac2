"""Run-scoped Bethe-Bloch calibration objects.

A calibration provider answers `(path, timestamp)` with the six numbers
bb1..bb5 and Resolution, or `None` when it holds nothing valid. The
`CalibrationCache` keeps one `CalibrationSet` per run number and rebuilds
it wholesale whenever the run changes.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import FilterConfig
from .models import CALIBRATION_LABELS, CalibrationCurve

logger = logging.getLogger(__name__)

NO_RUN = -999


class CalibrationProvider(ABC):
    """Source of calibration vectors keyed by object path and timestamp."""

    @abstractmethod
    def fetch(self, path: str, timestamp: int) -> list[float] | None:
        """Return the vector valid at `timestamp`, or None if there is none."""


class JsonCalibrationProvider(CalibrationProvider):
    """Calibration objects stored as JSON documents below a root directory.

    The object `Users/x/PIDProton` lives in `<root>/Users/x/PIDProton.json`:

        [{"valid_from": 0, "valid_until": 1700000000000,
          "bins": {"bb1": ..., "bb2": ..., ..., "Resolution": ...}}]

    The first entry whose `[valid_from, valid_until)` window holds the
    timestamp is returned.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def fetch(self, path: str, timestamp: int) -> list[float] | None:
        document = self.root / f"{path.strip('/')}.json"
        if not document.is_file():
            return None
        entries = json.loads(document.read_text(encoding="utf-8"))
        if not isinstance(entries, list):
            raise ValueError(f"Calibration object {document} must contain a list of entries.")
        for idx, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ValueError(f"Calibration entry at index {idx} in {document} must be an object.")
            if int(entry.get("valid_from", 0)) <= timestamp < int(entry.get("valid_until", 2**63)):
                return _read_bins(entry.get("bins"), document)
        return None


def _read_bins(bins: Any, document: Path) -> list[float]:
    """Read the fixed bin labels in order, stopping at the first missing one."""
    if not isinstance(bins, dict):
        raise ValueError(f"Calibration entry in {document} must define an object under 'bins'.")
    values: list[float] = []
    for label in CALIBRATION_LABELS:
        if label not in bins:
            logger.warning("Calibration object %s has no bin '%s'", document, label)
            break
        values.append(float(bins[label]))
    return values


@dataclass(frozen=True)
class CalibrationSet:
    """All curves valid for one run, keyed by (particle name, charge sign)."""

    run_number: int = NO_RUN
    curves: dict[tuple[str, int], CalibrationCurve] = field(default_factory=dict)

    def curve(self, name: str, sign: int) -> CalibrationCurve:
        """Curve for a particle name and charge; empty when it was never fetched."""
        return self.curves.get((name, 1 if sign > 0 else -1), CalibrationCurve())


class CalibrationCache:
    """Holds the calibration set of the current run.

    `get_or_refresh` is called once per event. When manual PID is enabled
    and the run number differs from the last one seen, every requested curve
    is fetched again and the previous set is replaced in one step.
    """

    def __init__(self, provider: CalibrationProvider | None, config: FilterConfig):
        self.provider = provider
        self.config = config
        self.last_run_number = NO_RUN
        self._current = CalibrationSet()

    @property
    def current(self) -> CalibrationSet:
        return self._current

    def get_or_refresh(self, run_number: int, timestamp: int) -> CalibrationSet:
        if not self.config.manual_pid_enabled or run_number == self.last_run_number:
            return self._current
        self._current = self._build(run_number, timestamp)
        self.last_run_number = run_number
        return self._current

    def _requests(self) -> list[tuple[str, int, str]]:
        """(particle name, sign, object path) for every curve needed this run."""
        cfg = self.config
        requests: list[tuple[str, int, str]] = []
        if cfg.use_manual_pid_proton or cfg.use_manual_pid_daughter_proton:
            requests += [("proton", 1, cfg.bb_path_proton), ("proton", -1, cfg.bb_path_antiproton)]
        if cfg.use_manual_pid_deuteron:
            requests += [
                ("deuteron", 1, cfg.bb_path_deuteron),
                ("deuteron", -1, cfg.bb_path_antideuteron),
            ]
        if cfg.use_manual_pid_pion or cfg.use_manual_pid_daughter_pion:
            requests += [("pion", 1, cfg.bb_path_pion), ("pion", -1, cfg.bb_path_antipion)]
        if cfg.use_manual_pid_electron:
            # the electron curve describes negative tracks
            requests += [
                ("electron", -1, cfg.bb_path_electron),
                ("electron", 1, cfg.bb_path_antielectron),
            ]
        return requests

    def _build(self, run_number: int, timestamp: int) -> CalibrationSet:
        curves: dict[tuple[str, int], CalibrationCurve] = {}
        for name, sign, path in self._requests():
            values = None if self.provider is None else self.provider.fetch(path, timestamp)
            if values is None:
                logger.info(
                    "Calibration object %s was not found for run %d. Will use default PID task values!",
                    path,
                    run_number,
                )
                curves[(name, sign)] = CalibrationCurve()
                continue
            logger.info("Calibration object %s was found for run %d!", path, run_number)
            curve = CalibrationCurve(tuple(float(v) for v in values))
            if not curve.is_valid:
                logger.warning(
                    "Calibration object %s has %d entries instead of %d and is ignored for run %d",
                    path,
                    len(curve.values),
                    len(CALIBRATION_LABELS),
                    run_number,
                )
            curves[(name, sign)] = curve
        return CalibrationSet(run_number=run_number, curves=curves)
