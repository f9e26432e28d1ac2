"""Event, track and PID selections of the femtoscopy trigger filter.

All selections are predicates: a failing cut returns False and never raises.
Only a request that the configuration cannot answer at all (PID of a Lambda,
an unknown V0 daughter) raises `ConfigurationError`.
"""

from __future__ import annotations

from dataclasses import dataclass

from .calibration import CalibrationSet
from .config import ConfigurationError, FilterConfig
from .models import Collision, RejectionSpecies, Species, Track, V0Daughter
from .physics import combined_nsigma, recalibrated_nsigma
from .pid import ParticleHypothesis, hypothesis_for_species, make_electron, make_pion

NOT_PROPAGATED_DCA = 1e3


@dataclass
class CandidateSelector:
    """Selection rules evaluated per collision and per track."""

    config: FilterConfig

    def is_selected_event(self, collision: Collision) -> bool:
        """Apply z-vertex and offline-selection requirements."""
        cfg = self.config
        if cfg.evt_select_zvtx and abs(collision.pos_z) > cfg.evt_zvtx_max:
            return False
        if cfg.evt_offline_check and not collision.sel8:
            return False
        return True

    def is_selected_track(self, track: Track, species: Species) -> bool:
        """Apply kinematic and track-quality cuts for one species."""
        cfg = self.config
        pt_cuts = cfg.pt_cuts[species]
        if track.pt < pt_cuts.pt_min:
            return False
        if track.pt > pt_cuts.pt_max:
            return False
        if abs(track.eta) > cfg.trk_eta_max:
            return False
        if track.tpc_n_cls_found < cfg.tpc_nclusters_min.get(species, 0.0):
            return False
        if track.tpc_crossed_rows_over_findable_cls < cfg.trk_tpc_fcls_min:
            return False
        if track.tpc_n_cls_crossed_rows < cfg.trk_tpc_crossed_rows_min:
            return False
        if track.tpc_n_cls_shared > cfg.trk_tpc_shared_cls_max:
            return False
        if track.its_n_cls < cfg.trk_its_ncls_min:
            return False
        if track.its_n_cls_inner_barrel < cfg.trk_its_ncls_ib_min:
            return False
        if abs(track.dca_xy) > cfg.trk_dca_xy_max:
            return False
        if abs(track.dca_z) > cfg.trk_dca_z_max:
            return False
        if cfg.reject_not_propagated_tracks and abs(track.dca_xy) > NOT_PROPAGATED_DCA:
            return False
        if cfg.trk_require_chi2_max_tpc and track.tpc_chi2_ncl >= cfg.trk_max_chi2_per_cluster_tpc:
            return False
        if cfg.trk_require_chi2_max_its and track.its_chi2_ncl >= cfg.trk_max_chi2_per_cluster_its:
            return False
        if cfg.trk_tpc_refit and not track.has_tpc:
            return False
        if cfg.trk_its_refit and not track.has_its:
            return False
        return True

    def tpc_nsigma(
        self, track: Track, charge: int, calibration: CalibrationSet
    ) -> tuple[float, float]:
        """TPC (proton, deuteron) scores, recalibrated where requested and possible."""
        nsigma_pr = track.tpc_nsigma_pr
        nsigma_de = track.tpc_nsigma_de
        if self.config.use_manual_pid_proton:
            proton = hypothesis_for_species(Species.PROTON)
            nsigma_pr = _recalibrate(track, proton, charge, calibration, nsigma_pr)
        if self.config.use_manual_pid_deuteron:
            deuteron = hypothesis_for_species(Species.DEUTERON)
            nsigma_de = _recalibrate(track, deuteron, charge, calibration, nsigma_de)
        return nsigma_pr, nsigma_de

    def momentum_below_threshold(self, track: Track, species: Species) -> bool:
        """True in the low-momentum regime where the TPC alone identifies the track."""
        threshold = self.config.pt_cuts[species].p_threshold
        if species == Species.DEUTERON and self.config.deuteron_threshold_pv_momentum:
            return track.p <= threshold
        return track.tpc_inner_param <= threshold

    def pid_discriminant(
        self,
        track: Track,
        species: Species,
        tpc_nsigma: tuple[float, float],
        charge: int,
    ) -> tuple[float, bool]:
        """Return `(nsigma, below_threshold)` for a species hypothesis."""
        if species == Species.PROTON:
            tpc, tof = tpc_nsigma[0], track.tof_nsigma_pr
        elif species == Species.DEUTERON:
            tpc, tof = tpc_nsigma[1], track.tof_nsigma_de
        elif species == Species.LAMBDA:
            raise ConfigurationError("No PID selection for Lambdas")
        else:
            raise ConfigurationError(f"Particle species {species!r} not known")
        below = self.momentum_below_threshold(track, species)
        if below:
            return tpc, True
        return combined_nsigma(tpc, tof, self.config.tpctof_average(species, charge)), False

    def is_selected_track_pid(
        self,
        track: Track,
        species: Species,
        rejection: bool,
        tpc_nsigma: tuple[float, float],
        charge: int,
        calibration: CalibrationSet,
    ) -> bool:
        """PID decision for one species and charge branch.

        `tpc_nsigma` holds the (proton, deuteron) TPC scores. Below the
        momentum threshold the TPC score must lie strictly inside the TPC
        window; above it the combined TPC+TOF score must stay strictly below
        the TPCTOF maximum. With `rejection` the track is additionally vetoed
        when it is compatible with a proton, pion or electron.
        """
        nsigma, below = self.pid_discriminant(track, species, tpc_nsigma, charge)
        window = self.config.pid_window(species, charge)
        if below:
            is_selected = window.tpc_min < nsigma < window.tpc_max
        else:
            is_selected = nsigma < window.tpctof_max
        if rejection and self.rejects_as_contaminant(track, tpc_nsigma[0], charge, calibration):
            return False
        return is_selected

    def rejects_as_contaminant(
        self,
        track: Track,
        proton_nsigma: float,
        charge: int,
        calibration: CalibrationSet,
    ) -> bool:
        """True if any rejection window contains the track's score for that species."""
        cfg = self.config
        nsigma_pi = track.tpc_nsigma_pi
        nsigma_el = track.tpc_nsigma_el
        if cfg.use_manual_pid_pion:
            nsigma_pi = _recalibrate(track, make_pion(), charge, calibration, nsigma_pi)
        if cfg.use_manual_pid_electron:
            nsigma_el = _recalibrate(track, make_electron(), charge, calibration, nsigma_el)
        scores = {
            RejectionSpecies.PROTON: proton_nsigma,
            RejectionSpecies.PION: nsigma_pi,
            RejectionSpecies.ELECTRON: nsigma_el,
        }
        return any(cfg.pid_rejection[species].contains(score) for species, score in scores.items())

    def is_selected_v0_daughter(
        self,
        track: Track,
        charge: int,
        daughter: V0Daughter,
        tpc_nsigma: tuple[float, float],
    ) -> bool:
        """Selection of a V0 decay daughter; `tpc_nsigma` is (proton, pion)."""
        cfg = self.config
        if charge < 0 < track.sign:
            return False
        if charge > 0 > track.sign:
            return False
        if abs(track.eta) > cfg.daugh_eta_max:
            return False
        if track.tpc_n_cls_found < cfg.daugh_tpc_ncls_min:
            return False
        if abs(track.dca_xy) < cfg.daugh_dca_min:
            return False
        if daughter == V0Daughter.PION:
            nsigma = tpc_nsigma[1]
        elif daughter == V0Daughter.PROTON:
            nsigma = tpc_nsigma[0]
        else:
            raise ConfigurationError("Particle species for V0 daughters not found")
        window = cfg.daughter_pid_cuts[daughter]
        if nsigma < window.tpc_min or nsigma > window.tpc_max:
            return False
        return True


def _recalibrate(
    track: Track,
    hypothesis: ParticleHypothesis,
    charge: int,
    calibration: CalibrationSet,
    fallback: float,
) -> float:
    """Score from the cached curve for this charge.

    `fallback` is returned without a valid curve or when the track has no
    TPC momentum to evaluate the curve at.
    """
    curve = calibration.curve(hypothesis.name, charge)
    if not curve.is_valid or track.tpc_inner_param <= 0:
        return fallback
    return recalibrated_nsigma(track.tpc_inner_param, track.tpc_signal, hypothesis.mass_inverse, curve)
