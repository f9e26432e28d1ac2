"""Selection pipeline that turns collisions and tracks into femto tables."""

from __future__ import annotations

import logging
from typing import Sequence

from .calibration import CalibrationCache, CalibrationProvider, CalibrationSet
from .config import FilterConfig
from .metrics import MetricsSink, NullMetrics
from .models import (
    Collision,
    EventInput,
    FilterOutput,
    OutputCollision,
    OutputParticle,
    ParticleType,
    Species,
    Track,
)
from .physics import combined_nsigma
from .selection import CandidateSelector

logger = logging.getLogger(__name__)


class FemtoFilter:
    """Select protons (and optionally deuterons) of accepted collisions.

    Workflow per event:
    1. Refresh the run-scoped calibration set if the run number changed.
    2. Apply the event selection; rejected events produce no rows.
    3. Write one output collision row.
    4. For every track, apply track-quality cuts and the PID selection of
       the charge branch given by its sign, and write one particle row per
       accepted species.
    """

    def __init__(
        self,
        config: FilterConfig,
        provider: CalibrationProvider | None = None,
        metrics: MetricsSink | None = None,
    ):
        config.validate()
        self.config = config
        self.selector = CandidateSelector(config)
        self.calibration = CalibrationCache(provider, config)
        self.metrics: MetricsSink = metrics if metrics is not None else NullMetrics()

    def process(
        self,
        collision: Collision,
        tracks: Sequence[Track],
        output: FilterOutput,
    ) -> int:
        """Process one collision, append its rows to `output`, return the number of particles."""
        calibration = self.calibration.get_or_refresh(collision.run_number, collision.timestamp)
        self.metrics.record("EventCuts/fMultiplicityBefore", collision.mult_ntracks_pv)
        self.metrics.record("EventCuts/fZvtxBefore", collision.pos_z)

        if not self.selector.is_selected_event(collision):
            logger.debug("Collision %s rejected by event selection", collision.collision_id)
            return 0

        output.collisions.append(
            OutputCollision(
                pos_z=collision.pos_z,
                mult_fv0m=collision.mult_fv0m,
                mult_ntracks_pv=collision.mult_ntracks_pv,
            )
        )
        self.metrics.record("EventCuts/fMultiplicityAfter", collision.mult_ntracks_pv)
        self.metrics.record("EventCuts/fZvtxAfter", collision.pos_z)

        species = [Species.PROTON]
        if self.config.select_deuterons:
            species.append(Species.DEUTERON)

        n_before = len(output.particles)
        for track in tracks:
            if track.sign == 0:
                continue
            tpc_nsigma = self.selector.tpc_nsigma(track, track.sign, calibration)
            self._record_track_before(track, tpc_nsigma)
            for kind in species:
                if self._accept(track, kind, tpc_nsigma, calibration):
                    output.particles.append(self._particle_row(track, kind, output.last_collision_index))
                    self._record_selected(track, kind, tpc_nsigma)
        return len(output.particles) - n_before

    def process_event(self, event: EventInput, output: FilterOutput) -> int:
        return self.process(event.collision, event.tracks, output)

    def process_events(self, events: Sequence[EventInput]) -> FilterOutput:
        """Run `process` over a list of events and collect both output tables."""
        output = FilterOutput()
        for event in events:
            self.process_event(event, output)
        logger.info(
            "Processed %d events: %d collisions and %d particles selected",
            len(events),
            len(output.collisions),
            len(output.particles),
        )
        return output

    def _accept(
        self,
        track: Track,
        species: Species,
        tpc_nsigma: tuple[float, float],
        calibration: CalibrationSet,
    ) -> bool:
        if not self.selector.is_selected_track(track, species):
            return False
        rejection = species == Species.DEUTERON and self.config.reject_not_deuteron
        return self.selector.is_selected_track_pid(
            track, species, rejection, tpc_nsigma, track.sign, calibration
        )

    def _particle_row(self, track: Track, species: Species, collision_index: int) -> OutputParticle:
        cfg = self.config
        cut = cfg.cut_bit_part if track.sign > 0 else cfg.cut_bit_antipart
        pid_cut = cfg.pid_bit_proton if species == Species.PROTON else cfg.pid_bit_deuteron
        return OutputParticle(
            collision_index=collision_index,
            pt=track.pt,
            eta=track.eta,
            phi=track.phi,
            part_type=ParticleType.TRACK,
            cut=cut & 0xFFFFFFFF,
            pid_cut=pid_cut & 0xFFFFFFFF,
            temp_fit_var=track.dca_xy,
        )

    def _record_track_before(self, track: Track, tpc_nsigma: tuple[float, float]) -> None:
        m = self.metrics
        m.record("TrackCuts/TracksBefore/fPtTrackBefore", track.pt)
        m.record("TrackCuts/TracksBefore/fEtaTrackBefore", track.eta)
        m.record("TrackCuts/TracksBefore/fPhiTrackBefore", track.phi)
        anti = "Anti" if track.sign < 0 else ""
        m.record(f"TrackCuts/TPCSignal/fTPCSignal{anti}", track.tpc_inner_param, track.tpc_signal)
        avg = self.config.tpctof_average(Species.PROTON, track.sign)
        m.record(f"TrackCuts/NSigmaBefore/fNsigmaTPCvsP{anti}ProtonBefore", track.tpc_inner_param, tpc_nsigma[0])
        m.record(f"TrackCuts/NSigmaBefore/fNsigmaTOFvsP{anti}ProtonBefore", track.tpc_inner_param, track.tof_nsigma_pr)
        m.record(
            f"TrackCuts/NSigmaBefore/fNsigmaTPCTOFvsP{anti}ProtonBefore",
            track.tpc_inner_param,
            combined_nsigma(tpc_nsigma[0], track.tof_nsigma_pr, avg),
        )

    def _record_selected(self, track: Track, species: Species, tpc_nsigma: tuple[float, float]) -> None:
        m = self.metrics
        name = ("Anti" if track.sign < 0 else "") + species.label
        if species == Species.PROTON:
            tpc, tof = tpc_nsigma[0], track.tof_nsigma_pr
        else:
            tpc, tof = tpc_nsigma[1], track.tof_nsigma_de
        avg = self.config.tpctof_average(species, track.sign)
        m.record(f"TrackCuts/TPCSignal/fTPCSignal{name}", track.tpc_inner_param, track.tpc_signal)
        m.record(f"TrackCuts/{name}/fPt{name}", track.pt)
        m.record(f"TrackCuts/{name}/fEta{name}", track.eta)
        m.record(f"TrackCuts/{name}/fPhi{name}", track.phi)
        m.record(f"TrackCuts/{name}/fNsigmaTPCvsP{name}", track.tpc_inner_param, tpc)
        m.record(f"TrackCuts/{name}/fNsigmaTOFvsP{name}", track.tpc_inner_param, tof)
        m.record(
            f"TrackCuts/{name}/fNsigmaTPCTOFvsP{name}",
            track.tpc_inner_param,
            combined_nsigma(tpc, tof, avg),
        )
        m.record(f"TrackCuts/{name}/fDCAxy{name}", track.dca_xy)
        m.record(f"TrackCuts/{name}/fDCAz{name}", track.dca_z)
        m.record(f"TrackCuts/{name}/fTPCncls{name}", track.tpc_n_cls_found)
