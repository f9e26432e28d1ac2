"""Unit tests for the PID discriminant, recalibration and contaminant rejection."""

from __future__ import annotations

import math
import unittest
from dataclasses import replace

from femtofilter import (
    CalibrationCurve,
    CalibrationSet,
    CandidateSelector,
    Collision,
    ConfigurationError,
    FemtoFilter,
    FilterConfig,
    FilterOutput,
    PIDWindow,
    Species,
    TPCTOFAverage,
    TPCWindow,
    Track,
    V0Daughter,
    hypothesis_for_species,
    make_deuteron,
    make_electron,
    make_pion,
    make_proton,
)
from femtofilter.physics import bethe_bloch_aleph, combined_nsigma, recalibrated_nsigma

# bg = 1 gives beta^2 = 1/2, so with these parameters the expected signal is
# (3 - 0.5 - ln(e)) * 2 / 0.5 = 6 and the spread is 6 * 0.5 = 3.
_CURVE = CalibrationCurve((2.0, 3.0, math.e - 1.0, 2.0, 1.0, 0.5))
_NO_CALIBRATION = CalibrationSet()


def _track(**overrides) -> Track:
    """Positive track in the low-momentum regime of the proton selection."""
    base = Track(
        track_id="t0",
        pt=1.0,
        eta=0.5,
        phi=0.3,
        sign=1,
        p=1.1,
        tpc_inner_param=0.5,
        tpc_n_cls_found=120,
        tpc_crossed_rows_over_findable_cls=0.95,
        tpc_n_cls_crossed_rows=120,
        dca_xy=0.01,
        dca_z=0.02,
        tpc_signal=9.0,
        tpc_nsigma_pr=1.0,
        tof_nsigma_pr=0.0,
        tpc_nsigma_de=0.0,
        tof_nsigma_de=0.0,
    )
    return replace(base, **overrides)


class TestResponseHelpers(unittest.TestCase):
    """Validate the Bethe-Bloch and score helpers."""

    def test_bethe_bloch_aleph_reference_value(self) -> None:
        self.assertAlmostEqual(bethe_bloch_aleph(1.0, *_CURVE.bethe_bloch), 6.0, places=9)

    def test_recalibrated_nsigma_uses_mass_scaled_momentum(self) -> None:
        proton = make_proton()
        nsigma = recalibrated_nsigma(proton.mass, 9.0, proton.mass_inverse, _CURVE)
        self.assertAlmostEqual(nsigma, 1.0, places=6)

    def test_recalibration_needs_a_complete_curve(self) -> None:
        with self.assertRaises(ValueError):
            recalibrated_nsigma(1.0, 9.0, 1.0, CalibrationCurve((1.0, 2.0, 3.0, 4.0, 5.0)))

    def test_combined_nsigma_is_a_non_negative_norm(self) -> None:
        self.assertAlmostEqual(combined_nsigma(-3.0, -4.0, TPCTOFAverage()), 5.0)
        self.assertAlmostEqual(combined_nsigma(4.0, 1.0, TPCTOFAverage(1.0, 1.0)), 3.0)
        self.assertGreaterEqual(combined_nsigma(-0.5, 0.2, TPCTOFAverage(0.3, -0.1)), 0.0)


class TestPIDDiscriminant(unittest.TestCase):
    """Validate threshold regimes, windows and charge-dependent tables."""

    def setUp(self) -> None:
        self.selector = CandidateSelector(FilterConfig())

    def _select(self, track: Track, species: Species = Species.PROTON, charge: int = 1, rejection: bool = False) -> bool:
        tpc = (track.tpc_nsigma_pr, track.tpc_nsigma_de)
        return self.selector.is_selected_track_pid(track, species, rejection, tpc, charge, _NO_CALIBRATION)

    def test_low_momentum_proton_is_selected_by_tpc(self) -> None:
        """TPC score 1 at p_TPC=0.5 lies inside (-6, 6)."""
        self.assertTrue(self._select(_track()))

    def test_high_momentum_proton_uses_combined_score(self) -> None:
        """TPC=3 and TOF=3 combine to sqrt(18) < 6."""
        track = _track(tpc_inner_param=5.0, tpc_nsigma_pr=3.0, tof_nsigma_pr=3.0)
        nsigma, below = self.selector.pid_discriminant(track, Species.PROTON, (3.0, 0.0), 1)
        self.assertFalse(below)
        self.assertAlmostEqual(nsigma, math.sqrt(18.0), places=12)
        self.assertTrue(self._select(track))

    def test_threshold_momentum_is_in_the_low_regime(self) -> None:
        track = _track(tpc_inner_param=0.75)
        self.assertTrue(self.selector.momentum_below_threshold(track, Species.PROTON))
        self.assertFalse(
            self.selector.momentum_below_threshold(_track(tpc_inner_param=0.7500001), Species.PROTON)
        )

    def test_window_boundaries_are_rejected(self) -> None:
        self.assertFalse(self._select(_track(tpc_nsigma_pr=6.0)))
        self.assertFalse(self._select(_track(tpc_nsigma_pr=-6.0)))
        self.assertTrue(self._select(_track(tpc_nsigma_pr=5.999)))
        high = _track(tpc_inner_param=2.0, tpc_nsigma_pr=6.0, tof_nsigma_pr=0.0)
        self.assertFalse(self._select(high))

    def test_tof_alone_can_fail_the_high_momentum_selection(self) -> None:
        track = _track(tpc_inner_param=2.0, tpc_nsigma_pr=0.0, tof_nsigma_pr=-999.0)
        self.assertFalse(self._select(track))

    def test_negative_charge_uses_antiparticle_tables(self) -> None:
        config = FilterConfig(
            pid_cuts_anti={
                Species.PROTON: PIDWindow(-2.0, 2.0, -6.0, 6.0, 6.0),
                Species.DEUTERON: PIDWindow(-6.0, 6.0, -99.0, 99.0, 99.0),
            }
        )
        selector = CandidateSelector(config)
        track = _track(tpc_nsigma_pr=3.0)
        self.assertTrue(selector.is_selected_track_pid(track, Species.PROTON, False, (3.0, 0.0), 1, _NO_CALIBRATION))
        self.assertFalse(selector.is_selected_track_pid(track, Species.PROTON, False, (3.0, 0.0), -1, _NO_CALIBRATION))

    def test_averages_are_subtracted_per_charge(self) -> None:
        averages = dict(FilterConfig().pid_tpctof_avg)
        averages[(Species.PROTON, 1)] = TPCTOFAverage(tpc_avg=4.0, tof_avg=4.0)
        selector = CandidateSelector(FilterConfig(pid_tpctof_avg=averages))
        track = _track(tpc_inner_param=2.0, tpc_nsigma_pr=4.0, tof_nsigma_pr=4.0)
        plus, _ = selector.pid_discriminant(track, Species.PROTON, (4.0, 0.0), 1)
        minus, _ = selector.pid_discriminant(track, Species.PROTON, (4.0, 0.0), -1)
        self.assertAlmostEqual(plus, 0.0)
        self.assertAlmostEqual(minus, math.sqrt(32.0))

    def test_deuteron_threshold_can_use_vertex_momentum(self) -> None:
        pt_cuts = dict(FilterConfig().pt_cuts)
        pt_cuts[Species.DEUTERON] = replace(pt_cuts[Species.DEUTERON], p_threshold=1.0)
        track = _track(tpc_inner_param=0.9, p=1.2)
        tpc_based = CandidateSelector(FilterConfig(pt_cuts=pt_cuts))
        pv_based = CandidateSelector(FilterConfig(pt_cuts=pt_cuts, deuteron_threshold_pv_momentum=True))
        self.assertTrue(tpc_based.momentum_below_threshold(track, Species.DEUTERON))
        self.assertFalse(pv_based.momentum_below_threshold(track, Species.DEUTERON))
        # the switch only concerns deuterons
        self.assertFalse(pv_based.momentum_below_threshold(track, Species.PROTON))

    def test_lambda_has_no_pid_selection(self) -> None:
        with self.assertRaises(ConfigurationError):
            self._select(_track(), species=Species.LAMBDA)


class TestDeuteronRejection(unittest.TestCase):
    """Validate the proton/pion/electron veto applied to deuteron candidates."""

    def setUp(self) -> None:
        self.selector = CandidateSelector(FilterConfig())

    def test_candidate_compatible_with_proton_is_rejected(self) -> None:
        track = _track(tpc_nsigma_pr=1.0, tpc_nsigma_de=0.0)
        tpc = (1.0, 0.0)
        self.assertTrue(
            self.selector.is_selected_track_pid(track, Species.DEUTERON, False, tpc, 1, _NO_CALIBRATION)
        )
        self.assertFalse(
            self.selector.is_selected_track_pid(track, Species.DEUTERON, True, tpc, 1, _NO_CALIBRATION)
        )

    def test_candidate_outside_all_windows_is_kept(self) -> None:
        track = _track(tpc_nsigma_pr=3.0, tpc_nsigma_de=0.0)
        self.assertTrue(
            self.selector.is_selected_track_pid(track, Species.DEUTERON, True, (3.0, 0.0), 1, _NO_CALIBRATION)
        )

    def test_rejection_window_edges_do_not_reject(self) -> None:
        for score in (-2.0, 2.0):
            with self.subTest(score=score):
                track = _track(tpc_nsigma_pi=score, tpc_nsigma_pr=5.0)
                self.assertFalse(self.selector.rejects_as_contaminant(track, 5.0, 1, _NO_CALIBRATION))

    def test_pion_and_electron_scores_are_checked(self) -> None:
        self.assertTrue(
            self.selector.rejects_as_contaminant(_track(tpc_nsigma_pi=0.5), 5.0, 1, _NO_CALIBRATION)
        )
        self.assertTrue(
            self.selector.rejects_as_contaminant(_track(tpc_nsigma_el=-1.5), 5.0, 1, _NO_CALIBRATION)
        )

    def test_rejection_overrides_a_failed_pid_as_well(self) -> None:
        track = _track(tpc_nsigma_pr=1.0, tpc_nsigma_de=50.0)
        self.assertFalse(
            self.selector.is_selected_track_pid(track, Species.DEUTERON, True, (1.0, 50.0), 1, _NO_CALIBRATION)
        )

    def test_empty_rejection_window_disables_the_veto(self) -> None:
        rejection = dict(FilterConfig().pid_rejection)
        for key in rejection:
            rejection[key] = TPCWindow(0.0, 0.0)
        selector = CandidateSelector(FilterConfig(pid_rejection=rejection))
        self.assertFalse(selector.rejects_as_contaminant(_track(tpc_nsigma_pi=0.0), 0.0, 1, _NO_CALIBRATION))

    def test_recalibrated_pion_score_is_used_for_rejection(self) -> None:
        pion = make_pion()
        track = _track(tpc_inner_param=pion.mass, tpc_signal=6.0, tpc_nsigma_pi=-999.0)
        calibration = CalibrationSet(run_number=1, curves={("pion", 1): _CURVE})
        selector = CandidateSelector(FilterConfig(use_manual_pid_pion=True))
        self.assertFalse(self.selector.rejects_as_contaminant(track, 5.0, 1, calibration))
        self.assertTrue(selector.rejects_as_contaminant(track, 5.0, 1, calibration))
        # no antipion curve: the precomputed score stays in use
        self.assertFalse(selector.rejects_as_contaminant(track, 5.0, -1, calibration))

    def test_electron_curve_applies_to_negative_tracks(self) -> None:
        electron = make_electron()
        track = _track(tpc_inner_param=electron.mass, tpc_signal=6.0, tpc_nsigma_el=-999.0)
        calibration = CalibrationSet(run_number=1, curves={("electron", -1): _CURVE})
        selector = CandidateSelector(FilterConfig(use_manual_pid_electron=True))
        self.assertTrue(selector.rejects_as_contaminant(track, 5.0, -1, calibration))
        self.assertFalse(selector.rejects_as_contaminant(track, 5.0, 1, calibration))


class TestManualRecalibration(unittest.TestCase):
    """Validate that only complete calibration curves replace precomputed scores."""

    def setUp(self) -> None:
        self.selector = CandidateSelector(FilterConfig(use_manual_pid_proton=True))
        self.track = _track(tpc_inner_param=make_proton().mass, tpc_signal=9.0, tpc_nsigma_pr=4.5)

    def test_complete_curve_replaces_the_precomputed_score(self) -> None:
        calibration = CalibrationSet(run_number=1, curves={("proton", 1): _CURVE})
        nsigma_pr, nsigma_de = self.selector.tpc_nsigma(self.track, 1, calibration)
        self.assertAlmostEqual(nsigma_pr, 1.0, places=6)
        self.assertEqual(nsigma_de, self.track.tpc_nsigma_de)

    def test_antiparticle_curve_is_used_for_negative_charge(self) -> None:
        calibration = CalibrationSet(run_number=1, curves={("proton", 1): _CURVE})
        nsigma_pr, _ = self.selector.tpc_nsigma(self.track, -1, calibration)
        self.assertEqual(nsigma_pr, 4.5)

    def test_incomplete_curves_are_never_used(self) -> None:
        for values in ((), (2.0, 3.0, 1.0, 2.0, 1.0)):
            with self.subTest(length=len(values)):
                calibration = CalibrationSet(run_number=1, curves={("proton", 1): CalibrationCurve(values)})
                nsigma_pr, _ = self.selector.tpc_nsigma(self.track, 1, calibration)
                self.assertEqual(nsigma_pr, 4.5)

    def test_curves_are_ignored_without_the_manual_flag(self) -> None:
        calibration = CalibrationSet(run_number=1, curves={("proton", 1): _CURVE})
        nsigma_pr, _ = CandidateSelector(FilterConfig()).tpc_nsigma(self.track, 1, calibration)
        self.assertEqual(nsigma_pr, 4.5)


class TestV0DaughterSelection(unittest.TestCase):
    """Validate the selection of V0 decay daughters."""

    def setUp(self) -> None:
        self.selector = CandidateSelector(FilterConfig())
        self.track = _track(dca_xy=0.1)

    def test_daughter_scores_are_taken_per_species(self) -> None:
        # (proton, pion)
        self.assertTrue(self.selector.is_selected_v0_daughter(self.track, 1, V0Daughter.PROTON, (1.0, 8.0)))
        self.assertFalse(self.selector.is_selected_v0_daughter(self.track, 1, V0Daughter.PION, (1.0, 8.0)))
        self.assertTrue(self.selector.is_selected_v0_daughter(self.track, 1, V0Daughter.PION, (8.0, -1.0)))

    def test_daughter_window_edges_are_inclusive(self) -> None:
        self.assertTrue(self.selector.is_selected_v0_daughter(self.track, 1, V0Daughter.PROTON, (6.0, 0.0)))

    def test_sign_must_match_requested_charge(self) -> None:
        self.assertFalse(self.selector.is_selected_v0_daughter(self.track, -1, V0Daughter.PROTON, (0.0, 0.0)))
        negative = replace(self.track, sign=-1)
        self.assertTrue(self.selector.is_selected_v0_daughter(negative, -1, V0Daughter.PION, (0.0, 0.0)))

    def test_primary_like_daughters_are_rejected(self) -> None:
        close = replace(self.track, dca_xy=0.01)
        self.assertFalse(self.selector.is_selected_v0_daughter(close, 1, V0Daughter.PROTON, (0.0, 0.0)))

    def test_unknown_daughter_is_fatal(self) -> None:
        with self.assertRaises(ConfigurationError):
            self.selector.is_selected_v0_daughter(self.track, 1, 7, (0.0, 0.0))


class _CurveProvider:
    """Serves one curve for every requested calibration object."""

    def __init__(self, values: tuple[float, ...]):
        self.values = values

    def fetch(self, path: str, timestamp: int) -> list[float] | None:
        return list(self.values)


class TestRecalibrationDomain(unittest.TestCase):
    """Validate that recalibration outside the curve domain never raises."""

    def test_response_outside_the_domain_is_nan(self) -> None:
        p1, p2, p3, p4, p5 = _CURVE.bethe_bloch
        self.assertTrue(math.isnan(bethe_bloch_aleph(0.0, p1, p2, p3, p4, p5)))
        self.assertTrue(math.isnan(bethe_bloch_aleph(-1.0, p1, p2, p3, p4, p5)))
        # p3 + bg^-p5 = -5 + 1 has no logarithm
        self.assertTrue(math.isnan(bethe_bloch_aleph(1.0, p1, p2, -5.0, p4, p5)))
        flat = CalibrationCurve(_CURVE.values[:5] + (0.0,))
        self.assertTrue(math.isnan(recalibrated_nsigma(1.0, 9.0, 1.0, flat)))

    def test_track_without_tpc_momentum_keeps_its_precomputed_score(self) -> None:
        selector = CandidateSelector(FilterConfig(use_manual_pid_proton=True))
        calibration = CalibrationSet(run_number=1, curves={("proton", 1): _CURVE})
        track = _track(tpc_inner_param=0.0, tpc_nsigma_pr=1.5)
        self.assertEqual(selector.tpc_nsigma(track, 1, calibration)[0], 1.5)

    def test_nan_score_fails_the_selection_and_the_veto(self) -> None:
        bad_curve = CalibrationCurve((2.0, 3.0, -5.0, 2.0, 1.0, 0.5))
        selector = CandidateSelector(FilterConfig(use_manual_pid_proton=True, use_manual_pid_pion=True))
        calibration = CalibrationSet(run_number=1, curves={("proton", 1): bad_curve, ("pion", 1): bad_curve})
        track = _track(tpc_nsigma_pr=1.0)
        tpc = selector.tpc_nsigma(track, 1, calibration)
        self.assertTrue(math.isnan(tpc[0]))
        self.assertFalse(selector.is_selected_track_pid(track, Species.PROTON, False, tpc, 1, calibration))
        self.assertFalse(selector.rejects_as_contaminant(track, tpc[0], 1, calibration))

    def test_zero_momentum_track_does_not_abort_the_event(self) -> None:
        proton = make_proton()
        good = _track(tpc_inner_param=proton.mass, tpc_signal=9.0, tpc_nsigma_pr=50.0)
        no_tpc = _track(track_id="t1", tpc_inner_param=0.0, tpc_nsigma_pr=1.0)
        femto = FemtoFilter(FilterConfig(use_manual_pid_proton=True), provider=_CurveProvider(_CURVE.values))
        output = FilterOutput()
        n = femto.process(Collision(collision_id="c0", pos_z=1.0, run_number=7), [good, no_tpc], output)
        self.assertEqual(n, 2)
        self.assertEqual(len(output.collisions), 1)


class TestHypotheses(unittest.TestCase):
    """Validate the mass hypotheses used for recalibration."""

    def test_species_map_onto_their_hypotheses(self) -> None:
        self.assertIs(hypothesis_for_species(Species.PROTON), make_proton())
        self.assertIs(hypothesis_for_species(Species.DEUTERON), make_deuteron())
        self.assertAlmostEqual(make_deuteron().mass_inverse * make_deuteron().mass, 1.0)

    def test_lambda_has_no_track_hypothesis(self) -> None:
        with self.assertRaises(ValueError):
            hypothesis_for_species(Species.LAMBDA)


if __name__ == "__main__":
    unittest.main()
