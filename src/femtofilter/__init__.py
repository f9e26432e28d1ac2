"""Public package exports for the femtoscopy trigger filter."""

from .calibration import CalibrationCache, CalibrationProvider, CalibrationSet, JsonCalibrationProvider
from .config import (
    ConfigurationError,
    FilterConfig,
    MomentumCuts,
    PIDWindow,
    TPCTOFAverage,
    TPCWindow,
    config_from_dict,
    load_config_json,
)
from .filter import FemtoFilter
from .metrics import MetricsSink, NullMetrics, RecordingMetrics
from .models import (
    CalibrationCurve,
    Collision,
    EventInput,
    FilterOutput,
    OutputCollision,
    OutputParticle,
    ParticleType,
    RejectionSpecies,
    Species,
    Track,
    V0Daughter,
)
from .pid import (
    ParticleHypothesis,
    hypothesis_for_species,
    make_deuteron,
    make_electron,
    make_pion,
    make_proton,
)
from .selection import CandidateSelector

__all__ = [
    "FemtoFilter",
    "CandidateSelector",
    "FilterConfig",
    "ConfigurationError",
    "MomentumCuts",
    "PIDWindow",
    "TPCWindow",
    "TPCTOFAverage",
    "config_from_dict",
    "load_config_json",
    "CalibrationCache",
    "CalibrationSet",
    "CalibrationCurve",
    "CalibrationProvider",
    "JsonCalibrationProvider",
    "MetricsSink",
    "NullMetrics",
    "RecordingMetrics",
    "Collision",
    "Track",
    "EventInput",
    "FilterOutput",
    "OutputCollision",
    "OutputParticle",
    "ParticleType",
    "Species",
    "RejectionSpecies",
    "V0Daughter",
    "ParticleHypothesis",
    "make_electron",
    "make_pion",
    "make_proton",
    "make_deuteron",
    "hypothesis_for_species",
]
