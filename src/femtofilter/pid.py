"""Particle-hypothesis helpers used for PID recalibration.

Each hypothesis carries the mass used to scale the TPC momentum into
`beta*gamma` and the name under which its calibration curves are cached.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import Species


@dataclass(frozen=True)
class ParticleHypothesis:
    """Named particle hypothesis with its mass (GeV/c^2)."""

    name: str
    mass: float

    @property
    def mass_inverse(self) -> float:
        return 1.0 / self.mass


_ELECTRON = ParticleHypothesis(name="electron", mass=0.000510998950)
_PION = ParticleHypothesis(name="pion", mass=0.13957039)
_PROTON = ParticleHypothesis(name="proton", mass=0.93827208816)
_DEUTERON = ParticleHypothesis(name="deuteron", mass=1.87561294257)


def make_electron() -> ParticleHypothesis:
    """Return the electron mass hypothesis."""
    return _ELECTRON


def make_pion() -> ParticleHypothesis:
    """Return the charged-pion mass hypothesis."""
    return _PION


def make_proton() -> ParticleHypothesis:
    """Return the proton mass hypothesis."""
    return _PROTON


def make_deuteron() -> ParticleHypothesis:
    """Return the deuteron mass hypothesis."""
    return _DEUTERON


def hypothesis_for_species(species: Species) -> ParticleHypothesis:
    """Map a selected species onto the hypothesis used for its TPC response."""
    if species == Species.PROTON:
        return _PROTON
    if species == Species.DEUTERON:
        return _DEUTERON
    raise ValueError(f"Species {species.label} has no charged-track hypothesis.")
