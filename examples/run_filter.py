"""Run the trigger filter through the Python API.

Run from repository root without installation:
    PYTHONPATH=src python examples/run_filter.py
"""

from __future__ import annotations

from pathlib import Path

from femtofilter import FemtoFilter, RecordingMetrics, config_from_dict
from femtofilter.io import load_events_json, write_particles_table


def main() -> int:
    config = config_from_dict(
        {
            "select_deuterons": True,
            "reject_not_deuteron": True,
            "pid_cuts": {"Proton": {"TPC min": -3.0, "TPC max": 3.0, "TPCTOF max": 3.0}},
        }
    )
    metrics = RecordingMetrics()
    events = load_events_json("examples/events.json")
    output = FemtoFilter(config, metrics=metrics).process_events(events)

    out_path = Path("examples/particles.csv")
    write_particles_table(out_path, output.particles)
    print(f"Wrote {len(output.particles)} particles from {len(output.collisions)} collisions to {out_path}")
    print(f"Tracks inspected: {metrics.count('TrackCuts/TracksBefore/fPtTrackBefore')}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
