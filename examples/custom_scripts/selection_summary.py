"""Example custom callback: count selected candidates per kind and per collision."""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path


def process(output, context):
    """Write candidate multiplicities into selection_summary.json next to the particle table."""
    config = context["config"]
    per_collision = Counter(p.collision_index for p in output.particles)
    by_kind = Counter(
        ("anti" if p.cut == config.cut_bit_antipart else "")
        + ("proton" if p.pid_cut == config.pid_bit_proton else "deuteron")
        for p in output.particles
    )
    payload = {
        "n_collisions": len(output.collisions),
        "n_particles": len(output.particles),
        "by_kind": dict(by_kind),
        "collisions_with_pairs": sum(1 for n in per_collision.values() if n >= 2),
    }
    out = Path(context["output_path"]).with_name("selection_summary.json")
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {out}")
