"""Input/output helpers for JSON event inputs and tabular output export."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence

from .metrics import RecordingMetrics
from .models import Collision, EventInput, OutputCollision, OutputParticle, Track


def load_events_json(path: str | Path) -> list[EventInput]:
    """Load multi-event input JSON into `EventInput` objects.

    Expected shape:
    {
      "events": [
        {"collision": {"collision_id": "...", "pos_z": ..., "run_number": ...},
         "tracks": [{"track_id": "...", "pt": ..., ...}, ...]},
        ...
      ]
    }
    """
    data = _load_json(path)
    events_data = data.get("events")
    if not isinstance(events_data, list):
        raise ValueError("Events JSON must contain a list under key 'events'.")
    out: list[EventInput] = []
    for idx, event in enumerate(events_data):
        if not isinstance(event, dict):
            raise ValueError(f"Event entry at index {idx} must be an object.")
        collision = _parse_collision_item(event.get("collision"), idx)
        tracks_data = event.get("tracks", [])
        if not isinstance(tracks_data, list):
            raise ValueError(
                f"Event '{collision.collision_id}' must contain a list under key 'tracks'."
            )
        tracks = tuple(
            _parse_track_item(item=item, idx=tidx, context=f"event '{collision.collision_id}'")
            for tidx, item in enumerate(tracks_data)
        )
        out.append(EventInput(collision=collision, tracks=tracks))
    return out


def write_collisions_table(path: str | Path, collisions: Sequence[OutputCollision]) -> None:
    """Write the output collision table."""
    write_table(path, [asdict(c) for c in collisions])


def write_particles_table(path: str | Path, particles: Sequence[OutputParticle]) -> None:
    """Write the output particle table, one column per child index."""
    rows: list[dict[str, Any]] = []
    for part in particles:
        rows.append(
            {
                "collision_index": part.collision_index,
                "pt": part.pt,
                "eta": part.eta,
                "phi": part.phi,
                "part_type": int(part.part_type),
                "cut": part.cut,
                "pid_cut": part.pid_cut,
                "temp_fit_var": part.temp_fit_var,
                "child0": part.children[0],
                "child1": part.children[1],
                "m_lambda": part.m_lambda,
                "m_antilambda": part.m_antilambda,
            }
        )
    pd = _require_pandas()
    df = pd.DataFrame(rows, columns=_PARTICLE_COLUMNS)
    if not df.empty:
        df = df.astype({"cut": "uint32", "pid_cut": "uint32"})
    _write_frame(path, df)


def write_metrics_table(path: str | Path, metrics: RecordingMetrics) -> None:
    """Write recorded diagnostic entries in long `name, x, y` format."""
    write_table(path, metrics.rows())


def write_table(path: str | Path, rows: list[dict[str, Any]]) -> None:
    """Write row dictionaries into a Parquet/CSV/Pickle table."""
    pd = _require_pandas()
    _write_frame(path, pd.DataFrame(rows))


_PARTICLE_COLUMNS = [
    "collision_index",
    "pt",
    "eta",
    "phi",
    "part_type",
    "cut",
    "pid_cut",
    "temp_fit_var",
    "child0",
    "child1",
    "m_lambda",
    "m_antilambda",
]


def _write_frame(path: str | Path, df) -> None:
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to write output tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _parse_collision_item(item: Any, idx: int) -> Collision:
    """Parse one collision dictionary into a `Collision`."""
    if not isinstance(item, dict):
        raise ValueError(f"Event entry at index {idx} must define an object under 'collision'.")
    try:
        return Collision(
            collision_id=str(item.get("collision_id", f"col{idx}")),
            pos_z=float(item["pos_z"]),
            run_number=int(item["run_number"]),
            timestamp=int(item.get("timestamp", 0)),
            pos_x=float(item.get("pos_x", 0.0)),
            pos_y=float(item.get("pos_y", 0.0)),
            sel8=_as_bool(item.get("sel8", True), "sel8", f"collision at index {idx}"),
            mult_fv0m=float(item.get("mult_fv0m", 0.0)),
            mult_ntracks_pv=float(item.get("mult_ntracks_pv", 0.0)),
        )
    except KeyError as exc:
        raise ValueError(f"Collision at index {idx} is missing field {exc}.") from exc
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Collision at index {idx} has an invalid value: {exc}") from exc


_TRACK_REQUIRED = ("pt", "eta", "phi", "sign", "p", "tpc_inner_param")
_TRACK_INT_FIELDS = (
    "tpc_n_cls_found",
    "tpc_n_cls_crossed_rows",
    "tpc_n_cls_shared",
    "its_n_cls",
    "its_n_cls_inner_barrel",
)
_TRACK_FLOAT_FIELDS = (
    "tpc_crossed_rows_over_findable_cls",
    "tpc_chi2_ncl",
    "its_chi2_ncl",
    "dca_xy",
    "dca_z",
    "tpc_signal",
    "tpc_nsigma_el",
    "tpc_nsigma_pi",
    "tpc_nsigma_pr",
    "tpc_nsigma_de",
    "tof_nsigma_pr",
    "tof_nsigma_de",
)


def _parse_track_item(item: Any, idx: int, context: str) -> Track:
    """Parse one track dictionary into a `Track`."""
    if not isinstance(item, dict):
        raise ValueError(f"Track entry at index {idx} in {context} must be an object.")
    missing = [name for name in _TRACK_REQUIRED if name not in item]
    if missing:
        raise ValueError(f"Track at index {idx} in {context} is missing fields: {', '.join(missing)}")
    where = f"track at index {idx} in {context}"
    optional: dict[str, Any] = {}
    for name in ("has_tpc", "has_its"):
        if name in item:
            optional[name] = _as_bool(item[name], name, where)
    try:
        for name in _TRACK_INT_FIELDS:
            if name in item:
                optional[name] = int(item[name])
        for name in _TRACK_FLOAT_FIELDS:
            if name in item:
                optional[name] = float(item[name])
        return Track(
            track_id=str(item.get("track_id", f"trk{idx}")),
            pt=float(item["pt"]),
            eta=float(item["eta"]),
            phi=float(item["phi"]),
            sign=int(item["sign"]),
            p=float(item["p"]),
            tpc_inner_param=float(item["tpc_inner_param"]),
            **optional,
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value in {where}: {exc}") from exc


def _as_bool(value: Any, name: str, where: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Field '{name}' of {where} must be a boolean, got {value!r}.")
    return value


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
