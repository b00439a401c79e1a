"""Fit and trajectory persistence helpers.

Small utilities to create output folders and persist fitted parameter
records and simulated trajectories as JSON and CSV. Used by scripts to
standardize run artifacts in runs/.
"""


from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
import json
import csv
from typing import Dict, Iterable, List, Union

import numpy as np


def ensure_dir(path: Union[Path, str]) -> Path:
    path = Path(path)
    # Create output folder if needed.
    path.mkdir(parents=True, exist_ok=True)
    return path


def to_serializable(value):
    """Convert numpy values, enums and dataclasses into JSON-friendly types."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_serializable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_serializable(v) for v in value]
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Enum):
        return value.value
    return value


def fit_to_dict(fit) -> Dict:
    """Flatten a fitted record, keeping derived estimates alongside raw fields."""
    payload = to_serializable(fit)
    # Derived estimates are properties, not dataclass fields.
    for name in ("beta", "beta_se", "alpha", "alpha_se", "correlation", "sbar"):
        if not hasattr(type(fit), name) or not isinstance(getattr(type(fit), name), property):
            continue
        payload[name] = to_serializable(getattr(fit, name))
    return payload


def trajectory_rows(trajectory) -> List[Dict]:
    """One row per time step with every per-step array of the trajectory."""
    columns = {
        f.name: getattr(trajectory, f.name)
        for f in fields(trajectory)
        if isinstance(getattr(trajectory, f.name), np.ndarray)
    }
    n = len(trajectory)
    return [
        {"t": t, **{name: to_serializable(arr[t]) for name, arr in columns.items()}}
        for t in range(n)
    ]


def save_json(path: Union[Path, str], payload: Dict) -> None:
    path = Path(path)
    with path.open("w", encoding="utf-8") as f:
        # Stable formatting helps diffs and reproducibility.
        json.dump(to_serializable(payload), f, indent=2, sort_keys=True)


def save_csv(path: Union[Path, str], rows: Iterable[Dict]) -> None:
    path = Path(path)
    rows = list(rows)
    if not rows:
        # Avoid creating empty CSVs.
        return
    with path.open("w", newline="", encoding="utf-8") as f:
        # Use keys from the first row as column order, then append new keys seen later.
        fieldnames = list(rows[0].keys())
        seen = set(fieldnames)
        for row in rows[1:]:
            for key in row.keys():
                if key not in seen:
                    fieldnames.append(key)
                    seen.add(key)
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)


def load_series_csv(path: Union[Path, str], columns: Iterable[str]) -> Dict[str, np.ndarray]:
    """Load named numeric columns from a CSV with a header row."""
    path = Path(path)
    columns = list(columns)
    with path.open("r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        missing = [c for c in columns if c not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"{path} is missing columns {missing}")
        data = {c: [] for c in columns}
        for row in reader:
            for c in columns:
                data[c].append(float(row[c]))
    return {c: np.asarray(v, dtype=float) for c, v in data.items()}
