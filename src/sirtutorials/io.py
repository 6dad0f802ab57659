"""Run I/O helpers.

Utilities to create run folders and persist configs, summary tables and
trajectories as JSON and CSV. Used by the tutorial scripts to standardize
run artifacts in runs/.
"""


from pathlib import Path
import json
import csv
from typing import Dict, Iterable, Union

import numpy as np


def ensure_dir(path: Union[Path, str]) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _to_builtin(value: object) -> object:
    # numpy scalars/arrays and paths are not JSON serializable as-is.
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def save_json(path: Union[Path, str], payload: Dict) -> Path:
    path = Path(path)
    with path.open("w", encoding="utf-8") as f:
        # Stable formatting helps diffs and reproducibility.
        json.dump(payload, f, indent=2, sort_keys=True, default=_to_builtin)
    return path


def load_json(path: Union[Path, str]) -> Dict:
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def save_csv(path: Union[Path, str], rows: Iterable[Dict]) -> Path:
    path = Path(path)
    rows = list(rows)
    if not rows:
        raise ValueError(f"no rows to write to {path}")
    with path.open("w", newline="", encoding="utf-8") as f:
        # Column order follows the first row; keys first seen later are appended.
        fieldnames = list(rows[0].keys())
        for row in rows[1:]:
            fieldnames.extend(key for key in row if key not in fieldnames)
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)
    return path
