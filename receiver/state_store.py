"""state_store.py

Keeps the tracker state on disk so a restart doesn't re-post readings we
already sent.

File format (JSON object keyed by node id, as the receiver always wrote it):
    {"5": {"tx_count": 1234, "count": 567}}
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict

from sequence_tracker import NodeState

log = logging.getLogger(__name__)


def atomic_write_json(path: Path, obj: dict) -> None:
    """
    Atomic write (write temp file then rename) so a crash never leaves a half-written file.
    """
    tmp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    data = json.dumps(obj, separators=(",", ":"), ensure_ascii=False) + "\n"
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def _to_json(states: Dict[int, NodeState]) -> dict:
    out = {}
    for node_id, st in sorted(states.items()):
        entry = {}
        if st.last_tx_count is not None:
            entry["tx_count"] = st.last_tx_count
        if st.last_count is not None:
            entry["count"] = st.last_count
        out[str(node_id)] = entry
    return out


def _counter(entry: dict, name: str):
    value = entry.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFF:
        raise ValueError(f"{name} is not a 16-bit counter: {value!r}")
    return value


def _from_json(obj) -> Dict[int, NodeState]:
    if not isinstance(obj, dict):
        raise ValueError(f"expected a JSON object, got {type(obj).__name__}")

    states: Dict[int, NodeState] = {}
    for key, entry in obj.items():
        if not isinstance(entry, dict):
            raise ValueError(f"node {key}: expected a JSON object")
        states[int(key)] = NodeState(
            last_tx_count=_counter(entry, "tx_count"),
            last_count=_counter(entry, "count"),
        )
    return states


def load_state(path: Path) -> Dict[int, NodeState]:
    """
    Read the saved tracker state.

    A missing file means first start. A file we can't read or parse is
    logged and ignored; the tracker then starts empty, same as first start.
    """
    if not path.exists():
        log.info("No saved state at %s, starting fresh", path)
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            states = _from_json(json.load(f))
    except (OSError, ValueError) as e:
        log.warning("Ignoring unreadable state file %s: %s", path, e)
        return {}

    log.info("Loaded state for %d node(s) from %s", len(states), path)
    return states


def save_state(path: Path, states: Dict[int, NodeState]) -> None:
    """Overwrite the state file with the full tracker snapshot."""
    atomic_write_json(path, _to_json(states))
