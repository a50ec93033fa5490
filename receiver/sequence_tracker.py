"""sequence_tracker.py

Per-node bookkeeping of the two JeeNode counters.

Every frame carries:
  - tx_count: bumped on each radio transmission (retransmissions included)
  - count:    bumped only when the meter has a new reading

tx_count tells us about the link (restarts, lost frames), count tells us
whether the reading has already been forwarded.

NOTE:
  The tx_count comparison is plain integer arithmetic. A node whose counter
  wraps from 65535 to 0 looks exactly like a node that restarted, and is
  reported as REBOOT. Its state gets cleared, so the next reading is still
  forwarded; the only cost is a misleading log line.

  A frame identical to the last one processed for the node (same tx_count,
  same count) is a replay, not a restart: it is a DUPLICATE with no
  transport signal.
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass
from typing import Dict, Optional

from frame_codec import Frame


class Reading(enum.Enum):
    NEW = "new"
    DUPLICATE = "duplicate"


class Transport(enum.Enum):
    REBOOT = "reboot"
    GAP = "gap"


@dataclass
class NodeState:
    last_tx_count: Optional[int] = None
    last_count: Optional[int] = None


@dataclass(frozen=True)
class Evaluation:
    """Result of SequenceTracker.evaluate for one frame."""

    reading: Reading
    state: NodeState
    transport: Optional[Transport] = None
    missed: int = 0  # frames lost in transit, only set for GAP

    @property
    def is_new(self) -> bool:
        return self.reading is Reading.NEW


class SequenceTracker:
    """
    Owns the src_node_id -> NodeState map.

    Seed it with the snapshot from the state store, call evaluate() once per
    decoded frame, and hand snapshot() back to the store afterwards.
    """

    def __init__(self, initial: Optional[Dict[int, NodeState]] = None):
        self._nodes: Dict[int, NodeState] = copy.deepcopy(initial) if initial else {}

    def evaluate(self, frame: Frame) -> Evaluation:
        node_id = frame.src_node_id
        state = self._nodes.get(node_id)

        transport = None
        missed = 0

        if (
            state is not None
            and state.last_tx_count is not None
            and not self._is_replay(state, frame)
        ):
            expected = state.last_tx_count + 1
            if expected > frame.tx_count:
                # Counter went backwards: the node restarted.
                transport = Transport.REBOOT
                state = None
            elif expected != frame.tx_count:
                transport = Transport.GAP
                missed = frame.tx_count - expected

        if state is None:
            state = NodeState()
            self._nodes[node_id] = state

        state.last_tx_count = frame.tx_count

        if state.last_count is None or state.last_count != frame.count:
            state.last_count = frame.count
            reading = Reading.NEW
        else:
            reading = Reading.DUPLICATE

        return Evaluation(
            reading=reading,
            state=copy.copy(state),
            transport=transport,
            missed=missed,
        )

    @staticmethod
    def _is_replay(state: NodeState, frame: Frame) -> bool:
        # The exact frame we processed last (e.g. echoed twice by the board).
        return state.last_tx_count == frame.tx_count and state.last_count == frame.count

    def get(self, node_id: int) -> Optional[NodeState]:
        state = self._nodes.get(node_id)
        return copy.copy(state) if state is not None else None

    def snapshot(self) -> Dict[int, NodeState]:
        """Deep copy of every node's state, for checkpointing."""
        return copy.deepcopy(self._nodes)
