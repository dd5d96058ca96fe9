"""
Sample Logger
=============
Fixed-rate sampling of the engine state, independent of the host frame rate.

A record is taken on a tick when `time_in_phase mod log_interval < delta`,
i.e. whenever the tick crossed a log-interval boundary. Missed frames do
not cause double logging, and zero-delta ticks never log.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

from handpose import JOINT_LABELS, Pose, pose_to_vector

from .phase_machine import EngineSnapshot


BASE_COLUMNS = ['timestamp', 'session_time_ms', 'phase', 'trial_index', 'target_pose_name']
CURRENT_COLUMNS = [f'current_{label}' for label in JOINT_LABELS]
TARGET_COLUMNS = [f'target_{label}' for label in JOINT_LABELS]


def build_header(extra_columns: Sequence[str] = ()) -> List[str]:
    """CSV header: base columns, paradigm extras, then 9 current + 9 target joints."""
    return BASE_COLUMNS + list(extra_columns) + CURRENT_COLUMNS + TARGET_COLUMNS


def _format_value(value: Any) -> Any:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return value


@dataclass(frozen=True)
class SampleRecord:
    """One logged observation."""
    timestamp: float
    session_time_ms: float
    phase: str
    trial_index: int
    target_pose_name: str
    current: Pose
    target: Pose
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_row(self, extra_columns: Sequence[str] = ()) -> List[Any]:
        row = [self.timestamp, self.session_time_ms, self.phase, self.trial_index, self.target_pose_name]
        row.extend(_format_value(self.metadata.get(col, '')) for col in extra_columns)
        row.extend(float(v) for v in pose_to_vector(self.current))
        row.extend(float(v) for v in pose_to_vector(self.target))
        return row


class SampleLogger:
    """
    Append-only sample log for one session.

    Args:
        log_frame_rate: Samples per second of phase time (Hz)
        extra_columns: Paradigm-specific metadata columns
    """

    def __init__(self, log_frame_rate: float = 30.0, extra_columns: Sequence[str] = ()):
        if log_frame_rate <= 0:
            raise ValueError("log_frame_rate must be positive")
        self.log_frame_rate = float(log_frame_rate)
        self.log_interval_ms = 1000.0 / self.log_frame_rate
        self.extra_columns = list(extra_columns)
        self._records: List[SampleRecord] = []

    def should_log(self, time_in_phase: float, delta_ms: float) -> bool:
        if delta_ms <= 0:
            return False
        return (time_in_phase % self.log_interval_ms) < delta_ms

    def record(self, timestamp: float, session_time_ms: float, snapshot: EngineSnapshot) -> SampleRecord:
        """Unconditionally append a record built from `snapshot`."""
        rec = SampleRecord(
            timestamp=timestamp,
            session_time_ms=session_time_ms,
            phase=snapshot.phase,
            trial_index=snapshot.trial_index,
            target_pose_name=snapshot.stimulus_name,
            current=snapshot.current_pose,
            target=snapshot.target_pose,
            metadata=snapshot.log_metadata(),
        )
        self._records.append(rec)
        return rec

    def maybe_record(self, timestamp: float, session_time_ms: float,
                     snapshot: EngineSnapshot, delta_ms: float) -> Optional[SampleRecord]:
        """Append a record if this tick crossed a log-interval boundary."""
        if not self.should_log(snapshot.time_in_phase, delta_ms):
            return None
        return self.record(timestamp, session_time_ms, snapshot)

    @property
    def records(self) -> List[SampleRecord]:
        return list(self._records)

    def header(self) -> List[str]:
        return build_header(self.extra_columns)

    def rows(self) -> Iterator[List[Any]]:
        for rec in self._records:
            yield rec.to_row(self.extra_columns)

    def clear(self):
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
