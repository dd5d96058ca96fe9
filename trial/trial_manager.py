"""
Trial Manager Module
====================
Core orchestration for a hand pose presentation session.

Coordinates:
- Stimulus sequence generation
- Frame clock (host timestamps -> delta time)
- Phase state machine and pose computation
- Fixed-rate sample logging
- Observers (rendering, beat audio, phase changes)
- Data export

The host calls `on_frame(timestamp_ms)` once per display frame; everything
else is derived from the timestamps it passes in.
"""

import argparse
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from . import setup_trial
from .data_storage import SessionDataStorage
from .frame_clock import ClockFn, FrameClock, HostClockError, perf_counter_ms
from .phase_machine import EngineSnapshot, PhaseStateMachine, TickResult
from .sample_logger import SampleLogger, SampleRecord
from .trial_protocols import (
    CLASSIFICATION,
    SessionConfig,
    calculate_session_duration,
    entry_phase_index,
    generate_sequence,
    get_paradigm,
    list_paradigms,
    log_columns,
    phase_plan,
)


class SessionState(Enum):
    """Session lifecycle states."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"  # hard stop (host error or operator)


SnapshotObserver = Callable[[EngineSnapshot], None]
BeatListener = Callable[[int, bool], None]
PhaseListener = Callable[[str, str, EngineSnapshot], None]


# =============================================================================
# TRIAL MANAGER
# =============================================================================

class TrialManager:
    """
    Main session orchestration class.

    Args:
        config: Session configuration (see `setup_trial.build_session_config`)
        clock_fn: Host clock in milliseconds, used when `on_frame` gets no
            timestamp and for resume anchoring
        sequence: Pre-made stimulus order (default: generated on start)
        rng: Random generator for the sequence (default: seeded from config.seed)
        verbose: Print operator messages
    """

    def __init__(self,
                 config: SessionConfig,
                 clock_fn: ClockFn = perf_counter_ms,
                 sequence: Optional[List[str]] = None,
                 rng: Optional[np.random.Generator] = None,
                 verbose: bool = True):
        self.config = config
        self.protocol = get_paradigm(config.paradigm)
        self.clock_fn = clock_fn
        self.rng = rng
        self.verbose = verbose

        self._given_sequence = list(sequence) if sequence is not None else None
        self.sequence: Optional[List[str]] = None

        self.state = SessionState.IDLE
        self.clock = FrameClock()
        self.machine: Optional[PhaseStateMachine] = None
        self.logger = SampleLogger(config.log_frame_rate, log_columns(config.paradigm))
        self.error: Optional[BaseException] = None
        self.last_result: Optional[TickResult] = None

        self._observers: List[SnapshotObserver] = []
        self._beat_listeners: List[BeatListener] = []
        self._phase_listeners: List[PhaseListener] = []

    def _say(self, message: str):
        if self.verbose:
            print(message)

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def add_observer(self, callback: SnapshotObserver):
        """Called with the engine snapshot after every delivered tick."""
        self._observers.append(callback)

    def add_beat_listener(self, callback: BeatListener):
        """Called with (beat_number, moving_to_target) on every periodic beat."""
        self._beat_listeners.append(callback)

    def add_phase_listener(self, callback: PhaseListener):
        """Called with (old_phase, new_phase, snapshot) on every phase change."""
        self._phase_listeners.append(callback)

    def _notify(self, callback: Callable, *args):
        try:
            callback(*args)
        except Exception as e:
            # Observers are downstream only: report and keep ticking
            print(f"⚠ Observer {getattr(callback, '__name__', callback)!s} failed: {e}")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> bool:
        """
        Start the session (or resume it when paused).

        Returns:
            True if the session is running afterwards
        """
        if self.state == SessionState.PAUSED:
            return self.resume()
        if self.state == SessionState.RUNNING:
            return True
        if self.state in (SessionState.COMPLETED, SessionState.STOPPED):
            self._say(f"⚠ Session already {self.state.value}; reset() before starting again")
            return False

        if self.sequence is None:
            if self._given_sequence is not None:
                self.sequence = list(self._given_sequence)
            else:
                rng = self.rng if self.rng is not None else np.random.default_rng(self.config.seed)
                self.sequence = generate_sequence(self.config, rng=rng)

        self.machine = PhaseStateMachine(self.config, self.sequence)
        self.clock.reset()
        self.logger.clear()
        self.error = None
        self.last_result = None

        if self.machine.completed:
            # Nothing to present
            self.state = SessionState.COMPLETED
            self._say("⚠ Empty stimulus sequence - session completed immediately")
            return False

        self.state = SessionState.RUNNING
        self._say(f"✓ Session started: {self.protocol['display_name']} "
                  f"({len(self.sequence)} trials)")
        return True

    def pause(self) -> bool:
        """Suspend tick delivery. Pausing twice is the same as pausing once."""
        if self.state != SessionState.RUNNING:
            return False
        self.state = SessionState.PAUSED
        self._say("Session paused")
        return True

    def resume(self, timestamp_ms: Optional[float] = None) -> bool:
        """
        Resume after a pause.

        Args:
            timestamp_ms: Resume time on the host clock (default: clock_fn())
        """
        if self.state != SessionState.PAUSED:
            return False
        now = self._read_clock() if timestamp_ms is None else timestamp_ms
        try:
            self.clock.resume(now)
        except HostClockError as e:
            self._hard_stop(e)
            raise
        self.state = SessionState.RUNNING
        self._say("Session resumed")
        return True

    def reset(self):
        """Discard sequence, state machine and log; back to IDLE."""
        self.state = SessionState.IDLE
        self.sequence = None
        self.machine = None
        self.clock.reset()
        self.logger.clear()
        self.error = None
        self.last_result = None
        self._say("Session reset")

    def stop(self):
        """Terminal stop. Logged samples stay available for export."""
        if self.state in (SessionState.COMPLETED, SessionState.STOPPED):
            return
        self.state = SessionState.STOPPED
        self._say(f"✗ Session stopped ({len(self.logger)} samples logged)")

    def _hard_stop(self, error: BaseException):
        self.error = error
        self.state = SessionState.STOPPED
        self._say(f"✗ Host clock error, session stopped: {error}")

    def _read_clock(self) -> float:
        try:
            return self.clock_fn()
        except Exception as e:
            error = HostClockError(f"Host clock failed: {e}")
            self._hard_stop(error)
            raise error from e

    # -------------------------------------------------------------------------
    # Per-frame callback
    # -------------------------------------------------------------------------

    def on_frame(self, timestamp_ms: Optional[float] = None) -> Optional[TickResult]:
        """
        Host frame callback.

        Args:
            timestamp_ms: Host timestamp in milliseconds (default: clock_fn())

        Returns:
            TickResult, or None when the session is not running

        Raises:
            HostClockError: On an unusable timestamp; the session is stopped first
        """
        if self.state != SessionState.RUNNING:
            return None

        timestamp = self._read_clock() if timestamp_ms is None else timestamp_ms
        try:
            delta = self.clock.tick(timestamp)
            session_time = self.clock.session_time(timestamp)
        except HostClockError as e:
            self._hard_stop(e)
            raise

        old_phase = self.machine.phase
        result = self.machine.tick(delta)
        snapshot = self.machine.snapshot()
        self.last_result = result

        if not result.session_completed:
            self.logger.maybe_record(float(timestamp), session_time, snapshot, result.delta_ms)

        if result.beat:
            for listener in self._beat_listeners:
                self._notify(listener, result.beat_count, result.beat_moving_to_target)

        if result.phase_changed or result.session_completed:
            for listener in self._phase_listeners:
                self._notify(listener, old_phase, snapshot.phase, snapshot)

        for observer in self._observers:
            self._notify(observer, snapshot)

        if result.session_completed:
            self.state = SessionState.COMPLETED
            self._say(f"✓ Session complete ({len(self.logger)} samples logged)")

        return result

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @property
    def records(self) -> List[SampleRecord]:
        return self.logger.records

    @property
    def session_duration_ms(self) -> float:
        n = len(self.sequence) if self.sequence is not None else self.config.num_trials
        return calculate_session_duration(self.config, n)

    @property
    def progress(self) -> float:
        """Fraction of the nominal session duration elapsed (0..1)."""
        if self.machine is None:
            return 0.0
        if self.machine.completed:
            return 1.0
        total = self.session_duration_ms
        if total <= 0:
            return 0.0

        phases = phase_plan(self.config)
        per_trial = sum(p.duration_ms for p in phases)
        skipped = sum(p.duration_ms for p in phases[:entry_phase_index(self.config)])
        done = (self.machine.trial_index * per_trial
                + sum(p.duration_ms for p in phases[:self.machine.phase_index])
                - skipped)
        elapsed = done + min(self.machine.time_in_phase, self.machine.phase_duration)
        return min(max(elapsed / total, 0.0), 1.0)

    def snapshot(self) -> Optional[EngineSnapshot]:
        return self.machine.snapshot() if self.machine is not None else None

    # -------------------------------------------------------------------------
    # Headless host
    # -------------------------------------------------------------------------

    def run_headless(self,
                     frame_rate: float = 60.0,
                     time_scale: float = 1.0,
                     max_frames: Optional[int] = None) -> int:
        """
        Drive the session from the host clock until it completes or stops.

        Args:
            frame_rate: Frames per second of the loop
            time_scale: Session time per wall-clock time (>1 = faster)
            max_frames: Stop delivering frames after this many

        Returns:
            Number of frames delivered
        """
        if self.state == SessionState.IDLE:
            self.start()
        if self.state == SessionState.PAUSED:
            self.resume()

        frame_interval = 1.0 / frame_rate if frame_rate > 0 else 0.0
        t0 = self._read_clock()
        frames = 0

        try:
            while self.state == SessionState.RUNNING:
                if max_frames is not None and frames >= max_frames:
                    break
                now = self._read_clock()
                self.on_frame(t0 + (now - t0) * time_scale)
                frames += 1
                if frame_interval:
                    time.sleep(frame_interval)
        except KeyboardInterrupt:
            print("\n\nInterrupted by user")
            self.stop()

        return frames

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export(self,
               storage: SessionDataStorage,
               save_hdf5: bool = True,
               participant_info: Optional[Dict[str, Any]] = None,
               session_info: Optional[Dict[str, Any]] = None) -> Dict[str, Path]:
        """
        Write sequence, sample log, metadata and (optionally) the HDF5 archive.

        Returns:
            Mapping of file kind to written path
        """
        paradigm = self.config.paradigm
        sequence = self.sequence or []
        records = self.logger.records
        extra = self.logger.extra_columns

        if participant_info is not None or session_info is not None or not storage.session_metadata:
            storage.set_session_metadata(participant_info or {}, session_info or {},
                                         self.config.to_dict())

        paths = {
            'sequence': storage.save_sequence(sequence, paradigm, with_index=paradigm != CLASSIFICATION),
            'samples': storage.save_sample_log(records, paradigm, extra),
            'metadata': storage.save_session_metadata(extra={
                'sequence_length': len(sequence),
                'num_samples': len(records),
                'final_state': self.state.value,
                'error': str(self.error) if self.error is not None else None,
            }),
        }
        if save_hdf5:
            paths['archive'] = storage.save_session_archive(records, sequence, paradigm, extra)
        return paths


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Hand pose presentation session")
    parser.add_argument('--paradigm', choices=list_paradigms(), default=None,
                        help="Presentation paradigm (default: setup_trial.PARADIGM_NAME)")
    parser.add_argument('--trials', type=int, default=None, help="Number of trials")
    parser.add_argument('--seed', type=int, default=None, help="Sequence seed")
    parser.add_argument('--speed', type=float, default=None,
                        help="Headless time scale (e.g. 10 = ten times real time)")
    parser.add_argument('--no-save', action='store_true', help="Do not write any files")
    parser.add_argument('--gui', action='store_true', help="Run in the PyQt6 window")
    parser.add_argument('--output', type=Path, default=None,
                        help="Output directory (default: setup_trial.get_session_dir())")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """Main entry point for a presentation session."""
    args = parse_args(argv)

    print("\n" + "="*70)
    print("HAND POSE PRESENTATION SYSTEM")
    print("="*70)

    setup_trial.validate_config()

    overrides: Dict[str, Any] = {}
    if args.trials is not None:
        overrides['num_trials'] = args.trials
    if args.seed is not None:
        overrides['seed'] = args.seed
    config = setup_trial.build_session_config(args.paradigm, overrides)
    setup_trial.print_config_summary(config)

    manager = TrialManager(config)

    try:
        if args.gui:
            from .trial_gui import run_gui
            run_gui(manager, setup_trial.GUI_CONFIG, setup_trial.HOST_CONFIG['frame_rate'])
        else:
            speed = args.speed if args.speed is not None else setup_trial.HOST_CONFIG['time_scale']
            manager.run_headless(frame_rate=setup_trial.HOST_CONFIG['frame_rate'], time_scale=speed)

    except HostClockError as e:
        print(f"\n\n✗ Fatal error: {e}")

    finally:
        if not args.no_save and manager.sequence is not None:
            storage = SessionDataStorage(
                args.output or setup_trial.get_session_dir(),
                compression=setup_trial.COMPRESSION,
                compression_level=setup_trial.COMPRESSION_LEVEL,
            )
            manager.export(storage,
                           save_hdf5=setup_trial.SAVE_HDF5,
                           participant_info={'id': setup_trial.PARTICIPANT_ID,
                                             **setup_trial.PARTICIPANT_INFO},
                           session_info={'id': setup_trial.SESSION_ID,
                                         **setup_trial.SESSION_INFO})

    print("\nSession finished. Goodbye!")


if __name__ == '__main__':
    main()
