"""
Session Data Storage Module
===========================
Export of stimulus sequences and sample logs, plus an HDF5 archive of the
whole session.

Files per session (in the session directory):
- <paradigm>_sequence.csv / .txt: ground-truth stimulus order
- <paradigm>_motion_data.csv: one row per sample record
- metadata.json: participant, session and paradigm configuration
- <paradigm>_session.h5: compressed archive of sequence and samples
"""

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import h5py
import numpy as np

from handpose import JOINT_LABELS, pose_to_vector

from .sample_logger import SampleRecord, build_header


class SessionDataStorage:
    """
    Writes one session's files into `session_dir`.

    Args:
        session_dir: Directory for this session's data (created if missing)
        compression: HDF5 compression ('gzip', 'lzf', None)
        compression_level: Compression level (0-9 for gzip)
        verbose: Print a line for every file written
    """

    def __init__(self,
                 session_dir: Path,
                 compression: Optional[str] = 'gzip',
                 compression_level: int = 4,
                 verbose: bool = True):
        self.session_dir = Path(session_dir)
        self.compression = compression
        self.compression_level = compression_level
        self.verbose = verbose

        self.session_dir.mkdir(parents=True, exist_ok=True)

        self.session_metadata: Dict[str, Any] = {}

    def _say(self, message: str):
        if self.verbose:
            print(message)

    def set_session_metadata(self,
                             participant_info: Dict[str, Any],
                             session_info: Dict[str, Any],
                             paradigm_config: Dict[str, Any]):
        """Set session-level metadata (written to metadata.json and the archive)."""
        self.session_metadata = {
            'participant': participant_info,
            'session': session_info,
            'paradigm': paradigm_config,
        }

    def save_session_metadata(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        """Save session-level metadata to metadata.json."""
        filename = self.session_dir / "metadata.json"

        metadata = {
            **self.session_metadata,
            **(extra or {}),
            'timestamp_created': datetime.now().isoformat(),
            'session_dir': str(self.session_dir),
        }

        with open(filename, 'w', encoding='utf-8') as f:
            json.dump(metadata, f, indent=2, default=str)

        self._say(f"✓ Saved session metadata: {filename.name}")
        return filename

    # -------------------------------------------------------------------------
    # CSV export
    # -------------------------------------------------------------------------

    def save_sequence(self, sequence: Sequence[str], paradigm: str,
                      with_index: bool = True) -> Path:
        """
        Save the stimulus order.

        Args:
            sequence: Stimulus names in presentation order
            paradigm: Paradigm name (file prefix)
            with_index: Write an `index,pose_name` CSV; otherwise one name per line

        Returns:
            Path to saved file
        """
        if with_index:
            filename = self.session_dir / f"{paradigm}_sequence.csv"
            with open(filename, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(['index', 'pose_name'])
                for i, name in enumerate(sequence):
                    writer.writerow([i, name])
        else:
            filename = self.session_dir / f"{paradigm}_sequence.txt"
            with open(filename, 'w', encoding='utf-8') as f:
                f.write('\n'.join(sequence))

        self._say(f"✓ Saved sequence ({len(sequence)} entries): {filename.name}")
        return filename

    def save_sample_log(self, records: Sequence[SampleRecord], paradigm: str,
                        extra_columns: Sequence[str] = ()) -> Path:
        """
        Save sample records as CSV with the fixed header.

        Returns:
            Path to saved file
        """
        filename = self.session_dir / f"{paradigm}_motion_data.csv"

        with open(filename, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow(build_header(extra_columns))
            for rec in records:
                writer.writerow(rec.to_row(extra_columns))

        self._say(f"✓ Saved sample log ({len(records)} rows): {filename.name}")
        return filename

    # -------------------------------------------------------------------------
    # HDF5 archive
    # -------------------------------------------------------------------------

    def save_session_archive(self, records: Sequence[SampleRecord], sequence: Sequence[str],
                             paradigm: str, extra_columns: Sequence[str] = ()) -> Path:
        """
        Save sequence and samples to one HDF5 file.

        Layout:
            /metadata   attrs: paradigm, timestamp_saved, session_metadata_json
            /sequence   string dataset
            /samples    timestamps, session_time_ms, trial_index, phase,
                        target_pose_name, current (N, 9), target (N, 9),
                        one dataset per extra column
        """
        filename = self.session_dir / f"{paradigm}_session.h5"
        str_dtype = h5py.string_dtype(encoding='utf-8')

        self._say(f"Saving session archive to {filename}...")

        with h5py.File(filename, 'w') as f:
            meta_group = f.create_group('metadata')
            meta_group.attrs['paradigm'] = paradigm
            meta_group.attrs['timestamp_saved'] = datetime.now().isoformat()
            meta_group.attrs['num_samples'] = len(records)
            if self.session_metadata:
                meta_group.attrs['session_metadata_json'] = json.dumps(self.session_metadata, default=str)

            f.create_dataset('sequence', data=list(sequence), dtype=str_dtype)

            samples = f.create_group('samples')
            samples.attrs['joint_labels'] = json.dumps(list(JOINT_LABELS))
            self._write_samples(samples, records, extra_columns, str_dtype)

        self._say(f"✓ Saved session archive: {filename.name}")
        return filename

    def _write_samples(self, group: h5py.Group, records: Sequence[SampleRecord],
                       extra_columns: Sequence[str], str_dtype):
        n = len(records)
        n_joints = len(JOINT_LABELS)

        self._create_dataset(group, 'timestamps', [r.timestamp for r in records],
                             dtype='float64', attrs={'unit': 'milliseconds'})
        self._create_dataset(group, 'session_time_ms', [r.session_time_ms for r in records],
                             dtype='float64', attrs={'unit': 'milliseconds'})
        self._create_dataset(group, 'trial_index', [r.trial_index for r in records], dtype='int32')

        group.create_dataset('phase', data=[r.phase for r in records], dtype=str_dtype)
        group.create_dataset('target_pose_name', data=[r.target_pose_name for r in records],
                             dtype=str_dtype)

        current = np.vstack([pose_to_vector(r.current) for r in records]) if n \
            else np.zeros((0, n_joints))
        target = np.vstack([pose_to_vector(r.target) for r in records]) if n \
            else np.zeros((0, n_joints))
        self._create_dataset(group, 'current', current, dtype='float32', attrs={
            'unit': 'normalized_flexion',
            'shape_description': '(n_samples, n_joints)',
        })
        self._create_dataset(group, 'target', target, dtype='float32', attrs={
            'unit': 'normalized_flexion',
            'shape_description': '(n_samples, n_joints)',
        })

        for col in extra_columns:
            values = [r.metadata.get(col) for r in records]
            if all(isinstance(v, bool) for v in values):
                self._create_dataset(group, col, values, dtype='bool')
            else:
                self._create_dataset(group, col, [v if v is not None else 0 for v in values],
                                     dtype='int32')

    def _create_dataset(self, group: h5py.Group, name: str, data,
                        dtype: str = 'float32', attrs: Optional[Dict[str, Any]] = None):
        """Create HDF5 dataset with compression."""
        data = np.asarray(data, dtype=dtype)

        # HDF5 filters need chunked storage, which cannot hold empty datasets
        if self.compression and data.size > 0:
            if self.compression == 'gzip':
                ds = group.create_dataset(
                    name, data=data,
                    compression=self.compression,
                    compression_opts=self.compression_level
                )
            else:
                ds = group.create_dataset(name, data=data, compression=self.compression)
        else:
            ds = group.create_dataset(name, data=data)

        if attrs:
            for key, value in attrs.items():
                ds.attrs[key] = value

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @staticmethod
    def load_session_archive(filepath: Path) -> Dict[str, Any]:
        """
        Load a session archive.

        Returns:
            {'metadata': dict, 'sequence': list, 'samples': {name: array}}
        """
        data: Dict[str, Any] = {}

        with h5py.File(filepath, 'r') as f:
            data['metadata'] = dict(f['metadata'].attrs)
            data['sequence'] = [s.decode('utf-8') if isinstance(s, bytes) else s
                                for s in f['sequence'][:]]

            samples = {}
            for key in f['samples']:
                values = f['samples'][key][:]
                if values.dtype.kind in ('O', 'S'):
                    values = [v.decode('utf-8') if isinstance(v, bytes) else v for v in values]
                samples[key] = values
            data['samples'] = samples

        return data

    @staticmethod
    def load_sample_log(filepath: Path) -> List[Dict[str, str]]:
        """Read a sample log CSV back as a list of row dicts (string values)."""
        with open(filepath, 'r', newline='', encoding='utf-8') as f:
            return list(csv.DictReader(f))

    @staticmethod
    def load_sequence(filepath: Path) -> List[str]:
        """Read a sequence file written by `save_sequence`."""
        filepath = Path(filepath)
        with open(filepath, 'r', newline='', encoding='utf-8') as f:
            if filepath.suffix == '.csv':
                return [row['pose_name'] for row in csv.DictReader(f)]
            return [line.strip() for line in f if line.strip()]


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def verify_session_archive(filepath: Path) -> bool:
    """
    Check that an archive has the expected groups and consistent lengths.
    """
    filepath = Path(filepath)
    try:
        with h5py.File(filepath, 'r') as f:
            if 'metadata' not in f or 'samples' not in f:
                print(f"⚠ Missing 'metadata' or 'samples' group in {filepath.name}")
                return False

            samples = f['samples']
            n = samples['timestamps'].shape[0]
            for key in ('session_time_ms', 'trial_index', 'phase', 'current', 'target'):
                if key not in samples or samples[key].shape[0] != n:
                    print(f"⚠ Inconsistent '{key}' dataset in {filepath.name}")
                    return False

            print(f"✓ Session archive valid: {filepath.name}")
            return True

    except (OSError, KeyError) as e:
        print(f"✗ Session archive unreadable: {filepath.name} - {e}")
        return False
