"""
Trial GUI Module
=================
PyQt6-based host window for hand pose presentation.

Features:
- Drives the session from a QTimer (one `on_frame` per timer tick)
- Phase / stimulus / instruction display, color-coded by phase
- Current vs target joint flexion bars using PyQtGraph
- Session progress tracking and beat indicator
- Keyboard controls
"""

import sys
from typing import Dict, Optional

import numpy as np

try:
    from PyQt6 import QtWidgets, QtCore, QtGui
    import pyqtgraph as pg
except ImportError:
    print("Error: PyQt6 and pyqtgraph are required for the GUI.")
    print("pip install PyQt6 pyqtgraph")
    sys.exit(1)

from handpose import HAND_POSES, JOINT_LABELS, pose_to_vector

from .phase_machine import EngineSnapshot
from .trial_manager import SessionState, TrialManager


class SessionWindow(QtWidgets.QMainWindow):
    """
    Main window for a presentation session.

    Layout:
    - Top: Phase, stimulus and instruction panel (large, color-coded)
    - Middle: Joint flexion bars (current pose vs goal pose)
    - Bottom: Status panel with progress and shortcuts
    """

    def __init__(self,
                 manager: TrialManager,
                 config: Optional[Dict] = None,
                 frame_rate: float = 60.0):
        super().__init__()
        self.manager = manager
        self.config = config or self._default_config()
        self.frame_rate = frame_rate

        self._latest: Optional[EngineSnapshot] = None
        self._beat_on = False

        self._create_gui()

        manager.add_observer(self._on_snapshot)
        manager.add_beat_listener(self._on_beat)

        # Host frame loop
        self.frame_timer = QtCore.QTimer()
        self.frame_timer.timeout.connect(self._on_frame_tick)
        self._frame_interval_ms = max(1, int(1000 / frame_rate))
        self.frame_timer.start(self._frame_interval_ms)

    def _default_config(self) -> Dict:
        return {
            'window_title': 'Hand Pose Presentation',
            'window_width': 1000,
            'window_height': 650,
            'fullscreen': False,
            'phase_colors': {},
            'current_bar_color': '#2196F3',
            'target_bar_color': '#BDBDBD',
            'font_instruction': ('Arial', 24, 'bold'),
            'font_status': ('Arial', 14),
        }

    def _parse_font(self, font_tuple) -> QtGui.QFont:
        """Parse font tuple `('Arial', 14, 'bold')` into `QFont`."""
        if not font_tuple:
            return QtGui.QFont()
        font_family = font_tuple[0]
        font_size = font_tuple[1] if len(font_tuple) > 1 else 10
        font_weight = QtGui.QFont.Weight.Bold if (len(font_tuple) > 2 and 'bold' in font_tuple[2]) else QtGui.QFont.Weight.Normal
        return QtGui.QFont(font_family, font_size, font_weight)

    def _create_gui(self):
        self.setWindowTitle(self.config['window_title'])
        self.resize(self.config['window_width'], self.config['window_height'])
        self.setStyleSheet("QMainWindow { background-color: #2c3e50; }")

        central = QtWidgets.QWidget()
        self.setCentralWidget(central)
        main_layout = QtWidgets.QVBoxLayout(central)
        main_layout.setContentsMargins(10, 10, 10, 10)

        self._create_instruction_panel(main_layout)
        self._create_pose_panel(main_layout)
        self._create_status_panel(main_layout)

        if self.config.get('fullscreen'):
            self.showFullScreen()

    def _create_instruction_panel(self, parent_layout):
        panel = QtWidgets.QFrame()
        panel.setStyleSheet("background-color: #34495e; border-radius: 5px;")
        layout = QtWidgets.QVBoxLayout(panel)

        self.phase_label = QtWidgets.QLabel("IDLE")
        self.phase_label.setFont(QtGui.QFont("Arial", 16, QtGui.QFont.Weight.Bold))
        self.phase_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self._set_phase_color('idle')
        layout.addWidget(self.phase_label)

        self.stimulus_label = QtWidgets.QLabel("Ready to start")
        self.stimulus_label.setFont(self._parse_font(self.config['font_instruction']))
        self.stimulus_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.stimulus_label.setStyleSheet("color: white;")
        layout.addWidget(self.stimulus_label)

        self.instruction_label = QtWidgets.QLabel("Press SPACE to start the session")
        self.instruction_label.setFont(self._parse_font(self.config['font_status']))
        self.instruction_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.instruction_label.setStyleSheet("color: #bdc3c7;")
        self.instruction_label.setWordWrap(True)
        layout.addWidget(self.instruction_label)

        prog_layout = QtWidgets.QHBoxLayout()
        self.progress_bar = QtWidgets.QProgressBar()
        self.progress_bar.setRange(0, 100)
        self.progress_bar.setValue(0)
        self.progress_bar.setTextVisible(False)
        self.progress_bar.setFixedHeight(15)
        self.progress_bar.setStyleSheet("QProgressBar { border: 1px solid #7f8c8d; border-radius: 7px; background-color: #2c3e50; } "
                                        "QProgressBar::chunk { background-color: #3498db; border-radius: 7px; }")

        self.beat_label = QtWidgets.QLabel("")
        self.beat_label.setFixedSize(16, 16)
        self.beat_label.setStyleSheet("background-color: #7f8c8d; border-radius: 8px;")

        self.trial_counter_label = QtWidgets.QLabel("Trial: 0 / 0")
        self.trial_counter_label.setStyleSheet("color: #ecf0f1;")

        prog_layout.addWidget(self.progress_bar, stretch=1)
        prog_layout.addWidget(self.beat_label)
        prog_layout.addWidget(self.trial_counter_label)
        layout.addLayout(prog_layout)

        parent_layout.addWidget(panel)

    def _create_pose_panel(self, parent_layout):
        self.plot_layout = pg.GraphicsLayoutWidget()
        self.plot_layout.setBackground('#2c3e50')

        self.plot_pose = self.plot_layout.addPlot(row=0, col=0, title="Joint flexion (0 = extended, 1 = flexed)")
        self.plot_pose.showGrid(x=False, y=True, alpha=0.3)
        self.plot_pose.setYRange(0, 1)
        self.plot_pose.setMouseEnabled(x=False, y=False)
        self.plot_pose.getAxis('left').setPen('#7f8c8d')
        self.plot_pose.getAxis('bottom').setPen('#7f8c8d')
        self.plot_pose.getAxis('bottom').setTicks([list(enumerate(JOINT_LABELS))])

        x = np.arange(len(JOINT_LABELS))
        zeros = np.zeros(len(JOINT_LABELS))
        self.target_bars = pg.BarGraphItem(x=x, height=zeros, width=0.8,
                                           brush=self.config['target_bar_color'])
        self.current_bars = pg.BarGraphItem(x=x, height=zeros, width=0.5,
                                            brush=self.config['current_bar_color'])
        self.plot_pose.addItem(self.target_bars)
        self.plot_pose.addItem(self.current_bars)

        parent_layout.addWidget(self.plot_layout, stretch=1)

    def _create_status_panel(self, parent_layout):
        panel = QtWidgets.QFrame()
        panel.setStyleSheet("background-color: #34495e; border-radius: 5px;")
        layout = QtWidgets.QHBoxLayout(panel)

        self.status_label = QtWidgets.QLabel("Status: Idle")
        self.status_label.setStyleSheet("color: white;")
        layout.addWidget(self.status_label)

        lbl_shortcuts = QtWidgets.QLabel("   [SPACE] Start/Pause | [R] Reset | [Q] Quit")
        lbl_shortcuts.setStyleSheet("color: #bdc3c7;")
        layout.addWidget(lbl_shortcuts)
        layout.addStretch()

        parent_layout.addWidget(panel)

    # =========================================================================
    # Frame loop and observers
    # =========================================================================

    def _on_frame_tick(self):
        if self.manager.state == SessionState.RUNNING:
            try:
                self.manager.on_frame()
            except RuntimeError as e:
                self.frame_timer.stop()
                self.show_error("Session stopped", str(e))

        self.progress_bar.setValue(int(self.manager.progress * 100))
        self.status_label.setText(f"Status: {self.manager.state.value.capitalize()} | "
                                  f"{len(self.manager.logger)} samples")

    def _on_snapshot(self, snapshot: EngineSnapshot):
        self._latest = snapshot

        self.phase_label.setText(snapshot.phase.upper().replace('_', ' '))
        self._set_phase_color(snapshot.phase)
        if snapshot.completed:
            self.stimulus_label.setText("Session complete")
        elif snapshot.stimulus_name in HAND_POSES:
            self.stimulus_label.setText(HAND_POSES[snapshot.stimulus_name].display_name)
        else:
            # classification labels
            self.stimulus_label.setText(snapshot.stimulus_name.capitalize())
        self.instruction_label.setText(snapshot.instruction if not snapshot.completed
                                       else "Thank you for participating!")
        self.trial_counter_label.setText(f"Trial: {snapshot.trial_index + 1} / {snapshot.num_trials}")

        self.current_bars.setOpts(height=pose_to_vector(snapshot.current_pose))
        self.target_bars.setOpts(height=pose_to_vector(snapshot.target_pose))

    def _on_beat(self, beat_number: int, moving_to_target: bool):
        self._beat_on = not self._beat_on
        color = '#f1c40f' if self._beat_on else '#7f8c8d'
        self.beat_label.setStyleSheet(f"background-color: {color}; border-radius: 8px;")

    def _set_phase_color(self, phase: str):
        color = self.config.get('phase_colors', {}).get(phase, '#7f8c8d')
        self.phase_label.setStyleSheet(f"background-color: {color}; color: white; padding: 5px; border-radius: 3px;")

    def keyPressEvent(self, event: QtGui.QKeyEvent):
        key = event.key()
        if key == QtCore.Qt.Key.Key_Space:
            if self.manager.state == SessionState.RUNNING:
                self.manager.pause()
            else:
                self.manager.start()
        elif key == QtCore.Qt.Key.Key_R:
            self.reset_session()
        elif key in (QtCore.Qt.Key.Key_Q, QtCore.Qt.Key.Key_Escape):
            if self.ask_yes_no("Quit", "Are you sure you want to quit?"):
                self.close()

    def reset_session(self):
        """Reset the manager and display, and restart the frame loop if an error stopped it."""
        self.manager.reset()
        self.phase_label.setText("IDLE")
        self._set_phase_color('idle')
        self.stimulus_label.setText("Ready to start")
        self.instruction_label.setText("Press SPACE to start the session")
        self.progress_bar.setValue(0)
        if not self.frame_timer.isActive():
            self.frame_timer.start(self._frame_interval_ms)

    def closeEvent(self, event: QtGui.QCloseEvent):
        self.frame_timer.stop()
        if self.manager.state in (SessionState.RUNNING, SessionState.PAUSED):
            self.manager.stop()
        super().closeEvent(event)

    # =========================================================================
    # QT Dialogs
    # =========================================================================

    def show_error(self, title: str, message: str):
        QtWidgets.QMessageBox.critical(self, title, message)

    def ask_yes_no(self, title: str, message: str) -> bool:
        reply = QtWidgets.QMessageBox.question(self, title, message,
                                               QtWidgets.QMessageBox.StandardButton.Yes | QtWidgets.QMessageBox.StandardButton.No)
        return reply == QtWidgets.QMessageBox.StandardButton.Yes


def run_gui(manager: TrialManager, config: Optional[Dict] = None, frame_rate: float = 60.0) -> int:
    """Open the session window and block until it is closed."""
    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication(sys.argv)
    window = SessionWindow(manager, config, frame_rate)
    window.show()
    return app.exec()
