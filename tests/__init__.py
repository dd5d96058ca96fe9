"""
Tests Package for the Hand Pose Presentation Project

Structure:
- test_hand_poses.py / test_interpolation.py / test_sequences.py: handpose library
- test_trial_protocols.py / test_setup_trial.py: paradigms and configuration
- test_frame_clock.py / test_phase_machine.py / test_sample_logger.py: session engine
- test_trial_manager.py / test_data_storage.py: orchestration and export
- test_trial_gui.py: session window (offscreen, skipped without PyQt6)

Run with: pytest tests/
"""
