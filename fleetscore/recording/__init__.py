"""Violation recording: persistence of detected violations."""

from fleetscore.recording.recorder import RecordResult, ViolationRecorder

__all__ = ["RecordResult", "ViolationRecorder"]
