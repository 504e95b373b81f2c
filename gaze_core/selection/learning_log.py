"""Detected vs. intended zone log with session statistics and JSON/CSV export."""

from __future__ import annotations

import csv
import json
from collections import Counter, deque
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

from gaze_core.config_service import config_modules
from gaze_core.selection.selection_types import LearningEvent, LearningSession, LearningStats
from gaze_core.tracking.tracking_types import FaceRegion, GazeEstimate, HeadPose
from gaze_core.utilities.logger_setup import setup_logger

CSV_COLUMNS = [
    "session_id",
    "timestamp",
    "head_yaw",
    "head_pitch",
    "head_roll",
    "face_x",
    "face_y",
    "face_width",
    "face_height",
    "face_confidence",
    "gaze_x",
    "gaze_y",
    "gaze_confidence",
    "detected_zone",
    "intended_zone",
    "is_correct",
]


class GazeLearningLog:
    """Records every committed zone next to the zone the user meant.

    Labels come either ahead of time (`set_next_intention`, consumed by
    the next event) or afterwards (`correct_last_intention`). Finished
    sessions are archived in memory, newest `max_sessions` kept.
    """

    def __init__(self, cfg: config_modules.LearningLog) -> None:
        self.cfg = cfg
        self.logger = setup_logger("GazeLearningLog")

        self.current: Optional[LearningSession] = None
        self.sessions: Deque[LearningSession] = deque(maxlen=max(1, int(cfg.max_sessions)))
        self._next_intention: Optional[int] = None
        self._started = 0

    @property
    def is_logging(self) -> bool:
        return self.current is not None

    @property
    def stats(self) -> LearningStats:
        return self.current.stats if self.current is not None else LearningStats()

# ---------- Session control ----------

    def start(self, now: float) -> LearningSession:
        """Begin a new session; a running one is archived first."""
        if self.current is not None:
            self.stop(now)
        self._started += 1
        session_id = f"session_{datetime.now().strftime('%H%M%S')}_{self._started}"
        self.current = LearningSession(session_id=session_id, start_time=now)
        self._next_intention = None
        self.logger.info("Learning session %s started", session_id)
        return self.current

    def stop(self, now: float) -> Optional[LearningSession]:
        session = self.current
        if session is None:
            return None
        session.end_time = now
        self.sessions.append(session)
        self.current = None
        self._next_intention = None
        self.logger.info("Learning session %s stopped with %d events", session.session_id, len(session.events))
        return session

# ---------- Events ----------

    def set_next_intention(self, zone_id: int) -> None:
        """Label the next logged event with the zone the user is about to look at."""
        self._next_intention = int(zone_id)
        self.logger.debug("Next intended zone: %d", zone_id)

    def log_event(
        self,
        detected_zone: int,
        now: float,
        pose: Optional[HeadPose] = None,
        face: Optional[FaceRegion] = None,
        gaze: Optional[GazeEstimate] = None,
        intended_zone: Optional[int] = None,
    ) -> Optional[LearningEvent]:
        """Append one event; ignored (None) outside a session."""
        session = self.current
        if session is None:
            return None

        if intended_zone is None:
            intended_zone = self._next_intention
        self._next_intention = None

        event = LearningEvent(
            timestamp=now,
            session_time_s=now - session.start_time,
            detected_zone=detected_zone,
            intended_zone=intended_zone,
            is_correct=None if intended_zone is None else detected_zone == intended_zone,
        )
        if pose is not None:
            event.head_yaw, event.head_pitch, event.head_roll = pose.yaw, pose.pitch, pose.roll
        if face is not None:
            event.face_x, event.face_y = face.x, face.y
            event.face_width, event.face_height = face.width, face.height
            event.face_confidence = face.confidence
        if gaze is not None:
            event.gaze_x, event.gaze_y, event.gaze_confidence = gaze.x, gaze.y, gaze.confidence

        session.events.append(event)
        self._update_stats()
        return event

    def correct_last_intention(self, zone_id: int) -> Optional[LearningEvent]:
        """Relabel the most recent event of the session."""
        if self.current is None or not self.current.events:
            return None
        event = self.current.events[-1]
        event.intended_zone = int(zone_id)
        event.is_correct = event.detected_zone == event.intended_zone
        event.corrected = True
        self.logger.info("Corrected intention: detected=%d intended=%d", event.detected_zone, zone_id)
        self._update_stats()
        return event

# ---------- Statistics ----------

    def _update_stats(self) -> None:
        session = self.current
        if session is None:
            return
        labeled = [e for e in session.events if e.is_correct is not None]
        stats = LearningStats()
        if labeled:
            correct = sum(1 for e in labeled if e.is_correct)
            stats.accuracy_rate = round(correct / len(labeled) * 100)
            # ties go to the zone labeled first
            stats.most_frequent_zone = Counter(e.intended_zone for e in labeled).most_common(1)[0][0]

            cfg = self.cfg
            n = len(labeled)
            volume = 25.0 if n > cfg.volume_target else n / max(1, cfg.volume_target) * 25.0
            if stats.accuracy_rate > cfg.accuracy_target or cfg.accuracy_target <= 0:
                accuracy = 25.0
            else:
                accuracy = stats.accuracy_rate / cfg.accuracy_target * 25.0
            face = 25.0 if any((e.face_confidence or 0.0) > cfg.face_confidence for e in labeled) else 0.0
            gaze = 25.0 if any((e.gaze_confidence or 0.0) > cfg.gaze_confidence for e in labeled) else 0.0
            stats.data_quality = round(volume + accuracy + face + gaze)
        session.stats = stats

    def all_sessions(self) -> List[LearningSession]:
        """Archived sessions followed by the running one."""
        sessions = list(self.sessions)
        if self.current is not None:
            sessions.append(self.current)
        return sessions

    def summary(self) -> Dict[str, Any]:
        sessions = self.all_sessions()
        events = [e for s in sessions for e in s.events]
        labeled = [e for e in events if e.is_correct is not None]
        correct = sum(1 for e in labeled if e.is_correct)
        return {
            "total_sessions": len(sessions),
            "total_events": len(events),
            "total_labeled": len(labeled),
            "overall_accuracy": round(correct / len(labeled) * 100) if labeled else 0,
            "average_events_per_session": round(len(events) / len(sessions)) if sessions else 0,
            "data_quality": self.stats.data_quality,
        }

# ---------- Export ----------

    def export_json(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "exported": datetime.now().isoformat(timespec="seconds"),
            "sessions": [asdict(s) for s in self.all_sessions()],
        }
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        self.logger.info("Learning data exported to %s", path)
        return path

    def export_csv(self, path: Union[str, Path]) -> Path:
        """One row per event; unknown values are written as empty cells."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_COLUMNS)
            for session in self.all_sessions():
                for e in session.events:
                    row = asdict(e)
                    row["session_id"] = session.session_id
                    writer.writerow(["" if row[c] is None else row[c] for c in CSV_COLUMNS])
        self.logger.info("Learning data exported to %s", path)
        return path
