"""
Latency and outcome metrics for chat sessions.
"""

import json
import time
from dataclasses import dataclass, asdict, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Any
import structlog

logger = structlog.get_logger()


@dataclass
class LatencyMetrics:
    """Latency statistics for one kind of gateway call."""
    min: float
    max: float
    avg: float
    p50: float
    p95: float
    p99: float
    samples: int


@dataclass
class SessionMetrics:
    """Metrics for a single chat session."""
    session_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    submissions: int = 0
    corrections: int = 0
    voice_inputs: int = 0
    generation_latencies: List[float] = field(default_factory=list)
    transcription_latencies: List[float] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


class MetricsCollector:
    """
    Collects gateway latencies and request outcomes for the current session
    and aggregates saved sessions into reports.
    """

    def __init__(self, storage_path: Optional[Path] = None):
        self.storage_path = Path(storage_path) if storage_path else Path.home() / ".sohbet" / "metrics"
        self.storage_path.mkdir(parents=True, exist_ok=True)

        self.current_session: Optional[SessionMetrics] = None
        self.session_start_time: Optional[float] = None

    def start_session(self, session_id: str) -> None:
        """Start a new metrics collection session."""
        logger.debug("Starting metrics collection", session_id=session_id)
        self.current_session = SessionMetrics(session_id=session_id, start_time=datetime.now())
        self.session_start_time = time.time()

    def end_session(self) -> None:
        """End the current metrics collection session."""
        if not self.current_session:
            logger.warning("No active session to end")
            return

        self.current_session.end_time = datetime.now()
        logger.debug("Ending metrics collection",
                     session_id=self.current_session.session_id,
                     submissions=self.current_session.submissions)

    def record_submission(self) -> None:
        if self.current_session:
            self.current_session.submissions += 1

    def record_correction(self) -> None:
        if self.current_session:
            self.current_session.corrections += 1

    def record_voice_input(self) -> None:
        if self.current_session:
            self.current_session.voice_inputs += 1

    def record_generation_latency(self, latency_ms: float) -> None:
        if self.current_session:
            self.current_session.generation_latencies.append(latency_ms)

    def record_transcription_latency(self, latency_ms: float) -> None:
        if self.current_session:
            self.current_session.transcription_latencies.append(latency_ms)

    def record_error(self, component: str, error: str, metadata: Optional[Dict] = None) -> None:
        """Record an error occurrence."""
        if self.current_session:
            self.current_session.errors.append({
                "timestamp": datetime.now().isoformat(),
                "component": component,
                "error": error,
                "metadata": metadata or {},
            })

    def _calculate_latency_stats(self, latencies: List[float]) -> LatencyMetrics:
        """Calculate statistical metrics for a list of latencies."""
        if not latencies:
            return LatencyMetrics(0, 0, 0, 0, 0, 0, 0)

        sorted_latencies = sorted(latencies)
        count = len(sorted_latencies)

        def percentile(p: float) -> float:
            return sorted_latencies[min(int(p * count), count - 1)]

        return LatencyMetrics(
            min=sorted_latencies[0],
            max=sorted_latencies[-1],
            avg=sum(sorted_latencies) / count,
            p50=percentile(0.5),
            p95=percentile(0.95),
            p99=percentile(0.99),
            samples=count,
        )

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of current session metrics."""
        if not self.current_session:
            return {"error": "No active session"}

        session = self.current_session
        # Voice inputs are submissions that started as speech
        requests = session.submissions + session.corrections
        duration = time.time() - self.session_start_time if self.session_start_time else 0

        return {
            "session_id": session.session_id,
            "session_duration_seconds": duration,
            "submissions": session.submissions,
            "corrections": session.corrections,
            "voice_inputs": session.voice_inputs,
            "total_requests": requests,
            "generation_latency_ms": asdict(self._calculate_latency_stats(session.generation_latencies)),
            "transcription_latency_ms": asdict(self._calculate_latency_stats(session.transcription_latencies)),
            "total_errors": len(session.errors),
            "error_rate": len(session.errors) / max(1, requests),
        }

    def save_metrics(self) -> Optional[Path]:
        """Save current session metrics to storage."""
        if not self.current_session:
            logger.warning("No session to save")
            return None

        filename = f"{self.current_session.session_id}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        filepath = self.storage_path / filename

        session_dict = asdict(self.current_session)
        session_dict["start_time"] = self.current_session.start_time.isoformat()
        end_time = self.current_session.end_time
        session_dict["end_time"] = end_time.isoformat() if end_time else None

        try:
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(session_dict, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error("Failed to save metrics", error=str(e))
            return None

        logger.info("Metrics saved", filepath=str(filepath))
        return filepath

    def _load_file(self, filepath: Path) -> SessionMetrics:
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
        data["start_time"] = datetime.fromisoformat(data["start_time"])
        if data["end_time"]:
            data["end_time"] = datetime.fromisoformat(data["end_time"])
        return SessionMetrics(**data)

    def generate_report(self, days: int = 7) -> Dict[str, Any]:
        """Aggregate saved sessions from the last ``days`` days."""
        cutoff_date = datetime.now() - timedelta(days=days)

        sessions = []
        for filepath in self.storage_path.glob("*.json"):
            try:
                if datetime.fromtimestamp(filepath.stat().st_mtime) < cutoff_date:
                    continue
                sessions.append(self._load_file(filepath))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning("Failed to load session file",
                               filepath=str(filepath), error=str(e))

        if not sessions:
            return {
                "period_days": days,
                "total_sessions": 0,
                "total_requests": 0,
                "message": "No data available for the specified period",
            }

        generation_latencies: List[float] = []
        transcription_latencies: List[float] = []
        submissions = corrections = voice_inputs = errors = 0

        for session in sessions:
            generation_latencies.extend(session.generation_latencies)
            transcription_latencies.extend(session.transcription_latencies)
            submissions += session.submissions
            corrections += session.corrections
            voice_inputs += session.voice_inputs
            errors += len(session.errors)

        total_requests = submissions + corrections
        return {
            "period_days": days,
            "total_sessions": len(sessions),
            "total_requests": total_requests,
            "submissions": submissions,
            "corrections": corrections,
            "voice_inputs": voice_inputs,
            "total_errors": errors,
            "error_rate": errors / max(1, total_requests),
            "generation_latency_ms": asdict(self._calculate_latency_stats(generation_latencies)),
            "transcription_latency_ms": asdict(self._calculate_latency_stats(transcription_latencies)),
        }
