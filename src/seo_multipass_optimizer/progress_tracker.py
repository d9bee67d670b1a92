"""
Progress tracking for optimization sessions.

Records per-pass metrics, keeps a bounded history of content versions for
rollback, aggregates strategy effectiveness incrementally and assembles
the comprehensive session report.
"""

import hashlib
import json
import logging
import math
import uuid
from collections import Counter, deque
from datetime import datetime
from typing import Any, Iterable, Optional

from .config import TrackerConfig
from .exceptions import SessionNotFoundError
from .models import Content, HistoryEntry, PassRecord, Session, StrategyMetric

logger = logging.getLogger(__name__)


def content_hash(content: Content) -> str:
    """md5 over the editable fields, used to verify history entries."""
    payload = json.dumps(
        {"title": content.title, "content": content.content, "meta_description": content.meta_description},
        sort_keys=True,
        ensure_ascii=False,
    )
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def resolved_issues(before: Iterable[str], after: Iterable[str]) -> list[str]:
    """Issue types present before a pass and gone after it (multiset difference)."""
    return sorted((Counter(before) - Counter(after)).elements())


class ProgressTracker:
    """
    Tracks optimization sessions.

    One tracker may hold several sessions, but sessions never share state.
    Strategy metrics are kept per session and also aggregated tracker-wide.
    """

    def __init__(self, config: Optional[TrackerConfig] = None):
        self.config = config or TrackerConfig()
        self._sessions: dict[str, Session] = {}
        self.strategy_stats: dict[str, StrategyMetric] = {}

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def start_session(
        self,
        initial_content: Optional[Content] = None,
        initial_score: float = 0.0,
        target_score: Optional[float] = None,
    ) -> str:
        """
        Open a new session.

        When initial content is given it is stored as history entry 0.

        Returns:
            The new session id.
        """
        session_id = f"session_{uuid.uuid4().hex[:12]}"
        session = Session(
            session_id=session_id,
            started_at=datetime.now(),
            initial_content=initial_content.copy() if initial_content else None,
            initial_score=initial_score,
            target_score=self.config.target_score if target_score is None else target_score,
            content_history=deque(maxlen=self.config.max_history),
        )
        if initial_content is not None:
            self._add_history(session, 0, initial_content, initial_score)
        self._sessions[session_id] = session
        logger.info("Started session %s (initial score %.2f)", session_id, initial_score)
        return session_id

    def get_session(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(f"Unknown session: {session_id}") from None

    def record_pass(
        self,
        session_id: str,
        content: Content,
        before_score: float,
        after_score: float,
        issues_before: Iterable[str] = (),
        issues_after: Iterable[str] = (),
        corrections_applied: Iterable[str] = (),
        strategy: str = "multi_pass_correction",
        duration_ms: float = 0.0,
        pass_number: Optional[int] = None,
    ) -> PassRecord:
        """
        Append a pass record and update history and strategy metrics.

        Args:
            session_id: Session to record into.
            content: Content after the pass.
            before_score / after_score: Compliance scores around the pass.
            issues_before / issues_after: Issue types around the pass.
            corrections_applied: Issue types whose corrections were applied.
            strategy: Name of the correction strategy used.
            duration_ms: Wall time of the pass.
            pass_number: Defaults to the next sequential pass number.

        Returns:
            The recorded PassRecord.
        """
        session = self.get_session(session_id)
        if not session.is_active:
            raise ValueError(f"Session {session_id} has already ended")

        issues_before = list(issues_before)
        issues_after = list(issues_after)
        record = PassRecord(
            pass_number=pass_number if pass_number is not None else len(session.passes) + 1,
            before_score=round(max(0.0, min(100.0, before_score)), 2),
            after_score=round(max(0.0, min(100.0, after_score)), 2),
            issues_before=len(issues_before),
            issues_after=len(issues_after),
            issues_resolved=resolved_issues(issues_before, issues_after),
            corrections_applied=list(corrections_applied),
            strategy_used=strategy,
            duration_ms=round(duration_ms, 2),
        )
        session.passes.append(record)
        self._add_history(session, record.pass_number, content, record.after_score)
        self.track_strategy_effectiveness(
            strategy,
            record.score_improvement,
            record.issues_resolved_count,
            session_id=session_id,
        )
        logger.debug(
            "Pass %d recorded: %.2f -> %.2f (%d issues resolved)",
            record.pass_number, record.before_score, record.after_score, record.issues_resolved_count,
        )
        return record

    def end_session(
        self,
        session_id: str,
        termination_reason: Optional[str] = None,
        final_score: Optional[float] = None,
    ) -> dict[str, Any]:
        """
        Close a session and return its summary. Ending twice is an error.

        ``final_score`` records the score of the content actually kept when
        it differs from the last pass, e.g. when an earlier pass scored best.
        """
        session = self.get_session(session_id)
        if not session.is_active:
            raise ValueError(f"Session {session_id} has already ended")
        if final_score is not None:
            session.selected_score = round(max(0.0, min(100.0, final_score)), 2)
        session.ended_at = datetime.now()
        session.status = "completed"
        session.termination_reason = termination_reason
        logger.info("Ended session %s: %s", session_id, termination_reason or "no reason given")
        return self._summary(session)

    # -------------------------------------------------------------------------
    # Strategies and rollback
    # -------------------------------------------------------------------------

    def track_strategy_effectiveness(
        self,
        strategy_name: str,
        improvement: float,
        issues_resolved: int,
        success: Optional[bool] = None,
        session_id: Optional[str] = None,
    ) -> StrategyMetric:
        """
        Fold one use of a strategy into the running metrics.

        A use counts as a success when the score improved or at least one
        issue was resolved, unless ``success`` is given explicitly.
        """
        if success is None:
            success = improvement > 0 or issues_resolved > 0

        tables = [self.strategy_stats]
        if session_id is not None:
            tables.append(self.get_session(session_id).strategy_stats)

        for table in tables:
            metric = table.setdefault(strategy_name, StrategyMetric(strategy_name))
            metric.times_used += 1
            metric.total_score_improvement += improvement
            metric.total_issues_resolved += issues_resolved
            metric.success_count += int(success)
        return self.strategy_stats[strategy_name]

    def rollback_to_pass(self, session_id: str, pass_number: int) -> Optional[Content]:
        """Content stored for a pass, or None if evicted or never recorded."""
        session = self.get_session(session_id)
        for entry in session.content_history:
            if entry.pass_number == pass_number:
                logger.info("Rolling session %s back to pass %d", session_id, pass_number)
                return entry.content.copy()
        logger.debug("No history entry for pass %d in session %s", pass_number, session_id)
        return None

    def get_content_history(self, session_id: str) -> list[HistoryEntry]:
        return list(self.get_session(session_id).content_history)

    def verify_history_integrity(self, session_id: str) -> bool:
        """Recompute every history hash and compare with the stored one."""
        return all(
            content_hash(entry.content) == entry.content_hash
            for entry in self.get_session(session_id).content_history
        )

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def generate_comprehensive_report(self, session_id: str) -> dict[str, Any]:
        """
        Assemble the full session report.

        Returns:
            Nested mapping with ``session``, ``summary``, ``pass_records``,
            ``strategy_effectiveness``, ``progress_analysis``,
            ``content_history``, ``detailed_metrics`` and ``before_after``.
        """
        session = self.get_session(session_id)
        strategies = sorted(
            session.strategy_stats.values(),
            key=lambda m: m.average_improvement,
            reverse=True,
        )
        return {
            "session": {
                "session_id": session.session_id,
                "started_at": session.started_at.isoformat(),
                "ended_at": session.ended_at.isoformat() if session.ended_at else None,
                "status": session.status,
                "termination_reason": session.termination_reason,
            },
            "summary": self._summary(session),
            "pass_records": [record.to_dict() for record in session.passes],
            "strategy_effectiveness": [metric.to_dict() for metric in strategies],
            "progress_analysis": self._analyze_progress(session),
            "content_history": {
                "total_entries": len(session.content_history),
                "max_entries": session.content_history.maxlen,
                "entries": [
                    {
                        "pass_number": entry.pass_number,
                        "score": entry.score,
                        "content_hash": entry.content_hash,
                        "timestamp": entry.timestamp.isoformat(),
                    }
                    for entry in session.content_history
                ],
            },
            "detailed_metrics": self._detailed_metrics(session),
            "before_after": self._before_after(session),
        }

    def _summary(self, session: Session) -> dict[str, Any]:
        passes = len(session.passes)
        total_improvement = round(session.final_score - session.initial_score, 2)
        return {
            "session_id": session.session_id,
            "duration_seconds": session.duration_seconds,
            "total_passes": passes,
            "initial_score": session.initial_score,
            "final_score": session.final_score,
            "last_pass_score": session.passes[-1].after_score if passes else session.initial_score,
            "net_score_improvement": total_improvement,
            "target_score": session.target_score,
            "target_reached": session.final_score >= session.target_score,
            "termination_reason": session.termination_reason,
            "total_corrections": sum(len(p.corrections_applied) for p in session.passes),
            "total_issues_resolved": sum(p.issues_resolved_count for p in session.passes),
            "improvement_rate": round(total_improvement / passes, 2) if passes else 0.0,
        }

    def _analyze_progress(self, session: Session) -> dict[str, Any]:
        if not session.passes:
            return {"status": "no_data"}

        improvements = [p.score_improvement for p in session.passes]
        net = session.final_score - session.passes[0].before_score
        if net > 0:
            trend = "improving"
        elif net < 0:
            trend = "declining"
        else:
            trend = "stable"

        best = max(session.passes, key=lambda p: p.score_improvement)
        worst = min(session.passes, key=lambda p: p.score_improvement)
        return {
            "status": "available",
            "trend": trend,
            "score_progression": [p.after_score for p in session.passes],
            "improvement_progression": improvements,
            "average_improvement": round(sum(improvements) / len(improvements), 2),
            "consistent_improvement": min(improvements) >= 0,
            "best_pass": {"pass_number": best.pass_number, "score_improvement": best.score_improvement},
            "worst_pass": {"pass_number": worst.pass_number, "score_improvement": worst.score_improvement},
            "projected_passes_to_target": self._project_passes(session),
        }

    @staticmethod
    def _project_passes(session: Session) -> Optional[int]:
        """Linear projection of passes still needed; None if never reachable."""
        remaining = session.target_score - session.final_score
        if remaining <= 0:
            return 0
        rate = (session.final_score - session.passes[0].before_score) / len(session.passes)
        if rate <= 0:
            return None
        return math.ceil(remaining / rate)

    @staticmethod
    def _detailed_metrics(session: Session) -> dict[str, Any]:
        passes = len(session.passes)
        total_duration = sum(p.duration_ms for p in session.passes)
        total_corrections = sum(len(p.corrections_applied) for p in session.passes)
        total_resolved = sum(p.issues_resolved_count for p in session.passes)
        return {
            "total_passes": passes,
            "total_duration_ms": round(total_duration, 2),
            "average_pass_duration_ms": round(total_duration / passes, 2) if passes else 0.0,
            "total_corrections": total_corrections,
            "average_corrections_per_pass": round(total_corrections / passes, 2) if passes else 0.0,
            "total_issues_resolved": total_resolved,
            "average_issues_resolved_per_pass": round(total_resolved / passes, 2) if passes else 0.0,
        }

    @staticmethod
    def _before_after(session: Session) -> dict[str, Any]:
        if not session.passes:
            return {"status": "no_data"}
        first, last = session.passes[0], session.passes[-1]
        improvement = round(last.after_score - first.before_score, 2)
        return {
            "status": "available",
            "before": {"pass_number": first.pass_number, "score": first.before_score, "issues": first.issues_before},
            "after": {"pass_number": last.pass_number, "score": last.after_score, "issues": last.issues_after},
            "improvement": improvement,
            "improvement_percentage": (
                round(improvement / first.before_score * 100, 2) if first.before_score > 0 else 0.0
            ),
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _add_history(session: Session, pass_number: int, content: Content, score: float) -> None:
        stored = content.copy()
        session.content_history.append(HistoryEntry(
            pass_number=pass_number,
            content=stored,
            content_hash=content_hash(stored),
            score=score,
            timestamp=datetime.now(),
        ))
