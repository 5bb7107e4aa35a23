"""Decay sweeper — time-driven expiry and decay, independent of chunk arrival."""

from __future__ import annotations

from collections.abc import Iterable

from termsense.config import ActivityConfig, DecayConfig
from termsense.engine.detector import AssistantDetector
from termsense.logging_config import get_logger
from termsense.models import ActivityType, SessionRecord

logger = get_logger(__name__)


class DecaySweeper:
    """
    Periodic pass over all sessions.

    Clears the unseen-activity flag and the output type once they expire,
    decays intensity and burst count after a period of silence, and applies
    the assistant silence timeouts for sessions that stopped sending chunks.
    """

    def __init__(
        self,
        detector: AssistantDetector | None = None,
        activity: ActivityConfig | None = None,
        decay: DecayConfig | None = None,
    ):
        self.detector = detector
        self.activity = activity or ActivityConfig()
        self.decay = decay or DecayConfig()

    def sweep(self, records: Iterable[SessionRecord], now: float) -> list[str]:
        """Sweep every record. Returns the ids of records that changed."""
        changed = []
        for record in records:
            try:
                if self.sweep_one(record, now):
                    changed.append(record.session_id)
            except Exception:
                logger.exception(f"Decay sweep failed for session {record.session_id}")
        return changed

    def sweep_one(self, record: SessionRecord, now: float) -> bool:
        dirty = False

        if record.has_activity and record.activity_time is not None:
            if now - record.activity_time > self.activity.activity_timeout_seconds:
                record.has_activity = False
                dirty = True

        if record.last_output_type is not None and record.last_output_type_time is not None:
            if now - record.last_output_type_time > self.activity.output_type_expiry_seconds:
                record.last_output_type = None
                record.last_output_type_time = None
                dirty = True

        if self._decay_intensity(record, now):
            dirty = True

        if self.detector is not None and record.ai_assistant_id is not None:
            assistant = self.detector.registry.get(record.ai_assistant_id)
            if assistant is not None:
                transition = self.detector.timeout_transition(assistant, record, now)
                if transition is not None and self.detector.apply(
                    assistant, record, transition, now
                ):
                    dirty = True

        return dirty

    def _decay_intensity(self, record: SessionRecord, now: float) -> bool:
        cfg = self.decay
        if record.last_output_time is None:
            silence = float("inf")
        else:
            silence = now - record.last_output_time
        if silence <= cfg.silence_seconds:
            return False

        before = (record.activity_intensity, record.output_burst_count, record.activity_type)

        record.activity_intensity = int(record.activity_intensity * cfg.intensity_factor)
        record.output_burst_count = int(record.output_burst_count * cfg.burst_factor)
        if record.activity_intensity < cfg.snap_threshold:
            record.activity_intensity = 0
            record.activity_type = ActivityType.IDLE

        return before != (record.activity_intensity, record.output_burst_count, record.activity_type)
