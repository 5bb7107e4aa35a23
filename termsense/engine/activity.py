"""Activity classification — burst timing, intensity and output type."""

from __future__ import annotations

from collections.abc import Sequence

from termsense.config import ActivityConfig
from termsense.engine.patterns import OUTPUT_TYPE_PATTERNS, OutputTypePattern
from termsense.models import ActivityType, OutputType, SessionRecord


def classify_output_type(
    chunk: str,
    categories: Sequence[OutputTypePattern] = OUTPUT_TYPE_PATTERNS,
) -> OutputType | None:
    """Return the first output category whose patterns match ``chunk``."""
    for category in categories:
        if category.matches(chunk):
            return category.output_type
    return None


class ActivityClassifier:
    """
    Derives activity type and a bounded intensity from inter-chunk timing.

    Chunks longer than ``keystroke_max_len`` count as program output:
    - arriving within ``burst_threshold_seconds`` of the previous output they
      grow the burst counter and mark the session as running a command;
    - within ``output_window_seconds`` they ease intensity toward a plateau;
    - after a longer pause they start a fresh burst at a moderate baseline.
    Shorter chunks are keystroke echo and only decay intensity.

    The output type (error/warning/success/progress) is classified from
    content independently and does not influence the activity type.
    """

    def __init__(
        self,
        config: ActivityConfig | None = None,
        categories: Sequence[OutputTypePattern] = OUTPUT_TYPE_PATTERNS,
    ):
        self.config = config or ActivityConfig()
        self.categories = list(categories)

    def classify(
        self,
        record: SessionRecord,
        chunk: str,
        now: float,
        foreground: bool = True,
    ) -> bool:
        """Update ``record`` for one chunk. Returns True if anything changed."""
        cfg = self.config
        length = len(chunk)
        if length == 0:
            return False

        if length > cfg.keystroke_max_len:
            self._classify_output(record, now)

            output_type = classify_output_type(chunk, self.categories)
            if output_type is not None:
                record.last_output_type = output_type
                record.last_output_type_time = now

            if not foreground:
                record.has_activity = True
                record.activity_time = now
        else:
            record.activity_type = ActivityType.TYPING
            record.activity_intensity = max(
                cfg.typing_floor, int(record.activity_intensity * cfg.typing_decay)
            )
        return True

    def _classify_output(self, record: SessionRecord, now: float) -> None:
        cfg = self.config
        if record.last_output_time is None:
            elapsed = float("inf")
        else:
            elapsed = now - record.last_output_time

        if elapsed < cfg.burst_threshold_seconds:
            record.output_burst_count = min(record.output_burst_count + 1, cfg.burst_cap)
            record.activity_type = ActivityType.COMMAND
            record.activity_intensity = min(
                record.output_burst_count * cfg.burst_intensity_step, 100
            )
        elif elapsed < cfg.output_window_seconds:
            record.output_burst_count = max(record.output_burst_count - 1, 0)
            record.activity_type = ActivityType.OUTPUT
            record.activity_intensity = _toward(
                record.activity_intensity, cfg.plateau_intensity, cfg.plateau_step
            )
        else:
            record.output_burst_count = 1
            record.activity_type = ActivityType.OUTPUT
            record.activity_intensity = cfg.fresh_intensity

        record.last_output_time = now


def _toward(value: int, target: int, step: int) -> int:
    """Move ``value`` by at most ``step`` toward ``target``."""
    if value < target:
        return min(value + step, target)
    return max(value - step, target)
