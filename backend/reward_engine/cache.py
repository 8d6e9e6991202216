"""In-process probability report cache."""
import logging
import threading

from reward_engine.logic.models import ProbabilityReport, ReportMethod


logger = logging.getLogger(__name__)

CacheKey = tuple[int, int, ReportMethod]


class ProbabilityCache:
    """
    Reports keyed by (weight config id, scheme id, method).

    Entries never expire on a timer; they are dropped only by invalidate()
    when a configuration changes. Safe for concurrent readers and writers;
    put() is last-writer-wins.
    """

    def __init__(self):
        self._entries: dict[CacheKey, ProbabilityReport] = {}
        self._lock = threading.RLock()

    def get(
        self, weight_config_id: int, scheme_id: int, method: ReportMethod
    ) -> ProbabilityReport | None:
        with self._lock:
            return self._entries.get((weight_config_id, scheme_id, ReportMethod(method)))

    def put(self, report: ProbabilityReport) -> None:
        with self._lock:
            self._entries[report.cache_key] = report

    def invalidate(
        self, weight_config_id: int | None = None, scheme_id: int | None = None
    ) -> list[CacheKey]:
        """
        Drop every report keyed by the given weight config and/or scheme.

        With both ids, only reports matching both are dropped. Returns the
        removed keys.
        """
        if weight_config_id is None and scheme_id is None:
            raise ValueError("invalidate() needs weight_config_id or scheme_id")

        with self._lock:
            removed = [
                key
                for key in self._entries
                if (weight_config_id is None or key[0] == weight_config_id)
                and (scheme_id is None or key[1] == scheme_id)
            ]
            for key in removed:
                del self._entries[key]

        if removed:
            logger.info(
                "Invalidated %d cached report(s) for weights=%s scheme=%s",
                len(removed),
                weight_config_id,
                scheme_id,
            )
        return removed

    def keys(self) -> list[CacheKey]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
