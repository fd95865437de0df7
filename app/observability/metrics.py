import json
import os
import threading
from typing import Dict, List, Optional

from app.config import METRICS_FILE, METRICS_LATENCY_WINDOW, STORAGE_DIR


_lock = threading.Lock()


class MetricsTracker:

    def __init__(
        self,
        storage_dir: str = STORAGE_DIR,
        latency_window: int = METRICS_LATENCY_WINDOW,
    ):

        self._path = os.path.join(storage_dir, METRICS_FILE)
        self._latency_window = latency_window

        os.makedirs(storage_dir, exist_ok=True)

        self._metrics = self._empty()

        self._load()


    @staticmethod
    def _empty() -> Dict:

        return {

            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,

            "total_latency": 0.0,
            "avg_latency": 0.0,

            # most recent latencies, oldest dropped first
            "latencies": [],

            # pipeline stage -> failure count
            "failures_by_stage": {},

        }


    def _load(self):

        if not os.path.exists(self._path):
            return

        with open(self._path, "r") as f:
            data = json.load(f)

        # files written before a field existed
        for key, value in self._empty().items():
            data.setdefault(key, value)

        data["latencies"] = data["latencies"][-self._latency_window:]

        self._metrics = data


    def _save(self):

        with open(self._path, "w") as f:

            json.dump(self._metrics, f, indent=2)


    def record_success(self, latency: float):

        with _lock:

            self._metrics["total_requests"] += 1

            self._metrics["successful_requests"] += 1

            self._metrics["total_latency"] += latency

            self._metrics["avg_latency"] = (
                self._metrics["total_latency"]
                / self._metrics["total_requests"]
            )

            latencies = self._metrics["latencies"]
            latencies.append(latency)
            del latencies[:-self._latency_window]

            self._save()


    def record_failure(self, stage: Optional[str] = None):

        with _lock:

            self._metrics["total_requests"] += 1

            self._metrics["failed_requests"] += 1

            if stage:
                by_stage = self._metrics["failures_by_stage"]
                by_stage[stage] = by_stage.get(stage, 0) + 1

            self._save()


    def record_stage_failure(self, stage: str):
        """A handled failure inside an otherwise successful request."""

        with _lock:

            by_stage = self._metrics["failures_by_stage"]
            by_stage[stage] = by_stage.get(stage, 0) + 1

            self._save()


    def get_metrics(self) -> Dict:

        with _lock:

            metrics = dict(self._metrics)

        metrics["p95_latency"] = self.get_latency_percentile(95)

        return metrics


    def get_latency_percentile(self, percentile: float) -> float:

        latencies: List[float] = self._metrics.get("latencies", [])

        if not latencies:
            return 0.0

        sorted_latencies = sorted(latencies)

        index = int(len(sorted_latencies) * percentile / 100)

        index = min(index, len(sorted_latencies) - 1)

        return sorted_latencies[index]


metrics_tracker = MetricsTracker()
