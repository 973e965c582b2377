"""
In-process workflow metrics, served by GET /metrics.

  counters  — provider attempts and outcomes per generation kind, exhausted
              chains, degraded remote writes, refetch failures, fallbacks
  latency   — last provider call durations per kind/provider
  errors    — last provider and persistence errors

Nothing survives a restart.
"""

import time
import threading
from collections import Counter, defaultdict, deque

MAX_SAMPLES = 100
MAX_ERRORS = 50

_lock = threading.Lock()
_counters: Counter = Counter()
_gauges: dict[str, float] = {}
_latency: defaultdict[str, deque] = defaultdict(lambda: deque(maxlen=MAX_SAMPLES))
_errors: deque = deque(maxlen=MAX_ERRORS)


def inc_counter(name: str, amount: int = 1):
    with _lock:
        _counters[name] += amount


def set_gauge(name: str, value: float):
    with _lock:
        _gauges[name] = value


def get_counter(name: str) -> int:
    with _lock:
        return _counters[name]


def record_provider_attempt(kind: str, provider: str, ok: bool, duration_ms: float):
    """One provider call inside a fallback chain traversal."""
    key = f"providers.{kind}.{provider}"
    with _lock:
        _counters[f"{key}.attempts"] += 1
        _counters[f"{key}.{'success' if ok else 'failure'}"] += 1
        _latency[key].append(duration_ms)


def record_error(source: str, error_type: str, message: str, story_id: str = ""):
    with _lock:
        _errors.append({
            "timestamp": time.time(),
            "source": source,
            "error_type": error_type,
            "message": message[:300],
            "story_id": story_id,
        })


def reset():
    with _lock:
        _counters.clear()
        _gauges.clear()
        _latency.clear()
        _errors.clear()


def _summarize(samples) -> dict:
    ordered = sorted(samples)
    n = len(ordered)
    return {
        "p50": ordered[n // 2],
        "p95": ordered[min(n - 1, int(n * 0.95))],
        "avg": sum(ordered) / n,
        "count": n,
    }


def get_snapshot() -> dict:
    now = time.time()
    with _lock:
        return {
            "timestamp": now,
            "uptime_seconds": now - _gauges.get("start_time", now),
            "counters": dict(_counters),
            "gauges": dict(_gauges),
            "latency": {key: _summarize(s) for key, s in _latency.items() if s},
            "recent_errors": list(_errors)[-10:],
            "error_patterns": dict(Counter(f"{e['source']}:{e['error_type']}" for e in _errors)),
        }
