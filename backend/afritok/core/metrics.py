import re
from collections import defaultdict
from threading import Lock

LabelKey = tuple[tuple[str, str], ...]


class CounterRegistry:
    """Process-local labelled counters, rendered in Prometheus text format."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, dict[LabelKey, int]] = defaultdict(dict)

    @staticmethod
    def _label_key(labels: dict[str, str]) -> LabelKey:
        return tuple(sorted((str(k), str(v)) for k, v in labels.items()))

    def inc(self, name: str, value: int = 1, **labels: str) -> None:
        key = self._label_key(labels)
        with self._lock:
            series = self._counters[name]
            series[key] = series.get(key, 0) + int(value)

    def value(self, name: str, **labels: str) -> int:
        with self._lock:
            return self._counters.get(name, {}).get(self._label_key(labels), 0)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()

    def render_prometheus(self) -> str:
        lines: list[str] = []
        with self._lock:
            for raw_name in sorted(self._counters):
                name = _metric_name(raw_name)
                lines.append(f"# TYPE {name} counter")
                for label_key, value in self._counters[raw_name].items():
                    if label_key:
                        labels = ",".join(f'{k}="{_escape(v)}"' for k, v in label_key)
                        lines.append(f"{name}{{{labels}}} {value}")
                    else:
                        lines.append(f"{name} {value}")
        return "\n".join(lines) + "\n"


def _metric_name(name: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9_:]", "_", name)
    if not re.match(r"^[a-zA-Z_:]", clean):
        clean = f"metric_{clean}"
    return clean


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


registry = CounterRegistry()


def increment_counter(name: str, value: int = 1, **labels: str) -> None:
    registry.inc(name, value, **labels)


def prometheus_text() -> str:
    return registry.render_prometheus()
