from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from prompt_toolkit.layout.controls import FormattedTextControl


logger = logging.getLogger(__name__)

Fragments = List[Tuple[str, str]]


@dataclass
class ChartConfig:
    kind: str                      # "bar" | "stacked" | "line" | "radar"
    title: str
    labels: List[str] = field(default_factory=list)
    series: Dict[str, List[float]] = field(default_factory=dict)
    options: Dict[str, object] = field(default_factory=dict)


def _ascii_bar(value: float, maximum: float, width: int = 20, fill: str = "█") -> str:
    if maximum <= 0 or value <= 0:
        return ""
    n = int(round(width * min(value, maximum) / float(maximum)))
    return fill * max(1, n)


class TextChart:
    """A chart widget drawn as styled text inside a FormattedTextControl."""

    def __init__(self, chart_id: str, config: ChartConfig, style_prefix: str = "chart"):
        self.chart_id = chart_id
        self.config = config
        self.style_prefix = style_prefix
        self.alive = True
        self.updates = 0
        self.control = FormattedTextControl(text=self.fragments)

    def update(self, config: ChartConfig) -> None:
        if not self.alive:
            raise RuntimeError(f"chart {self.chart_id!r} has been destroyed")
        self.config = config
        self.updates += 1

    def destroy(self) -> None:
        self.alive = False
        self.config = ChartConfig(kind=self.config.kind, title=self.config.title)

    def _style(self, name: str) -> str:
        return f"class:{self.style_prefix}.{name}"

    def fragments(self) -> Fragments:
        cfg = self.config
        frags: Fragments = [(self._style("title"), cfg.title), ("", "\n")]
        if not cfg.labels or not cfg.series:
            frags.append((self._style("empty"), "  (no data)\n"))
            return frags
        width = int(cfg.options.get("width", 16) or 16)
        label_w = max(len(str(lbl)) for lbl in cfg.labels)
        if cfg.kind == "stacked":
            return frags + self._stacked(label_w, width)
        maximum = float(cfg.options.get("max") or 0) or max(
            (max(vals) if vals else 0) for vals in cfg.series.values()
        )
        for name, values in cfg.series.items():
            if len(cfg.series) > 1:
                frags.append((self._style("series"), f" {name}\n"))
            for label, value in zip(cfg.labels, values):
                bar = _ascii_bar(value, maximum, width, "▪" if cfg.kind == "line" else "█")
                suffix = "%" if cfg.kind == "radar" else ""
                frags.append(("", f"  {str(label).ljust(label_w)} "))
                frags.append((self._style(f"bar.{name}".lower().replace(" ", "_")), bar.ljust(width)))
                frags.append(("", f" {value:g}{suffix}\n"))
        return frags

    def _stacked(self, label_w: int, width: int) -> Fragments:
        cfg = self.config
        names = list(cfg.series.keys())
        totals = [sum(cfg.series[n][i] for n in names) for i in range(len(cfg.labels))]
        maximum = max(totals) if totals else 0
        frags: Fragments = []
        for i, label in enumerate(cfg.labels):
            frags.append(("", f"  {str(label).ljust(label_w)} "))
            used = 0
            for n in names:
                seg = _ascii_bar(cfg.series[n][i], maximum, width)
                used += len(seg)
                frags.append((self._style(f"bar.{n}".lower()), seg))
            frags.append(("", " " * max(0, width - used) + f" {totals[i]:g}\n"))
        legend = "  " + "  ".join(names)
        frags.append((self._style("legend"), legend + "\n"))
        return frags


ChartFactory = Callable[[str, ChartConfig], TextChart]


class ChartRegistry:
    """Live chart widgets keyed by a logical id.

    ``upsert`` updates a live widget in place and only creates one when the id
    is unknown or its widget was torn down elsewhere. Destroy paths remove the
    entry before calling ``destroy`` on the widget.
    """

    def __init__(self, factory: Optional[ChartFactory] = None):
        self.factory: ChartFactory = factory or TextChart
        self._charts: Dict[str, TextChart] = {}

    def __contains__(self, chart_id: str) -> bool:
        return chart_id in self._charts

    def __len__(self) -> int:
        return len(self._charts)

    def ids(self) -> List[str]:
        return list(self._charts.keys())

    def get(self, chart_id: str) -> Optional[TextChart]:
        chart = self._charts.get(chart_id)
        if chart is not None and not getattr(chart, "alive", True):
            self._charts.pop(chart_id, None)
            return None
        return chart

    def upsert(self, chart_id: str, config: ChartConfig) -> TextChart:
        chart = self.get(chart_id)
        if chart is not None:
            chart.update(config)
            return chart
        chart = self.factory(chart_id, config)
        self._charts[chart_id] = chart
        logger.debug("Created chart %s", chart_id)
        return chart

    def destroy(self, chart_id: str) -> None:
        chart = self._charts.pop(chart_id, None)
        if chart is None:
            return
        try:
            chart.destroy()
        except Exception:
            logger.warning("Chart %s failed to tear down", chart_id, exc_info=True)

    def destroy_all(self) -> None:
        for chart_id in list(self._charts.keys()):
            self.destroy(chart_id)

    def prune(self, keep: Sequence[str]) -> None:
        for chart_id in [c for c in self._charts if c not in keep]:
            self.destroy(chart_id)
