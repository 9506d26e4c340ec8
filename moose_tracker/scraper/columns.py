# moose_tracker/scraper/columns.py
"""
Column mapping: semantic metric labels -> table column positions.

Column layouts differ between tabs and shift when the dashboard re-renders, so the
map is rebuilt from live header text once per tab per scrape pass.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern

IDENTITY_HEADERS = {"player", "name", "steamid", "steam id"}


@dataclass
class ColumnMapping:
    column_map: Dict[str, int] = field(default_factory=dict)
    metrics: List[str] = field(default_factory=list)
    strategy: str = ""

    def is_empty(self) -> bool:
        return not self.column_map

    def to_dict(self) -> Dict[str, object]:
        return {"columnMap": dict(self.column_map), "metrics": list(self.metrics)}


def normalize_header(text: str) -> str:
    """Collapse runs of whitespace and trim."""
    return re.sub(r"\s+", " ", text or "").strip()


def map_generic(headers: List[str]) -> ColumnMapping:
    """Every non-identity header becomes a metric, in header order."""
    mapping = ColumnMapping(strategy="generic")
    for idx, raw in enumerate(headers):
        label = normalize_header(raw)
        if not label or label.lower() in IDENTITY_HEADERS:
            continue
        if label in mapping.column_map:
            continue
        mapping.column_map[label] = idx
        mapping.metrics.append(label)
    return mapping


def map_by_patterns(headers: List[str], patterns: Dict[str, List[Pattern]]) -> ColumnMapping:
    """First header matching any of a metric's patterns wins; unmatched metrics are absent."""
    normalized = [normalize_header(h) for h in headers]
    mapping = ColumnMapping(metrics=list(patterns), strategy="patterns")
    for label, label_patterns in patterns.items():
        for idx, header in enumerate(normalized):
            if any(_search(p, header) for p in label_patterns):
                mapping.column_map[label] = idx
                break
    return mapping


def map_by_labels(headers: List[str], labels: List[str]) -> ColumnMapping:
    """Exact, case-insensitive equality between header text and metric label."""
    mapping = ColumnMapping(metrics=list(labels), strategy="labels")
    if not labels:
        return mapping
    positions: Dict[str, int] = {}
    for idx, header in enumerate(headers):
        key = normalize_header(header).lower()
        if key and key not in positions:
            positions[key] = idx
    for label in labels:
        idx = positions.get(normalize_header(label).lower())
        if idx is not None:
            mapping.column_map[label] = idx
    return mapping


def map_columns(headers: List[str], patterns: Optional[Dict[str, List[Pattern]]]) -> ColumnMapping:
    if patterns is None:
        return map_generic(headers)
    return map_by_patterns(headers, patterns)


def _search(pattern, text: str) -> bool:
    if isinstance(pattern, str):
        pattern = re.compile(pattern, re.I)
    elif not pattern.flags & re.I:
        pattern = re.compile(pattern.pattern, pattern.flags | re.I)
    return pattern.search(text) is not None
