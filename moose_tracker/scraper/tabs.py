# moose_tracker/scraper/tabs.py
"""
Stat tab definitions for the moose.gg stats table.

Each tab has a UI label, an optional metric -> header-pattern table (None means the
columns are mapped generically from whatever headers the tab shows) and a few header
substrings that signal the tab's columns have rendered.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern

PVP_PATTERNS: Dict[str, List[Pattern]] = {
    "KDR": [re.compile(r"^kdr$", re.I)],
    "PvP Kills": [re.compile(r"pvp\s*kills", re.I)],
    "PvP Deaths": [re.compile(r"pvp\s*deaths", re.I)],
    "Suicides": [re.compile(r"suicides?", re.I)],
    "Shots Fired": [re.compile(r"shots?\s*fired", re.I)],
    "Shots Hit": [re.compile(r"shots?\s*hit", re.I)],
    "Headshots": [re.compile(r"headshots?", re.I)],
    "Headshot %": [re.compile(r"(headshot|hs)\s*%", re.I)],
}

PVE_PATTERNS: Dict[str, List[Pattern]] = {
    "Scientist": [re.compile(r"scientist", re.I)],
    "Tunnel Dweller": [re.compile(r"tunnel\s*dweller", re.I)],
    "Bear": [re.compile(r"^bear$", re.I)],
    "Polar Bear": [re.compile(r"polar\s*bear", re.I)],
    "Boar": [re.compile(r"^boar$", re.I)],
    "Wolf": [re.compile(r"^wolf$", re.I)],
    "Stag": [re.compile(r"^stag$", re.I)],
    "Shark": [re.compile(r"^shark$", re.I)],
    "Crocodile": [re.compile(r"^crocodile$", re.I)],
    "Tiger": [re.compile(r"^tiger$", re.I)],
    "Panther": [re.compile(r"^panther$", re.I)],
    "Snake": [re.compile(r"^snake$", re.I)],
    "Bradley APC": [re.compile(r"bradley\s*apc", re.I)],
}

RESOURCE_PATTERNS: Dict[str, List[Pattern]] = {
    "Wood": [re.compile(r"^wood$", re.I)],
    "Stone": [re.compile(r"^stone$", re.I)],
    "Metal Ore": [re.compile(r"metal\s*ore", re.I)],
    "Sulfur Ore": [re.compile(r"sulfur\s*ore", re.I), re.compile(r"sufur\s*ore", re.I)],
    "HQM Ore": [re.compile(r"hqm\s*ore", re.I), re.compile(r"high\s*quality\s*metal\s*ore", re.I)],
}


@dataclass(frozen=True)
class TabDefinition:
    key: str
    label: str
    patterns: Optional[Dict[str, List[Pattern]]] = None
    header_markers: List[str] = field(default_factory=list)
    # Metric whose cell must show digits before a row is read (lazy-rendered columns)
    readiness_metric: Optional[str] = None

    @property
    def metric_labels(self) -> List[str]:
        return list(self.patterns) if self.patterns else []


PRIMARY_TAB = "pvp"

TAB_DEFS: Dict[str, TabDefinition] = {
    "pvp": TabDefinition("pvp", "PvP", PVP_PATTERNS, ["KDR", "PvP Kills"]),
    "pve": TabDefinition(
        "pve", "PvE", PVE_PATTERNS, ["Scientist", "Tunnel Dweller", "Bradley"],
        readiness_metric="Scientist",
    ),
    "resources": TabDefinition("resources", "Resources", RESOURCE_PATTERNS, ["Wood", "Stone", "Sulfur Ore"]),
    "farming": TabDefinition("farming", "Farming", None, ["Cloth", "Animal Fat", "Leather"]),
    "building": TabDefinition("building", "Building", None, ["Building"]),
}


def select_tabs(tab_keys: Optional[List[str]] = None) -> List[TabDefinition]:
    """Return tab definitions in scrape order, primary tab first.

    Unknown keys are ignored; an empty or missing selection means every tab.
    """
    if tab_keys:
        wanted = [key for key in TAB_DEFS if key in set(tab_keys)]
    else:
        wanted = list(TAB_DEFS)
    if PRIMARY_TAB in wanted:
        wanted.remove(PRIMARY_TAB)
        wanted.insert(0, PRIMARY_TAB)
    return [TAB_DEFS[key] for key in wanted]
