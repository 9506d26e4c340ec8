# moose_tracker/scraper/__init__.py
"""
Live-page scraping for the moose.gg stats table.

Playwright drives one page per pass; tabs are made ready once, players are located
by SteamID and their rows read cell by cell.
"""

from .columns import ColumnMapping, map_by_labels, map_by_patterns, map_columns, map_generic
from .core import (
    ColumnMappingFailure,
    MooseScraper,
    PerPlayerTraversal,
    PerTabTraversal,
    ScrapeSessionError,
    TabOrchestrator,
    TabSession,
    TabState,
    scrape_players,
)
from .extractor import StatExtractor, parse_numeric, recompute_derived
from .locator import PlayerNotFoundError, identity_candidates, locate_row
from .retry import TransientUIError, is_transient_ui_error, retry_on
from .session import browser_page
from .tabs import PRIMARY_TAB, TAB_DEFS, TabDefinition, select_tabs

__all__ = [
    'ColumnMapping',
    'map_by_labels',
    'map_by_patterns',
    'map_columns',
    'map_generic',
    'ColumnMappingFailure',
    'MooseScraper',
    'PerPlayerTraversal',
    'PerTabTraversal',
    'ScrapeSessionError',
    'TabOrchestrator',
    'TabSession',
    'TabState',
    'scrape_players',
    'StatExtractor',
    'parse_numeric',
    'recompute_derived',
    'PlayerNotFoundError',
    'identity_candidates',
    'locate_row',
    'TransientUIError',
    'is_transient_ui_error',
    'retry_on',
    'browser_page',
    'PRIMARY_TAB',
    'TAB_DEFS',
    'TabDefinition',
    'select_tabs',
]
