from __future__ import annotations

__all__: list[str] = ["CandidateSource", "CuratedDatabase", "HLTBClient", "HLTBScraper"]

from src.integrations.base_source import CandidateSource
from src.integrations.curated_database import CuratedDatabase
from src.integrations.hltb_api import HLTBClient
from src.integrations.hltb_scraper import HLTBScraper
