"""
Central version management for HLTB Title Resolver.
"""

from __future__ import annotations

__all__ = ["__app_name__", "__version__", "__release_date__", "__author__", "__license__"]

__app_name__ = "HLTB Title Resolver"
__version__ = "0.4.0"
__release_date__ = "2026-10-12"
__author__ = "SwitchBros"
__license__ = "MIT"
