from __future__ import annotations

from src.services.acquisition_service import AcquisitionOrchestrator, SourceBinding
from src.services.playtime_service import PlaytimeService, build_default_service

__all__: list[str] = [
    "AcquisitionOrchestrator",
    "PlaytimeService",
    "SourceBinding",
    "build_default_service",
]
