"""Spectral-to-spatial mapping engine for audio-reactive light trails."""

from songbird.config import EngineConfig, LayoutMode, ResolverMode
from songbird.core.analyzer import SpectrumAnalyzer
from songbird.core.species import SpeciesClassifier, SpeciesTable
from songbird.engine import SessionState, SpectralEngine, TickDriver, run_offline
from songbird.io.exporter import SessionExporter
from songbird.io.source import FileFeatureSource, LiveFeatureSource

__version__ = "0.1.0"
__all__ = [
    "EngineConfig",
    "LayoutMode",
    "ResolverMode",
    "SpectrumAnalyzer",
    "SpeciesClassifier",
    "SpeciesTable",
    "SessionState",
    "SpectralEngine",
    "TickDriver",
    "run_offline",
    "SessionExporter",
    "FileFeatureSource",
    "LiveFeatureSource",
]
