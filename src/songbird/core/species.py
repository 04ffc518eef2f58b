"""
Rule-based species classification.

Spectral centroid and spread are normalised to a 0-100 scale and looked up
in an ordered table of ranges. The first matching entry wins, so table
order is part of the contract. A match is held until no re-match has
occurred for the hold period.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import numpy as np

from songbird.config import (
    CENTROID_REFERENCE_MAX,
    CONFIDENCE_BASE,
    CONFIDENCE_SPAN,
    SPREAD_REFERENCE_MAX,
)
from songbird.core.color import Color, parse_color, to_hex

logger = logging.getLogger(__name__)

TABLE_VERSION = 1


def _parse_range(value, name: str) -> tuple[float, float]:
    try:
        lo, hi = (float(v) for v in value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a [min, max] pair, got {value!r}") from None
    if lo > hi:
        raise ValueError(f"{name} min exceeds max: {value!r}")
    return (lo, hi)


@dataclass(frozen=True)
class SpeciesEntry:
    """One row of the species table."""

    id: str
    name: str
    scientific_name: str
    color: Color
    centroid_range: tuple[float, float]
    spread_range: tuple[float, float]

    def matches(self, centroid: float, spread: float) -> bool:
        return (
            self.centroid_range[0] <= centroid <= self.centroid_range[1]
            and self.spread_range[0] <= spread <= self.spread_range[1]
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "scientific_name": self.scientific_name,
            "color": to_hex(self.color),
            "centroid_range": list(self.centroid_range),
            "spread_range": list(self.spread_range),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SpeciesEntry":
        try:
            return cls(
                id=str(data["id"]),
                name=str(data["name"]),
                scientific_name=str(data.get("scientific_name", "")),
                color=parse_color(data["color"]),
                centroid_range=_parse_range(data["centroid_range"], "centroid_range"),
                spread_range=_parse_range(data["spread_range"], "spread_range"),
            )
        except KeyError as exc:
            raise ValueError(f"Species entry missing field {exc}") from None


@dataclass(frozen=True)
class SpeciesMatch:
    """The currently held classification."""

    species_id: str
    display_name: str
    scientific_name: str
    color: Color
    confidence: int
    matched_at: float


class SpeciesTable:
    """Ordered, read-only catalogue of species rules."""

    def __init__(self, entries: Iterable[SpeciesEntry]):
        self._entries = tuple(entries)
        ids = [e.id for e in self._entries]
        if len(set(ids)) != len(ids):
            raise ValueError("Species ids must be unique")

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __getitem__(self, index: int) -> SpeciesEntry:
        return self._entries[index]

    def lookup(self, centroid: float, spread: float) -> Optional[SpeciesEntry]:
        """First entry whose ranges contain both values, in table order."""
        for entry in self._entries:
            if entry.matches(centroid, spread):
                return entry
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": TABLE_VERSION,
            "species": [entry.to_dict() for entry in self._entries],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SpeciesTable":
        if not isinstance(data, dict) or "species" not in data:
            raise ValueError("Species table must be an object with a 'species' list")
        return cls(SpeciesEntry.from_dict(item) for item in data["species"])

    def save(self, path: Union[str, Path], indent: int = 2) -> Path:
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=indent)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SpeciesTable":
        """
        Load a table from JSON.

        Raises:
            ValueError: If the file is not a valid species table.
        """
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid species table {path}: {exc}") from None
        table = cls.from_dict(data)
        logger.info("Loaded %d species from %s", len(table), path)
        return table

    @classmethod
    def default(cls) -> "SpeciesTable":
        return cls(DEFAULT_SPECIES)


DEFAULT_SPECIES = (
    SpeciesEntry("robin", "European Robin", "Erithacus rubecula",
                 parse_color("#ff5e3a"), (45.0, 65.0), (15.0, 35.0)),
    SpeciesEntry("nightingale", "Common Nightingale", "Luscinia megarhynchos",
                 parse_color("#ffd700"), (30.0, 50.0), (10.0, 25.0)),
    SpeciesEntry("blue-tit", "Eurasian Blue Tit", "Cyanistes caeruleus",
                 parse_color("#4cc9f0"), (60.0, 90.0), (5.0, 20.0)),
    SpeciesEntry("blackbird", "Common Blackbird", "Turdus merula",
                 parse_color("#f72585"), (20.0, 40.0), (20.0, 45.0)),
    SpeciesEntry("kingfisher", "Common Kingfisher", "Alcedo atthis",
                 parse_color("#4895ef"), (50.0, 80.0), (30.0, 60.0)),
)


def normalize_centroid(centroid: float) -> float:
    return centroid / CENTROID_REFERENCE_MAX * 100.0


def normalize_spread(spread: float) -> float:
    return spread / SPREAD_REFERENCE_MAX * 100.0


class SpeciesClassifier:
    """
    Table lookup with a time-decayed hold.

    The only state carried between ticks is the held match and the time it
    was last confirmed.
    """

    def __init__(
        self,
        table: SpeciesTable | None = None,
        min_volume: float = 0.05,
        hold_seconds: float = 4.0,
        seed: int | None = None,
    ):
        self.table = table if table is not None else SpeciesTable.default()
        self.min_volume = min_volume
        self.hold_seconds = hold_seconds
        self.rng = np.random.default_rng(seed)
        self.active: Optional[SpeciesMatch] = None
        self.last_match_time: Optional[float] = None

    def classify(self, centroid: float, spread: float) -> Optional[SpeciesEntry]:
        """Stateless lookup on raw (un-normalised) centroid and spread."""
        c = normalize_centroid(centroid)
        s = normalize_spread(spread)
        if not (np.isfinite(c) and np.isfinite(s)):
            return None
        return self.table.lookup(c, s)

    def update(
        self,
        volume: float,
        centroid: Optional[float],
        spread: Optional[float],
        now: float,
    ) -> Optional[SpeciesMatch]:
        """
        Advance the classifier by one tick and return the held match.

        Args:
            volume: Current volume (0-1). Below ``min_volume`` no lookup runs.
            centroid: Spectral centroid in analyser bin units.
            spread: Spectral spread in analyser bin units.
            now: Current time in seconds.
        """
        if (
            centroid is not None
            and spread is not None
            and np.isfinite(volume)
            and volume > self.min_volume
        ):
            entry = self.classify(centroid, spread)
            if entry is not None:
                confidence = CONFIDENCE_BASE + int(self.rng.random() * CONFIDENCE_SPAN)
                if self.active is None or self.active.species_id != entry.id:
                    logger.debug("Species match: %s", entry.name)
                self.active = SpeciesMatch(
                    species_id=entry.id,
                    display_name=entry.name,
                    scientific_name=entry.scientific_name,
                    color=entry.color,
                    confidence=confidence,
                    matched_at=now,
                )
                self.last_match_time = now
                return self.active

        if (
            self.active is not None
            and self.last_match_time is not None
            and now - self.last_match_time > self.hold_seconds
        ):
            logger.debug("Species hold expired: %s", self.active.display_name)
            self.active = None
        return self.active

    def reset(self) -> None:
        self.active = None
        self.last_match_time = None
