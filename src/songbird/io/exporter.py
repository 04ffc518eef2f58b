"""
Session snapshot serialization.

Exports the renderer-facing state of a session (cursor, trails, anchors,
label, species) to JSON or to a NumPy archive, and data-point logs to JSON.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Union

import numpy as np

from songbird.core.color import to_hex
from songbird.core.events import DataPoint
from songbird.engine import SessionState


@dataclass
class SnapshotMetadata:
    """Metadata header for a session snapshot."""

    elapsed: float
    ticks: int
    layout: str
    comet_capacity: int
    structure_capacity: int
    schema_version: str = "1.0"


class SessionExporter:
    """Serializes session state for external renderers and tooling."""

    def __init__(self, precision: int = 4):
        """
        Args:
            precision: Decimal places for floating point values.
        """
        self.precision = precision

    def _round(self, value: float) -> float:
        return round(float(value), self.precision)

    def _points(self, points: np.ndarray) -> list[list[float]]:
        return np.round(points, self.precision).tolist()

    def build_snapshot(self, session: SessionState) -> dict[str, Any]:
        """Build the snapshot dictionary for ``session``."""
        metadata = SnapshotMetadata(
            elapsed=self._round(session.elapsed),
            ticks=session.tick_count,
            layout=session.anchor_field.layout.value,
            comet_capacity=session.comet.capacity,
            structure_capacity=session.structure.capacity,
        )
        cursor = session.cursor
        species = session.species

        return {
            "metadata": {
                "elapsed": metadata.elapsed,
                "ticks": metadata.ticks,
                "layout": metadata.layout,
                "comet_capacity": metadata.comet_capacity,
                "structure_capacity": metadata.structure_capacity,
                "schema_version": metadata.schema_version,
            },
            "cursor": {
                "position": self._points(cursor.position),
                "display_position": self._points(cursor.display_position),
                "is_locked": bool(cursor.is_locked),
                "active_color": to_hex(cursor.active_color),
                "glow_scale": self._round(cursor.glow_scale),
                "light_intensity": self._round(cursor.light_intensity),
            },
            "label": session.label,
            "species": None if species is None else {
                "id": species.species_id,
                "name": species.display_name,
                "scientific_name": species.scientific_name,
                "color": to_hex(species.color),
                "confidence": species.confidence,
            },
            "anchors": [
                {
                    "index": state.index,
                    "name": session.anchor_field[state.index].name,
                    "color": to_hex(session.anchor_field[state.index].color),
                    "position": self._points(state.position),
                    "opacity": self._round(state.opacity),
                    "scale": self._round(state.scale),
                }
                for state in session.anchor_states()
            ],
            "comet": self._points(session.comet.points()),
            "structure": self._points(session.structure.points()),
        }

    def export_json(
        self,
        session: SessionState,
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """Write the snapshot of ``session`` as JSON."""
        output_path = Path(output_path)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.build_snapshot(session), f, indent=indent)
        return output_path

    def export_numpy(self, session: SessionState, output_path: Union[str, Path]) -> Path:
        """Write trail geometry and anchors as a compressed ``.npz`` archive."""
        output_path = Path(output_path)
        np.savez_compressed(
            output_path,
            comet=session.comet.points(),
            structure=session.structure.points(),
            anchors=session.anchor_field.positions,
            cursor=session.cursor.display_position,
            elapsed=session.elapsed,
        )
        return output_path

    def export_data_points(
        self,
        points: Iterable[DataPoint],
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """Write an emitted data-point log as a JSON list."""
        output_path = Path(output_path)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump([p.to_dict() for p in points], f, indent=indent)
        return output_path
