"""
JSON file persistence for presets.

PresetStore.write has the on_update signature, so a registry can persist
every mutation directly:

    store = PresetStore("presets.json")
    registry = PresetRegistry(store.load(), on_update=store.write)
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, Union

from preset_relay.errors import ValidationError
from preset_relay.presets import Preset

logger = logging.getLogger(__name__)


class PresetStore:
    """Reads and writes the persisted preset list."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> list[dict[str, Any]]:
        """
        Load persisted presets. A missing file means no presets.

        Raises:
            ValidationError: if the file is not a JSON list
        """
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Preset file {self.path} is not valid JSON: {e}") from e

        if not isinstance(data, list):
            raise ValidationError(f"Preset file {self.path} must contain a JSON list")
        return data

    def write(self, presets: Iterable[Preset]) -> None:
        """Replace the file with this snapshot (temp file + rename)."""
        data = [p.to_dict() for p in presets]
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote {len(data)} presets to {self.path}")
