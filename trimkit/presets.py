"""Named width/height presets: a few built-ins plus user-saved ones in a JSON file."""

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path

from trimkit.models import MAX_HEIGHT, MAX_WIDTH, MIN_HEIGHT, MIN_WIDTH

logger = logging.getLogger(__name__)

CUSTOM = "custom"


@dataclass(frozen=True)
class Preset:
    width: int
    height: int

    def __post_init__(self) -> None:
        if not MIN_WIDTH <= self.width <= MAX_WIDTH:
            raise ValueError(f"Width must be between {MIN_WIDTH} and {MAX_WIDTH}")
        if not MIN_HEIGHT <= self.height <= MAX_HEIGHT:
            raise ValueError(f"Height must be between {MIN_HEIGHT} and {MAX_HEIGHT}")


BUILTIN_PRESETS: dict[str, Preset] = {
    "movie": Preset(1920, 1080),
    "laptop": Preset(1366, 768),
    "tablet": Preset(1280, 800),
    "mobile": Preset(1080, 1920),
}


def default_store_path() -> Path:
    env = os.environ.get("TRIMKIT_PRESETS")
    if env:
        return Path(env)
    return Path.home() / ".config" / "trimkit" / "presets.json"


class PresetStore:
    """User presets persisted as ``{"name": {"width": w, "height": h}}``."""

    def __init__(self, path: Path | None = None):
        self.path = Path(path) if path else default_store_path()

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable preset file %s", self.path)
            return {}

    def save(self, name: str, width: int, height: int) -> Preset:
        preset = Preset(width, height)
        data = self._read()
        data[name] = asdict(preset)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return preset

    def load(self, name: str = CUSTOM) -> Preset | None:
        """Look up a saved preset, then a built-in one. None if neither exists."""
        saved = self._read().get(name)
        if saved:
            return Preset(int(saved["width"]), int(saved["height"]))
        return BUILTIN_PRESETS.get(name)

    def names(self) -> list[str]:
        return sorted(set(BUILTIN_PRESETS) | set(self._read()))
