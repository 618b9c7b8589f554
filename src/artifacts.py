import json
import re
from datetime import datetime
from pathlib import Path

from engine_errors import SessionLost


def sanitize_for_filename(text: str) -> str:
    """Sanitize text for use in filenames."""
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[-\s]+", "_", text)
    return text.strip("_").lower()[:100] or "scenario"


class ArtifactStore:
    """Writes artifacts as ``<label>_<YYYYmmdd_HHMMSS>.<suffix>`` under one directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def stem_for(self, label: str, timestamp: datetime, suffixes=("png",)) -> str:
        """First free stem for ``label``: no file with that stem and any of ``suffixes`` exists yet."""
        self.root.mkdir(parents=True, exist_ok=True)
        base = f"{sanitize_for_filename(label)}_{timestamp.strftime('%Y%m%d_%H%M%S')}"
        stem = base
        n = 1
        while any((self.root / f"{stem}.{suffix}").exists() for suffix in suffixes):
            n += 1
            stem = f"{base}_{n}"
        return stem

    def write(self, stem: str, data: bytes, suffix: str) -> Path:
        path = self.root / f"{stem}.{suffix}"
        path.write_bytes(data)
        return path

    def save(self, label: str, timestamp: datetime, data: bytes, suffix: str = "png") -> Path:
        return self.write(self.stem_for(label, timestamp, (suffix,)), data, suffix)


class ArtifactCapture:
    def __init__(self, store: ArtifactStore, now=datetime.now, verbose: bool = False):
        self.store = store
        self.now = now
        self.verbose = verbose

    async def capture(self, session, label: str, reason: str = "") -> str | None:
        """Save a screenshot and a page-state record; return the screenshot path or None."""
        timestamp = self.now()
        try:
            shot = await session.capture_screenshot()
            stem = self.store.stem_for(label, timestamp, ("png", "json"))
            path = self.store.write(stem, shot, "png")
            state = {
                "label": label,
                "timestamp": timestamp.isoformat(),
                "url": await session.current_url(),
                "title": await session.current_title(),
                "reason": reason,
                "screenshot": str(path),
            }
            self.store.write(stem, json.dumps(state, indent=2).encode("utf-8"), "json")
        except SessionLost:
            raise
        except Exception as e:
            print(f"⚠️ Could not save screenshot for {label}: {e}")
            return None
        if self.verbose:
            print(f"📸 Screenshot saved: {path.name}")
        return str(path)
