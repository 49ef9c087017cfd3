from __future__ import annotations
import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
import os
import logging

logger = logging.getLogger(__name__)

APP_DIR = Path(os.getenv("APPDATA", ".")) / "BDyn"
CONFIG_PATH = APP_DIR / "config.json"

@dataclass
class StorageSettings:
    backend: str = "sqlite"  # "sqlite", "memory", "rest"
    db_path: str = str(APP_DIR / "telemetry.db")
    rest_url: str = ""
    rest_key: str = ""

@dataclass
class CaptureSettings:
    write_workers: int = 4
    keyboard: bool = True
    pointer: bool = True

@dataclass
class UISettings:
    theme: str = "light"  # "light", "dark", "high_contrast"

@dataclass
class AppSettings:
    consent_accepted: bool = False
    storage: StorageSettings = field(default_factory=StorageSettings)
    capture: CaptureSettings = field(default_factory=CaptureSettings)
    ui: UISettings = field(default_factory=UISettings)

    @staticmethod
    def load(path: Path = None) -> "AppSettings":
        path = Path(path or CONFIG_PATH)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable config %s: %s", path, e)
                return AppSettings()
            # Manual hydrate to keep defaults for missing keys
            s = AppSettings()
            s.consent_accepted = bool(data.get("consent_accepted", s.consent_accepted))
            st = data.get("storage", {})
            s.storage = StorageSettings(
                backend=str(st.get("backend", s.storage.backend)),
                db_path=str(st.get("db_path", s.storage.db_path)),
                rest_url=str(st.get("rest_url", "")),
                rest_key=str(st.get("rest_key", "")),
            )
            c = data.get("capture", {})
            s.capture = CaptureSettings(
                write_workers=max(1, int(c.get("write_workers", s.capture.write_workers))),
                keyboard=bool(c.get("keyboard", True)),
                pointer=bool(c.get("pointer", True)),
            )
            u = data.get("ui", {})
            s.ui = UISettings(theme=str(u.get("theme", s.ui.theme)))
            return s
        return AppSettings()

    def save(self, path: Path = None) -> None:
        path = Path(path or CONFIG_PATH)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = asdict(self)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
