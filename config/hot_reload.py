"""config/hot_reload.py

Thread-safe configuration reloader with file watching.
"""

import time
import threading
import dataclasses
import yaml
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from config.runtime_schema import AutoCorrectConfig

logger = logging.getLogger(__name__)


def read_autocorrect_config(path: Union[str, Path]) -> AutoCorrectConfig:
    """Read the `autocorrect:` section of a YAML file.

    Missing fields fall back to the AutoCorrectConfig defaults.
    """
    with open(path, "r") as f:
        raw_data = yaml.safe_load(f)

    if not isinstance(raw_data, dict):
        raise ValueError("Config root must be a dictionary")

    section = raw_data.get("autocorrect", {}) or {}
    if not isinstance(section, dict):
        raise ValueError("autocorrect section must be a mapping")

    known = {f.name for f in dataclasses.fields(AutoCorrectConfig)}
    unknown = set(section) - known
    if unknown:
        raise ValueError(f"Unknown autocorrect fields: {', '.join(sorted(unknown))}")

    return AutoCorrectConfig(**section)


class ConfigReloader:
    """
    Watches a configuration file for changes and atomically swaps in valid
    AutoCorrectConfig snapshots.
    """

    def __init__(
        self,
        config_path: Union[str, Path],
        on_reload: Optional[Callable[[AutoCorrectConfig], None]] = None
    ):
        self._config_path = Path(config_path)
        self._on_reload = on_reload

        # Internal state
        self._current_config: Optional[AutoCorrectConfig] = None
        self._last_mtime: float = 0.0
        self._lock = threading.RLock()

        # Threading
        self._stop_event = threading.Event()
        self._watcher_thread: Optional[threading.Thread] = None

        # Initial load
        if self._config_path.exists():
            self._load_initial()
        else:
            logger.warning(f"Config file not found at {self._config_path}, waiting for creation.")

    def _load_initial(self) -> None:
        """Load config synchronously on startup."""
        try:
            new_conf = read_autocorrect_config(self._config_path)
            with self._lock:
                self._current_config = new_conf
                self._last_mtime = self._config_path.stat().st_mtime
            logger.info(f"[config] Initial configuration loaded from {self._config_path}")
        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.error(f"[config] Failed to load initial config: {e}")

    def get_config(self) -> AutoCorrectConfig:
        """Thread-safe access to the current snapshot (defaults if nothing loaded yet)."""
        with self._lock:
            return self._current_config or AutoCorrectConfig()

    def start_watching(self) -> None:
        """Start the background watcher thread."""
        if self._watcher_thread is not None:
            return

        self._stop_event.clear()
        self._watcher_thread = threading.Thread(
            target=self._poll_loop,
            name="ConfigWatcher",
            daemon=True
        )
        self._watcher_thread.start()
        logger.info(f"[config] Started watching {self._config_path} for changes...")

    def stop_watching(self) -> None:
        """Stop the background watcher thread."""
        self._stop_event.set()
        if self._watcher_thread:
            self._watcher_thread.join(timeout=2.0)
            self._watcher_thread = None
        logger.info("[config] Stopped config watcher.")

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.check_file()
            except Exception as e:
                logger.error(f"[config] Error in watcher loop: {e}")

            # Sleep in small chunks to be responsive to stop_event
            for _ in range(10):
                if self._stop_event.is_set():
                    break
                time.sleep(0.1)

    def check_file(self) -> bool:
        """Reload if the file changed since the last look.

        Returns:
            True if a new configuration was applied.
        """
        if not self._config_path.exists():
            return False

        try:
            current_mtime = self._config_path.stat().st_mtime
        except OSError:
            return False  # File transiently unavailable

        # Inequality catches both updates and replacements/reverts
        if current_mtime == self._last_mtime:
            return False
        return self._try_reload(current_mtime)

    def _try_reload(self, new_mtime: float) -> bool:
        try:
            logger.info(f"[config] Detected change in {self._config_path}, reloading...")
            new_conf = read_autocorrect_config(self._config_path)
        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.error(f"[config] Reload FAILED: {e}. Keeping previous configuration.")
            # Acknowledge this version so a broken file is not retried every poll
            self._last_mtime = new_mtime
            return False

        with self._lock:
            old_conf = self._current_config
            self._current_config = new_conf
            self._last_mtime = new_mtime

        if old_conf:
            changes = []
            for f in dataclasses.fields(AutoCorrectConfig):
                old_val = getattr(old_conf, f.name)
                new_val = getattr(new_conf, f.name)
                if old_val != new_val:
                    changes.append(f"{f.name} {old_val} -> {new_val}")
            if changes:
                logger.info(f"[config] Reloaded: {', '.join(changes)}")
            else:
                logger.info("[config] Reloaded (no parameters changed).")
        else:
            logger.info("[config] Configuration loaded successfully.")

        if self._on_reload:
            self._on_reload(new_conf)
        return True
