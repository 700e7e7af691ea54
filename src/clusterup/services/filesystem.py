"""Filesystem helpers for clusterup."""

import logging
import os
import shutil

from rich.console import Console


class FileSystemService:
    """Encapsulates local file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def cleanup_dir(self, path: str):
        if path and os.path.exists(path):
            try:
                shutil.rmtree(path)
                self.logger.debug("Removed directory: %s", path)
            except OSError as exc:
                message = f"Warning: Could not remove {path}: {exc}"
                self.console.print(f"[yellow]{message}[/yellow]")
                self.logger.warning(message)

    def write_text(self, path: str, content: str, mode: int = 0o644):
        with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(content)
        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)
