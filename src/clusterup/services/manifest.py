"""Run manifest generation service."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from clusterup.services.observer import StartupObserver


class ManifestObserver(StartupObserver):
    """Collects stage checkpoints and writes a run manifest JSON."""

    def __init__(self, manifest_file: str, logger):
        self.manifest_file = manifest_file
        self.logger = logger
        self.manifest: Dict[str, Any] = {
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "metadata": {},
            "stages": [],
            "config_dir": None,
            "error": None,
        }

    def start_run(self, metadata: Dict[str, Any]):
        self.manifest["status"] = "running"
        self.manifest["started_at"] = self._now()
        self.manifest["metadata"] = metadata
        self.write()

    def stage_entered(self, stage, message: str):
        self.manifest["stages"].append(
            {
                "name": stage.value,
                "status": "running",
                "message": message,
                "started_at": self._now(),
                "finished_at": None,
                "duration_seconds": None,
                "error": None,
            }
        )
        self.write()

    def stage_succeeded(self, stage):
        self._finish_stage(stage.value, "success")

    def stage_failed(self, stage, error: BaseException):
        self._finish_stage(stage.value, "failed", error=str(error))

    def finalize(self, status: str, config_dir: Optional[str] = None, error: Optional[str] = None):
        self.manifest["status"] = status
        self.manifest["finished_at"] = self._now()
        if self.manifest.get("started_at"):
            started_at = datetime.fromisoformat(self.manifest["started_at"])
            finished_at = datetime.fromisoformat(self.manifest["finished_at"])
            self.manifest["duration_seconds"] = (finished_at - started_at).total_seconds()
        self.manifest["config_dir"] = config_dir
        self.manifest["error"] = error
        self.write()

    def write(self):
        os.makedirs(os.path.dirname(self.manifest_file) or ".", exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            prefix="run-manifest-",
            suffix=".json",
            dir=os.path.dirname(os.path.abspath(self.manifest_file)),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.manifest, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.manifest_file)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass

    def _finish_stage(self, name: str, status: str, error: Optional[str] = None):
        for stage in reversed(self.manifest["stages"]):
            if stage["name"] == name and stage["status"] == "running":
                stage["status"] = status
                stage["finished_at"] = self._now()
                stage["error"] = error
                started_at = datetime.fromisoformat(stage["started_at"])
                finished_at = datetime.fromisoformat(stage["finished_at"])
                stage["duration_seconds"] = (finished_at - started_at).total_seconds()
                break
        self.write()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
