"""Builds generated Vue projects with npm."""

from __future__ import annotations

import subprocess
from pathlib import Path

from loguru import logger


class VueProjectBuilder:
    """Runs ``npm install`` then ``npm run build`` inside a project directory.

    Blocking; callers schedule it off the event loop.  A build counts as
    successful when both commands exit 0 and ``dist/`` exists.
    """

    def __init__(self, npm_command: str = "npm", timeout_seconds: int = 300, enabled: bool = True) -> None:
        self.npm_command = npm_command
        self.timeout_seconds = timeout_seconds
        self.enabled = enabled

    def build(self, project_dir: Path) -> bool:
        if not self.enabled:
            logger.debug("Project build disabled | dir={}", project_dir)
            return False
        if not (project_dir / "package.json").is_file():
            logger.warning("Skip build, no package.json | dir={}", project_dir)
            return False

        logger.info("Building project | dir={}", project_dir)
        if not self._run(["install"], project_dir) or not self._run(["run", "build"], project_dir):
            return False

        if not (project_dir / "dist").is_dir():
            logger.error("Build finished without a dist directory | dir={}", project_dir)
            return False
        logger.info("Project built | dir={}", project_dir)
        return True

    def _run(self, args: list[str], cwd: Path) -> bool:
        cmd = [self.npm_command, *args]
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.error("Command timed out | cmd={} | timeout={}s", " ".join(cmd), self.timeout_seconds)
            return False
        except OSError as exc:
            logger.error("Command could not start | cmd={} | {}", " ".join(cmd), exc)
            return False

        if proc.returncode != 0:
            logger.error(
                "Command failed | cmd={} | code={} | stderr={}",
                " ".join(cmd),
                proc.returncode,
                proc.stderr[-2000:],
            )
            return False
        logger.debug("Command succeeded | cmd={}", " ".join(cmd))
        return True
