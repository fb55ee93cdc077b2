"""
Rendering backend lifecycle.

The scraper renders pages through a local chromedriver process. It is started
once per run, shared by all source jobs as an HTTP endpoint, and stopped once
after every job has finished.
"""

import logging
import os
import subprocess
import time
from typing import Callable, Optional

from rsstygen.common.logging_utils import Log

logger = logging.getLogger(__name__)

DEFAULT_PORT = 4444
SETTLE_SECONDS = 2.0
STOP_TIMEOUT_SECONDS = 5.0


class RenderingBackendError(Exception):
    """Raised when the rendering backend cannot be started."""

    pass


class RenderingBackend:
    """
    Manages the chromedriver subprocess.

    Environment Variables (optional):
        CHROMEDRIVER_PATH: Executable to run (default: chromedriver)
        CHROMEDRIVER_PORT: Port to listen on (default: 4444)
    """

    def __init__(
        self,
        executable: Optional[str] = None,
        port: Optional[int] = None,
        settle_seconds: float = SETTLE_SECONDS,
        log: Optional[Log] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.executable = executable or os.getenv("CHROMEDRIVER_PATH", "chromedriver")
        port_str = os.getenv("CHROMEDRIVER_PORT", str(DEFAULT_PORT))
        try:
            self.port = port or int(port_str)
        except ValueError as err:
            raise ValueError(f"CHROMEDRIVER_PORT must be numeric, got: {port_str}") from err
        self.settle_seconds = settle_seconds
        self.log = log or logger
        self.sleep = sleep
        self.process: Optional[subprocess.Popen] = None

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.port}"

    def start(self) -> None:
        """
        Spawn chromedriver and give it time to start listening.

        Raises:
            RenderingBackendError: If the process cannot be spawned or exits immediately
        """
        self.log.info("Starting chromedriver...", extra={"port": self.port})
        try:
            self.process = subprocess.Popen(
                [self.executable, f"--port={self.port}"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise RenderingBackendError(f"Failed to start {self.executable}: {e}") from e

        self.sleep(self.settle_seconds)

        exit_code = self.process.poll()
        if exit_code is not None:
            self.process = None
            raise RenderingBackendError(
                f"{self.executable} exited during startup with code {exit_code}"
            )

    def stop(self) -> None:
        """Terminate chromedriver. Failures are reported, never raised."""
        if self.process is None:
            return

        self.log.info("Killing the chromedriver...")
        try:
            self.process.terminate()
            try:
                self.process.wait(timeout=STOP_TIMEOUT_SECONDS)
            except subprocess.TimeoutExpired:
                self.log.warning("chromedriver ignored terminate, killing it")
                self.process.kill()
                self.process.wait(timeout=STOP_TIMEOUT_SECONDS)
        except (OSError, subprocess.SubprocessError) as e:
            self.log.error("Failed to stop chromedriver: %s", e)
        finally:
            self.process = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
