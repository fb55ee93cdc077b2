from __future__ import annotations

import ftplib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rsstygen.common.logging_utils import Log

logger = logging.getLogger(__name__)

DEFAULT_FTP_PORT = 21
CONNECT_TIMEOUT_SECONDS = 30


class UploadError(Exception):
    """Raised when the FTP session cannot be established."""

    pass


@dataclass(frozen=True)
class FtpSettings:
    host: str
    port: int = DEFAULT_FTP_PORT
    username: str = ""
    password: str = field(default="", repr=False)
    target_path: str = ""


@dataclass
class UploadReport:
    """Files uploaded and files that failed, by file name."""

    uploaded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class FtpUploader:
    """
    Pushes finished feed files to a remote directory over FTP.

    One failing file does not stop the others; each failure is logged and
    recorded in the returned UploadReport.
    """

    def __init__(self, settings: FtpSettings, log: Optional[Log] = None) -> None:
        self.settings = settings
        self.log = log or logger

    def _connect(self) -> ftplib.FTP:
        """
        Open, authenticate and position an FTP session.

        Raises:
            UploadError: If connecting, logging in or changing directory fails.
        """
        ftp = ftplib.FTP()
        try:
            ftp.connect(self.settings.host, self.settings.port, timeout=CONNECT_TIMEOUT_SECONDS)
            if self.settings.username:
                ftp.login(self.settings.username, self.settings.password)
            else:
                ftp.login()
            if self.settings.target_path:
                ftp.cwd(self.settings.target_path)
        except (OSError, ftplib.Error) as e:
            ftp.close()
            raise UploadError(
                f"FTP session to {self.settings.host}:{self.settings.port} failed: {e}"
            ) from e
        return ftp

    def upload_directory(self, directory: Path) -> UploadReport:
        """
        Upload every regular file found directly in `directory`.

        Args:
            directory: Local directory holding the files to push.

        Returns:
            UploadReport listing uploaded and failed files.

        Raises:
            UploadError: If the FTP session cannot be established.
        """
        report = UploadReport()
        if not directory.exists():
            self.log.warning("Nothing to upload, %s does not exist", directory)
            return report

        files = sorted(path for path in directory.iterdir() if path.is_file())
        ftp = self._connect()
        try:
            for path in files:
                self.log.info("Uploading %s...", path.name)
                try:
                    with path.open("rb") as handle:
                        ftp.storbinary(f"STOR {path.name}", handle)
                except (OSError, ftplib.Error) as e:
                    self.log.error(
                        "Error uploading %s. (%s)",
                        path.name,
                        e,
                        extra={"file": path.name, "error_type": type(e).__name__},
                    )
                    report.failed[path.name] = str(e)
                    continue
                report.uploaded.append(path.name)
        finally:
            try:
                ftp.quit()
            except (OSError, ftplib.Error):
                ftp.close()

        self.log.info(
            "Upload finished: %d uploaded, %d failed",
            len(report.uploaded),
            len(report.failed),
        )
        return report
