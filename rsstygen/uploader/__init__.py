"""Uploader Service.

Distributes the generated feed files to a remote location.

Main components:
- FtpSettings: Connection parameters for the remote FTP server
- FtpUploader: Uploads every file of the feed output directory
"""

from .ftp import FtpSettings, FtpUploader, UploadError, UploadReport

__all__ = ["FtpSettings", "FtpUploader", "UploadError", "UploadReport"]
