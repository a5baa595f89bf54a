"""
Custom exceptions for provisioning and process coordination.
"""


class TunnelError(Exception):
    """Base exception for all filebrowser-tunnel errors."""

    # key into error_messages.ERROR_MESSAGES
    error_key = 'unexpected'


class UnsupportedPlatform(TunnelError):
    """Raised when the OS or architecture has no published binaries."""
    error_key = 'unsupported_platform'


class DownloadFailed(TunnelError):
    """Raised when fetching a binary or archive fails."""
    error_key = 'download_failed'


class ChecksumMismatch(DownloadFailed):
    """Raised when a downloaded artifact does not match its configured SHA-256."""
    error_key = 'checksum_mismatch'


class BinaryNotFoundInArchive(TunnelError):
    """Raised when a release archive does not contain the expected executable."""
    error_key = 'binary_not_in_archive'


class DirectoryNotFound(TunnelError):
    """Raised when the directory to serve does not exist."""
    error_key = 'directory_not_found'


class ProcessStartFailed(TunnelError):
    """Raised when the OS cannot spawn a child process."""
    error_key = 'process_start_failed'


class TunnelURLTimeout(TunnelError):
    """Raised when cloudflared does not report a public URL in time."""
    error_key = 'tunnel_url_timeout'


class ProcessExitedAbnormally(TunnelError):
    """Raised when a child process exits with a non-zero code."""
    error_key = 'process_exited'

    def __init__(self, message, exit_codes=None):
        super().__init__(message)
        # process name -> return code, only the failing ones
        self.exit_codes = exit_codes or {}


class CacheClearFailed(TunnelError):
    """Raised when the binary cache directory cannot be removed."""
    error_key = 'cache_clear_failed'
