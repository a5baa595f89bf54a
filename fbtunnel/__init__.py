"""
filebrowser-tunnel: serve a local directory with filebrowser and publish it
through a Cloudflare quick tunnel.

This package downloads both binaries, runs them as child processes, picks
the public trycloudflare.com URL out of cloudflared's output and shuts both
down together.
"""

__version__ = "0.1.0"

from .binary import BinaryManager, CachedBinary, PlatformKey, detect_platform
from .manager import ProcessManager, URLSlot
from .parser import extract_tunnel_url
from .signals import InterruptListener
from .exceptions import (
    TunnelError,
    UnsupportedPlatform,
    DownloadFailed,
    ChecksumMismatch,
    BinaryNotFoundInArchive,
    DirectoryNotFound,
    ProcessStartFailed,
    TunnelURLTimeout,
    ProcessExitedAbnormally,
    CacheClearFailed,
)

__all__ = [
    'BinaryManager',
    'CachedBinary',
    'PlatformKey',
    'detect_platform',
    'ProcessManager',
    'URLSlot',
    'extract_tunnel_url',
    'InterruptListener',
    'TunnelError',
    'UnsupportedPlatform',
    'DownloadFailed',
    'ChecksumMismatch',
    'BinaryNotFoundInArchive',
    'DirectoryNotFound',
    'ProcessStartFailed',
    'TunnelURLTimeout',
    'ProcessExitedAbnormally',
    'CacheClearFailed',
]
