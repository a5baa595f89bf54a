"""
Centralized configuration for filebrowser-tunnel.
Override via environment variables for custom installs and tests.
"""
import os

PRODUCT_NAME = "filebrowser-tunnel"


def _float_env(name, default):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


# Cache directory: where the downloaded filebrowser and cloudflared binaries live.
# Default ~/.cache/filebrowser-tunnel; set FBTUNNEL_CACHE_DIR to relocate it.
CACHE_DIR = os.environ.get("FBTUNNEL_CACHE_DIR") or os.path.join(
    os.path.expanduser("~"), ".cache", PRODUCT_NAME
)

# Seconds to wait for cloudflared to print its trycloudflare.com URL.
URL_TIMEOUT = _float_env("FBTUNNEL_URL_TIMEOUT", 30.0)

# Pause between starting filebrowser and starting cloudflared, so the tunnel
# doesn't come up in front of a port nobody is listening on yet.
STARTUP_DELAY = _float_env("FBTUNNEL_STARTUP_DELAY", 1.0)

# Grace period after SIGTERM before children get force-killed.
STOP_TIMEOUT = _float_env("FBTUNNEL_STOP_TIMEOUT", 10.0)

# HTTP timeout for release downloads.
DOWNLOAD_TIMEOUT = _float_env("FBTUNNEL_DOWNLOAD_TIMEOUT", 300.0)

# Optional SHA-256 pins for downloaded artifacts (the archive, or the raw
# binary for linux cloudflared). Unset means no verification.
EXPECTED_CHECKSUMS = {
    "filebrowser": os.environ.get("FBTUNNEL_FILEBROWSER_SHA256") or None,
    "cloudflared": os.environ.get("FBTUNNEL_CLOUDFLARED_SHA256") or None,
}

LOG_LEVEL = os.environ.get("FBTUNNEL_LOG_LEVEL", "WARNING").upper()


def get_cache_dir():
    return CACHE_DIR
