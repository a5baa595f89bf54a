"""
filebrowser and cloudflared binary management - download, extraction, caching.
"""

import hashlib
import logging
import os
import platform
import shutil
import stat
import sys
import tarfile
from dataclasses import dataclass
from typing import Optional, Tuple

import requests

from . import config
from .exceptions import (
    BinaryNotFoundInArchive,
    CacheClearFailed,
    ChecksumMismatch,
    DownloadFailed,
    TunnelError,
    UnsupportedPlatform,
)

log = logging.getLogger(__name__)

FILEBROWSER = 'filebrowser'
CLOUDFLARED = 'cloudflared'

FILEBROWSER_DOWNLOAD_BASE = "https://github.com/filebrowser/filebrowser/releases/latest/download"
CLOUDFLARED_DOWNLOAD_BASE = "https://github.com/cloudflare/cloudflared/releases/latest/download"

# archive members with one of these base names are accepted as the binary,
# in case a release bundles it under the other project's name
ALTERNATE_BINARY_NAMES = (FILEBROWSER, CLOUDFLARED)

SUPPORTED_OS = ('linux', 'darwin')
SUPPORTED_ARCH = ('amd64', 'arm64')

# rwxr-xr-x
EXECUTABLE_MODE = stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH

CHUNK_SIZE = 8192


@dataclass(frozen=True)
class PlatformKey:
    """OS and architecture, named the way the release assets name them."""

    os: str
    arch: str

    @property
    def slug(self) -> str:
        return f"{self.os}-{self.arch}"

    @property
    def supported(self) -> bool:
        return self.os in SUPPORTED_OS and self.arch in SUPPORTED_ARCH


@dataclass(frozen=True)
class CachedBinary:
    """An executable stored in the cache directory."""

    name: str
    cache_dir: str
    path: str

    @property
    def executable(self) -> bool:
        return os.access(self.path, os.X_OK)


def detect_platform(system: Optional[str] = None, machine: Optional[str] = None) -> PlatformKey:
    """
    Detect OS and architecture.

    Unknown names are passed through lowercased so the caller can report
    them; use PlatformKey.supported to check.
    """
    system = (system if system is not None else platform.system()).lower()
    machine = (machine if machine is not None else platform.machine()).lower()

    arch_map = {
        'x86_64': 'amd64',
        'amd64': 'amd64',
        'aarch64': 'arm64',
        'arm64': 'arm64',
    }

    return PlatformKey(os=system, arch=arch_map.get(machine, machine))


def filebrowser_url(platform_key: PlatformKey) -> str:
    # e.g. .../latest/download/linux-amd64-filebrowser.tar.gz
    return f"{FILEBROWSER_DOWNLOAD_BASE}/{platform_key.slug}-filebrowser.tar.gz"


def cloudflared_url(platform_key: PlatformKey) -> str:
    # darwin ships a .tgz, linux a bare executable
    if platform_key.os == 'darwin':
        return f"{CLOUDFLARED_DOWNLOAD_BASE}/cloudflared-{platform_key.slug}.tgz"
    return f"{CLOUDFLARED_DOWNLOAD_BASE}/cloudflared-{platform_key.slug}"


class DownloadProgress:
    """Prints download progress on a single, rewritten terminal line."""

    def __init__(self, total: int, stream=None):
        self.total = total if total and total > 0 else 0
        self.downloaded = 0
        self.stream = stream if stream is not None else sys.stdout

    def update(self, n: int):
        self.downloaded += n
        self.stream.write(self.render())
        self.stream.flush()

    def render(self) -> str:
        mb = 1024 * 1024
        if self.total:
            percent = self.downloaded / self.total * 100
            return (
                f"\r  Downloading... {percent:.1f}% "
                f"({self.downloaded / mb:.2f} MB / {self.total / mb:.2f} MB)"
            )
        return f"\r  Downloading... {self.downloaded / mb:.2f} MB"

    def finish(self):
        self.stream.write("\n")
        self.stream.flush()


class BinaryManager:
    """Manages download, extraction and caching of filebrowser and cloudflared."""

    def __init__(self, cache_dir: Optional[str] = None, platform_key: Optional[PlatformKey] = None,
                 checksums: Optional[dict] = None, timeout: Optional[float] = None, progress_stream=None):
        """
        Initialize binary manager.

        Args:
            cache_dir: Directory for cached binaries (default from config)
            platform_key: Override the detected platform
            checksums: Binary name -> expected SHA-256 of the downloaded artifact
            timeout: HTTP timeout in seconds for downloads
            progress_stream: Where progress and status lines go (default stdout)
        """
        self.cache_dir = cache_dir or config.get_cache_dir()
        self._platform = platform_key
        self.checksums = dict(config.EXPECTED_CHECKSUMS if checksums is None else checksums)
        self.timeout = config.DOWNLOAD_TIMEOUT if timeout is None else timeout
        self.progress_stream = progress_stream

    @property
    def platform(self) -> PlatformKey:
        if self._platform is None:
            self._platform = detect_platform()
        return self._platform

    def ensure_binaries(self) -> Tuple[str, str]:
        """
        Ensure both filebrowser and cloudflared are available.

        Returns:
            (filebrowser_path, cloudflared_path), both executable

        Raises:
            UnsupportedPlatform: If no release exists for this OS/arch
            DownloadFailed, BinaryNotFoundInArchive: If provisioning fails
        """
        key = self.platform
        if key.os not in SUPPORTED_OS:
            raise UnsupportedPlatform(f"unsupported OS: {key.os}")
        if key.arch not in SUPPORTED_ARCH:
            raise UnsupportedPlatform(f"unsupported architecture: {key.arch}")

        self._ensure_cache_dir()

        self._say(f"🔍 Platform: {key.os}/{key.arch}")
        self._say(f"📁 Cache directory: {self.cache_dir}\n")

        filebrowser = self.ensure(FILEBROWSER)
        cloudflared = self.ensure(CLOUDFLARED)

        self._say("")
        return filebrowser.path, cloudflared.path

    def ensure(self, name: str) -> CachedBinary:
        """
        Return the cached binary, downloading it first if missing.

        A file already present at the cache path is trusted as-is.
        """
        binary_path = self.get_binary_path(name)
        cached = CachedBinary(name=name, cache_dir=self.cache_dir, path=binary_path)

        if os.path.exists(binary_path):
            log.debug(f"Cache hit for {name} at {binary_path}")
            return cached

        self._ensure_cache_dir()
        url, is_archive = self.get_download_url(name)

        self._say(f"📦 Downloading {name}...")
        log.info(f"Downloading {name} from {url}")

        if is_archive:
            suffix = '.tgz' if url.endswith('.tgz') else '.tar.gz'
            temp_path = os.path.join(self.cache_dir, name + suffix)
        else:
            temp_path = binary_path + '.tmp'

        try:
            self._download_file(name, url, temp_path)
            self._verify_checksum(name, temp_path)

            if is_archive:
                self._say("  Extracting...")
                self._extract_tar_gz(name, temp_path, binary_path)
            else:
                try:
                    os.replace(temp_path, binary_path)
                except OSError as e:
                    raise DownloadFailed(f"failed to move {name} into the cache: {e}") from e

            self._set_executable_permissions(name, binary_path)
        finally:
            self._remove_quietly(temp_path)

        self._say(f"  ✓ {name} ready")
        return cached

    def get_binary_path(self, name: str) -> str:
        return os.path.join(self.cache_dir, name)

    def get_download_url(self, name: str) -> Tuple[str, bool]:
        """
        Return (url, is_archive) for a binary on the current platform.
        """
        if name == FILEBROWSER:
            return filebrowser_url(self.platform), True
        if name == CLOUDFLARED:
            url = cloudflared_url(self.platform)
            return url, url.endswith('.tgz')
        raise ValueError(f"unknown binary: {name}")

    def clear_cache(self):
        """
        Remove the whole cache directory.

        Raises:
            CacheClearFailed: If the directory exists and cannot be removed
        """
        if not os.path.exists(self.cache_dir):
            log.debug(f"Cache directory {self.cache_dir} does not exist, nothing to clear")
            return
        try:
            shutil.rmtree(self.cache_dir)
        except OSError as e:
            raise CacheClearFailed(f"failed to clear cache {self.cache_dir}: {e}") from e
        log.info(f"Removed cache directory {self.cache_dir}")

    def _ensure_cache_dir(self):
        try:
            os.makedirs(self.cache_dir, mode=0o755, exist_ok=True)
        except OSError as e:
            raise TunnelError(f"failed to create cache directory {self.cache_dir}: {e}") from e

    def _download_file(self, name: str, url: str, dest_path: str):
        """
        Stream url into dest_path, printing progress.

        Raises:
            DownloadFailed: On any HTTP or write error
        """
        try:
            response = requests.get(url, stream=True, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            raise DownloadFailed(f"failed to download {name} from {url}: {e}") from e

        try:
            try:
                response.raise_for_status()
            except requests.HTTPError as e:
                raise DownloadFailed(
                    f"failed to download {name}: {url} returned status {response.status_code}"
                ) from e

            total = int(response.headers.get('Content-Length') or 0)
            progress = DownloadProgress(total, stream=self.progress_stream)
            try:
                with open(dest_path, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
                            progress.update(len(chunk))
            except requests.RequestException as e:
                raise DownloadFailed(f"failed to download {name} from {url}: {e}") from e
            except OSError as e:
                raise DownloadFailed(f"failed to save {name} to {dest_path}: {e}") from e
            finally:
                progress.finish()
        finally:
            response.close()

    def _extract_tar_gz(self, name: str, archive_path: str, dest_path: str):
        """
        Copy the first regular file named like the binary out of a .tar.gz.

        Raises:
            BinaryNotFoundInArchive: If no member matches
            DownloadFailed: If the archive cannot be decoded
        """
        accepted = {name, *ALTERNATE_BINARY_NAMES}
        # dest_path only ever appears complete, a cached file is trusted as-is
        part_path = dest_path + '.part'
        try:
            # stream mode: the gzip layer is decoded as members are read
            with tarfile.open(archive_path, mode='r|gz') as tar:
                for member in tar:
                    if not member.isreg() or os.path.basename(member.name) not in accepted:
                        continue
                    source = tar.extractfile(member)
                    with open(part_path, 'wb') as out:
                        shutil.copyfileobj(source, out)
                    os.replace(part_path, dest_path)
                    log.debug(f"Extracted {member.name} from {archive_path} to {dest_path}")
                    return
        except (tarfile.TarError, EOFError, OSError) as e:
            raise DownloadFailed(f"failed to extract {name} from {archive_path}: {e}") from e
        finally:
            self._remove_quietly(part_path)

        raise BinaryNotFoundInArchive(f"{name} binary not found in archive {os.path.basename(archive_path)}")

    def _verify_checksum(self, name: str, path: str):
        """
        Compare the SHA-256 of path against the configured pin, if any.

        Raises:
            ChecksumMismatch: If a pin is configured and does not match
        """
        expected = self.checksums.get(name)
        if not expected:
            log.debug(f"No checksum configured for {name}, skipping verification")
            return

        sha256_hash = hashlib.sha256()
        try:
            with open(path, 'rb') as f:
                for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
                    sha256_hash.update(chunk)
        except OSError as e:
            raise DownloadFailed(f"failed to read {name} for checksum verification: {e}") from e

        actual = sha256_hash.hexdigest()
        if actual.lower() != expected.strip().lower():
            raise ChecksumMismatch(
                f"checksum mismatch for {name}: expected {expected.strip().lower()}, got {actual}"
            )

    def _set_executable_permissions(self, name: str, binary_path: str):
        try:
            os.chmod(binary_path, EXECUTABLE_MODE)
        except OSError as e:
            self._remove_quietly(binary_path)
            raise DownloadFailed(f"failed to make {name} executable: {e}") from e

    def _remove_quietly(self, path: str):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning(f"Could not remove {path}: {e}")

    def _say(self, message: str):
        print(message, file=self.progress_stream or sys.stdout, flush=True)
