"""
Process lifecycle management - filebrowser and cloudflared children,
tunnel URL discovery, coordinated stop and wait.
"""

import logging
import os
import queue
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import psutil

from . import config
from .exceptions import (
    DirectoryNotFound,
    ProcessExitedAbnormally,
    ProcessStartFailed,
    TunnelURLTimeout,
)
from .parser import extract_tunnel_url
from .utils import resolve_directory

log = logging.getLogger(__name__)

FILEBROWSER = 'filebrowser'
CLOUDFLARED = 'cloudflared'


class URLSlot:
    """
    Single-capacity handoff for the first discovered tunnel URL.

    offer() never blocks and drops the value when the slot is full, so only
    the first URL is ever handed over. take() cannot miss an offer that
    happens before or while it waits.
    """

    def __init__(self):
        self._queue = queue.Queue(maxsize=1)

    def offer(self, url: str) -> bool:
        try:
            self._queue.put_nowait(url)
            return True
        except queue.Full:
            return False

    def take(self, timeout: Optional[float]) -> str:
        if timeout is not None:
            timeout = max(0.0, timeout)
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            raise TunnelURLTimeout(f"timeout waiting for tunnel URL after {timeout:g}s") from None


class ProcessManager:
    """Owns the filebrowser and cloudflared processes for one run."""

    def __init__(self, stop_timeout: Optional[float] = None):
        """
        Initialize process manager.

        Args:
            stop_timeout: Seconds to wait after SIGTERM before force-killing
        """
        self.filebrowser_process = None
        self.cloudflared_process = None
        self.tunnel_url = ''
        self.stop_timeout = config.STOP_TIMEOUT if stop_timeout is None else stop_timeout

        # guards tunnel_url, both process handles and _stopped
        self._lock = threading.Lock()
        self._url_slot = URLSlot()
        self._stopped = False

        self._scanner = None
        self.scanner_finished = threading.Event()

    def start_filebrowser(self, binary_path: str, port: int, directory: str) -> str:
        """
        Start filebrowser serving directory on port, without authentication.

        Its stdout and stderr go straight to ours.

        Returns:
            The absolute directory being served

        Raises:
            DirectoryNotFound: If directory does not resolve to an existing directory
            ProcessStartFailed: If the process cannot be spawned
        """
        with self._lock:
            self._check_can_start(FILEBROWSER, self.filebrowser_process)

            try:
                abs_dir = resolve_directory(directory)
            except OSError as e:
                raise DirectoryNotFound(f"failed to resolve directory {directory!r}: {e}") from e

            if not os.path.isdir(abs_dir):
                raise DirectoryNotFound(f"directory does not exist: {abs_dir}")

            command = [
                binary_path,
                '--noauth',
                '--address', '0.0.0.0',
                '--port', str(port),
                '--root', abs_dir,
            ]

            try:
                self.filebrowser_process = subprocess.Popen(
                    command,
                    stdin=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as e:
                raise ProcessStartFailed(f"failed to start filebrowser ({binary_path}): {e}") from e

            log.info(f"Started filebrowser (PID: {self.filebrowser_process.pid}) on port {port} serving {abs_dir}")
            return abs_dir

    def start_cloudflared(self, binary_path: str, local_port: int):
        """
        Start a quick tunnel to http://localhost:<local_port>.

        stderr is read on a background thread and every line is checked
        for the public URL.

        Raises:
            ProcessStartFailed: If the process cannot be spawned
        """
        with self._lock:
            self._check_can_start(CLOUDFLARED, self.cloudflared_process)

            command = [binary_path, 'tunnel', '--url', f"http://localhost:{local_port}"]

            try:
                process = subprocess.Popen(
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding='utf-8',
                    errors='replace',
                    bufsize=1,
                    start_new_session=True,
                )
            except OSError as e:
                raise ProcessStartFailed(f"failed to start cloudflared ({binary_path}): {e}") from e

            self.cloudflared_process = process
            self._scanner = threading.Thread(
                target=self._scan_output,
                args=(process.stderr,),
                name='cloudflared-output',
                daemon=True,
            )
            self._scanner.start()

            log.info(f"Started cloudflared (PID: {process.pid}) tunnelling to localhost:{local_port}")

    def publish_tunnel_url(self, url: str):
        """
        Record a discovered URL.

        The status value always holds the latest URL; the waiter only ever
        receives the first one.
        """
        with self._lock:
            self.tunnel_url = url

        if self._url_slot.offer(url):
            log.info(f"Tunnel URL discovered: {url}")
        else:
            log.debug(f"Tunnel URL already delivered, not handing over {url}")

    def wait_for_tunnel_url(self, timeout: Optional[float]) -> str:
        """
        Block until cloudflared reports its URL.

        Raises:
            TunnelURLTimeout: If nothing arrives within timeout seconds
        """
        return self._url_slot.take(timeout)

    def get_tunnel_url(self) -> str:
        with self._lock:
            return self.tunnel_url

    def wait_for_scanner(self, timeout: Optional[float] = None) -> bool:
        """Wait for the output scanner to reach end of stream. True if it has."""
        if self._scanner is None:
            return True
        return self.scanner_finished.wait(timeout)

    def stop(self):
        """
        Stop both processes, cloudflared first.

        Each live process gets SIGTERM, then SIGKILL after stop_timeout, and
        is reaped before this returns. Safe to call when nothing was started
        and safe to call twice. Never raises.
        """
        with self._lock:
            if self._stopped:
                log.debug("Process manager already stopped")
                return
            self._stopped = True

            for name, process in ((CLOUDFLARED, self.cloudflared_process),
                                  (FILEBROWSER, self.filebrowser_process)):
                if process is None:
                    continue
                try:
                    self._terminate_process(name, process)
                except (OSError, psutil.Error, subprocess.SubprocessError) as e:
                    log.error(f"Error stopping {name} (PID: {process.pid}): {e}")

    def wait(self):
        """
        Block until both processes have exited on their own.

        Raises:
            ProcessExitedAbnormally: If either exits with a non-zero code
        """
        with self._lock:
            targets = [(name, process) for name, process in ((FILEBROWSER, self.filebrowser_process),
                                                             (CLOUDFLARED, self.cloudflared_process))
                       if process is not None]

        if not targets:
            return

        with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix='process-wait') as pool:
            futures = [(name, pool.submit(process.wait)) for name, process in targets]
            exit_codes = {name: future.result() for name, future in futures}

        failures = {name: code for name, code in exit_codes.items() if code != 0}
        if failures:
            detail = '; '.join(f"{name} exited with code {code}" for name, code in failures.items())
            raise ProcessExitedAbnormally(detail, exit_codes=failures)

        log.info("filebrowser and cloudflared exited cleanly")

    def _check_can_start(self, name: str, existing):
        if self._stopped:
            raise ProcessStartFailed(f"cannot start {name}: process manager has been stopped")
        if existing is not None:
            raise ProcessStartFailed(f"{name} already started (PID: {existing.pid})")

    def _scan_output(self, stream):
        try:
            for line in stream:
                line = line.rstrip('\r\n')
                log.debug(f"cloudflared: {line}")
                url = extract_tunnel_url(line)
                if url:
                    self.publish_tunnel_url(url)
        except (OSError, ValueError) as e:
            # stream torn down while reading
            log.debug(f"cloudflared output closed: {e}")
        finally:
            stream.close()
            self.scanner_finished.set()

    def _terminate_process(self, name: str, process: subprocess.Popen):
        """
        Terminate one child and any processes it spawned, then reap it.
        """
        if process.poll() is not None:
            log.info(f"{name} already exited with code {process.returncode}")
            return

        try:
            children = psutil.Process(process.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            children = []

        for child in children:
            try:
                child.terminate()
            except psutil.NoSuchProcess:
                pass

        process.terminate()
        log.info(f"Sent termination signal to {name} (PID: {process.pid})")

        try:
            process.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            log.warning(f"{name} did not exit after {self.stop_timeout:g} seconds, force-killing")
            process.kill()
            process.wait()

        if children:
            _, alive = psutil.wait_procs(children, timeout=self.stop_timeout)
            for child in alive:
                log.warning(f"Child process {child.pid} of {name} still running, force-killing")
                try:
                    child.kill()
                except psutil.NoSuchProcess:
                    pass

        log.info(f"{name} stopped with code {process.returncode}")
