"""Command line entry point - provisions binaries, starts the tunnel, waits for shutdown."""

import argparse
import logging
import sys
import threading
import time

from . import __version__, config
from .binary import BinaryManager
from .error_messages import format_cli_error
from .exceptions import TunnelError, TunnelURLTimeout
from .manager import ProcessManager
from .signals import InterruptListener
from .utils import get_free_port

log = logging.getLogger(__name__)

# how often the URL wait checks for an interrupt
URL_POLL_INTERVAL = 0.2

RULE = "═══════════════════════════════════════════════════════════"

USAGE_EXAMPLES = """\
Examples:
  filebrowser-tunnel                    # Serve current directory
  filebrowser-tunnel /path/to/dir       # Serve specific directory
  filebrowser-tunnel ~/Downloads        # Serve Downloads folder
  filebrowser-tunnel --clean            # Clear cached binaries
"""


class TunnelRunner:
    """Runs one filebrowser + cloudflared session from download to shutdown."""

    def __init__(self, directory, listener, binary_manager=None, manager=None,
                 url_timeout=None, startup_delay=None, out=None):
        self.directory = directory
        self.listener = listener
        self.binary_manager = binary_manager or BinaryManager()
        self.manager = manager or ProcessManager()
        self.url_timeout = config.URL_TIMEOUT if url_timeout is None else url_timeout
        self.startup_delay = config.STARTUP_DELAY if startup_delay is None else startup_delay
        self.out = out

        self.port = None
        self.tunnel_url = None
        self.exit_error = None
        self._unwind = threading.Event()

        self.listener.add_callback(self._on_interrupt)

    def run(self):
        """
        Run until interrupted or until both processes exit.

        Returns normally on interrupt and on clean exit.

        Raises:
            TunnelError: On any provisioning, startup or abnormal-exit failure
        """
        self._banner()

        filebrowser_path, cloudflared_path = self.binary_manager.ensure_binaries()

        try:
            self.port = get_free_port()
        except OSError as e:
            raise TunnelError(f"failed to find free port: {e}") from e

        self.listener.start()

        try:
            serving = self.manager.start_filebrowser(filebrowser_path, self.port, self.directory)
            self._say(f"🗂️  Filebrowser started on port {self.port} (serving: {serving})")

            # give filebrowser a moment to bind before the tunnel points at it
            if self.listener.wait(self.startup_delay):
                self.listener.wait_handled()
                return

            self._say("🌐 Starting Cloudflare tunnel...")
            self.manager.start_cloudflared(cloudflared_path, self.port)

            url = self._wait_for_url()
        except TunnelError:
            if self.listener.fired:
                self.listener.wait_handled()
                return
            self._stop()
            raise

        if url is None:
            self.listener.wait_handled()
            return

        self.tunnel_url = url
        self._show_url(url)

        threading.Thread(target=self._watch_processes, name='process-watcher', daemon=True).start()
        self._unwind.wait()

        if self.listener.fired:
            self.listener.wait_handled()
            return

        if self.exit_error is not None:
            self._stop()
            raise self.exit_error

    def _wait_for_url(self):
        # the slot wait is sliced so an interrupt is noticed promptly
        deadline = time.monotonic() + self.url_timeout
        while not self.listener.fired:
            remaining = deadline - time.monotonic()
            try:
                return self.manager.wait_for_tunnel_url(min(URL_POLL_INTERVAL, remaining))
            except TunnelURLTimeout:
                if time.monotonic() >= deadline:
                    raise TunnelURLTimeout(
                        f"timeout waiting for tunnel URL after {self.url_timeout:g}s"
                    ) from None
        return None

    def _watch_processes(self):
        try:
            self.manager.wait()
        except TunnelError as e:
            self.exit_error = e
        finally:
            self._unwind.set()

    def _on_interrupt(self):
        self._stop()
        self._unwind.set()

    def _stop(self):
        self._say("\n🛑 Shutting down...")
        self.manager.stop()
        self._say("✓ Stopped")

    def _banner(self):
        self._say("╔═══════════════════════════════════════════════════════════╗")
        self._say("║           filebrowser-tunnel                              ║")
        self._say("║   Expose your files securely via Cloudflare tunnel        ║")
        self._say("╚═══════════════════════════════════════════════════════════╝")
        self._say("")

    def _show_url(self, url):
        self._say("")
        self._say(RULE)
        self._say("")
        self._say("  🔗 Your filebrowser is available at:\n")
        self._say(f"     {url}\n")
        self._say("  Press Ctrl+C to stop")
        self._say("")
        self._say(RULE)
        self._say("")

    def _say(self, message):
        print(message, file=self.out or sys.stdout, flush=True)


def build_parser():
    parser = argparse.ArgumentParser(
        prog=config.PRODUCT_NAME,
        description="Expose a directory via Cloudflare tunnel",
        epilog=USAGE_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "directory", nargs="?", default=".",
        help="Directory to serve (default: current directory)",
    )
    parser.add_argument(
        "--version", action="version",
        version=f"%(prog)s version {__version__}",
        help="Show version",
    )
    parser.add_argument("--clean", action="store_true", help="Clear cached binaries and exit")
    return parser


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def print_error(error):
    line, guidance = format_cli_error(error)
    print(line, file=sys.stderr)
    if guidance:
        print(f"  {guidance}", file=sys.stderr)


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging()

    if args.clean:
        try:
            BinaryManager().clear_cache()
        except TunnelError as e:
            print_error(e)
            return 1
        print("Cache cleared successfully")
        return 0

    runner = TunnelRunner(args.directory, InterruptListener())
    try:
        runner.run()
    except TunnelError as e:
        print_error(e)
        return 1
    except KeyboardInterrupt:
        # Ctrl+C before the listener took over the signals (e.g. mid-download)
        runner.manager.stop()
        print()
        return 0
    finally:
        runner.listener.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
