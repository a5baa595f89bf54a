import io
import tarfile

import pytest
import requests


TUNNEL_URL = "https://random-words-1234.trycloudflare.com"


@pytest.fixture
def make_script(tmp_path):
    """Write an executable /bin/sh stand-in and return its path."""
    scripts = tmp_path / "bin"
    scripts.mkdir(exist_ok=True)

    def _make(name, body):
        path = scripts / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(0o755)
        return str(path)

    return _make


@pytest.fixture
def cloudflared_stub(make_script):
    """A cloudflared stand-in that announces a tunnel URL on stderr and then idles."""
    return make_script(
        "cloudflared",
        f"echo 'INF Requesting new quick Tunnel on trycloudflare.com...' >&2\n"
        f"echo 'INF |  {TUNNEL_URL}  |' >&2\n"
        f"exec sleep 30",
    )


@pytest.fixture
def filebrowser_stub(make_script):
    return make_script("filebrowser", "exec sleep 30")


def make_tar_gz(members):
    """Build a .tar.gz in memory from {member name: bytes or None for a directory}."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            if data is None:
                info.type = tarfile.DIRTYPE
                tar.addfile(info)
            else:
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeResponse:
    """Just enough of requests.Response for streamed downloads."""

    def __init__(self, content=b"", status_code=200, send_length=True):
        self.content = content
        self.status_code = status_code
        self.headers = {"Content-Length": str(len(content))} if send_length else {}
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeDownloads:
    """Canned responses for requests.get, keyed by URL. Unknown URLs get a 404."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        response = self.routes.get(url)
        if response is None:
            return FakeResponse(b"not found", status_code=404)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_downloads(monkeypatch):
    downloads = FakeDownloads()
    monkeypatch.setattr(requests, "get", downloads.get)
    return downloads
