"""Tests for picking the quick-tunnel URL out of cloudflared output."""

import threading

import pytest

from fbtunnel.parser import extract_tunnel_url


class TestExtractTunnelURL:

    def test_banner_line_with_log_prefix(self):
        line = (
            "2024/01/01 INFO  +--------------------------------------------------------"
            "------------------------+ | https://random-words-1234.trycloudflare.com |"
        )
        assert extract_tunnel_url(line) == "https://random-words-1234.trycloudflare.com"

    def test_cloudflared_box_line(self):
        line = "2024-05-02T10:11:12Z INF |  https://hot-pink-otter-lake.trycloudflare.com                    |"
        assert extract_tunnel_url(line) == "https://hot-pink-otter-lake.trycloudflare.com"

    def test_ansi_styling_around_url(self):
        line = "\x1b[90m2024-05-02T10:11:12Z\x1b[0m \x1b[32mINF\x1b[0m https://a-b-c.trycloudflare.com\x1b[0m"
        assert extract_tunnel_url(line) == "https://a-b-c.trycloudflare.com"

    def test_url_at_end_of_line(self):
        assert extract_tunnel_url("https://x.trycloudflare.com") == "https://x.trycloudflare.com"

    def test_url_followed_by_path_is_clipped_to_host(self):
        line = "visit https://quiet-lake.trycloudflare.com/files/ now"
        assert extract_tunnel_url(line) == "https://quiet-lake.trycloudflare.com"

    def test_mention_without_scheme(self):
        assert extract_tunnel_url("some log line about trycloudflare.com pricing") == ""

    def test_requesting_line_is_not_a_url(self):
        line = "2024-05-02T10:11:12Z INF Requesting new quick Tunnel on trycloudflare.com..."
        assert extract_tunnel_url(line) == ""

    def test_suffix_with_no_scheme_before_it(self):
        assert extract_tunnel_url("host is foo.trycloudflare.com, see https://later.example") == ""

    def test_unrelated_url_before_suffix_mention(self):
        line = "docs at https://developers.cloudflare.com say quick.trycloudflare.com is free"
        assert extract_tunnel_url(line) == ""

    def test_insecure_scheme_is_ignored(self):
        assert extract_tunnel_url("http://plain.trycloudflare.com") == ""

    def test_second_candidate_is_found_when_first_is_not_a_url(self):
        line = "about .trycloudflare.com: https://second-one.trycloudflare.com"
        assert extract_tunnel_url(line) == "https://second-one.trycloudflare.com"

    @pytest.mark.parametrize("line", ["", "   ", "INF Starting tunnel", "https://"])
    def test_lines_without_a_tunnel(self, line):
        assert extract_tunnel_url(line) == ""

    def test_safe_to_call_from_many_threads(self):
        line = "INF |  https://many-threads-42.trycloudflare.com  |"
        results = []

        def worker():
            for _ in range(200):
                results.append(extract_tunnel_url(line))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert set(results) == {"https://many-threads-42.trycloudflare.com"}
