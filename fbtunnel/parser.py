"""
Extraction of the public quick-tunnel URL from cloudflared output.

cloudflared prints the URL inside a human-readable banner whose layout is
not stable, so lines are treated as free text rather than a log format.
"""

TUNNEL_SUFFIX = '.trycloudflare.com'
SCHEME = 'https://'


def _is_label(text: str) -> bool:
    return bool(text) and all(c.isascii() and (c.isalnum() or c == '-') for c in text)


def extract_tunnel_url(line: str) -> str:
    """
    Return the first https://<label>.trycloudflare.com URL in line.

    Returns an empty string when the suffix is missing, when no https://
    precedes it, or when what sits between the two is not a hostname label.
    """
    if not line:
        return ''

    suffix_at = line.find(TUNNEL_SUFFIX)
    while suffix_at != -1:
        scheme_at = line.rfind(SCHEME, 0, suffix_at)
        if scheme_at != -1 and _is_label(line[scheme_at + len(SCHEME):suffix_at]):
            return line[scheme_at:suffix_at + len(TUNNEL_SUFFIX)]
        suffix_at = line.find(TUNNEL_SUFFIX, suffix_at + len(TUNNEL_SUFFIX))

    return ''
