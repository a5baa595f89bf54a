import os
import socket


def get_free_port():
    """Ask the OS for a TCP port that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('', 0))
        return sock.getsockname()[1]


def resolve_directory(path):
    """
    Turn a user-supplied directory into an absolute path.

    "" and "." mean the current directory, a leading "~" is the home
    directory, and relative paths are taken from the current directory.
    Existence is not checked here.
    """
    if not path or path == '.':
        return os.getcwd()
    return os.path.abspath(os.path.expanduser(path))
