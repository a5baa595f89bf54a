"""
User-friendly error messages for filebrowser-tunnel.

Maps exception types to actionable guidance printed under the error line.
"""


ERROR_MESSAGES = {
    'unsupported_platform': {
        'message': 'This platform is not supported',
        'guidance': 'Prebuilt filebrowser and cloudflared binaries are only fetched for linux and macOS on amd64 or arm64.'
    },
    'download_failed': {
        'message': 'Failed to download a required binary',
        'guidance': 'Check your internet connection and that github.com is reachable, then run the command again.'
    },
    'checksum_mismatch': {
        'message': 'Downloaded binary failed checksum verification',
        'guidance': 'The release may have changed since the checksum was configured. Update or unset FBTUNNEL_FILEBROWSER_SHA256 / FBTUNNEL_CLOUDFLARED_SHA256.'
    },
    'binary_not_in_archive': {
        'message': 'The release archive did not contain the expected binary',
        'guidance': 'The upstream archive layout may have changed. Run with --clean and try again, or report the problem.'
    },
    'directory_not_found': {
        'message': 'Directory to serve does not exist',
        'guidance': 'Check the path you passed. Use an absolute path, "~/..." or a path relative to the current directory.'
    },
    'process_start_failed': {
        'message': 'Could not start a child process',
        'guidance': 'The cached binary may be corrupt or not executable. Run with --clean to download it again.'
    },
    'tunnel_url_timeout': {
        'message': 'Timed out waiting for the tunnel URL',
        'guidance': 'Cloudflare may be slow or unreachable. Try again, or raise FBTUNNEL_URL_TIMEOUT.'
    },
    'process_exited': {
        'message': 'A child process stopped unexpectedly',
        'guidance': 'Run with FBTUNNEL_LOG_LEVEL=DEBUG to see the cloudflared output.'
    },
    'cache_clear_failed': {
        'message': 'Could not clear the binary cache',
        'guidance': 'Check the permissions of the cache directory, or delete it by hand.'
    },
}


def get_user_friendly_error(error_key, technical_details=None):
    """
    Get user-friendly error message with guidance.

    Args:
        error_key: Key from ERROR_MESSAGES dict
        technical_details: Optional technical error details

    Returns:
        Dict with message and guidance
    """
    error_info = ERROR_MESSAGES.get(error_key, {
        'message': 'An unexpected error occurred',
        'guidance': 'Run with FBTUNNEL_LOG_LEVEL=DEBUG for details.'
    })

    result = {
        'message': error_info['message'],
        'guidance': error_info['guidance']
    }

    if technical_details:
        result['_technical'] = technical_details

    return result


def format_cli_error(error):
    """
    Format an exception for the terminal.

    Returns:
        Tuple of (error line, guidance line or None)
    """
    key = getattr(error, 'error_key', None)
    if key is None:
        return f"Error: {error}", None
    info = get_user_friendly_error(key, technical_details=str(error))
    return f"Error: {error}", info['guidance']
