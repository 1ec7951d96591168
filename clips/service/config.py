"""
Configuration adapter for clip processing settings.

Centralizes access to Django settings and environment variables,
ensuring consistent configuration across the CLI and the task worker.
"""

from pathlib import Path
from urllib.parse import urlparse

from django.conf import settings
from django.utils.module_loading import import_string

from clips.service.constants import TARGET_VIDEO_FORMAT

SCALING_POLICIES = ('preserve', 'upscale')


def get_media_dir():
    """Get the media directory path"""
    return Path(settings.STORECLIP_MEDIA_DIR)


def get_browser_executable_path():
    """Browser binary override, or None to let the session pick one"""
    return settings.STORECLIP_BROWSER_EXECUTABLE_PATH or None


def get_skip_browser_download():
    """Whether automatic browser provisioning is disabled"""
    return bool(settings.STORECLIP_SKIP_BROWSER_DOWNLOAD)


def get_navigation_timeout_ms():
    return int(settings.STORECLIP_NAVIGATION_TIMEOUT) * 1000


def get_settle_delay_ms():
    return int(settings.STORECLIP_SETTLE_DELAY) * 1000


def get_static_fallback_enabled():
    return bool(settings.STORECLIP_STATIC_FALLBACK)


def get_default_referer():
    return settings.STORECLIP_DEFAULT_REFERER


def get_fetch_timeout():
    """Overall time budget for one asset download, in seconds"""
    return int(settings.STORECLIP_FETCH_TIMEOUT)


def get_scaling_policy():
    """
    Get the Scaling stage policy.

    Returns:
        str: 'preserve' (keep resolution, round to even) or 'upscale'
             (raise anything below the minimum height)

    Raises:
        ValueError: If the configured policy is not recognized
    """
    policy = (settings.STORECLIP_SCALING_POLICY or 'preserve').strip().lower()
    if policy not in SCALING_POLICIES:
        raise ValueError(f'Unknown scaling policy: {policy}')
    return policy


def get_min_height():
    return int(settings.STORECLIP_MIN_HEIGHT)


def get_remove_watermark():
    return bool(settings.STORECLIP_REMOVE_WATERMARK)


def get_ffmpeg_video_args():
    """
    Get the ffmpeg encoder arguments for the delivery format.

    Returns:
        list: ffmpeg command-line arguments
    """
    return settings.STORECLIP_DEFAULT_FFMPEG_ARGS_VIDEO.split()


def get_encode_timeout():
    return int(settings.STORECLIP_ENCODE_TIMEOUT)


def get_encode_concurrency():
    return max(1, int(settings.STORECLIP_ENCODE_CONCURRENCY))


def get_target_video_format():
    """Get the target container extension"""
    return TARGET_VIDEO_FORMAT


def get_max_age_hours():
    return int(settings.STORECLIP_MAX_AGE_HOURS)


def get_ledger():
    """Instantiate the configured usage ledger collaborator"""
    ledger_class = import_string(settings.STORECLIP_LEDGER_CLASS)
    return ledger_class()


def cookie_domain_for(url):
    """
    Pick the cookie domain for a target page.

    Uses STORECLIP_COOKIE_DOMAIN when set, otherwise the page host with any
    leading 'www.' swapped for a dot so subdomains receive the cookies too.
    """
    if settings.STORECLIP_COOKIE_DOMAIN:
        return settings.STORECLIP_COOKIE_DOMAIN
    host = urlparse(url).hostname or ''
    if host.startswith('www.'):
        host = host[4:]
    return f'.{host}' if host else ''


def parse_session_cookies(cookie_string, url):
    """
    Parse a 'name=value; name=value' cookie string into browser cookies.

    Args:
        cookie_string: Raw cookie header value
        url: Target page URL, used to scope the cookies

    Returns:
        list: Cookie dicts accepted by BrowserContext.add_cookies()

    Example:
        >>> parse_session_cookies('SPC_EC=abc; csrftoken=xyz', 'https://shopee.com.br/p')
        [{'name': 'SPC_EC', 'value': 'abc', 'domain': '.shopee.com.br', 'path': '/'},
         {'name': 'csrftoken', 'value': 'xyz', 'domain': '.shopee.com.br', 'path': '/'}]
    """
    if not cookie_string:
        return []

    domain = cookie_domain_for(url)
    cookies = []
    for part in cookie_string.split(';'):
        name, sep, value = part.strip().partition('=')
        if not sep or not name.strip():
            continue
        cookies.append({
            'name': name.strip(),
            'value': value.strip(),
            'domain': domain,
            'path': '/',
        })
    return cookies


def get_session_cookies(url):
    """Cookies configured for the session, scoped to the target page"""
    return parse_session_cookies(settings.STORECLIP_SESSION_COOKIES, url)
