"""
Browser session control and page resolution.

One resolution request owns one Playwright session from launch to teardown.
The session is a context manager so the browser is released on every exit
path, including navigation timeouts and exceptions raised mid-scan.
"""

import subprocess
import sys
import threading
from pathlib import Path

import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from clips.service.collect import PageSnapshot, SignalCollector
from clips.service.config import (
    get_browser_executable_path,
    get_navigation_timeout_ms,
    get_session_cookies,
    get_settle_delay_ms,
    get_skip_browser_download,
    get_static_fallback_enabled,
)
from clips.service.constants import (
    BROWSER_ARGS,
    ELF_MAGIC,
    SYSTEM_BROWSER_PATHS,
    USER_AGENT,
    VIEWPORT,
)
from clips.service.errors import NavigationError, ResourceCleanupError
from clips.service.links import ShareLink, parse_share_link
from clips.service.rank import describe, rank

_provision_lock = threading.Lock()
_provisioned = False


def is_elf_binary(path):
    """Check for a real executable rather than a wrapper script"""
    try:
        with open(path, 'rb') as f:
            return f.read(4) == ELF_MAGIC
    except OSError:
        return False


def find_system_browser():
    """Return the first installed system Chromium/Chrome binary, or None"""
    for candidate in SYSTEM_BROWSER_PATHS:
        path = Path(candidate)
        if path.is_file() and is_elf_binary(path):
            return str(path)
    return None


def provision_browser(logger=None):
    """
    Install Playwright's bundled Chromium, once per process.

    A failed install is only logged; the launch that follows will fail and
    report the real problem.
    """
    global _provisioned

    def log(message):
        if logger:
            logger(message)

    with _provision_lock:
        if _provisioned:
            return
        log('Provisioning Playwright Chromium...')
        try:
            result = subprocess.run(
                [sys.executable, '-m', 'playwright', 'install', 'chromium'],
                capture_output=True,
                text=True,
                timeout=600,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            log(f'Browser provisioning failed: {e}')
            return
        if result.returncode != 0:
            log(f'Browser provisioning failed: {result.stderr.strip()}')
            return
        _provisioned = True


def get_launch_options(logger=None):
    """
    Decide which browser binary to launch.

    Returns:
        dict: Extra keyword arguments for chromium.launch()
    """

    def log(message):
        if logger:
            logger(message)

    executable = get_browser_executable_path()
    if executable:
        log(f'Using configured browser: {executable}')
        return {'executable_path': executable}

    if get_skip_browser_download():
        system_browser = find_system_browser()
        if system_browser:
            log(f'Using system browser: {system_browser}')
            return {'executable_path': system_browser}
        log('No system browser found and provisioning is disabled; falling back to the bundled browser')

    provision_browser(logger=logger)
    return {}


class BrowserSession:
    """
    A single headless browser session with a spoofed desktop identity.

    Usage:
        with BrowserSession(url, logger=log) as session:
            session.navigate(url)
            snapshot = session.snapshot()
    """

    def __init__(self, url, logger=None):
        self.url = url
        self._logger = logger
        self._playwright = None
        self.browser = None
        self.context = None
        self.page = None

    def log(self, message):
        if self._logger:
            self._logger(message)

    def __enter__(self):
        try:
            self._playwright = sync_playwright().start()
            self.browser = self._playwright.chromium.launch(
                headless=True,
                args=BROWSER_ARGS,
                **get_launch_options(logger=self._logger),
            )
            self.context = self.browser.new_context(
                user_agent=USER_AGENT,
                viewport=VIEWPORT,
                ignore_https_errors=True,
            )
            cookies = get_session_cookies(self.url)
            if cookies:
                self.context.add_cookies(cookies)
                self.log(f'Injected {len(cookies)} session cookies')
            self.page = self.context.new_page()
        except PlaywrightError as e:
            self.close()
            raise NavigationError(f'Could not start browser session: {e}') from e
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def navigate(self, url, timeout_ms=None, settle_ms=None):
        """
        Load a page and wait for late media to show up.

        Raises:
            NavigationError: On DNS, TLS, timeout or any other load failure
        """
        if timeout_ms is None:
            timeout_ms = get_navigation_timeout_ms()
        if settle_ms is None:
            settle_ms = get_settle_delay_ms()

        self.log(f'Navigating to {url} (timeout {timeout_ms}ms)')
        try:
            response = self.page.goto(url, wait_until='load', timeout=timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f'Navigation to {url} failed: {e}') from e

        if response is not None and response.status >= 400:
            self.log(f'Page answered {response.status}, scanning anyway')

        # Media players attach their sources after load
        self.page.wait_for_timeout(settle_ms)

    def snapshot(self):
        """
        Capture the rendered page.

        Raises:
            NavigationError: If the page died before it could be read
        """
        try:
            return PageSnapshot.from_page(self.page)
        except PlaywrightError as e:
            raise NavigationError(f'Could not read rendered page: {e}') from e

    def close(self):
        """Release page, context, browser and driver; never raises"""
        steps = [
            ('page', self.page, lambda: self.page.close()),
            ('context', self.context, lambda: self.context.close()),
            ('browser', self.browser, lambda: self.browser.close()),
            ('playwright', self._playwright, lambda: self._playwright.stop()),
        ]
        for name, handle, release in steps:
            if handle is None:
                continue
            try:
                release()
            except Exception as e:
                self.log(repr(ResourceCleanupError(f'Failed to close {name}: {e}')))
        self.page = None
        self.context = None
        self.browser = None
        self._playwright = None


def collect_static(url, strategy_classes=None, logger=None):
    """
    Scan the page's static HTML, without a browser.

    Used as a last resort when the rendered session observed nothing.
    Failures are logged and yield an empty set.

    Returns:
        CandidateSet
    """

    def log(message):
        if logger:
            logger(message)

    collector = SignalCollector(strategy_classes, logger=logger)
    log(f'Static fallback: fetching {url}')
    try:
        response = requests.get(url, headers={'User-Agent': USER_AGENT}, timeout=30)
        response.raise_for_status()
    except requests.RequestException as e:
        log(f'Static fallback failed: {e}')
        return collector.candidates

    return collector.collect(PageSnapshot.from_html(url, response.text))


def resolve(share_link, strategy_classes=None, logger=None):
    """
    Resolve a share link to the best media location on its page.

    Args:
        share_link: Raw share link text or a parsed ShareLink
        strategy_classes: Extraction strategies to run (default: registry)
        logger: Optional callable(str) for logging

    Returns:
        RankedSelection

    Raises:
        NavigationError: If the link is invalid or the page cannot be loaded
        NoCandidateFound: If no channel observed any media
    """

    def log(message):
        if logger:
            logger(message)

    link = share_link if isinstance(share_link, ShareLink) else parse_share_link(share_link)
    if link.was_redirected:
        log(f'Unwrapped redirect link to: {link.target_url}')
    else:
        log(f'Target page: {link.target_url}')

    with BrowserSession(link.target_url, logger=logger) as session:
        collector = SignalCollector(strategy_classes, logger=logger)
        collector.attach(session.page)
        session.navigate(link.target_url)
        candidates = collector.collect(session.snapshot())

    if not len(candidates) and get_static_fallback_enabled():
        candidates = collect_static(link.target_url, strategy_classes, logger=logger)

    selection = rank(candidates)
    log(f'Ranked {len(selection.candidates)} unique candidates:\n{describe(selection)}')
    return selection
