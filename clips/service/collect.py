"""
Signal collection.

Gathers every reference to a media file that one page load exposes. Each
channel is an extraction strategy; strategies are kept in an ordered registry
so a new channel can be added without touching the ranker. A SignalCollector
instantiates the registered strategies for one session and shares a single
CandidateSet between them.
"""

import json
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from playwright.sync_api import Error as PlaywrightError

from clips.service.candidates import CandidateSet, Channel, QualityTier
from clips.service.constants import (
    API_PATH_PATTERNS,
    QUALITY_HINT_ATTRIBUTES,
    SCRIPT_OBJECT_PATTERN,
    VIDEO_EXTENSIONS,
    VIDEO_URL_PATTERN,
)
from clips.service.json_walk import find_media_urls

# Runs in the page: the primary <video> element and its <source> children
MEDIA_ELEMENTS_JS = """
() => {
  const video = document.querySelector('video');
  if (!video) return [];
  const hintOf = (el) => el.getAttribute('data-quality')
    || el.getAttribute('data-res')
    || el.getAttribute('label')
    || null;
  const found = [];
  if (video.src) found.push({src: video.src, hint: hintOf(video)});
  video.querySelectorAll('source').forEach((source) => {
    if (source.src) found.push({src: source.src, hint: hintOf(source)});
  });
  return found;
}
"""


def is_video_url(url):
    """Check whether a URL path ends in a video file extension"""
    path = urlparse(url or '').path.lower()
    return any(path.endswith(ext) for ext in VIDEO_EXTENSIONS)


def is_api_url(url):
    """Check whether a URL looks like an item/detail/video/media endpoint"""
    path = urlparse(url or '').path
    return any(pattern.search(path) for pattern in API_PATH_PATTERNS)


def _quality_hint(tag):
    for attribute in QUALITY_HINT_ATTRIBUTES:
        value = tag.get(attribute)
        if value:
            return value
    return None


@dataclass
class PageSnapshot:
    """What the settled page looks like once loading is over"""

    url: str
    html: str = ''
    # [{'src': absolute URL, 'hint': quality label or None}, ...]
    media_elements: List[dict] = field(default_factory=list)

    @classmethod
    def from_page(cls, page):
        """Capture a live Playwright page"""
        return cls(
            url=page.url,
            html=page.content(),
            media_elements=page.evaluate(MEDIA_ELEMENTS_JS) or [],
        )

    @classmethod
    def from_html(cls, url, html):
        """Build a snapshot from static HTML, resolving relative sources"""
        soup = BeautifulSoup(html, 'html.parser')
        media_elements = []

        video = soup.find('video')
        if video:
            if video.get('src'):
                media_elements.append({'src': urljoin(url, video['src']), 'hint': _quality_hint(video)})
            for source in video.find_all('source', src=True):
                media_elements.append({'src': urljoin(url, source['src']), 'hint': _quality_hint(source)})

        return cls(url=url, html=html, media_elements=media_elements)


class ExtractionStrategy:
    """
    One channel of media signals.

    attach() is called before navigation so the strategy can subscribe to
    page events; collect() is called once the page has settled.
    """

    channel: Optional[Channel] = None

    def attach(self, page, candidates, log):
        pass

    def collect(self, snapshot, candidates, log):
        pass


STRATEGY_REGISTRY = []


def register_strategy(strategy_class):
    """Append a strategy class to the default registry"""
    STRATEGY_REGISTRY.append(strategy_class)
    return strategy_class


@register_strategy
class DomScan(ExtractionStrategy):
    """Sources of the primary <video> element"""

    channel = Channel.DOM

    def collect(self, snapshot, candidates, log):
        for element in snapshot.media_elements:
            candidate = candidates.add(
                element.get('src'),
                self.channel,
                field_name=element.get('hint'),
                fallback=QualityTier.UNKNOWN,
            )
            if candidate:
                log(f'DOM video source: {candidate.location} ({candidate.tier.name})')


def scan_script(body, candidates, channel=Channel.SCRIPT_PAYLOAD):
    """
    Extract media URLs from one inline script body.

    Structured extraction first: the body itself when it is a JSON document,
    otherwise every JSON-looking object fragment. When that yields nothing, fall
    back to matching URLs in the raw text.

    Returns:
        int: Number of candidates added
    """
    added = 0
    documents = []

    stripped = body.strip()
    if stripped[:1] in ('{', '['):
        try:
            documents.append(json.loads(stripped))
        except ValueError:
            pass

    # Fragments only matter when the body is not one JSON document
    if not documents:
        for fragment in SCRIPT_OBJECT_PATTERN.findall(body):
            try:
                documents.append(json.loads(fragment))
            except ValueError:
                continue

    seen = set()
    for document in documents:
        for key, url in find_media_urls(document):
            if url in seen:
                continue
            seen.add(url)
            if candidates.add(url, channel, field_name=key):
                added += 1

    if added:
        return added

    # JSON embedded in JS strings often escapes forward slashes
    for match in VIDEO_URL_PATTERN.finditer(body.replace('\\/', '/')):
        if candidates.add(match.group(0), channel):
            added += 1
    return added


@register_strategy
class ScriptPayloadScan(ExtractionStrategy):
    """Media URLs inside inline <script> bodies"""

    channel = Channel.SCRIPT_PAYLOAD

    def collect(self, snapshot, candidates, log):
        if not snapshot.html:
            return
        soup = BeautifulSoup(snapshot.html, 'html.parser')
        total = 0
        for script in soup.find_all('script'):
            body = script.string or script.get_text()
            if body and body.strip():
                total += scan_script(body, candidates, self.channel)
        if total:
            log(f'Script payloads: {total} media URLs')


@register_strategy
class NetworkResponseScan(ExtractionStrategy):
    """
    Media files and media-bearing API responses seen on the wire.

    Media URLs are recorded as the responses arrive. API bodies are only
    read after the page settles, outside the event callback.
    """

    channel = Channel.NETWORK_RESPONSE

    def __init__(self):
        self.pending = []

    def attach(self, page, candidates, log):
        page.on('response', lambda response: self.observe(response, candidates, log))

    def observe(self, response, candidates, log):
        url = response.url
        if response.status >= 400:
            return
        if is_video_url(url):
            candidate = candidates.add(url, self.channel)
            if candidate:
                log(f'Network video response: {url} ({candidate.tier.name})')
        elif is_api_url(url):
            self.pending.append(response)

    def collect(self, snapshot, candidates, log):
        for response in self.pending:
            try:
                data = json.loads(response.text())
            except (PlaywrightError, ValueError) as e:
                log(f'Skipping unreadable API response {response.url}: {e}')
                continue
            for key, url in find_media_urls(data):
                candidates.add(url, self.channel, field_name=key)
        self.pending = []


class SignalCollector:
    """
    Runs the extraction strategies for one session.

    Args:
        strategy_classes: Strategies to run, in order (default: the registry)
        logger: Optional callable(str) for logging
    """

    def __init__(self, strategy_classes=None, logger=None):
        if strategy_classes is None:
            strategy_classes = STRATEGY_REGISTRY
        self.candidates = CandidateSet()
        self.strategies = [strategy_class() for strategy_class in strategy_classes]
        self._logger = logger

    def log(self, message):
        if self._logger:
            self._logger(message)

    def attach(self, page):
        """Subscribe every strategy to page events; call before navigating"""
        for strategy in self.strategies:
            strategy.attach(page, self.candidates, self.log)

    def collect(self, snapshot):
        """
        Let every strategy scan the settled page.

        Returns:
            CandidateSet: Everything observed during the session
        """
        for strategy in self.strategies:
            strategy.collect(snapshot, self.candidates, self.log)
        self.log(f'Collected {len(self.candidates)} candidate references')
        return self.candidates
