"""
Media and page constants.

Centralized definitions of media URL patterns, client identity and the
keyword tables used to guess quality from a URL or field name.
"""

import re

# Extensions a candidate location may carry
VIDEO_EXTENSIONS = ['.mp4', '.webm', '.m3u8']

# Absolute media URL, with or without a query string after the extension
VIDEO_URL_PATTERN = re.compile(
    r'https?://[^\s"\'<>\\]+?\.(?:mp4|webm|m3u8)(?=[?#&"\'\s<>\\),;\]}]|$)(?:\?[^\s"\'<>\\]*)?',
    re.IGNORECASE,
)

# JSON-looking fragments inside inline scripts that probably describe media
SCRIPT_OBJECT_PATTERN = re.compile(
    r'\{[^{}]*"(?:video|url|src|source|playback|stream)[^{}]*\}', re.IGNORECASE
)

# Endpoints whose JSON bodies tend to embed media URLs
API_PATH_PATTERNS = [
    re.compile(r'/api/v\d+/item/', re.IGNORECASE),
    re.compile(r'/api/v\d+/pdp/', re.IGNORECASE),
    re.compile(r'/(?:item|product)/(?:get|detail)', re.IGNORECASE),
    re.compile(r'/video/(?:get|detail|info)', re.IGNORECASE),
    re.compile(r'/media/(?:get|detail|info)', re.IGNORECASE),
]

# Attributes on <video>/<source> that carry a quality label
QUALITY_HINT_ATTRIBUTES = ['data-quality', 'data-res', 'label']

# Substrings, checked in order, that mark an untouched upload
ORIGINAL_MARKERS = ['no_watermark', 'original', 'master', 'raw']

# Substring -> tier name, checked in order after the originality markers
TIER_MARKERS = [
    ('1080', 'TIER_1080'),
    ('high', 'TIER_1080'),
    ('hd', 'TIER_1080'),
    ('720', 'TIER_720'),
    ('480', 'TIER_480'),
    ('360', 'TIER_360'),
]

# Field names that say "this value is the media itself"
MEDIA_FIELD_PATTERN = re.compile(r'video|media|source|src|stream|playback', re.IGNORECASE)

# Recursion bound for walking untrusted JSON payloads
JSON_MAX_DEPTH = 32

# Client identity presented to the storefront and its CDN
USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)
VIEWPORT = {'width': 1920, 'height': 1080}

BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-accelerated-2d-canvas',
    '--no-first-run',
    '--no-zygote',
    '--disable-gpu',
]

# System browsers tried when automatic provisioning is disabled
SYSTEM_BROWSER_PATHS = [
    '/usr/bin/chromium',
    '/usr/bin/google-chrome-stable',
    '/usr/bin/google-chrome',
]

ELF_MAGIC = b'\x7fELF'

# Delivery container
TARGET_VIDEO_FORMAT = '.mp4'

# Protocols ffmpeg may follow when reading a remote HLS playlist
HLS_PROTOCOL_WHITELIST = 'file,http,https,tcp,tls,crypto'
