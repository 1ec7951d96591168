"""
Share link parsing.

Storefront apps hand out wrapped links such as
https://shopee.com.br/universal-link?redir=https%3A%2F%2F... whose real
target sits in the 'redir' query parameter. This module unwraps them.
"""

import re
from dataclasses import dataclass
from urllib.parse import parse_qs, unquote, urlparse

from clips.service.errors import NavigationError

URL_IN_TEXT = re.compile(r'https?(?::|%3A)\S+', re.IGNORECASE)


@dataclass(frozen=True)
class ShareLink:
    """A parsed share link"""

    raw: str
    target_url: str
    was_redirected: bool = False

    @property
    def origin(self):
        """scheme://host of the target page, used as the download referer"""
        parsed = urlparse(self.target_url)
        return f'{parsed.scheme}://{parsed.netloc}/'


def _decode(text):
    # Fully percent-encoded links have no literal scheme separator
    if '://' not in text:
        text = unquote(text)
    return text


def parse_share_link(raw):
    """
    Parse a share link into its target page URL.

    Args:
        raw: Text as received from the user; may be percent-encoded and may
             carry a 'redir' query parameter

    Returns:
        ShareLink

    Raises:
        NavigationError: If no http(s) URL can be recovered
    """
    text = (raw or '').strip()
    match = URL_IN_TEXT.search(text)
    if not match:
        raise NavigationError(f'No URL found in share link: {raw!r}')

    url = _decode(match.group(0))
    target = url
    redirected = False

    redir = parse_qs(urlparse(url).query).get('redir')
    if redir and redir[0]:
        target = _decode(redir[0].strip())
        redirected = True

    parsed = urlparse(target)
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        raise NavigationError(f'Share link does not point to a web page: {target!r}')

    return ShareLink(raw=raw, target_url=target, was_redirected=redirected)
