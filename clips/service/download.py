"""
Asset download service.

Streams the selected media location to disk with a bounded time budget.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import requests

from clips.service.config import get_default_referer, get_fetch_timeout, get_target_video_format
from clips.service.constants import HLS_PROTOCOL_WHITELIST, USER_AGENT
from clips.service.errors import DownloadError, TranscodeError
from clips.service.ffmpeg import FfmpegCommand, run_ffmpeg

CHUNK_SIZE = 64 * 1024

# (connect, read) timeouts for each socket operation
SOCKET_TIMEOUT = (15, 60)


@dataclass
class DownloadedAsset:
    """A media file fetched to local storage"""

    path: Path
    byte_size: int
    source_location: str
    mime_type: str = 'application/octet-stream'


def _remove_partial(path, log):
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        log(f'Could not remove partial download {path}: {e}')


def is_hls(location):
    """Check whether a location is an HLS playlist"""
    return urlparse(location or '').path.lower().endswith('.m3u8')


def fetch_hls(location, destination_path, referer, timeout, logger=None):
    """
    Remux a remote HLS stream into a local MP4 without re-encoding.

    The playlist and its segments are read by ffmpeg directly from the CDN,
    with the same client identity as a plain download.

    Returns:
        DownloadedAsset

    Raises:
        DownloadError: If ffmpeg cannot read the stream or writes nothing
    """

    def log(message):
        if logger:
            logger(message)

    destination_path = Path(destination_path).with_suffix(get_target_video_format())
    command = FfmpegCommand(
        location,
        destination_path,
        input_args=[
            '-user_agent', USER_AGENT,
            '-headers', f'Referer: {referer}\r\n',
            '-protocol_whitelist', HLS_PROTOCOL_WHITELIST,
        ],
        output_args=['-c', 'copy', '-bsf:a', 'aac_adtstoasc'],
    )

    log(f'Remuxing HLS stream: {location}')
    try:
        run_ffmpeg(command, timeout=timeout, logger=logger)
    except TranscodeError as e:
        _remove_partial(destination_path, log)
        raise DownloadError(f'Could not read HLS stream {location}: {e}') from e

    byte_size = destination_path.stat().st_size
    log(f'Remuxed {byte_size} bytes')
    return DownloadedAsset(
        path=destination_path,
        byte_size=byte_size,
        source_location=location,
        mime_type='video/mp4',
    )


def fetch(location, destination_path, referer=None, timeout=None, logger=None):
    """
    Download a media file via HTTP.

    Args:
        location: Media URL selected by the ranker
        destination_path: Output file path (Path object or str)
        referer: Referer header; defaults to the configured storefront
        timeout: Overall budget in seconds (default from settings)
        logger: Optional callable(str) for logging

    Returns:
        DownloadedAsset

    Raises:
        DownloadError: On transport failure, non-2xx status, a blown time
                       budget or an empty body. Nothing is left on disk.

    HLS playlists are remuxed into an MP4 next to destination_path instead
    of being saved as text.
    """

    def log(message):
        if logger:
            logger(message)

    destination_path = Path(destination_path)
    destination_path.parent.mkdir(parents=True, exist_ok=True)
    if timeout is None:
        timeout = get_fetch_timeout()

    referer = referer or get_default_referer()
    if is_hls(location):
        return fetch_hls(location, destination_path, referer, timeout, logger=logger)

    headers = {
        'User-Agent': USER_AGENT,
        'Referer': referer,
    }

    log(f'Downloading from: {location}')
    log(f'Saving to: {destination_path}')

    deadline = time.monotonic() + timeout
    try:
        with requests.get(location, headers=headers, stream=True, timeout=SOCKET_TIMEOUT) as response:
            response.raise_for_status()
            mime_type = response.headers.get('content-type', 'application/octet-stream')
            with open(destination_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if time.monotonic() > deadline:
                        raise DownloadError(f'Download exceeded {timeout}s: {location}')
                    if chunk:
                        f.write(chunk)
    except requests.RequestException as e:
        _remove_partial(destination_path, log)
        raise DownloadError(f'Download failed: {e}') from e
    except DownloadError:
        _remove_partial(destination_path, log)
        raise
    except OSError as e:
        _remove_partial(destination_path, log)
        raise DownloadError(f'Could not write {destination_path}: {e}') from e

    byte_size = destination_path.stat().st_size
    if byte_size == 0:
        _remove_partial(destination_path, log)
        raise DownloadError(f'Downloaded file is empty: {location}')

    log(f'Downloaded {byte_size} bytes')

    return DownloadedAsset(
        path=destination_path,
        byte_size=byte_size,
        source_location=location,
        mime_type=mime_type,
    )
