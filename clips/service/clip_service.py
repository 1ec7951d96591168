"""
Main clip service entrypoint.

Provides a single function that takes a share link all the way to a
delivery-ready file, used by both the CLI and the task worker.
"""

import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

from nanoid import generate

from clips.service.collect import is_video_url
from clips.service.config import get_ledger, get_media_dir, get_target_video_format
from clips.service.download import fetch, is_hls
from clips.service.errors import ClipError, ResourceCleanupError
from clips.service.links import parse_share_link
from clips.service.process import transcode
from clips.service.session import resolve

ID_ALPHABET = 'abcdefghijklmnopqrstuvwxyz0123456789'

LIMIT_REACHED_MESSAGE = 'Download limit reached.'


@dataclass
class DeliveryResult:
    """What the front end gets back for one share link"""

    success: bool
    file_path: Optional[Path] = None
    filename: Optional[str] = None
    error: Optional[str] = None
    source_location: Optional[str] = None
    resolution: Optional[Tuple[int, int]] = None
    used_fallback: bool = False

    def as_dict(self):
        if self.success:
            return {'success': True, 'file_path': str(self.file_path), 'filename': self.filename}
        return {'success': False, 'error': self.error}


def generate_request_id():
    return generate(ID_ALPHABET, size=12)


def build_filename(user_id=None, now=None):
    """
    Name the deliverable.

    Returns:
        str: e.g. 'clip_42_1718000000000_x7k2p9.mp4'
    """
    stamp = int((time.time() if now is None else now) * 1000)
    owner = user_id if user_id is not None else 'anon'
    suffix = generate(ID_ALPHABET, size=6)
    return f'clip_{owner}_{stamp}_{suffix}{get_target_video_format()}'


def download_name_for(location):
    """Local name for the raw download, keeping the source extension"""
    suffix = Path(urlparse(location).path).suffix.lower()
    # Playlists are remuxed to the delivery container while downloading
    if not is_video_url(location) or is_hls(location):
        suffix = get_target_video_format()
    return f'download{suffix}'


def _remove_work_dir(work_dir, log):
    try:
        shutil.rmtree(work_dir)
    except FileNotFoundError:
        pass
    except OSError as e:
        log(repr(ResourceCleanupError(f'Could not remove {work_dir}: {e}')))


def process_share_link(share_link, user_id=None, outdir=None, ledger=None, logger=None):
    """
    Resolve, download and transcode the video behind a share link.

    This is the main entrypoint for the clip service. It handles:
    - Usage ledger check (before) and record (after)
    - Share link unwrapping and page resolution
    - Candidate ranking
    - Download
    - Transcoding with fallbacks

    Each request works inside its own tmp-{id} directory, which is removed on
    every exit path. Only the deliverable is left in outdir; the caller
    deletes it after use.

    Args:
        share_link: Share link text from the user
        user_id: Front-end user id, or None to skip the ledger
        outdir: Output directory (default: the media directory)
        ledger: UsageLedger (default: the configured ledger)
        logger: Optional callable(str) for logging

    Returns:
        DeliveryResult; on failure error is a short user-facing message
    """

    def log(message):
        if logger:
            logger(message)

    if ledger is None:
        ledger = get_ledger()

    if user_id is not None:
        decision = ledger.can_download(user_id)
        if not decision.allowed:
            log(f'Ledger refused user {user_id}: {decision.reason}')
            return DeliveryResult(success=False, error=LIMIT_REACHED_MESSAGE)

    outdir = Path(outdir) if outdir else get_media_dir()
    outdir.mkdir(parents=True, exist_ok=True)

    work_dir = outdir / f'tmp-{generate_request_id()}'
    filename = build_filename(user_id)

    log(f'Processing share link: {share_link}')
    try:
        work_dir.mkdir()
        link = parse_share_link(share_link)
        selection = resolve(link, logger=logger)
        location = selection.selected.location
        log(f'Selected: {location}')

        asset = fetch(
            location,
            work_dir / download_name_for(location),
            referer=link.origin,
            logger=logger,
        )
        result = transcode(asset, output_path=outdir / filename, logger=logger)
    except ClipError as e:
        log(f'{type(e).__name__}: {e}')
        return DeliveryResult(success=False, error=e.user_message)
    finally:
        _remove_work_dir(work_dir, log)

    if user_id is not None:
        ledger.record_download(user_id, share_link)

    log(f'Complete! Output: {result.path} ({result.file_size} bytes)')
    return DeliveryResult(
        success=True,
        file_path=result.path,
        filename=filename,
        source_location=location,
        resolution=result.resolution,
        used_fallback=result.used_fallback,
    )
