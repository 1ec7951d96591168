"""
Transcode pipeline.

Turns a downloaded asset into the delivery file:

    Probing -> Scaling -> WatermarkRemoval -> Encoding -> Done

Every stage degrades instead of failing. If the file cannot be probed it is
delivered as downloaded; if watermark removal fails the frame is left as is;
if encoding fails the input to encoding is delivered. Only a failure to write
the deliverable itself (disk full, permissions) raises TranscodeError, and
then no partial deliverable is left behind. A playlist is never delivered as
if it were a video.
"""

import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from clips.service.config import (
    get_ffmpeg_video_args,
    get_min_height,
    get_remove_watermark,
    get_scaling_policy,
    get_target_video_format,
)
from clips.service.errors import ProbeError, ResourceCleanupError, TranscodeError
from clips.service.ffmpeg import (
    FfmpegCommand,
    crop_filter,
    delogo_filter,
    run_ffmpeg,
    scale_filter,
)
from clips.service.media_info import VideoInfo, probe_video

WATERMARK_RATIO = 0.15
WATERMARK_INSET = 10

# Intermediate pass: near-lossless so the final encode has a clean input
WATERMARK_PASS_ARGS = ['-c:v', 'libx264', '-preset', 'veryfast', '-crf', '18', '-c:a', 'copy']

PLAYLIST_MAGIC = b'#EXTM3U'


class Stage(Enum):
    PROBING = 'probing'
    SCALING = 'scaling'
    WATERMARK_REMOVAL = 'watermark_removal'
    ENCODING = 'encoding'
    DONE = 'done'
    FALLBACK_ORIGINAL = 'fallback_original'


@dataclass
class TranscodeResult:
    """The single deliverable of a request"""

    path: Path
    resolution: Optional[Tuple[int, int]]
    used_fallback: bool
    watermark_method: Optional[str] = None
    stages: List[Stage] = field(default_factory=list)

    @property
    def file_size(self):
        return self.path.stat().st_size


@dataclass(frozen=True)
class WatermarkRegion:
    """Square in the bottom-right corner that holds the storefront logo"""

    x: int
    y: int
    size: int


def even_up(value):
    """Round up to the next even number (H.264 needs even dimensions)"""
    value = int(value)
    return value + (value % 2)


def compute_target_resolution(width, height, policy='preserve', min_height=720):
    """
    Compute the output frame size.

    Policies:
        preserve: keep the source size, rounding each side up to even
        upscale: below min_height, scale up to min_height keeping the aspect
                 ratio, then round to even; otherwise behave like preserve

    Returns:
        tuple: (width, height), both even
    """
    if policy == 'upscale' and height < min_height:
        scale = min_height / height
        return even_up(round(width * scale)), even_up(min_height)
    return even_up(width), even_up(height)


def watermark_region(width, height, ratio=WATERMARK_RATIO, inset=WATERMARK_INSET):
    """
    Locate the logo square for a frame.

    Returns:
        WatermarkRegion, or None if the frame is too small to hold one
    """
    size = int(round(min(width, height) * ratio))
    if size < 1:
        return None
    x = max(0, width - size - inset)
    y = max(0, height - size - inset)
    return WatermarkRegion(x=x, y=y, size=size)


def crop_strip_height(region, inset=WATERMARK_INSET):
    """Height of the bottom strip that fully contains the logo"""
    return even_up(region.size + inset)


def _intermediate_path(source, suffix):
    # The watermark pass encodes H.264, which only the delivery container is
    # guaranteed to accept
    return source.with_name(f'{source.stem}_{suffix}{get_target_video_format()}')


def remove_watermark(source, info, logger=None):
    """
    Hide the storefront logo.

    Tries a delogo blur over the logo square, then a crop of the bottom
    strip holding it. Never raises for encoder failures.

    Args:
        source: Input file
        info: VideoInfo of the input

    Returns:
        tuple: (path, VideoInfo, method) where method is 'delogo', 'crop'
               or None when the input is returned untouched
    """

    def log(message):
        if logger:
            logger(message)

    region = watermark_region(info.width, info.height)
    if region is None:
        log('Frame too small for watermark removal, skipping')
        return source, info, None

    delogo_path = _intermediate_path(source, 'delogo')
    command = FfmpegCommand(source, delogo_path, output_args=list(WATERMARK_PASS_ARGS))
    command.add_filter(delogo_filter(region.x, region.y, region.size, region.size))
    try:
        run_ffmpeg(command, logger=logger)
        log(f'Watermark blurred at {region.x},{region.y} ({region.size}px)')
        return delogo_path, info, 'delogo'
    except TranscodeError as e:
        log(f'delogo failed: {e}')
        _discard(delogo_path, log)

    strip = crop_strip_height(region)
    cropped_height = info.height - strip
    if cropped_height <= 0:
        log('Frame too short to crop the watermark strip, leaving it')
        return source, info, None

    crop_path = _intermediate_path(source, 'crop')
    command = FfmpegCommand(source, crop_path, output_args=list(WATERMARK_PASS_ARGS))
    command.add_filter(crop_filter(info.width, cropped_height))
    try:
        run_ffmpeg(command, logger=logger)
        log(f'Watermark strip cropped: {info.width}x{cropped_height}')
        return crop_path, VideoInfo(info.width, cropped_height, info.duration), 'crop'
    except TranscodeError as e:
        log(f'Crop failed: {e}; keeping the watermark')
        _discard(crop_path, log)

    return source, info, None


def encode(source, output_path, target, current, logger=None):
    """
    Re-encode to the delivery codec and container.

    Args:
        source: Input file
        output_path: Deliverable path
        target: (width, height) to encode at
        current: (width, height) of the input; no resize when equal

    Raises:
        TranscodeError: If ffmpeg fails
    """
    command = FfmpegCommand(source, output_path, output_args=get_ffmpeg_video_args())
    if tuple(target) != tuple(current):
        command.add_filter(scale_filter(*target))
    run_ffmpeg(command, logger=logger)


def _discard(path, log):
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        log(repr(ResourceCleanupError(f'Could not delete {path}: {e}')))


def _deliver_copy(source, output_path):
    """Copy a file into place as the deliverable"""
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, output_path)
    except OSError as e:
        raise TranscodeError(f'Could not write deliverable {output_path}: {e}') from e


def _confirm_deliverable(output_path):
    try:
        size = output_path.stat().st_size
    except OSError as e:
        raise TranscodeError(f'Deliverable missing: {output_path}') from e
    if size == 0:
        raise TranscodeError(f'Deliverable is empty: {output_path}')
    return size


def transcode(asset, output_path=None, policy=None, min_height=None, watermark=None, logger=None):
    """
    Normalize a downloaded asset into the delivery file.

    Args:
        asset: DownloadedAsset
        output_path: Deliverable path (default: next to the asset)
        policy: Scaling policy, 'preserve' or 'upscale' (default from settings)
        min_height: Upscale threshold (default from settings)
        watermark: Attempt watermark removal (default from settings)
        logger: Optional callable(str) for logging

    Returns:
        TranscodeResult whose path is an existing, non-empty video file

    Raises:
        TranscodeError: If the deliverable cannot be written to disk, or the
                        download is an HLS playlist rather than media. No
                        partial deliverable is left behind.
    """

    def log(message):
        if logger:
            logger(message)

    source = Path(asset.path)
    if output_path is None:
        output_path = source.with_name(f'{source.stem}_final{get_target_video_format()}')
    output_path = Path(output_path)
    if policy is None:
        policy = get_scaling_policy()
    if min_height is None:
        min_height = get_min_height()
    if watermark is None:
        watermark = get_remove_watermark()

    try:
        return _run_stages(source, output_path, policy, min_height, watermark, log, logger)
    except TranscodeError:
        _discard(output_path, log)
        raise


def _is_playlist(path):
    try:
        with open(path, 'rb') as f:
            return f.read(7) == PLAYLIST_MAGIC
    except OSError:
        return False


def _run_stages(source, output_path, policy, min_height, watermark, log, logger):
    stages = [Stage.PROBING]
    intermediates = [source]

    try:
        info = probe_video(source)
    except ProbeError as e:
        if _is_playlist(source):
            raise TranscodeError(f'{source.name} is a playlist, not a video file') from e
        log(f'Probe failed ({e}), delivering the download unmodified')
        stages.append(Stage.FALLBACK_ORIGINAL)
        _deliver_copy(source, output_path)
        _confirm_deliverable(output_path)
        _discard(source, log)
        stages.append(Stage.DONE)
        return TranscodeResult(path=output_path, resolution=None, used_fallback=True, stages=stages)

    log(f'Original resolution: {info.resolution}')

    stages.append(Stage.SCALING)
    target = compute_target_resolution(info.width, info.height, policy, min_height)
    log(f'Scaling policy {policy}: target {target[0]}x{target[1]}')

    current, current_info, method = source, info, None
    if watermark:
        stages.append(Stage.WATERMARK_REMOVAL)
        current, current_info, method = remove_watermark(source, info, logger=logger)
        if current != source:
            intermediates.append(current)
        if method == 'crop':
            target = compute_target_resolution(current_info.width, current_info.height, policy, min_height)
            log(f'Target after crop: {target[0]}x{target[1]}')

    stages.append(Stage.ENCODING)
    used_fallback = False
    resolution = target
    try:
        encode(current, output_path, target, (current_info.width, current_info.height), logger=logger)
    except TranscodeError as e:
        log(f'Encoding failed ({e}), delivering the pre-encoding file')
        _discard(output_path, log)
        _deliver_copy(current, output_path)
        used_fallback = True
        resolution = (current_info.width, current_info.height)
    else:
        try:
            final = probe_video(output_path)
            resolution = (final.width, final.height)
            log(f'Final resolution: {final.resolution}')
        except ProbeError as e:
            log(f'Could not verify final resolution: {e}')

    _confirm_deliverable(output_path)
    for path in intermediates:
        _discard(path, log)
    stages.append(Stage.DONE)

    return TranscodeResult(
        path=output_path,
        resolution=resolution,
        used_fallback=used_fallback,
        watermark_method=method,
        stages=stages,
    )
