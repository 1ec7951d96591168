"""
Media metadata helpers.

Centralizes ffprobe parsing for the transcode pipeline.
"""

import json
import subprocess
from dataclasses import dataclass
from typing import Optional

from clips.service.errors import ProbeError

PROBE_TIMEOUT = 30


@dataclass(frozen=True)
class VideoInfo:
    """Dimensions and duration of the first video stream"""

    width: int
    height: int
    duration: Optional[float] = None

    @property
    def resolution(self):
        return f'{self.width}x{self.height}'


def run_ffprobe(file_path):
    """
    Run ffprobe and return its parsed JSON report.

    Raises:
        ProbeError: If ffprobe is missing, fails, times out or prints garbage
    """
    try:
        result = subprocess.run(
            [
                'ffprobe',
                '-v',
                'quiet',
                '-print_format',
                'json',
                '-show_format',
                '-show_streams',
                str(file_path),
            ],
            capture_output=True,
            text=True,
            check=True,
            timeout=PROBE_TIMEOUT,
        )
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        raise ProbeError(f'ffprobe failed for {file_path}: {e}') from e

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ProbeError(f'ffprobe returned invalid JSON for {file_path}') from e


def parse_video_info(metadata):
    """
    Extract VideoInfo from an ffprobe report.

    Raises:
        ProbeError: If there is no video stream with usable dimensions
    """
    streams = metadata.get('streams') or []
    video = next((s for s in streams if s.get('codec_type') == 'video'), None)
    if video is None:
        raise ProbeError('No video stream found')

    try:
        width = int(video['width'])
        height = int(video['height'])
    except (KeyError, TypeError, ValueError) as e:
        raise ProbeError('Video stream has no dimensions') from e
    if width <= 0 or height <= 0:
        raise ProbeError(f'Invalid video dimensions {width}x{height}')

    duration = None
    duration_raw = (metadata.get('format') or {}).get('duration') or video.get('duration')
    if duration_raw is not None:
        try:
            duration = float(duration_raw)
        except (TypeError, ValueError):
            duration = None

    return VideoInfo(width=width, height=height, duration=duration)


def probe_video(file_path):
    """
    Read width, height and duration of a media file.

    Returns:
        VideoInfo

    Raises:
        ProbeError: If the metadata cannot be read
    """
    return parse_video_info(run_ffprobe(file_path))
