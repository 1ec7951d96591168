"""
ffmpeg process wrapper.

Commands are built from typed parts instead of strings, run with captured
output and a timeout, and every failure mode (non-zero exit, timeout, missing
binary) surfaces as TranscodeError. Encoder runs are throttled by a
process-wide semaphore so concurrent requests cannot launch unbounded
ffmpeg processes.
"""

import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from clips.service.config import get_encode_concurrency, get_encode_timeout
from clips.service.errors import TranscodeError

_slots = None
_slots_lock = threading.Lock()


def encoder_slots():
    """The shared semaphore bounding concurrent ffmpeg runs"""
    global _slots
    with _slots_lock:
        if _slots is None:
            _slots = threading.BoundedSemaphore(get_encode_concurrency())
        return _slots


@dataclass
class FfmpegCommand:
    """
    A single ffmpeg invocation.

    Example:
        >>> cmd = FfmpegCommand('in.mp4', 'out.mp4')
        >>> cmd.add_filter('scale=720:1280')
        >>> cmd.output_args = ['-c:v', 'libx264']
        >>> cmd.build()
        ['ffmpeg', '-y', '-i', 'in.mp4', '-vf', 'scale=720:1280', '-c:v', 'libx264', 'out.mp4']
    """

    input_path: Path
    output_path: Path
    video_filters: List[str] = field(default_factory=list)
    output_args: List[str] = field(default_factory=list)
    input_args: List[str] = field(default_factory=list)
    binary: str = 'ffmpeg'

    def add_filter(self, expression):
        self.video_filters.append(expression)

    def build(self):
        cmd = [self.binary, '-y'] + list(self.input_args) + ['-i', str(self.input_path)]
        if self.video_filters:
            cmd += ['-vf', ','.join(self.video_filters)]
        return cmd + list(self.output_args) + [str(self.output_path)]


@dataclass
class ProcessOutput:
    returncode: int
    stdout: str
    stderr: str


def run_ffmpeg(command, timeout=None, logger=None):
    """
    Run an ffmpeg command to completion.

    Args:
        command: FfmpegCommand
        timeout: Seconds before the process is killed (default from settings)
        logger: Optional callable(str) for logging

    Returns:
        ProcessOutput

    Raises:
        TranscodeError: On non-zero exit, timeout, a missing binary or an
                        empty output file
    """

    def log(message):
        if logger:
            logger(message)

    if timeout is None:
        timeout = get_encode_timeout()

    cmd = command.build()
    log(f"Running: {' '.join(cmd)}")

    with encoder_slots():
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise TranscodeError(f'{command.binary} timed out after {timeout}s') from e
        except FileNotFoundError as e:
            raise TranscodeError(f'{command.binary} is not installed') from e
        except OSError as e:
            raise TranscodeError(f'{command.binary} could not be started: {e}') from e

    if result.returncode != 0:
        log(f'{command.binary} stderr: {result.stderr}')
        raise TranscodeError(
            f'{command.binary} failed with code {result.returncode}',
            returncode=result.returncode,
            stderr=result.stderr,
        )

    output_path = Path(command.output_path)
    if not output_path.exists() or output_path.stat().st_size == 0:
        raise TranscodeError(f'{command.binary} produced no output at {output_path}')

    return ProcessOutput(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)


def scale_filter(width, height):
    """High quality resize to exact dimensions"""
    return f'scale={width}:{height}:flags=lanczos+accurate_rnd+full_chroma_int'


def delogo_filter(x, y, width, height):
    return f'delogo=x={x}:y={y}:w={width}:h={height}:show=0'


def crop_filter(width, height, x=0, y=0):
    return f'crop={width}:{height}:{x}:{y}'
