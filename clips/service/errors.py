"""
Error kinds raised by the clip pipeline.

Only NavigationError, NoCandidateFound and DownloadError end a request.
ProbeError and TranscodeError make the pipeline fall back to a less
processed file, and ResourceCleanupError is only ever logged.
"""


class ClipError(Exception):
    """Base class for pipeline errors"""

    user_message = 'Something went wrong while processing the video.'


class NavigationError(ClipError):
    """The share link could not be parsed or the page could not be loaded"""

    user_message = 'Could not open that link. Check it and try again.'


class NoCandidateFound(ClipError):
    """No media reference was observed on the page"""

    user_message = 'No video was found on that page.'


class DownloadError(ClipError):
    """The selected asset could not be retrieved, or came back empty"""

    user_message = 'Could not download the video. Try again later.'


class ProbeError(ClipError):
    """Container metadata could not be read"""


class TranscodeError(ClipError):
    """
    An encoder run failed, or the deliverable could not be written.

    The optional returncode and stderr come from the failed ffmpeg process.
    """

    def __init__(self, message, returncode=None, stderr=''):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ResourceCleanupError(ClipError):
    """Teardown of a session, process or file failed"""

