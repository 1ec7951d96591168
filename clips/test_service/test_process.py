"""
Tests for service/process.py

ffprobe and ffmpeg are mocked; the fake encoder writes a few bytes to the
command's output path so the deliverable checks see a real file.
"""

import tempfile
from pathlib import Path
from unittest.mock import patch

from django.test import TestCase, override_settings

from clips.service.download import DownloadedAsset
from clips.service.errors import ProbeError, TranscodeError
from clips.service.media_info import VideoInfo
from clips.service.process import (
    Stage,
    compute_target_resolution,
    crop_strip_height,
    remove_watermark,
    transcode,
    watermark_region,
)


def fake_ffmpeg(fail_on=()):
    """run_ffmpeg replacement; fail_on names steps ('delogo', 'crop', 'encode') that crash"""
    calls = []

    def run(command, timeout=None, logger=None):
        calls.append(command)
        stem = Path(command.output_path).stem
        if stem.endswith('_delogo'):
            step = 'delogo'
        elif stem.endswith('_crop'):
            step = 'crop'
        else:
            step = 'encode'
        if step in fail_on:
            raise TranscodeError(f'{step} failed', returncode=1)
        Path(command.output_path).write_bytes(b'encoded')

    run.calls = calls
    return run


class GeometryTest(TestCase):
    """Tests for frame size arithmetic"""

    def test_preserve_rounds_to_even(self):
        self.assertEqual(compute_target_resolution(721, 1279, 'preserve'), (722, 1280))
        self.assertEqual(compute_target_resolution(480, 854, 'preserve'), (480, 854))

    def test_preserve_never_upscales(self):
        self.assertEqual(compute_target_resolution(360, 640, 'preserve', 720), (360, 640))

    def test_upscale_below_minimum(self):
        self.assertEqual(compute_target_resolution(640, 360, 'upscale', 720), (1280, 720))
        width, height = compute_target_resolution(405, 540, 'upscale', 720)
        self.assertEqual((width, height), (540, 720))

    def test_upscale_leaves_large_frames(self):
        self.assertEqual(compute_target_resolution(1080, 1920, 'upscale', 720), (1080, 1920))

    def test_output_is_always_even(self):
        for width, height in [(1, 1), (333, 777), (1919, 1081), (99, 101)]:
            for policy in ('preserve', 'upscale'):
                w, h = compute_target_resolution(width, height, policy, 720)
                self.assertEqual(w % 2, 0)
                self.assertEqual(h % 2, 0)

    def test_watermark_region(self):
        region = watermark_region(720, 1280)
        self.assertEqual(region.size, 108)
        self.assertEqual((region.x, region.y), (720 - 108 - 10, 1280 - 108 - 10))
        self.assertEqual(crop_strip_height(region), 118)

    def test_tiny_frame_has_no_region(self):
        self.assertIsNone(watermark_region(2, 2))


@override_settings(
    STORECLIP_SCALING_POLICY='preserve',
    STORECLIP_MIN_HEIGHT=720,
    STORECLIP_REMOVE_WATERMARK=False,
    STORECLIP_DEFAULT_FFMPEG_ARGS_VIDEO='-c:v libx264 -crf 20 -c:a aac',
)
class TranscodeTest(TestCase):
    """Tests for the full transcode pipeline"""

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.tmpdir = Path(self._tmpdir.name)
        self.source = self.tmpdir / 'source.mp4'
        self.source.write_bytes(b'downloaded-bytes')
        self.asset = DownloadedAsset(path=self.source, byte_size=16, source_location='https://cdn.test/v.mp4')
        self.output = self.tmpdir / 'clip.mp4'

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    def test_preserve_encode(self, mock_run, mock_probe):
        runner = fake_ffmpeg()
        mock_run.side_effect = runner
        mock_probe.side_effect = [VideoInfo(720, 1280, 10.0), VideoInfo(720, 1280, 10.0)]

        result = transcode(self.asset, output_path=self.output)

        self.assertEqual(result.path, self.output)
        self.assertTrue(self.output.exists())
        self.assertEqual(result.resolution, (720, 1280))
        self.assertFalse(result.used_fallback)
        self.assertEqual(result.stages, [Stage.PROBING, Stage.SCALING, Stage.ENCODING, Stage.DONE])
        self.assertEqual(len(runner.calls), 1)
        self.assertEqual(runner.calls[0].video_filters, [])
        self.assertFalse(self.source.exists())

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    def test_odd_dimensions_are_scaled(self, mock_run, mock_probe):
        runner = fake_ffmpeg()
        mock_run.side_effect = runner
        mock_probe.side_effect = [VideoInfo(721, 1279), VideoInfo(722, 1280)]

        result = transcode(self.asset, output_path=self.output)

        self.assertEqual(result.resolution, (722, 1280))
        self.assertTrue(runner.calls[0].video_filters[0].startswith('scale=722:1280'))

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    def test_upscale_policy(self, mock_run, mock_probe):
        runner = fake_ffmpeg()
        mock_run.side_effect = runner
        mock_probe.side_effect = [VideoInfo(360, 640), VideoInfo(720, 1280)]

        result = transcode(self.asset, output_path=self.output, policy='upscale', min_height=1280)

        self.assertEqual(result.resolution, (720, 1280))
        self.assertTrue(runner.calls[0].video_filters[0].startswith('scale=720:1280'))

    @patch('clips.service.process.probe_video', side_effect=ProbeError('not a video'))
    @patch('clips.service.process.run_ffmpeg')
    def test_probe_failure_delivers_original(self, mock_run, mock_probe):
        """Test that an unreadable file is delivered unmodified"""
        result = transcode(self.asset, output_path=self.output)

        self.assertTrue(result.used_fallback)
        self.assertIsNone(result.resolution)
        self.assertIn(Stage.FALLBACK_ORIGINAL, result.stages)
        self.assertEqual(self.output.read_bytes(), b'downloaded-bytes')
        self.assertFalse(self.source.exists())
        mock_run.assert_not_called()

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    def test_encode_failure_delivers_input(self, mock_run, mock_probe):
        """Test that a crashed encoder still yields one deliverable"""
        mock_run.side_effect = fake_ffmpeg(fail_on=('encode',))
        mock_probe.return_value = VideoInfo(720, 1280)

        result = transcode(self.asset, output_path=self.output)

        self.assertTrue(result.used_fallback)
        self.assertEqual(result.resolution, (720, 1280))
        self.assertEqual(self.output.read_bytes(), b'downloaded-bytes')
        self.assertEqual(sorted(p.name for p in self.tmpdir.iterdir()), ['clip.mp4'])

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    def test_default_output_path(self, mock_run, mock_probe):
        mock_run.side_effect = fake_ffmpeg()
        mock_probe.return_value = VideoInfo(720, 1280)
        result = transcode(self.asset)
        self.assertEqual(result.path, self.tmpdir / 'source_final.mp4')

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    def test_watermark_delogo(self, mock_run, mock_probe):
        runner = fake_ffmpeg()
        mock_run.side_effect = runner
        mock_probe.return_value = VideoInfo(720, 1280)

        result = transcode(self.asset, output_path=self.output, watermark=True)

        self.assertEqual(result.watermark_method, 'delogo')
        self.assertIn(Stage.WATERMARK_REMOVAL, result.stages)
        self.assertTrue(runner.calls[0].video_filters[0].startswith('delogo='))
        self.assertEqual(runner.calls[1].input_path, self.tmpdir / 'source_delogo.mp4')
        self.assertEqual(sorted(p.name for p in self.tmpdir.iterdir()), ['clip.mp4'])

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    def test_watermark_crop_fallback(self, mock_run, mock_probe):
        """Test that a failed delogo falls back to cropping the bottom strip"""
        runner = fake_ffmpeg(fail_on=('delogo',))
        mock_run.side_effect = runner
        mock_probe.side_effect = [VideoInfo(720, 1280), VideoInfo(720, 1162)]

        result = transcode(self.asset, output_path=self.output, watermark=True)

        self.assertEqual(result.watermark_method, 'crop')
        self.assertEqual(runner.calls[1].video_filters, ['crop=720:1162:0:0'])
        self.assertEqual(runner.calls[2].video_filters, [])
        self.assertEqual(result.resolution, (720, 1162))
        self.assertEqual(sorted(p.name for p in self.tmpdir.iterdir()), ['clip.mp4'])

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    def test_watermark_left_when_all_methods_fail(self, mock_run, mock_probe):
        runner = fake_ffmpeg(fail_on=('delogo', 'crop'))
        mock_run.side_effect = runner
        mock_probe.return_value = VideoInfo(720, 1280)

        result = transcode(self.asset, output_path=self.output, watermark=True)

        self.assertIsNone(result.watermark_method)
        self.assertFalse(result.used_fallback)
        self.assertEqual(runner.calls[2].input_path, self.source)

    @patch('clips.service.process.run_ffmpeg')
    def test_remove_watermark_skips_tiny_frames(self, mock_run):
        path, info, method = remove_watermark(self.source, VideoInfo(2, 2))
        self.assertEqual((path, method), (self.source, None))
        mock_run.assert_not_called()

    @patch('clips.service.process.probe_video', side_effect=ProbeError('bad'))
    @patch('clips.service.process.shutil.copy2', side_effect=OSError('disk full'))
    def test_unwritable_deliverable_raises(self, mock_copy, mock_probe):
        with self.assertRaises(TranscodeError):
            transcode(self.asset, output_path=self.output)


@override_settings(
    STORECLIP_SCALING_POLICY='preserve',
    STORECLIP_MIN_HEIGHT=720,
    STORECLIP_REMOVE_WATERMARK=False,
    STORECLIP_DEFAULT_FFMPEG_ARGS_VIDEO='-c:v libx264 -crf 20 -c:a aac',
)
class TranscodeSourceFormatTest(TestCase):
    """Tests for non-MP4 downloads and failed deliverable writes"""

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.tmpdir = Path(self._tmpdir.name)
        self.output = self.tmpdir / 'clip.mp4'

    def make_asset(self, name, content):
        path = self.tmpdir / name
        path.write_bytes(content)
        return DownloadedAsset(path=path, byte_size=len(content), source_location=f'https://cdn.test/{name}')

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    def test_webm_watermark_intermediates_are_mp4(self, mock_run, mock_probe):
        """Test that H.264 watermark passes never target the WebM muxer"""
        runner = fake_ffmpeg(fail_on=('delogo',))
        mock_run.side_effect = runner
        mock_probe.side_effect = [VideoInfo(720, 1280), VideoInfo(720, 1162)]
        asset = self.make_asset('download.webm', b'webm-bytes')

        result = transcode(asset, output_path=self.output, watermark=True)

        self.assertEqual(runner.calls[0].output_path, self.tmpdir / 'download_delogo.mp4')
        self.assertEqual(runner.calls[1].output_path, self.tmpdir / 'download_crop.mp4')
        self.assertEqual(runner.calls[2].input_path, self.tmpdir / 'download_crop.mp4')
        self.assertEqual(result.watermark_method, 'crop')
        self.assertEqual(sorted(p.name for p in self.tmpdir.iterdir()), ['clip.mp4'])

    @patch('clips.service.process.run_ffmpeg')
    def test_remove_watermark_output_suffix(self, mock_run):
        mock_run.side_effect = fake_ffmpeg()
        source = self.tmpdir / 'download.webm'
        source.write_bytes(b'webm-bytes')
        path, info, method = remove_watermark(source, VideoInfo(720, 1280))
        self.assertEqual((path.name, method), ('download_delogo.mp4', 'delogo'))

    @patch('clips.service.process.probe_video', side_effect=ProbeError('Invalid data'))
    @patch('clips.service.process.run_ffmpeg')
    def test_playlist_is_never_delivered(self, mock_run, mock_probe):
        asset = self.make_asset('download.mp4', b'#EXTM3U\n#EXTINF:4,\nhttps://cdn.test/seg0.ts\n')
        with self.assertRaises(TranscodeError):
            transcode(asset, output_path=self.output)
        self.assertFalse(self.output.exists())
        mock_run.assert_not_called()

    @patch('clips.service.process.probe_video')
    @patch('clips.service.process.run_ffmpeg')
    @patch('clips.service.process.shutil.copy2')
    def test_partial_fallback_copy_is_removed(self, mock_copy, mock_run, mock_probe):
        """Test that a deliverable half-written before a disk error is deleted"""
        def partial_copy(src, dst):
            Path(dst).write_bytes(b'0123456789')
            raise OSError(28, 'No space left on device')

        mock_copy.side_effect = partial_copy
        mock_run.side_effect = fake_ffmpeg(fail_on=('encode',))
        mock_probe.return_value = VideoInfo(720, 1280)
        asset = self.make_asset('download.mp4', b'downloaded-bytes')

        with self.assertRaises(TranscodeError):
            transcode(asset, output_path=self.output)
        self.assertFalse(self.output.exists())

    @patch('clips.service.process.probe_video', side_effect=ProbeError('bad'))
    @patch('clips.service.process._confirm_deliverable', side_effect=TranscodeError('Deliverable is empty'))
    def test_unconfirmed_deliverable_is_removed(self, mock_confirm, mock_probe):
        asset = self.make_asset('download.mp4', b'downloaded-bytes')
        with self.assertRaises(TranscodeError):
            transcode(asset, output_path=self.output)
        self.assertFalse(self.output.exists())
