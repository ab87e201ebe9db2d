"""
test_compression.py
-------------------
Unit tests for CompressionAdapter and the ffprobe duration probe, using
shell scripts in place of ffmpeg/ffprobe.
"""
import asyncio
import sys

import pytest

from memoryhaven.core.exceptions import CompressionError
from memoryhaven.media.compression import CompressionAdapter, EncodingProfile, parse_progress_line
from memoryhaven.media.probe import probe_duration

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX exec permissions")

PROFILE = EncodingProfile(
    video_bitrate="1000k", audio_bitrate="128k", width=1280, height=720, fps=30, format="mp4",
)

ENCODE_OK = (
    'echo "out_time_us=500000"\n'
    'echo "progress=continue"\n'
    'echo "out_time_us=1000000"\n'
    'echo "progress=end"\n'
    'printf "encoded" > "$last"'
)


@pytest.fixture
def video(tmp_path):
    path = tmp_path / "recordings" / "recording-2024-03-09_21-15-42.webm"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"raw-video")
    return path


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "compressed"


class TestParseProgressLine:
    def test_out_time(self):
        assert parse_progress_line("out_time_us=2500000\n") == 2.5

    def test_other_keys_ignored(self):
        assert parse_progress_line("frame=12") is None
        assert parse_progress_line("progress=end") is None

    def test_unparseable_value(self):
        assert parse_progress_line("out_time_ms=N/A") is None


class TestCompressionAdapter:
    """Test CompressionAdapter.compress()."""

    def test_produces_new_file(self, fake_tool, video, output_dir):
        adapter = CompressionAdapter(output_dir, ffmpeg=fake_tool("ffmpeg", ENCODE_OK))

        result = asyncio.run(adapter.compress(video, PROFILE))

        assert result.path == output_dir / "recording-2024-03-09_21-15-42_compressed.mp4"
        assert result.path != video
        assert result.size == len(b"encoded")
        assert video.read_bytes() == b"raw-video"

    def test_profile_reaches_ffmpeg(self, fake_tool, video, output_dir, tmp_path):
        args_file = tmp_path / "args.txt"
        tool = fake_tool("ffmpeg", f'echo "$@" > "{args_file}"\n{ENCODE_OK}')
        profile = EncodingProfile(
            video_bitrate="800k", audio_bitrate="96k", width=640, height=360, fps=24, format="mkv",
        )

        result = asyncio.run(CompressionAdapter(output_dir, ffmpeg=tool).compress(video, profile))

        args = args_file.read_text()
        for expected in ("-s 640x360", "-b:v 800k", "-b:a 96k", "-r 24", "-f mkv"):
            assert expected in args
        assert result.path.suffix == ".mkv"

    def test_failure_removes_partial_output(self, fake_tool, video, output_dir):
        tool = fake_tool("ffmpeg", 'printf "partial" > "$last"\necho "disk full" >&2\nexit 1')
        adapter = CompressionAdapter(output_dir, ffmpeg=tool)

        with pytest.raises(CompressionError) as excinfo:
            asyncio.run(adapter.compress(video, PROFILE))

        assert excinfo.value.kind == CompressionError.ENGINE
        assert "disk full" in excinfo.value.diagnostic
        assert list(output_dir.iterdir()) == []

    def test_empty_output_is_a_failure(self, fake_tool, video, output_dir):
        adapter = CompressionAdapter(output_dir, ffmpeg=fake_tool("ffmpeg", ': > "$last"'))

        with pytest.raises(CompressionError) as excinfo:
            asyncio.run(adapter.compress(video, PROFILE))

        assert excinfo.value.kind == CompressionError.OUTPUT
        assert list(output_dir.iterdir()) == []

    def test_missing_binary(self, tmp_path, video, output_dir):
        adapter = CompressionAdapter(output_dir, ffmpeg=str(tmp_path / "no-ffmpeg"))
        with pytest.raises(CompressionError) as excinfo:
            asyncio.run(adapter.compress(video, PROFILE))
        assert excinfo.value.kind == CompressionError.ENGINE

    @posix_only
    def test_not_executable(self, tmp_path, video, output_dir):
        tool = tmp_path / "ffmpeg"
        tool.write_text("#!/bin/sh\nexit 0\n")
        adapter = CompressionAdapter(output_dir, ffmpeg=str(tool))

        with pytest.raises(CompressionError) as excinfo:
            asyncio.run(adapter.compress(video, PROFILE))

        assert excinfo.value.kind == CompressionError.ENGINE

    def test_timeout_removes_partial_output(self, fake_tool, video, output_dir):
        tool = fake_tool("ffmpeg", 'printf "partial" > "$last"\nexec sleep 5')
        adapter = CompressionAdapter(output_dir, ffmpeg=tool, timeout=0.3)

        with pytest.raises(CompressionError) as excinfo:
            asyncio.run(adapter.compress(video, PROFILE))

        assert excinfo.value.kind == CompressionError.TIMEOUT
        assert list(output_dir.iterdir()) == []

    def test_output_dir_is_created(self, fake_tool, video, tmp_path):
        output_dir = tmp_path / "nested" / "compressed"
        adapter = CompressionAdapter(output_dir, ffmpeg=fake_tool("ffmpeg", ENCODE_OK))

        result = asyncio.run(adapter.compress(video, PROFILE))

        assert result.path.parent == output_dir
        assert output_dir.is_dir()


class TestProbeDuration:
    """Test probe_duration() against a fake ffprobe."""

    def test_rounds_duration(self, fake_tool, video):
        tool = fake_tool("ffprobe", """echo '{"format": {"duration": "12.6"}}'""")
        assert asyncio.run(probe_duration(video, ffprobe=tool)) == 13

    def test_missing_duration(self, fake_tool, video):
        tool = fake_tool("ffprobe", """echo '{"format": {}}'""")
        assert asyncio.run(probe_duration(video, ffprobe=tool)) is None

    def test_zero_duration(self, fake_tool, video):
        tool = fake_tool("ffprobe", """echo '{"format": {"duration": "0.000"}}'""")
        assert asyncio.run(probe_duration(video, ffprobe=tool)) is None

    def test_tool_failure(self, fake_tool, video):
        assert asyncio.run(probe_duration(video, ffprobe=fake_tool("ffprobe", "exit 1"))) is None

    def test_garbage_output(self, fake_tool, video):
        assert asyncio.run(probe_duration(video, ffprobe=fake_tool("ffprobe", "echo nope"))) is None

    def test_missing_binary(self, tmp_path, video):
        assert asyncio.run(probe_duration(video, ffprobe=str(tmp_path / "no-ffprobe"))) is None

    @posix_only
    def test_not_executable(self, tmp_path, video):
        tool = tmp_path / "ffprobe"
        tool.write_text("#!/bin/sh\necho '{}'\n")
        assert asyncio.run(probe_duration(video, ffprobe=str(tool))) is None

    @pytest.mark.parametrize("output", [
        '{"format": null}',
        '{"format": "mp4"}',
        '[1, 2]',
        '{"format": {"duration": "inf"}}',
        '{"format": {"duration": "nan"}}',
        '{"format": {"duration": {"seconds": 3}}}',
    ])
    def test_unexpected_json(self, fake_tool, video, output):
        tool = fake_tool("ffprobe", f"echo '{output}'")
        assert asyncio.run(probe_duration(video, ffprobe=tool)) is None
