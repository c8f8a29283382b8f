import pytest
import json
from pathlib import Path
from unittest.mock import patch, AsyncMock, MagicMock
from clipcat.config.models import AnalysisConfig
from clipcat.domain.errors import AnalysisError
from clipcat.infrastructure.ffprobe import FFprobeAnalyzer


def _streams(video=None, audio=True, duration="42.5"):
    streams = []
    if video is not False:
        stream = {
            "index": 0,
            "codec_name": "h264",
            "codec_type": "video",
            "width": 1920,
            "height": 1080,
            "r_frame_rate": "30/1",
            "avg_frame_rate": "30/1",
        }
        stream.update(video or {})
        streams.append(stream)
    if audio:
        streams.append({"index": 1, "codec_name": "aac", "codec_type": "audio"})
    return {"streams": streams, "format": {"duration": duration}}


def _packets(fps, count=31):
    return {"packets": [{"pts_time": f"{i / fps:.6f}"} for i in range(count)]}


def _probe(*responses):
    return patch.object(FFprobeAnalyzer, "_run_ffprobe", new=AsyncMock(side_effect=list(responses)))


@pytest.mark.asyncio
async def test_ffprobe_analyze_landscape_with_audio():
    with _probe(_streams(), _packets(30)) as mock_run:
        result = await FFprobeAnalyzer().analyze(Path("test.mp4"))

    assert result.display_width == 1920
    assert result.display_height == 1080
    assert result.has_audio is True
    assert result.estimated_fps == pytest.approx(30.0)
    assert result.duration_seconds == 42.5
    assert mock_run.await_count == 2


@pytest.mark.asyncio
async def test_ffprobe_sampled_fps_wins_over_container_rate():
    # Container claims 30 but packets arrive at 60 (variable frame rate phone clip)
    with _probe(_streams(), _packets(60, count=61)):
        result = await FFprobeAnalyzer().analyze(Path("test.mp4"))

    assert result.estimated_fps == pytest.approx(60.0)


@pytest.mark.asyncio
async def test_ffprobe_no_audio():
    with _probe(_streams(audio=False), _packets(30)):
        result = await FFprobeAnalyzer().analyze(Path("test.mp4"))

    assert result.has_audio is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "rotation_fields",
    [
        {"side_data_list": [{"side_data_type": "Display Matrix", "rotation": -90}]},
        {"side_data_list": [{"rotation": 90}]},
        {"tags": {"rotate": "270"}},
    ],
)
async def test_ffprobe_rotation_swaps_dimensions(rotation_fields):
    with _probe(_streams(video=rotation_fields), _packets(30)):
        result = await FFprobeAnalyzer().analyze(Path("phone.mp4"))

    assert result.display_width == 1080
    assert result.display_height == 1920
    assert not result.is_landscape


@pytest.mark.asyncio
async def test_ffprobe_rotation_180_keeps_dimensions():
    with _probe(_streams(video={"tags": {"rotate": "180"}}), _packets(30)):
        result = await FFprobeAnalyzer().analyze(Path("test.mp4"))

    assert (result.display_width, result.display_height) == (1920, 1080)


@pytest.mark.asyncio
async def test_ffprobe_no_video_track():
    with _probe(_streams(video=False)) as mock_run:
        with pytest.raises(AnalysisError, match="No video track"):
            await FFprobeAnalyzer().analyze(Path("song.m4a"))

    assert mock_run.await_count == 1


@pytest.mark.asyncio
async def test_ffprobe_zero_dimensions():
    with _probe(_streams(video={"width": 0})):
        with pytest.raises(AnalysisError):
            await FFprobeAnalyzer().analyze(Path("broken.mp4"))


@pytest.mark.asyncio
async def test_ffprobe_fps_falls_back_to_avg_frame_rate():
    with _probe(_streams(video={"avg_frame_rate": "30000/1001"}), {"packets": []}):
        result = await FFprobeAnalyzer().analyze(Path("test.mp4"))

    assert result.estimated_fps == pytest.approx(29.97, abs=0.01)


@pytest.mark.asyncio
async def test_ffprobe_fps_sampling_failure_falls_back(caplog):
    streams = _streams(video={"avg_frame_rate": "0/0", "r_frame_rate": "25/1"})
    with _probe(streams, AnalysisError("ffprobe failed (code 1): boom")):
        result = await FFprobeAnalyzer().analyze(Path("test.mp4"))

    assert result.estimated_fps == 25.0
    assert "FPS sampling failed" in caplog.text


@pytest.mark.asyncio
async def test_ffprobe_fps_default_when_unknown():
    streams = _streams(video={"avg_frame_rate": "0/0", "r_frame_rate": "0/0"})
    with _probe(streams, {"packets": [{"pts_time": "N/A"}]}):
        result = await FFprobeAnalyzer().analyze(Path("test.mp4"))

    assert result.estimated_fps == 30.0


@pytest.mark.asyncio
@pytest.mark.parametrize(("fps", "expected"), [(240, 120.0), (8, 15.0)])
async def test_ffprobe_fps_clamped(fps, expected):
    with _probe(_streams(), _packets(fps, count=41)):
        result = await FFprobeAnalyzer().analyze(Path("test.mp4"))

    assert result.estimated_fps == pytest.approx(expected)


@pytest.mark.asyncio
async def test_ffprobe_fps_clamp_from_config():
    config = AnalysisConfig(fps_min=24, fps_max=60)
    with _probe(_streams(), _packets(120, count=121)):
        result = await FFprobeAnalyzer(config).analyze(Path("test.mp4"))

    assert result.estimated_fps == 60.0


@pytest.mark.asyncio
async def test_ffprobe_duration_falls_back_to_stream():
    with _probe(_streams(video={"duration": "12.0"}, duration="N/A"), _packets(30)):
        result = await FFprobeAnalyzer().analyze(Path("test.mp4"))

    assert result.duration_seconds == 12.0


@pytest.mark.asyncio
async def test_sample_fps_ignores_missing_timestamps():
    packets = {"packets": [{"pts_time": "0.0"}, {"pts_time": "N/A"}, {}, {"pts_time": "0.5"}, {"pts_time": "1.0"}]}
    with _probe(packets):
        fps = await FFprobeAnalyzer().sample_fps(Path("test.mp4"))

    assert fps == pytest.approx(2.0)


@pytest.mark.asyncio
async def test_sample_fps_single_packet():
    with _probe({"packets": [{"pts_time": "0.0"}]}):
        assert await FFprobeAnalyzer().sample_fps(Path("test.mp4")) is None


@pytest.mark.asyncio
async def test_sample_fps_requests_configured_packet_count():
    config = AnalysisConfig(fps_sample_packets=50)
    with _probe(_packets(30)) as mock_run:
        await FFprobeAnalyzer(config).sample_fps(Path("test.mp4"))

    args = mock_run.await_args.args[0]
    assert args[args.index("-read_intervals") + 1] == "%+#50"
    assert args[-1] == "test.mp4"


def _fake_process(stdout=b"", stderr=b"", returncode=0):
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.returncode = returncode
    return process


@pytest.mark.asyncio
async def test_run_ffprobe_parses_json():
    process = _fake_process(stdout=json.dumps(_streams()).encode())
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)) as mock_exec:
        data = await FFprobeAnalyzer(ffprobe_path="/usr/bin/ffprobe")._run_ffprobe(["-show_streams", "x.mp4"])

    assert data["streams"][0]["width"] == 1920
    cmd = mock_exec.await_args.args
    assert cmd[:5] == ("/usr/bin/ffprobe", "-v", "quiet", "-print_format", "json")


@pytest.mark.asyncio
async def test_run_ffprobe_error():
    process = _fake_process(stderr=b"x.mp4: Invalid data found", returncode=1)
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
        with pytest.raises(AnalysisError, match="Invalid data found"):
            await FFprobeAnalyzer()._run_ffprobe(["x.mp4"])


@pytest.mark.asyncio
async def test_run_ffprobe_invalid_json():
    process = _fake_process(stdout=b"{not json")
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
        with pytest.raises(AnalysisError, match="invalid JSON"):
            await FFprobeAnalyzer()._run_ffprobe(["x.mp4"])


@pytest.mark.asyncio
async def test_run_ffprobe_missing_binary():
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(side_effect=FileNotFoundError("ffprobe"))):
        with pytest.raises(AnalysisError, match="Could not start ffprobe"):
            await FFprobeAnalyzer()._run_ffprobe(["x.mp4"])
