import subprocess
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from capabilities import CapabilityDetector, ProbeError  # noqa: E402
from encode_plan import Vendor, build_encode_plan, classify_encoders  # noqa: E402

ENCODERS_HEADER = """Encoders:
 V..... = Video
 ------
 V....D libx264              libx264 H.264 / AVC / MPEG-4 AVC (codec h264)
"""


def completed(stdout: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=0, stdout=stdout, stderr="")


def test_nvidia_hevc_plan():
    plan = build_encode_plan(Vendor.NVIDIA, "hevc")
    assert plan.vendor is Vendor.NVIDIA
    assert plan.decode_args == ("-c:v", "hevc_cuvid")
    assert plan.encode_args[:2] == ("-c:v", "h264_nvenc")
    assert "-cq" in plan.encode_args
    assert plan.encode_args[plan.encode_args.index("-cq") + 1] == "23"


def test_nvidia_h264_plan():
    assert build_encode_plan(Vendor.NVIDIA, "h264").decode_args == ("-c:v", "h264_cuvid")


def test_codec_aliases():
    assert build_encode_plan(Vendor.NVIDIA, "H265").decode_args == ("-c:v", "hevc_cuvid")
    assert build_encode_plan(Vendor.NVIDIA, "avc1").decode_args == ("-c:v", "h264_cuvid")


@pytest.mark.parametrize("codec", ["h264", "hevc", "vp9", "av1"])
def test_cpu_plan_is_software(codec):
    plan = build_encode_plan(Vendor.CPU, codec)
    assert plan.decode_args == ()
    assert plan.encode_args == ("-c:v", "libx264", "-preset", "fast", "-crf", "23")


def test_intel_plan_initializes_device():
    plan = build_encode_plan(Vendor.INTEL, "h264")
    assert "-init_hw_device" in plan.decode_args
    assert plan.decode_args[-2:] == ("-c:v", "h264_qsv")
    assert plan.encode_args == ("-c:v", "h264_qsv", "-global_quality", "23")


def test_amd_plan_uses_generic_hwaccel():
    plan = build_encode_plan(Vendor.AMD, "vp9")
    assert plan.decode_args == ("-hwaccel", "auto")
    assert plan.encode_args[:2] == ("-c:v", "h264_amf")
    assert "cqp" in plan.encode_args


def test_unknown_codec_falls_back_to_software_decode():
    assert build_encode_plan(Vendor.NVIDIA, "prores").decode_args == ()
    assert build_encode_plan(Vendor.INTEL, "mpeg2video").decode_args == ()


def test_vendor_accepts_plain_string():
    assert build_encode_plan("nvidia", "hevc").vendor is Vendor.NVIDIA


def test_classify_encoders():
    nvidia = ENCODERS_HEADER + " V....D h264_nvenc           NVIDIA NVENC H.264 encoder (codec h264)\n"
    intel = ENCODERS_HEADER + " V..... hevc_qsv             HEVC (Intel Quick Sync Video acceleration) (codec hevc)\n"
    amd = ENCODERS_HEADER + " V....D h264_amf             AMD AMF H.264 Encoder (codec h264)\n"
    assert classify_encoders(nvidia) is Vendor.NVIDIA
    assert classify_encoders(intel) is Vendor.INTEL
    assert classify_encoders(amd) is Vendor.AMD
    assert classify_encoders(ENCODERS_HEADER) is Vendor.CPU
    assert classify_encoders(intel + amd) is Vendor.INTEL
    assert classify_encoders(amd + nvidia) is Vendor.NVIDIA


def test_detector_probes_once():
    def runner(cmd, timeout):
        if "-encoders" in cmd:
            return completed(ENCODERS_HEADER + " V....D h264_nvenc  NVIDIA NVENC\n")
        return completed("hevc\n")

    runner = MagicMock(side_effect=runner)
    detector = CapabilityDetector(Path("video.mp4"), runner=runner)

    for _ in range(5):
        plan = detector.encode_plan()
        detector.hardware_vendor()
        detector.input_codec()

    assert runner.call_count == 2
    assert plan.decode_args == ("-c:v", "hevc_cuvid")


def test_hardware_probe_failure_falls_back_to_cpu():
    def runner(cmd, timeout):
        if "-encoders" in cmd:
            raise subprocess.CalledProcessError(1, cmd, stderr="boom")
        return completed("h264\n")

    detector = CapabilityDetector(Path("video.mp4"), runner=runner)
    assert detector.hardware_vendor() is Vendor.CPU
    assert detector.encode_plan().encode_args[1] == "libx264"


def test_hardware_probe_missing_binary_falls_back_to_cpu():
    def runner(cmd, timeout):
        raise FileNotFoundError("ffmpeg")

    assert CapabilityDetector(Path("video.mp4"), runner=runner).hardware_vendor() is Vendor.CPU


def test_codec_probe_failure_is_fatal():
    def runner(cmd, timeout):
        if "-encoders" in cmd:
            return completed(ENCODERS_HEADER)
        raise subprocess.CalledProcessError(1, cmd, stderr="Invalid data found when processing input")

    detector = CapabilityDetector(Path("video.mp4"), runner=runner)
    with pytest.raises(ProbeError):
        detector.encode_plan()


def test_codec_probe_without_video_stream_is_fatal():
    detector = CapabilityDetector(Path("audio.mp4"), runner=lambda cmd, timeout: completed(""))
    with pytest.raises(ProbeError):
        detector.input_codec()


def test_codec_probe_command():
    runner = MagicMock(return_value=completed("h264\n"))
    detector = CapabilityDetector(Path("clip.mkv"), runner=runner, ffprobe_bin="/opt/ffprobe", probe_timeout=5)
    assert detector.input_codec() == "h264"
    cmd, timeout = runner.call_args[0]
    assert cmd[0] == "/opt/ffprobe"
    assert cmd[cmd.index("-select_streams") + 1] == "v:0"
    assert cmd[-1] == "clip.mkv"
    assert timeout == 5
