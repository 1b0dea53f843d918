"""Decoder/encoder argument selection for the detected hardware.

Everything here is a pure lookup; probing ffmpeg lives in ``capabilities``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class Vendor(str, Enum):
    NVIDIA = "nvidia"
    INTEL = "intel"
    AMD = "amd"
    CPU = "cpu"


QUALITY = 23

_CODEC_ALIASES = {
    "h265": "hevc",
    "avc": "h264",
    "avc1": "h264",
}

# (vendor, input codec) -> hardware decoder arguments.
# Missing combinations decode in software.
DECODE_ARGS: Dict[Tuple[Vendor, str], Tuple[str, ...]] = {
    (Vendor.NVIDIA, "hevc"): ("-c:v", "hevc_cuvid"),
    (Vendor.NVIDIA, "h264"): ("-c:v", "h264_cuvid"),
    (Vendor.INTEL, "hevc"): (
        "-init_hw_device", "qsv=hw",
        "-filter_hw_device", "hw",
        "-hwaccel", "qsv",
        "-c:v", "hevc_qsv",
    ),
    (Vendor.INTEL, "h264"): (
        "-init_hw_device", "qsv=hw",
        "-filter_hw_device", "hw",
        "-hwaccel", "qsv",
        "-c:v", "h264_qsv",
    ),
}

# AMD has no codec-specific decoder; let ffmpeg pick the platform API.
VENDOR_DECODE_ARGS: Dict[Vendor, Tuple[str, ...]] = {
    Vendor.AMD: ("-hwaccel", "auto"),
}

ENCODE_ARGS: Dict[Vendor, Tuple[str, ...]] = {
    Vendor.NVIDIA: (
        "-c:v", "h264_nvenc",
        "-preset", "p4",
        "-rc", "vbr",
        "-cq", str(QUALITY),
        "-b:v", "0",
    ),
    Vendor.INTEL: (
        "-c:v", "h264_qsv",
        "-global_quality", str(QUALITY),
    ),
    Vendor.AMD: (
        "-c:v", "h264_amf",
        "-rc", "cqp",
        "-qp_i", str(QUALITY),
        "-qp_p", str(QUALITY),
    ),
    Vendor.CPU: (
        "-c:v", "libx264",
        "-preset", "fast",
        "-crf", str(QUALITY),
    ),
}


@dataclass(frozen=True)
class EncodePlan:
    """ffmpeg arguments shared by every clip rendered from one source video."""

    vendor: Vendor
    decode_args: Tuple[str, ...]
    encode_args: Tuple[str, ...]

    @property
    def is_hardware_decode(self) -> bool:
        return bool(self.decode_args)


def normalize_codec(codec: str) -> str:
    codec = (codec or "").strip().lower()
    return _CODEC_ALIASES.get(codec, codec)


def classify_encoders(encoders_text: str) -> Vendor:
    """Pick the hardware vendor from ``ffmpeg -encoders`` output.

    NVENC wins over QSV, which wins over AMF.
    """
    names = set()
    for line in encoders_text.splitlines():
        fields = line.split()
        if len(fields) >= 2:
            names.add(fields[1])

    if "h264_nvenc" in names:
        return Vendor.NVIDIA
    if any(name.endswith("_qsv") for name in names):
        return Vendor.INTEL
    if any(name.endswith("_amf") for name in names):
        return Vendor.AMD
    return Vendor.CPU


def build_encode_plan(vendor: Vendor, input_codec: str) -> EncodePlan:
    """Map (vendor, input codec) to the decoder and encoder arguments."""
    vendor = Vendor(vendor)
    codec = normalize_codec(input_codec)
    decode_args = DECODE_ARGS.get((vendor, codec), VENDOR_DECODE_ARGS.get(vendor, ()))
    return EncodePlan(
        vendor=vendor,
        decode_args=decode_args,
        encode_args=ENCODE_ARGS[vendor],
    )
