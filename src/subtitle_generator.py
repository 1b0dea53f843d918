"""Caption track generation using FFmpeg and Whisper.

This module provides functionality to:
1. Extract the audio track of a video with FFmpeg
2. Transcribe it with OpenAI Whisper into an SRT caption track
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from capabilities import Runner, run_command

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(message)s")

# Whisper models are loaded once per process and shared by worker threads.
# Transcriptions run one at a time under the lock.
_model_lock = threading.Lock()
_models: dict = {}


def get_whisper_model() -> str:
    """Get the configured Whisper model name."""
    return os.getenv("WHISPER_MODEL", "large-v3-turbo")


def extract_audio(
    video_path: Path,
    audio_path: Path,
    runner: Runner = run_command,
    ffmpeg_bin: str = "ffmpeg",
    timeout: Optional[float] = None,
) -> Path:
    """Extract the audio track of ``video_path`` to ``audio_path``."""
    cmd = [
        ffmpeg_bin, "-hide_banner",
        "-i", str(video_path),
        "-q:a", "0",
        "-map", "a",
        str(audio_path),
        "-y",
    ]
    logging.info(f"Extracting audio: {video_path.name} -> {audio_path.name}")
    runner(cmd, timeout)
    return audio_path


def transcribe_audio(audio_path: Path, output_srt: Optional[Path] = None) -> Path:
    """Transcribe audio using Whisper.

    Args:
        audio_path: Path to the audio file
        output_srt: Optional path for SRT output. If None, creates alongside audio.

    Returns:
        Path to generated SRT file
    """
    if not audio_path.exists():
        raise FileNotFoundError(f"Audio file does not exist: {audio_path}")

    if output_srt is None:
        output_srt = audio_path.with_suffix(".srt")

    model_name = get_whisper_model()

    logging.info(f"Transcribing audio with Whisper ({model_name})...")

    try:
        import whisper
    except ImportError:
        logging.error("whisper not installed. Run: pip install openai-whisper")
        raise

    options = {"task": "transcribe", "verbose": False}
    language = os.getenv("WHISPER_LANGUAGE")
    if language:
        options["language"] = language

    with _model_lock:
        model = _models.get(model_name)
        if model is None:
            model = whisper.load_model(model_name)
            _models[model_name] = model
        result = model.transcribe(str(audio_path), **options)

    with open(output_srt, "w", encoding="utf-8") as f:
        f.write(_generate_srt(result))

    logging.info(f"Transcription saved to: {output_srt}")
    return output_srt


def _generate_srt(whisper_result: dict) -> str:
    """Convert Whisper result to SRT format."""
    segments = whisper_result.get("segments", [])
    srt_lines = []

    index = 0
    for segment in segments:
        text = segment.get("text", "").strip()
        if not text:
            continue
        index += 1

        start_ts = _format_timestamp(segment.get("start", 0))
        end_ts = _format_timestamp(segment.get("end", 0))

        srt_lines.append(f"{index}")
        srt_lines.append(f"{start_ts} --> {end_ts}")
        srt_lines.append(text)
        srt_lines.append("")

    return "\n".join(srt_lines)


def _format_timestamp(seconds: float) -> str:
    """Format seconds to SRT timestamp (HH:MM:SS,mmm)."""
    total_millis = int(round(seconds * 1000))
    hours, rest = divmod(total_millis, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"
