"""Utility for automatically generating viral short clips from long videos.

This module takes a long-form video and its caption track, asks an AI
provider (Gemini/OpenAI) for the most emotionally engaging time ranges,
and renders each range as a vertical 9:16 clip: a blurred full-frame
background with a square, caption-burned foreground on top. Decoding and
encoding use the GPU (NVIDIA, Intel or AMD) when ffmpeg exposes one.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from dotenv import load_dotenv
from tqdm import tqdm

from ai_providers import OracleUnavailableError, SegmentOracle, get_oracle
from capabilities import CapabilityDetector, Runner, run_command
from encode_plan import EncodePlan
from segments import (
    InvalidSegmentError,
    NormalizedSegment,
    normalize_segment,
    normalize_segments,
)
from subtitle_generator import extract_audio, transcribe_audio
from transcript import build_transcript

# Load environment variables from a .env file if present.
load_dotenv()

# Configure basic logging.
logging.basicConfig(level=logging.INFO, format="%(message)s")

VIDEO_EXTENSIONS = (".mp4", ".mkv", ".mov", ".avi", ".webm")

_DRIVE_LETTER = re.compile(r"^([A-Za-z]):")


def _get_env_int(name: str, default: int) -> int:
    """Read an int environment variable with a default and basic validation."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except Exception:
        logging.warning("Env var %s=%r is not a valid int. Using default %s.", name, value, default)
        return default


def _get_env_float(name: str, default: float) -> float:
    """Read a float environment variable with a default and basic validation."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except Exception:
        logging.warning(
            "Env var %s=%r is not a valid float. Using default %s.", name, value, default
        )
        return default


@dataclass(frozen=True)
class ProcessingConfig:
    """Configuration values used throughout the processing pipeline."""

    min_short_length: float = 30.0
    max_short_length: float = 50.0
    output_width: int = 1080
    output_height: int = 1920
    blur_radius: int = 20
    parallel_limit: int = 7
    probe_timeout: float = 30.0
    render_timeout: float = 1800.0
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    transcribe_missing: bool = True


def config_from_env() -> ProcessingConfig:
    """Build ProcessingConfig from environment variables."""
    return ProcessingConfig(
        min_short_length=_get_env_float("MIN_SHORT_LENGTH", 30.0),
        max_short_length=_get_env_float("MAX_SHORT_LENGTH", 50.0),
        output_width=_get_env_int("OUTPUT_WIDTH", 1080),
        output_height=_get_env_int("OUTPUT_HEIGHT", 1920),
        blur_radius=_get_env_int("BLUR_RADIUS", 20),
        parallel_limit=max(1, _get_env_int("PARALLEL_LIMIT", 7)),
        probe_timeout=_get_env_float("PROBE_TIMEOUT", 30.0),
        render_timeout=_get_env_float("RENDER_TIMEOUT", 1800.0),
        ffmpeg_bin=os.getenv("FFMPEG_BIN", "ffmpeg"),
        ffprobe_bin=os.getenv("FFPROBE_BIN", "ffprobe"),
    )


class RenderError(RuntimeError):
    """Raised when ffmpeg fails to render one clip."""


class BatchAbortError(RuntimeError):
    """An error that makes every remaining video fail the same way."""


@dataclass(frozen=True)
class RenderJob:
    """Everything needed to render one clip."""

    segment: NormalizedSegment
    source_video: Path
    caption_file: Path
    output_path: Path
    plan: EncodePlan


@dataclass
class RenderOutcome:
    segment: NormalizedSegment
    output_path: Path
    success: bool
    error: str = ""


@dataclass
class VideoResult:
    """Summary of one processed video."""

    video: Path
    output_dir: Path
    outcomes: List[RenderOutcome] = field(default_factory=list)
    error: str = ""
    aborted: bool = False

    @property
    def success(self) -> bool:
        return not self.error


def failed_count(outcomes: Sequence[RenderOutcome]) -> int:
    return sum(1 for outcome in outcomes if not outcome.success)


def escape_filter_path(path: Path) -> str:
    """Make a file path safe to embed in an ffmpeg filter argument.

    Backslashes become forward slashes and a drive-letter colon is escaped,
    since ``:`` separates filter options. The result goes inside single
    quotes, so an apostrophe closes the quote, is escaped, and reopens it.
    """
    text = str(path).replace("\\", "/")
    text = _DRIVE_LETTER.sub(r"\1\\:", text)
    return text.replace("'", "'\\''")


def build_filter_graph(
    segment: NormalizedSegment,
    caption_file: Path,
    config: ProcessingConfig = ProcessingConfig(),
) -> str:
    """Build the vertical composite filter graph for one clip.

    The background is the whole frame scaled to cover the canvas and
    blurred. The foreground is a centered square with the captions burned
    in. Input seeking resets timestamps to zero, so the foreground is
    shifted back to source time for the subtitles filter and then reset.
    """
    w, h = config.output_width, config.output_height
    fg_size = w
    shift = f"{segment.start:.3f}"
    caption = escape_filter_path(caption_file)

    background = (
        f"[bgsrc]scale={w}:{h}:force_original_aspect_ratio=increase,"
        f"crop={w}:{h},boxblur={config.blur_radius}:5[bg]"
    )
    foreground = (
        f"[fgsrc]scale=-2:{fg_size},crop={fg_size}:{fg_size},"
        f"setpts=PTS+{shift}/TB,"
        f"subtitles='{caption}':force_style='Alignment=2',"
        f"setpts=PTS-STARTPTS[fg]"
    )
    return ";".join([
        "[0:v]split=2[bgsrc][fgsrc]",
        background,
        foreground,
        "[bg][fg]overlay=(W-w)/2:(H-h)/2[outv]",
    ])


def build_render_command(job: RenderJob, config: ProcessingConfig = ProcessingConfig()) -> List[str]:
    """Build the ffmpeg command line that renders ``job``."""
    cmd = [config.ffmpeg_bin, "-hide_banner", "-y"]
    cmd.extend(job.plan.decode_args)
    cmd.extend([
        "-ss", f"{job.segment.start:.3f}",
        "-t", f"{job.segment.duration:.3f}",
        "-i", str(job.source_video),
        "-filter_complex", build_filter_graph(job.segment, job.caption_file, config),
        "-map", "[outv]",
        "-map", "0:a?",
    ])
    cmd.extend(job.plan.encode_args)
    cmd.extend([
        "-c:a", "copy",
        "-avoid_negative_ts", "make_zero",
        str(job.output_path),
    ])
    return cmd


class ShortsRenderer:
    """Renders the clips of one source video.

    The renderer owns the capability probes of the video it renders, so the
    hardware and codec are detected once and reused for every segment.
    """

    def __init__(
        self,
        config: ProcessingConfig = ProcessingConfig(),
        runner: Runner = run_command,
        detector_factory: Optional[Callable[[Path], CapabilityDetector]] = None,
    ):
        self.config = config
        self._runner = runner
        self._detector_factory = detector_factory or self._default_detector

    def _default_detector(self, video_path: Path) -> CapabilityDetector:
        return CapabilityDetector(
            video_path,
            runner=self._runner,
            ffmpeg_bin=self.config.ffmpeg_bin,
            ffprobe_bin=self.config.ffprobe_bin,
            probe_timeout=self.config.probe_timeout,
        )

    def _coerce_segments(self, segments: Sequence) -> List[NormalizedSegment]:
        normalized = []
        for ordinal, segment in enumerate(segments, 1):
            if isinstance(segment, NormalizedSegment):
                normalized.append(segment)
                continue
            try:
                normalized.append(normalize_segment(
                    segment,
                    ordinal,
                    self.config.min_short_length,
                    self.config.max_short_length,
                ))
            except InvalidSegmentError as e:
                logging.warning(f"Skipping segment {ordinal}: {e}")
        return normalized

    def render_shorts(
        self,
        source_video: Path,
        segments: Sequence,
        output_folder: Path,
        caption_file: Path,
    ) -> List[RenderOutcome]:
        """Render every segment of ``source_video`` into ``output_folder``.

        Segments may be :class:`NormalizedSegment` objects or raw candidates,
        which are validated first. A failed segment is logged and recorded
        and the remaining segments are still rendered.

        Raises:
            FileNotFoundError: If the video or caption file does not exist.
            ProbeError: If the input codec cannot be detected.
        """
        source_video = Path(source_video)
        caption_file = Path(caption_file)
        output_folder = Path(output_folder)

        if not source_video.exists():
            raise FileNotFoundError(f"Video does not exist: {source_video}")
        if not caption_file.exists():
            raise FileNotFoundError(f"Caption file does not exist: {caption_file}")

        normalized = self._coerce_segments(segments)
        plan = self._detector_factory(source_video).encode_plan()
        output_folder.mkdir(parents=True, exist_ok=True)

        outcomes = []
        total = len(normalized)
        for position, segment in enumerate(tqdm(normalized, desc="Rendering shorts", unit="clip"), 1):
            job = RenderJob(
                segment=segment,
                source_video=source_video,
                caption_file=caption_file.resolve(),
                output_path=output_folder / segment.filename,
                plan=plan,
            )
            logging.info(
                f"Cutting segment {position}/{total}: "
                f"{segment.start:.1f}s +{segment.duration:.1f}s ({segment.label})"
            )
            try:
                self._render_job(job)
            except Exception as e:
                logging.error(f"Error rendering segment {segment.ordinal}: {e}")
                outcomes.append(RenderOutcome(segment, job.output_path, False, str(e)))
                continue
            logging.info(f"Short generated: {job.output_path}")
            outcomes.append(RenderOutcome(segment, job.output_path, True))

        failures = failed_count(outcomes)
        if failures:
            logging.warning(f"{failures} of {total} shorts failed to render")
        return outcomes

    def _render_job(self, job: RenderJob) -> None:
        cmd = build_render_command(job, self.config)
        logging.debug("Running: %s", " ".join(cmd))
        try:
            self._runner(cmd, self.config.render_timeout)
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise RenderError(f"ffmpeg exited with {e.returncode}: {stderr[-300:]}") from e
        except subprocess.TimeoutExpired as e:
            raise RenderError(f"ffmpeg timed out after {e.timeout:.0f}s") from e


def render_shorts(
    source_video: Path,
    segments: Sequence,
    output_folder: Path,
    caption_file: Path,
    config: ProcessingConfig = ProcessingConfig(),
    runner: Runner = run_command,
) -> List[RenderOutcome]:
    """Render the clips of one video with a fresh :class:`ShortsRenderer`."""
    renderer = ShortsRenderer(config, runner)
    return renderer.render_shorts(source_video, segments, output_folder, caption_file)


def find_caption_file(video_file: Path, caption_dir: Path) -> Optional[Path]:
    """Return ``<caption_dir>/<video stem>.srt`` if it exists.

    There is no fallback to another caption file: pairing a video with a
    track recorded for a different video would burn the wrong captions.
    """
    candidate = caption_dir / f"{video_file.stem}.srt"
    return candidate if candidate.is_file() else None


def prepare_caption_file(
    video_file: Path,
    temp_dir: Path,
    config: ProcessingConfig,
    runner: Runner = run_command,
) -> Path:
    """Extract and transcribe the audio of ``video_file`` into an SRT file."""
    temp_dir.mkdir(parents=True, exist_ok=True)
    audio_path = temp_dir / f"{video_file.name}.mp3"
    logging.info("1. Extracting audio from video...")
    extract_audio(
        video_file, audio_path,
        runner=runner, ffmpeg_bin=config.ffmpeg_bin, timeout=config.render_timeout,
    )
    logging.info("2. Transcribing audio to text...")
    return transcribe_audio(audio_path)


def process_video(
    video_file: Path,
    config: ProcessingConfig,
    output_dir: Path,
    temp_dir: Path,
    caption_file: Optional[Path] = None,
    oracle: Optional[SegmentOracle] = None,
    runner: Runner = run_command,
) -> VideoResult:
    """Process a single video file and generate short clips.

    Raises on errors that stop this video (missing input, unparsable model
    response, codec probe failure). Failed clips do not raise.
    """
    video_file = Path(video_file)
    logging.info("\nProcess: %s", video_file.name)

    if not video_file.exists():
        raise FileNotFoundError(f"Video does not exist: {video_file}")

    if oracle is None:
        try:
            oracle = get_oracle()
        except OracleUnavailableError as e:
            raise BatchAbortError(str(e)) from e

    if caption_file is None:
        if not config.transcribe_missing:
            raise FileNotFoundError(f"No caption file for {video_file.name}")
        caption_file = prepare_caption_file(video_file, temp_dir, config, runner)
    elif not Path(caption_file).exists():
        raise FileNotFoundError(f"Caption file does not exist: {caption_file}")
    caption_file = Path(caption_file)

    with open(caption_file, "r", encoding="utf-8-sig") as f:
        transcript = build_transcript(f.read())
    logging.info(f"Transcript: {len(transcript.splitlines())} lines")

    logging.info(f"3. Analyzing transcript with {oracle.name}...")
    candidates = oracle.find_segments(
        transcript,
        min_duration=config.min_short_length,
        max_duration=config.max_short_length,
    )

    temp_dir.mkdir(parents=True, exist_ok=True)
    segments_path = temp_dir / f"{video_file.name}.viral_segments.json"
    with open(segments_path, "w", encoding="utf-8") as f:
        json.dump(candidates, f, indent=2, ensure_ascii=False)

    segments = normalize_segments(
        candidates,
        config.min_short_length,
        config.max_short_length,
    )
    if not segments:
        logging.warning("No valid segments to render")

    logging.info("4. Creating shorts...")
    renderer = ShortsRenderer(config, runner)
    outcomes = renderer.render_shorts(video_file, segments, output_dir, caption_file)

    logging.info(
        f"Processing complete: {len(outcomes) - failed_count(outcomes)}/{len(outcomes)} "
        f"shorts generated in {output_dir}"
    )
    return VideoResult(video=video_file, output_dir=output_dir, outcomes=outcomes)


def check_environment(config: ProcessingConfig) -> None:
    """Fail fast when a required external tool is missing."""
    for binary in (config.ffmpeg_bin, config.ffprobe_bin):
        if shutil.which(binary) is None:
            raise BatchAbortError(f"{binary} not found on PATH")


def process_batch(
    videos: Sequence[Tuple[Path, Optional[Path]]],
    config: ProcessingConfig,
    output_dir: Path,
    temp_dir: Path,
    oracle: Optional[SegmentOracle] = None,
    runner: Runner = run_command,
    preflight: Callable[[ProcessingConfig], None] = check_environment,
) -> List[VideoResult]:
    """Process ``(video, caption file or None)`` pairs, several at a time.

    Videos are dispatched in batches of ``config.parallel_limit`` and each
    batch finishes before the next starts. A failing video never affects
    its siblings; a :class:`BatchAbortError` stops new batches from being
    dispatched while the running batch drains.
    """
    results: List[VideoResult] = []
    limit = max(1, config.parallel_limit)

    def run_one(video_file: Path, caption_file: Optional[Path]) -> VideoResult:
        video_output = output_dir / video_file.name
        try:
            return process_video(
                video_file, config, video_output, temp_dir,
                caption_file=caption_file, oracle=oracle, runner=runner,
            )
        except BatchAbortError as e:
            logging.error(f"Aborting batch at {video_file.name}: {e}")
            return VideoResult(video_file, video_output, error=str(e), aborted=True)
        except Exception as e:
            logging.error(f"Error processing {video_file.name}: {e}")
            return VideoResult(video_file, video_output, error=str(e))

    abort_reason = ""
    for batch_start in range(0, len(videos), limit):
        batch = videos[batch_start:batch_start + limit]
        if not abort_reason:
            try:
                preflight(config)
            except BatchAbortError as e:
                abort_reason = str(e)
        if abort_reason:
            for video_file, _ in batch:
                results.append(VideoResult(
                    video_file, output_dir / video_file.name,
                    error=f"Not started: {abort_reason}", aborted=True,
                ))
            continue

        logging.info(f"Dispatching batch of {len(batch)} video(s)")
        with ThreadPoolExecutor(max_workers=limit) as executor:
            futures = [executor.submit(run_one, video, caption) for video, caption in batch]
            batch_results = [future.result() for future in futures]
        results.extend(batch_results)

        for result in batch_results:
            if result.aborted:
                abort_reason = result.error
                break

    return results


def collect_videos(
    folder: Path,
    caption_dir: Optional[Path] = None,
) -> List[Tuple[Path, Optional[Path]]]:
    """List the videos of ``folder`` with their matching caption files."""
    caption_dir = caption_dir or folder
    pairs = []
    for video_file in sorted(folder.iterdir()):
        if video_file.is_file() and video_file.suffix.lower() in VIDEO_EXTENSIONS:
            caption_file = find_caption_file(video_file, caption_dir)
            if caption_file is None:
                logging.info(f"No caption file for {video_file.name}; it will be transcribed")
            pairs.append((video_file, caption_file))
    return pairs


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the shorts generator."""
    parser = argparse.ArgumentParser(
        prog="viral-shorts",
        description="Create viral vertical shorts from long videos.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Create shorts from one video")
    create.add_argument("video", type=Path, help="path to the source video")
    create.add_argument("--captions", type=Path, help="existing SRT caption track")

    batch = subparsers.add_parser("batch", help="Create shorts for every video in a folder")
    batch.add_argument("folder", type=Path, help="folder with source videos")
    batch.add_argument("--captions-dir", type=Path, help="folder with <video name>.srt files")
    batch.add_argument("-p", "--parallel", type=int, help="videos processed at once (default 7)")

    for sub in (create, batch):
        sub.add_argument("-o", "--output", type=Path, default=Path("output_shorts"),
                         help="output folder for the shorts")
        sub.add_argument("-t", "--temp", type=Path, default=Path("temp"),
                         help="folder for intermediate files")
        sub.add_argument("--no-transcribe", action="store_true",
                         help="fail instead of transcribing videos without captions")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for command-line execution."""
    args = parse_args(argv)
    config = config_from_env()
    if args.no_transcribe:
        config = replace(config, transcribe_missing=False)
    if getattr(args, "parallel", None):
        config = replace(config, parallel_limit=max(1, args.parallel))

    output_dir = args.output.resolve()
    temp_dir = args.temp.resolve()
    output_dir.mkdir(parents=True, exist_ok=True)
    temp_dir.mkdir(parents=True, exist_ok=True)

    logging.info("Starting shorts creation...")

    if args.command == "create":
        try:
            check_environment(config)
            result = process_video(args.video, config, output_dir, temp_dir, caption_file=args.captions)
        except Exception as e:
            logging.error(f"Error during processing: {e}")
            return 1
        logging.info(f"Done! Shorts generated in: {result.output_dir}")
        return 0 if failed_count(result.outcomes) == 0 else 1

    if not args.folder.is_dir():
        logging.error(f"Folder does not exist: {args.folder}")
        return 1

    videos = collect_videos(args.folder, args.captions_dir)
    if not videos:
        logging.warning(f"No videos found in {args.folder}")
        return 0

    results = process_batch(videos, config, output_dir, temp_dir)
    failed = [result for result in results if not result.success]
    for result in results:
        if result.success:
            logging.info(
                f"{result.video.name}: {len(result.outcomes) - failed_count(result.outcomes)} "
                f"shorts in {result.output_dir}"
            )
        else:
            logging.error(f"{result.video.name}: {result.error}")

    if failed:
        logging.error(f"First error: {failed[0].error}")
        return 1
    logging.info(f"Done! Shorts generated in: {output_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
