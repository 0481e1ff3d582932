"""Filter-graph synthesis for slideshows.

Turns an ordered SlideshowSpec into an ffmpeg ``-filter_complex`` graph and the
full argument list around it. Images occupy the first input channels, audio
the following ones; clauses reference channels positionally, so that order is
load-bearing.

Example (3 images of 5s, 1s crossfade):
    [v0][v1]xfade=transition=fade:duration=1:offset=4[vx1]
    [vx1][v2]xfade=transition=fade:duration=1:offset=8[vx2]
    [vx2]format=yuv420p[vout]
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from slideshow_worker.core.config import settings
from slideshow_worker.core.pyd_schemas import InputMode, SlideshowSpec
from slideshow_worker.application.slideshow.validation import validate_slideshow_spec

logger = logging.getLogger(__name__)

VIDEO_OUT = "vout"
AUDIO_OUT = "aout"


def fmt_seconds(value: float) -> str:
    """Render a duration without float noise: 5.0 -> '5', 0.25 -> '0.25'."""
    text = f"{float(value):.6f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def pipe_url(index: int) -> str:
    return f"pipe:{index}"


@dataclass(frozen=True)
class FilterGraph:
    """Ordered filter clauses plus the two terminal labels."""

    clauses: Tuple[str, ...]
    video_out: str = VIDEO_OUT
    audio_out: str = AUDIO_OUT

    def __str__(self) -> str:
        return ";".join(self.clauses)


@dataclass
class FilterGraphBuilder:
    """Builds the transcoder graph and command line for one slideshow.

    Attributes default to the configured canvas, frame rate, pixel format and
    codecs, so ``FilterGraphBuilder()`` matches the service defaults.
    """

    width: int = field(default_factory=lambda: settings.slideshow_canvas_width)
    height: int = field(default_factory=lambda: settings.slideshow_canvas_height)
    fps: int = field(default_factory=lambda: settings.slideshow_fps)
    pixel_format: str = field(default_factory=lambda: settings.slideshow_pixel_format)
    video_codec: str = field(default_factory=lambda: settings.slideshow_video_codec)
    audio_codec: str = field(default_factory=lambda: settings.slideshow_audio_codec)
    input_mode: InputMode = InputMode.pipe
    require_equal_counts: bool = field(
        default_factory=lambda: settings.slideshow_require_equal_counts
    )

    # ----- public API -----
    def build(
        self,
        spec: SlideshowSpec,
        output_path: str,
        *,
        input_urls: Optional[Sequence[str]] = None,
    ) -> Tuple[str, List[str]]:
        """Return ``(filter_graph_string, command_args)`` for ``spec``.

        ``input_urls`` overrides where each input is read from. In pipe mode
        it defaults to ``pipe:<n>`` per channel; in file mode it defaults to
        each asset's ``source_ref``.

        Raises:
            ValidationError: when the spec breaks count/duration rules.
        """
        graph = self.compose(spec)
        args = [
            *self.input_args(spec, input_urls),
            "-filter_complex",
            str(graph),
            *self.output_args(graph, output_path),
        ]
        logger.debug("FFmpeg command arguments: %s", " ".join(args))
        logger.debug("Filter graph: %s", graph)
        return str(graph), args

    def compose(self, spec: SlideshowSpec) -> FilterGraph:
        """Validate ``spec`` and emit the clause list."""
        validate_slideshow_spec(spec, require_equal_counts=self.require_equal_counts)

        clauses: List[str] = []
        video_labels: List[str] = []
        audio_labels: List[str] = []

        for i, image in enumerate(spec.images):
            clauses.append(self._image_clause(i, image.duration))
            video_labels.append(f"[v{i}]")

        offset_base = len(spec.images)
        for j, audio in enumerate(spec.audio):
            clauses.append(
                f"[{offset_base + j}:a]atrim=duration={fmt_seconds(audio.duration)},"
                f"asetpts=PTS-STARTPTS[a{j}]"
            )
            audio_labels.append(f"[a{j}]")

        if spec.crossfade_enabled:
            clauses.extend(
                self._crossfade_chain(
                    video_labels,
                    [img.duration for img in spec.images],
                    float(spec.transition_duration),
                )
            )
        else:
            clauses.append(
                f"{''.join(video_labels)}concat=n={len(video_labels)}:v=1:a=0[{VIDEO_OUT}]"
            )

        # Transitions apply to video only
        clauses.append(
            f"{''.join(audio_labels)}concat=n={len(audio_labels)}:v=0:a=1[{AUDIO_OUT}]"
        )
        return FilterGraph(clauses=tuple(clauses))

    def input_args(
        self, spec: SlideshowSpec, input_urls: Optional[Sequence[str]] = None
    ) -> List[str]:
        sources = list(spec.images) + list(spec.audio)
        if input_urls is None:
            if self.input_mode is InputMode.pipe:
                input_urls = [pipe_url(i) for i in range(len(sources))]
            else:
                input_urls = [asset.source_ref for asset in sources]
        if len(input_urls) != len(sources):
            raise ValueError(
                f"Expected {len(sources)} input urls, got {len(input_urls)}"
            )

        args: List[str] = []
        for i, url in enumerate(input_urls):
            if i < len(spec.images):
                if self.input_mode is InputMode.pipe:
                    # A looped single frame makes no sense for a pipe; the graph loops it
                    args.extend(["-f", "image2pipe"])
                else:
                    args.extend(["-loop", "1"])
            args.extend(["-i", str(url)])
        return args

    def output_args(self, graph: FilterGraph, output_path: str) -> List[str]:
        args = [
            "-map",
            f"[{graph.video_out}]",
            "-map",
            f"[{graph.audio_out}]",
            "-c:v",
            self.video_codec,
            "-pix_fmt",
            self.pixel_format,
            "-c:a",
            self.audio_codec,
        ]
        if self.input_mode is InputMode.pipe:
            args.extend(["-r", str(self.fps)])
        args.extend(["-shortest", "-y", str(output_path)])
        return args

    # ----- clause helpers -----
    def _image_clause(self, index: int, duration: float) -> str:
        w, h = self.width, self.height
        parts = [
            f"scale={w}:{h}:force_original_aspect_ratio=decrease",
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2",
            "setsar=1",
        ]
        if self.input_mode is InputMode.pipe:
            frames = math.ceil(duration * self.fps)
            parts.append(f"loop=loop={frames}:size=1:start=0")
            parts.append(f"setpts=N/({self.fps}*TB)")
        parts.append(f"trim=duration={fmt_seconds(duration)}")
        parts.append("setpts=PTS-STARTPTS")
        return f"[{index}:v]" + ",".join(parts) + f"[v{index}]"

    def _crossfade_chain(
        self, labels: List[str], durations: List[float], transition: float
    ) -> List[str]:
        """Fold images pairwise left to right with xfade.

        ``cumulative`` is the length of the already-assembled stream; each fade
        starts ``transition`` seconds before its end and shortens the total by
        ``transition``.
        """
        clauses: List[str] = []
        current = labels[0]
        cumulative = durations[0]
        for i in range(1, len(labels)):
            offset = cumulative - transition
            out = f"vx{i}"
            clauses.append(
                f"{current}{labels[i]}"
                f"xfade=transition=fade:duration={fmt_seconds(transition)}"
                f":offset={fmt_seconds(offset)}[{out}]"
            )
            current = f"[{out}]"
            cumulative = cumulative + durations[i] - transition
        clauses.append(f"{current}format={self.pixel_format}[{VIDEO_OUT}]")
        return clauses


def composed_video_duration(spec: SlideshowSpec) -> float:
    """Expected video length: the image sum minus one fade per transition."""
    total = sum(img.duration for img in spec.images)
    if spec.crossfade_enabled:
        total -= (len(spec.images) - 1) * float(spec.transition_duration)
    return total


def composed_audio_duration(spec: SlideshowSpec) -> float:
    return sum(a.duration for a in spec.audio)
