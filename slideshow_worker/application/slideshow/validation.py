"""Cross-field validation for slideshow requests.

Everything here runs before a task record exists, so failures never reach
storage or the transcoder.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from slideshow_worker.core.exceptions import ValidationError
from slideshow_worker.core.pyd_schemas import MediaAsset, SlideshowSpec


def output_key_problem(key: str) -> Optional[str]:
    """Return why ``key`` is not a usable output reference, or None."""
    if not key or len(key) > 1024:
        return "outputKey must be between 1 and 1024 characters"
    parts = key.split("/")
    if len(parts) < 2 or not parts[0] or parts[0] == "..":
        return "outputKey must not be in a root folder"
    return None


def spec_from_lists(
    *,
    image_keys: Sequence[str],
    image_timings: Sequence[float],
    audio_keys: Sequence[str],
    audio_timings: Sequence[float],
    output_key: str,
    transition_duration: Optional[float] = None,
    input_bucket: Optional[str] = None,
    output_bucket: Optional[str] = None,
) -> SlideshowSpec:
    """Pair parallel key/timing lists into a SlideshowSpec.

    Raises:
        ValidationError: on count mismatches or non-positive durations.
    """
    errors: List[str] = []
    if len(image_keys) != len(image_timings):
        errors.append("imageKeys and imageTimings must have the same length")
    if len(audio_keys) != len(audio_timings):
        errors.append("audioKeys and audioTimings must have the same length")
    if errors:
        raise ValidationError("; ".join(errors), errors)

    try:
        return SlideshowSpec(
            images=[
                MediaAsset(source_ref=k, duration=t)
                for k, t in zip(image_keys, image_timings)
            ],
            audio=[
                MediaAsset(source_ref=k, duration=t)
                for k, t in zip(audio_keys, audio_timings)
            ],
            transition_duration=transition_duration,
            output_ref=output_key,
            input_bucket=input_bucket,
            output_bucket=output_bucket,
        )
    except PydanticValidationError as e:
        # Aggregate human-friendly messages
        lines: List[str] = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", "invalid input")
            lines.append(f"{loc}: {msg}")
        raise ValidationError("\n".join(lines), lines) from e


def validate_slideshow_spec(
    spec: SlideshowSpec, *, require_equal_counts: bool = False
) -> SlideshowSpec:
    """Check the rules a filter graph relies on.

    - at least one image and one audio asset
    - every duration positive
    - transition duration non-negative and, when crossfading, strictly
      shorter than every image so each fade offset stays positive
    - optionally, as many images as audio assets
    - output reference not in a storage root
    """
    errors: List[str] = []
    if not spec.images:
        errors.append("at least one image is required")
    if not spec.audio:
        errors.append("at least one audio asset is required")

    for kind, assets in (("image", spec.images), ("audio", spec.audio)):
        for i, asset in enumerate(assets):
            if not asset.duration or asset.duration <= 0:
                errors.append(f"{kind} {i} duration must be positive")

    d = spec.transition_duration
    if d is not None and d < 0:
        errors.append("transitionDuration must not be negative")
    elif spec.crossfade_enabled:
        shortest = min(a.duration for a in spec.images)
        if d >= shortest:
            errors.append(
                f"transitionDuration ({d:g}s) must be shorter than the "
                f"shortest image duration ({shortest:g}s)"
            )

    if require_equal_counts and len(spec.images) != len(spec.audio):
        errors.append("Number of image files and audio files must match")

    problem = output_key_problem(spec.output_ref)
    if problem:
        errors.append(problem)

    if errors:
        raise ValidationError("; ".join(errors), errors)
    return spec


def implicit_transition(
    image_timings: Sequence[float], default: Optional[float]
) -> Optional[float]:
    """Transition applied when a request does not name one.

    The configured default is used only when it is shorter than every image;
    otherwise the slideshow falls back to hard cuts instead of failing a
    request over a value the caller never sent.
    """
    if not default or default <= 0 or len(image_timings) < 2:
        return default
    if default >= min(image_timings):
        return None
    return default
