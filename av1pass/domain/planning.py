"""Encode parameter planning.

Pure functions that turn probed media properties and the configured limits into
an ffmpeg filter chain and an audio handling decision. Inputs are expected to
be validated already (positive dimensions, frame rate with a non-zero
denominator); see ``FFprobeAdapter.probe``.
"""

from typing import Optional, Tuple

from av1pass.domain.models import (
    AudioAction,
    AudioDecision,
    EncodePlan,
    FilterSpec,
    FrameRate,
    FrameRateCap,
    MediaProperties,
    ScaleDirective,
)

AUDIO_BITRATE_CEILING = 128000


def _to_even(value: int) -> int:
    return (value // 2) * 2


def _rescale_even(free_side: int, target: int, fixed_side: int) -> int:
    # Same rounding as ffmpeg's "-2" scale argument: nearest multiple of two.
    return ((free_side * target + fixed_side) // (2 * fixed_side)) * 2


def plan_scale(width: int, height: int, max_short_side: int) -> ScaleDirective:
    if min(width, height) > max_short_side:
        if width <= height:
            return ScaleDirective(width=max_short_side)
        return ScaleDirective(height=max_short_side)
    return ScaleDirective()


def planned_dimensions(width: int, height: int, max_short_side: int) -> Tuple[int, int]:
    """Returns the (width, height) the scale directive will produce."""
    directive = plan_scale(width, height, max_short_side)
    if directive.width is not None:
        return directive.width, _rescale_even(height, directive.width, width)
    if directive.height is not None:
        return _rescale_even(width, directive.height, height), directive.height
    return _to_even(width), _to_even(height)


def plan_rate_cap(frame_rate: FrameRate, fps_limit: int) -> Optional[FrameRateCap]:
    if frame_rate.num > fps_limit * frame_rate.den:
        return FrameRateCap(fps=fps_limit)
    return None


def plan_filters(
    width: int,
    height: int,
    frame_rate: FrameRate,
    max_short_side: int,
    fps_limit: int,
) -> FilterSpec:
    return FilterSpec(
        scale=plan_scale(width, height, max_short_side),
        rate_cap=plan_rate_cap(frame_rate, fps_limit),
    )


def decide_audio(has_audio: bool, audio_bitrate: Optional[str]) -> AudioDecision:
    """Chooses how to handle the first audio stream.

    Anything that is not a plain positive integer above the ceiling is copied
    as-is; irregular audio metadata never blocks an encode.
    """
    if not has_audio:
        return AudioDecision(action=AudioAction.DROP)
    text = (audio_bitrate or "").strip()
    if text.isdigit() and int(text) > AUDIO_BITRATE_CEILING:
        return AudioDecision(action=AudioAction.TRANSCODE, bitrate_ceiling=AUDIO_BITRATE_CEILING)
    return AudioDecision(action=AudioAction.COPY)


def plan(media: MediaProperties, max_short_side: int, fps_limit: int) -> EncodePlan:
    return EncodePlan(
        filters=plan_filters(media.width, media.height, media.frame_rate, max_short_side, fps_limit),
        audio=decide_audio(media.has_audio, media.audio_bitrate),
    )
