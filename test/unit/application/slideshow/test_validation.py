import pytest

from slideshow_worker.application.slideshow.validation import (
    implicit_transition,
    output_key_problem,
    spec_from_lists,
    validate_slideshow_spec,
)
from slideshow_worker.core.exceptions import ValidationError
from slideshow_worker.core.pyd_schemas import MediaAsset, SlideshowSpec


@pytest.mark.parametrize(
    "key", ["videos/out.mp4", "a/b/c.mp4", "tenant/../x.mp4"]
)
def test_output_key_accepted(key):
    assert output_key_problem(key) is None


@pytest.mark.parametrize(
    "key", ["", "out.mp4", "/out.mp4", "../out.mp4", "x" * 1025]
)
def test_output_key_rejected(key):
    assert output_key_problem(key)


def test_spec_from_lists_pairs_keys_and_timings():
    spec = spec_from_lists(
        image_keys=["i/a.jpg", "i/b.jpg"],
        image_timings=[2, 3],
        audio_keys=["a/a.mp3"],
        audio_timings=[5],
        output_key="out/v.mp4",
        transition_duration=0.5,
        input_bucket="in",
        output_bucket="out",
    )
    assert [a.source_ref for a in spec.images] == ["i/a.jpg", "i/b.jpg"]
    assert [a.duration for a in spec.images] == [2, 3]
    assert spec.input_count == 3
    assert spec.crossfade_enabled
    assert (spec.input_bucket, spec.output_bucket) == ("in", "out")


def test_spec_from_lists_rejects_count_mismatch():
    with pytest.raises(ValidationError) as exc:
        spec_from_lists(
            image_keys=["i/a.jpg"],
            image_timings=[2, 3],
            audio_keys=["a/a.mp3", "a/b.mp3"],
            audio_timings=[5],
            output_key="out/v.mp4",
        )
    assert len(exc.value.validation_errors) == 2


def test_spec_from_lists_rejects_non_positive_duration():
    with pytest.raises(ValidationError) as exc:
        spec_from_lists(
            image_keys=["i/a.jpg"],
            image_timings=[0],
            audio_keys=["a/a.mp3"],
            audio_timings=[5],
            output_key="out/v.mp4",
        )
    assert "duration" in exc.value.message


def _spec(images, audio, transition=None, output_ref="out/v.mp4"):
    return SlideshowSpec(
        images=[MediaAsset(source_ref=f"i/{n}", duration=d) for n, d in enumerate(images)],
        audio=[MediaAsset(source_ref=f"a/{n}", duration=d) for n, d in enumerate(audio)],
        transition_duration=transition,
        output_ref=output_ref,
    )


def test_empty_sequences_are_rejected():
    with pytest.raises(ValidationError) as exc:
        validate_slideshow_spec(_spec([], []))
    errors = exc.value.validation_errors
    assert "at least one image is required" in errors
    assert "at least one audio asset is required" in errors


def test_negative_transition_is_rejected():
    with pytest.raises(ValidationError):
        validate_slideshow_spec(_spec([5, 5], [10], transition=-1))


def test_transition_equal_to_shortest_image_is_rejected():
    with pytest.raises(ValidationError):
        validate_slideshow_spec(_spec([5, 2], [7], transition=2))
    validate_slideshow_spec(_spec([5, 2], [7], transition=1.9))


def test_transition_ignored_for_single_image():
    validate_slideshow_spec(_spec([1], [1], transition=5))


def test_require_equal_counts():
    spec = _spec([5, 5], [10])
    validate_slideshow_spec(spec)
    with pytest.raises(ValidationError) as exc:
        validate_slideshow_spec(spec, require_equal_counts=True)
    assert "must match" in exc.value.message


def test_root_folder_output_is_rejected():
    with pytest.raises(ValidationError):
        validate_slideshow_spec(_spec([5], [5], output_ref="out.mp4"))


@pytest.mark.parametrize(
    "timings,default,expected",
    [
        ([5, 5], 1.0, 1.0),
        ([1, 3], 1.0, None),
        ([3, 1.5, 3], 1.5, None),
        ([2, 2], 0.5, 0.5),
        ([1], 1.0, 1.0),
        ([1, 3], None, None),
        ([1, 3], 0, 0),
    ],
)
def test_implicit_transition(timings, default, expected):
    assert implicit_transition(timings, default) == expected


def test_implicit_transition_always_passes_validation():
    timings = [1, 3, 2]
    transition = implicit_transition(timings, 1.0)
    validate_slideshow_spec(_spec(timings, [6], transition=transition))
