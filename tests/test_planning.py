"""Geometry planning is pure arithmetic; none of these tests need libvips."""

import pytest

from image_transform.options import TransformOptions
from image_transform.pipeline import (
    EXIF_ORIENTATIONS,
    calculate_crop,
    calculate_factor,
    calculate_shrink,
    jpeg_shrink_on_load,
    plan_resize,
)
from image_transform.types import Angle, Gravity, ImageType, Interpolator


def test_factor_fit_uses_larger_ratio():
    factor, w, h = calculate_factor(1200, 900, 300, 240, crop=False)
    assert factor == pytest.approx(4.0)
    assert (w, h) == (300, 240)


def test_factor_crop_uses_smaller_ratio():
    factor, _, _ = calculate_factor(1200, 900, 300, 240, crop=True)
    assert factor == pytest.approx(3.75)


def test_factor_derives_missing_dimension():
    factor, w, h = calculate_factor(1680, 1050, 300, 0, crop=True)
    assert factor == pytest.approx(5.6)
    assert (w, h) == (300, 188)

    factor, w, h = calculate_factor(1680, 1050, 0, 300, crop=True)
    assert factor == pytest.approx(3.5)
    assert (w, h) == (480, 300)


def test_factor_without_target_is_identity():
    assert calculate_factor(640, 480, 0, 0, crop=False) == (1.0, 640, 480)


@pytest.mark.parametrize(
    "factor,interpolator,expected",
    [
        (1.0, Interpolator.BICUBIC, 1),
        (1.9, Interpolator.BICUBIC, 1),
        (4.0, Interpolator.BICUBIC, 3),
        (4.0, Interpolator.BILINEAR, 4),
        (8.0, Interpolator.NOHALO, 4),
        (5.6, Interpolator.NEAREST, 5),
    ],
)
def test_shrink_depends_on_interpolator_window(factor, interpolator, expected):
    assert calculate_shrink(factor, interpolator) == expected


@pytest.mark.parametrize("factor,expected", [(1.5, 1), (2.0, 2), (3.99, 2), (4.0, 4), (7.5, 4), (8.0, 8), (20.0, 8)])
def test_jpeg_shrink_on_load(factor, expected):
    assert jpeg_shrink_on_load(factor) == expected


@pytest.mark.parametrize(
    "gravity,expected",
    [
        (Gravity.CENTRE, (50, 25)),
        (Gravity.NORTH, (50, 0)),
        (Gravity.SOUTH, (50, 50)),
        (Gravity.EAST, (100, 25)),
        (Gravity.WEST, (0, 25)),
    ],
)
def test_crop_anchor(gravity, expected):
    assert calculate_crop(300, 200, 200, 150, gravity) == expected


def test_crop_anchor_rounds_odd_excess_up():
    assert calculate_crop(301, 200, 200, 200, Gravity.CENTRE) == (51, 0)


def test_plan_resize_fit_with_jpeg_shrink_on_load():
    plan = plan_resize(1200, 900, TransformOptions(width=300, height=240, embed=True), ImageType.JPEG)
    assert plan.factor == pytest.approx(4.0)
    assert (plan.scaled_width, plan.scaled_height) == (300, 225)
    assert (plan.width, plan.height) == (300, 240)
    assert plan.shrink_on_load == 4


def test_plan_resize_png_never_shrinks_on_load():
    plan = plan_resize(1200, 900, TransformOptions(width=300, height=240), ImageType.PNG)
    assert plan.shrink_on_load == 1


def test_plan_resize_does_not_upscale_without_enlarge():
    plan = plan_resize(200, 150, TransformOptions(width=500, height=375, embed=True), ImageType.PNG)
    assert plan.factor == 1.0
    assert (plan.scaled_width, plan.scaled_height) == (200, 150)
    assert (plan.width, plan.height) == (500, 375)


def test_plan_resize_enlarge_upscales():
    options = TransformOptions(width=500, height=375, embed=True, enlarge=True)
    plan = plan_resize(200, 150, options, ImageType.PNG)
    assert plan.factor == pytest.approx(0.4)
    assert (plan.scaled_width, plan.scaled_height) == (500, 375)


def test_plan_resize_crop_covers_canvas():
    plan = plan_resize(1680, 1050, TransformOptions(width=100, height=100, crop=True), ImageType.JPEG)
    assert plan.factor == pytest.approx(10.5)
    assert plan.scaled_height == 100
    assert plan.scaled_width >= 100
    assert plan.shrink_on_load == 8


def test_plan_resize_single_dimension():
    plan = plan_resize(1680, 1050, TransformOptions(width=600, crop=True), ImageType.JPEG)
    assert (plan.scaled_width, plan.scaled_height) == (600, 375)
    assert plan.shrink_on_load == 2


def test_shrink_on_load_can_be_disabled():
    plan = plan_resize(1200, 900, TransformOptions(width=100), ImageType.JPEG, allow_shrink_on_load=False)
    assert plan.shrink_on_load == 1


def test_exif_orientation_table_is_complete():
    assert set(EXIF_ORIENTATIONS) == set(range(1, 9))
    assert EXIF_ORIENTATIONS[6] == (Angle.D90, False)
    assert EXIF_ORIENTATIONS[2] == (Angle.D0, True)


def test_plan_resize_crop_upscales_a_short_axis():
    plan = plan_resize(1000, 50, TransformOptions(width=100, height=100, crop=True), ImageType.JPEG)
    assert plan.factor == pytest.approx(0.5)
    assert (plan.scaled_width, plan.scaled_height) == (2000, 100)
    assert (plan.width, plan.height) == (100, 100)
    assert plan.shrink_on_load == 1


def test_plan_resize_crop_by_width_upscales():
    plan = plan_resize(400, 300, TransformOptions(width=600, crop=True), ImageType.PNG)
    assert (plan.width, plan.height) == (600, 450)
    assert (plan.scaled_width, plan.scaled_height) == (600, 450)
