import io

import numpy as np
import pytest

from conesteer.evaluation import (
    AccuracyTracker,
    Evaluator,
    FrameSample,
    SteeringSample,
    current_output_path,
    evaluate,
)
from conesteer.steering import SteeringProcessor


def _blank(rows=48, cols=64):
    return np.zeros((rows, cols, 3), dtype=np.uint8)


def _expected_angle(image):
    return SteeringProcessor().process_frame(image.copy(), False)


@pytest.mark.parametrize(
    "given, expected",
    [
        ("results.csv", "results_current.csv"),
        ("results", "results_current"),
        (None, "output_current.csv"),
        ("a.b.csv", "a.b_current.csv"),
    ],
)
def test_current_output_path(given, expected):
    assert current_output_path(given) == expected


def test_tracker_ignores_zero_ground_truth():
    tracker = AccuracyTracker(0.09)
    tracker.update(0.5, 0.0)
    assert tracker.total_valid == 0
    assert tracker.accuracy() == 0.0


def test_tracker_counts_within_and_outside():
    tracker = AccuracyTracker(0.09)
    tracker.update(0.10, 0.12)
    tracker.update(0.50, 0.10)
    assert tracker.total_valid == 2
    assert tracker.within_range == 1
    assert tracker.accuracy() == pytest.approx(50.0)


def test_tracker_all_within_is_hundred():
    tracker = AccuracyTracker(0.09)
    for value in (0.1, -0.2, 0.3):
        tracker.update(value, value)
    assert tracker.accuracy() == pytest.approx(100.0)


def test_frame_without_steering_is_skipped():
    out, cur = io.StringIO(), io.StringIO()
    evaluator = Evaluator(SteeringProcessor(), out, cur)
    assert evaluator.feed(FrameSample(_blank())) is None
    assert out.getvalue() == "prevGroundSteering\n"
    assert cur.getvalue() == "timestamp,groundTruth,groundSteering\n"


def test_steering_then_frame_writes_rows():
    out, cur = io.StringIO(), io.StringIO()
    evaluator = Evaluator(SteeringProcessor(), out, cur)
    image = _blank()
    evaluator.feed(SteeringSample(1000, 0.25))
    angle = evaluator.feed(FrameSample(image))
    assert angle == pytest.approx(_expected_angle(image))
    out_rows = out.getvalue().splitlines()
    cur_rows = cur.getvalue().splitlines()
    assert len(out_rows) == 2 and len(cur_rows) == 2
    assert float(out_rows[1]) == pytest.approx(angle, rel=1e-5)
    ts, truth, computed = cur_rows[1].split(",")
    assert int(ts) == 1000
    assert float(truth) == pytest.approx(0.25)
    assert float(computed) == pytest.approx(angle, rel=1e-5)


def test_second_frame_needs_new_steering():
    evaluator = Evaluator(SteeringProcessor())
    evaluator.feed(SteeringSample(1, 0.1))
    assert evaluator.feed(FrameSample(_blank())) is not None
    assert evaluator.feed(FrameSample(_blank())) is None
    evaluator.feed(SteeringSample(2, 0.1))
    assert evaluator.feed(FrameSample(_blank())) is not None


def test_failed_frame_counts_and_keeps_pending():
    evaluator = Evaluator(SteeringProcessor())
    evaluator.feed(SteeringSample(5, 0.1))
    assert evaluator.feed(FrameSample(None)) is None
    assert evaluator.failures == 1
    assert evaluator.feed(FrameSample(_blank())) is not None


def test_unknown_events_are_ignored():
    out = io.StringIO()
    evaluator = Evaluator(SteeringProcessor(), out)
    assert evaluator.feed("something else") is None
    assert out.getvalue() == "prevGroundSteering\n"


def test_input_image_is_not_modified():
    image = _blank()
    evaluator = Evaluator(SteeringProcessor())
    evaluator.feed(SteeringSample(1, 0.1))
    evaluator.feed(FrameSample(image))
    assert not image.any()


def test_run_accuracy_matches_tracker():
    image = _blank()
    angle = _expected_angle(image)
    events = [
        SteeringSample(1, angle),
        FrameSample(image),
        SteeringSample(2, angle + 1.0),
        FrameSample(image),
        SteeringSample(3, 0.0),
        FrameSample(image),
    ]
    evaluator = Evaluator(SteeringProcessor())
    accuracy = evaluator.run(events)
    assert evaluator.tracker.total_valid == 2
    assert evaluator.tracker.within_range == 1
    assert accuracy == pytest.approx(evaluator.tracker.accuracy())


def test_evaluate_writes_both_files(tmp_path):
    target = tmp_path / "result.csv"
    image = _blank()
    angle = _expected_angle(image)
    events = [SteeringSample(10, angle), FrameSample(image), FrameSample(image)]
    accuracy = evaluate(events, str(target))
    assert accuracy == pytest.approx(100.0)
    out_lines = target.read_text().splitlines()
    cur_lines = (tmp_path / "result_current.csv").read_text().splitlines()
    assert out_lines[0] == "prevGroundSteering"
    assert len(out_lines) == 2
    assert cur_lines[0] == "timestamp,groundTruth,groundSteering"
    assert cur_lines[1].startswith("10,")


def test_evaluate_unwritable_path_raises(tmp_path):
    missing = tmp_path / "no_such_dir" / "out.csv"
    with pytest.raises(OSError):
        evaluate([], str(missing))