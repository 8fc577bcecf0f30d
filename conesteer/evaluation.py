"""Replay recorded steering requests and frames, scoring the computed angles."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, TextIO

import numpy as np

from conesteer.steering import SteeringProcessor

__all__ = [
    "THRESHOLD",
    "DEFAULT_OUTPUT_PATH",
    "SteeringSample",
    "FrameSample",
    "AccuracyTracker",
    "Evaluator",
    "current_output_path",
    "evaluate",
]

THRESHOLD = 0.09
DEFAULT_OUTPUT_PATH = "output.csv"
_DEFAULT_CURRENT_PATH = "output_current.csv"

_OUTPUT_HEADER = "prevGroundSteering\n"
_CURRENT_HEADER = "timestamp,groundTruth,groundSteering\n"


@dataclass(frozen=True)
class SteeringSample:
    """A recorded ground-steering request and its sample time in microseconds."""

    timestamp_us: int
    ground_steering: float


@dataclass(frozen=True)
class FrameSample:
    """A decoded BGR camera frame; ``None`` marks a frame that failed to decode."""

    image: Optional[np.ndarray]


def current_output_path(output_path: Optional[str] = None) -> str:
    """Path of the per-frame output file that accompanies ``output_path``.

    ``_current`` goes before the last dot of the path, or at its end when there
    is no dot. Without an output path the default name is used.
    """
    if output_path is None:
        return _DEFAULT_CURRENT_PATH
    dot = output_path.rfind(".")
    if dot == -1:
        return output_path + "_current"
    return output_path[:dot] + "_current" + output_path[dot:]


class AccuracyTracker:
    """Share of computed angles within ``threshold`` of a non-zero ground truth."""

    def __init__(self, threshold: float = THRESHOLD) -> None:
        self.threshold = threshold
        self.total_valid = 0
        self.within_range = 0

    def update(self, calculated: float, ground_truth: float) -> None:
        """Record one comparison; ground truth of zero is not counted."""
        if ground_truth == 0:
            return
        self.total_valid += 1
        if abs(calculated - ground_truth) <= self.threshold:
            self.within_range += 1

    def accuracy(self) -> float:
        """Percentage of counted angles within range, 0.0 when none were counted."""
        if self.total_valid == 0:
            return 0.0
        return self.within_range / self.total_valid * 100.0


class Evaluator:
    """Pairs each frame with the latest steering request and writes the results.

    A frame is only processed when a steering request arrived since the last
    processed frame.
    """

    def __init__(self, processor: Optional[SteeringProcessor] = None,
                 output: Optional[TextIO] = None,
                 current_output: Optional[TextIO] = None,
                 threshold: float = THRESHOLD, verbose: bool = False) -> None:
        self.processor = processor if processor is not None else SteeringProcessor()
        self.output = output
        self.current_output = current_output
        self.tracker = AccuracyTracker(threshold)
        self.verbose = verbose
        self.failures = 0
        self.latest: Optional[SteeringSample] = None
        self._pending = False
        if self.output is not None:
            self.output.write(_OUTPUT_HEADER)
        if self.current_output is not None:
            self.current_output.write(_CURRENT_HEADER)

    def feed(self, event: object) -> Optional[float]:
        """Handle one event; return the computed angle when a frame was processed.

        Events other than steering samples and frames are ignored.
        """
        if isinstance(event, SteeringSample):
            self.latest = event
            self._pending = True
            return None
        if not isinstance(event, FrameSample) or not self._pending:
            return None
        if event.image is None:
            self.failures += 1
            return None

        sample = self.latest
        image = np.array(event.image, dtype=np.uint8, copy=True)
        calculated = self.processor.process_frame(image, self.verbose)
        self.tracker.update(calculated, sample.ground_steering)
        if self.output is not None:
            self.output.write(f"{calculated:g}\n")
        if self.current_output is not None:
            self.current_output.write(
                f"{sample.timestamp_us},{sample.ground_steering:g},{calculated:g}\n"
            )
        self._pending = False
        return calculated

    def run(self, events: Iterable[object]) -> float:
        """Feed every event and return the final accuracy percentage."""
        for event in events:
            self.feed(event)
        return self.tracker.accuracy()


def evaluate(events: Iterable[object], output_path: Optional[str] = None,
             processor: Optional[SteeringProcessor] = None,
             threshold: float = THRESHOLD, verbose: bool = False) -> float:
    """Evaluate ``events``, writing both CSV files, and return the accuracy.

    Raises ``OSError`` when either output file cannot be opened.
    """
    path = output_path if output_path is not None else DEFAULT_OUTPUT_PATH
    current_path = current_output_path(output_path)
    with open(path, "w", encoding="utf-8") as output, \
            open(current_path, "w", encoding="utf-8") as current:
        evaluator = Evaluator(processor, output, current, threshold, verbose)
        return evaluator.run(events)