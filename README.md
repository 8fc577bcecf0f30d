# conesteer

`conesteer` estimates a steering angle from a camera frame of a track marked
with blue cones on one side and yellow cones on the other.

Each frame is converted to HSV, the blue and yellow cones are picked out by
colour range, and the parts of the image that never hold useful cones (the
top 55% of the picture and a trapezoid over the car's own bonnet) are masked
away. The centroid of every cone whose outline encloses more than 50 pixels is
found, the blue and yellow cones are paired up from nearest (lowest in the
picture) to farthest, and the horizontal offset of the nearest midpoint from
the image centre, times a scale factor, gives the steering angle. When one
colour is missing, the last position seen for it is used, or it is placed at a
fixed offset from the cone that is visible.

## Installing

```
pip install .
```

The only runtime dependency is `numpy`. Install the `test` extra to run the
test suite with `pytest`.

## Processing frames

Frames are `numpy` arrays of shape `(height, width, 3)` with `uint8` values
in BGR channel order.

```python
import numpy as np
from conesteer.steering import SteeringProcessor

processor = SteeringProcessor(offset_x=200, offset_y=48, scale_factor=0.001)

frame = np.zeros((480, 640, 3), dtype=np.uint8)
angle = processor.process_frame(frame, verbose=False)
```

A positive angle means steer left, a negative one steer right.

`process_frame` draws on the frame it is given: a dot on each detected cone,
rings on the cones used for steering, lines along each row of cones, the
centre path in green and a red line from the bottom centre to the steering
point. With `verbose=True` the annotated frame and the blue and yellow masks
are also kept in `processor.debug_images` under the keys `"Processed Frame"`,
`"Blue Mask"` and `"Yellow Mask"`.

The processor remembers the last cone positions it saw between frames
(`last_blue`, `last_yellow`, both `UNSET` until a cone is seen); call
`processor.reset()` before starting on an unrelated sequence.

The building blocks are available on their own as well:

- `bgr_to_hsv(image)` converts a BGR frame to HSV, with hue in `[0, 180)` and
  saturation and value in `[0, 255]`.
- `in_range(hsv, lower, upper)` gives a mask that is 255 where every channel
  lies within the bounds.
- `create_ignore_mask(image)` gives the mask (255 = ignored) of the regions
  that are left out.
- `find_centroids(mask, min_area)` gives the centroid `Point` of each outer
  region in a mask whose area exceeds `min_area`.

The colour bounds (`BLUE_LOWER`, `BLUE_UPPER`, `YELLOW_LOWER`,
`YELLOW_UPPER`) and the defaults `OFFSET_X`, `OFFSET_Y`, `SCALE_FACTOR` and
`MIN_CONE_AREA` are module constants of `conesteer.steering`.

## Scoring against recorded steering

`conesteer.evaluation` compares computed angles with recorded ground-truth
steering. A recording is fed in as a sequence of events: `SteeringSample`
carries a timestamp in microseconds and the recorded steering, and
`FrameSample` carries a decoded frame, or `None` for a frame that could not be
decoded. A frame is processed only when a steering sample has arrived since
the last processed frame, and it is scored against that sample; other frames
are skipped, and undecodable ones are counted in `Evaluator.failures`.

```python
from conesteer.evaluation import FrameSample, SteeringSample, evaluate
from conesteer.steering import SteeringProcessor

events = [SteeringSample(1_000_000, 0.05), FrameSample(frame)]
accuracy = evaluate(events, "output.csv", SteeringProcessor(), 0.09, False)
```

Two CSV files are written: the one named (`output.csv` when none is given),
holding every computed angle under the header `prevGroundSteering`, and a
companion with `_current` inserted before the last dot, or appended when there
is none (`output_current.csv` here), holding `timestamp,groundTruth,groundSteering`
per processed frame. `current_output_path(output_path)` gives that companion
name. `evaluate` raises `OSError` when either file cannot be opened.

Frames whose recorded steering is zero are not scored. Of the rest, a frame
counts as correct when the computed angle is within the threshold (`THRESHOLD`,
0.09 by default) of the recorded one; `AccuracyTracker` keeps that tally and
reports it as a percentage, 0.0 when nothing was scored. `Evaluator` does the
same work step by step through `feed` and `run`, for callers that manage their
own output streams (either may be left out).

## What it does not do

`conesteer` works on frames and steering samples that are already in memory.
It does not read recording files, decode compressed video, attach to a live
camera feed or message bus, or open windows to show the annotated frames, and
it installs no command-line program. Getting frames and steering samples into
`SteeringSample` and `FrameSample` events is left to the caller.