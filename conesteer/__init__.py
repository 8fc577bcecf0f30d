"""Steering angle estimation from blue and yellow track cones, with accuracy scoring."""

__version__ = "0.1.0"
__all__ = ["steering", "evaluation"]