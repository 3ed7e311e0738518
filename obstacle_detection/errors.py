"""
Exception types for the obstacle detection pipeline.

Only conditions that standard exceptions cannot describe get their own
class. Missing files still raise FileNotFoundError, bad configuration
still raises ValueError.
"""


class ObstacleDetectionError(Exception):
    """Base class for errors raised by this package."""


class SetupError(ObstacleDetectionError):
    """The inference engine reported shapes the decoder cannot work with."""


class LabelMismatchError(ObstacleDetectionError, IndexError):
    """A decoded class index has no entry in the loaded label list.

    This means the label file does not belong to the loaded model. It is
    never expected during correct operation and is not recoverable.
    """
