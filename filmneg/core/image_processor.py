"""
Image processor orchestrating the film negative pipeline.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from . import film_ops
from .codec import CodecError, decode_image
from .grain import GrainSource


logger = logging.getLogger(__name__)

CHANNELS_ERROR = "Image must have at least 3 channels (RGB)"


class ProcessMode(Enum):
    TO_NEGATIVE = "to-negative"
    TO_POSITIVE = "to-positive"


@dataclass
class ProcessingOutcome:
    """Either a processed pixel buffer or an error message, never both."""

    pixels: Optional[np.ndarray] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "ProcessingOutcome":
        return cls(pixels=None, error=message)

    @property
    def success(self) -> bool:
        return self.pixels is not None

    @property
    def width(self) -> int:
        return 0 if self.pixels is None else self.pixels.shape[1]

    @property
    def height(self) -> int:
        return 0 if self.pixels is None else self.pixels.shape[0]

    @property
    def channels(self) -> int:
        return 0 if self.pixels is None else self.pixels.shape[2]


class FilmProcessor:
    """
    Runs the film negative effect in either direction.

    To negative:
        1. invert()
        2. apply_color_cast()
        3. add_grain()
        4. draw_sprocket_holes()

    To positive (approximate, grain stays and borders are blanked):
        1. crop_sprocket_holes()
        2. remove_color_cast()
        3. invert()
    """

    def __init__(self, grain_source: GrainSource | None = None):
        self.grain_source = grain_source or GrainSource()

    def steps(self, mode: ProcessMode) -> list[tuple[str, Callable[[np.ndarray], np.ndarray]]]:
        """Ordered (description, operator) pairs for a direction."""
        if mode is ProcessMode.TO_NEGATIVE:
            return [
                ("Inverting colors (negative effect)", film_ops.invert),
                ("Applying film color cast (orange/amber)", film_ops.apply_color_cast),
                ("Adding film grain texture", self._add_grain),
                ("Drawing film sprocket holes", film_ops.draw_sprocket_holes),
            ]
        return [
            ("Removing sprocket hole borders", film_ops.crop_sprocket_holes),
            ("Removing film color cast", film_ops.remove_color_cast),
            ("Inverting colors back to positive", film_ops.invert),
        ]

    def _add_grain(self, img: np.ndarray) -> np.ndarray:
        return film_ops.add_grain(img, self.grain_source)

    def apply(
        self,
        img: np.ndarray,
        mode: ProcessMode,
        progress: Callable[[str], None] | None = None,
    ) -> np.ndarray:
        """
        Run all steps of a direction on a decoded buffer, in place.

        Args:
            img: uint8 array (H, W, C), C >= 3
            mode: Direction
            progress: Optional callback receiving each step description

        Returns:
            The same array, processed
        """
        if img.ndim != 3 or img.shape[2] < 3:
            raise ValueError(CHANNELS_ERROR)

        for description, op in self.steps(mode):
            if progress is not None:
                progress(description)
            op(img)

        return img

    def process(
        self,
        data: bytes,
        mode: ProcessMode,
        progress: Callable[[str], None] | None = None,
    ) -> ProcessingOutcome:
        """
        Decode image bytes and run a direction on them.

        Returns:
            ProcessingOutcome with the processed buffer, or the decode /
            validation error message
        """
        try:
            img = decode_image(data)
        except CodecError as e:
            return ProcessingOutcome.failure(str(e))

        h, w, channels = img.shape
        logger.debug("Decoded image %dx%d, %d channels", w, h, channels)

        if channels < 3:
            return ProcessingOutcome.failure(CHANNELS_ERROR)

        if not img.flags.writeable:
            img = img.copy()

        self.apply(img, mode, progress)
        return ProcessingOutcome(pixels=img)
