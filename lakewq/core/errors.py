# lakewq/core/errors.py

"""Error taxonomy for the raster water-quality pipeline."""


class LakeWQError(Exception):
    """Base class for pipeline errors that a period boundary may catch."""


class BoundaryNotFound(LakeWQError):
    """The boundary source yielded zero features."""


class EmptyRasterSequence(LakeWQError):
    """A date/bounds filtered raster sequence holds no images."""


class DivisionByZero(LakeWQError, ZeroDivisionError):
    """A scalar ratio (coefficient of variation, percent change) has a zero denominator."""


class PixelBudgetExceeded(LakeWQError):
    """A zonal reduction implies more pixels than allowed and best effort is off."""

    def __init__(self, implied_pixels: float, pixel_budget: float, scale_m: float):
        self.implied_pixels = implied_pixels
        self.pixel_budget = pixel_budget
        self.scale_m = scale_m
        super().__init__(
            f"Reduction at {scale_m:g} m implies {implied_pixels:.4g} pixels, "
            f"budget is {pixel_budget:.4g}"
        )


class InsufficientData(LakeWQError):
    """Not enough valid observations for a fit or comparison."""


class InvalidClassBoundaries(LakeWQError, ValueError):
    """Class thresholds or class ids are not strictly increasing."""


class ConfigError(LakeWQError, ValueError):
    """A configuration value has the wrong type or is out of range."""


class SourceUnavailable(LakeWQError):
    """A raster or boundary backend could not be reached."""


class UnknownSeasonWarning(UserWarning):
    """A season label has no calibration; uncalibrated coefficients are used."""
