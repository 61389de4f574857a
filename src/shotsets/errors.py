class ScreenshotError(Exception):
    """Base class for failures the screenshots model reports instead of raising."""


class ValidationError(ScreenshotError):
    """Bad input rejected before any I/O (e.g. a non-PNG upload)."""


class CaptureError(ScreenshotError):
    """The device reported a failed capture or went away mid-capture."""


class TransportError(ScreenshotError):
    """The backend could not be reached or refused a load/save."""
