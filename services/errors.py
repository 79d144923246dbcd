"""Exception hierarchy for the diagnosis pipeline."""


class PlantDoctorError(Exception):
    """Base class for errors raised by the diagnosis pipeline."""


class ImageValidationError(PlantDoctorError):
    """The submitted image cannot be analyzed (type, size, dimensions, lighting)."""


class ChannelError(PlantDoctorError):
    """The background worker reported an error or its transport failed."""


class ChannelTimeoutError(ChannelError):
    """A worker request received no response within its timeout."""


class ChannelUnavailableError(ChannelError):
    """The worker cannot be used (unsupported, or every init attempt failed)."""


class InferenceFailure(PlantDoctorError):
    """A classifier tier raised without timing out."""


class InferenceExhaustedError(PlantDoctorError):
    """Every classifier tier failed; the caller should offer a retry."""


class PersistenceError(PlantDoctorError):
    """The backing store rejected an operation. Logged and never surfaced to users."""


class CaptureError(PlantDoctorError):
    """A live camera stream could not be opened."""
