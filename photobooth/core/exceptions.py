"""Custom exceptions for the photo session."""

class ApplicationError(Exception):
    """Base application error."""
    pass

class DetectorUnavailable(ApplicationError):
    """The face/landmark oracle returned nothing for a frame."""
    pass

class SegmentationFailed(ApplicationError):
    """The segmentation oracle produced no mask for a captured photo."""
    pass

class CompositingFailed(ApplicationError):
    """Resampling or blending produced no output."""
    pass

class PersistenceFailed(ApplicationError):
    """The persistence sink reported an error while saving an artifact."""
    pass

class ConfigError(ApplicationError):
    """Configuration-related errors."""
    pass

class ModelError(ApplicationError):
    """Model loading/inference errors."""
    pass

class WebcamError(ApplicationError):
    """Webcam access errors."""
    pass

class CaptureFailed(WebcamError):
    """The capture collaborator could not deliver a photo."""
    pass
