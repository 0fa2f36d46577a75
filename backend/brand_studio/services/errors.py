"""Error taxonomy for brand registration, training and generation."""


class StudioError(RuntimeError):
    status_code = 500


class InvalidRequestError(StudioError):
    status_code = 400


class NotFoundError(StudioError):
    status_code = 404


class StorageError(StudioError):
    status_code = 502


class LaunchError(StudioError):
    """Training could not be started; no TrainingJob row was written."""

    status_code = 502


class TrainingFailedError(StudioError):
    status_code = 409


class GenerationError(StudioError):
    """Inference or result persistence failed; no GeneratedImage row was written."""

    status_code = 502


class ProviderError(RuntimeError):
    pass


class ModelExistsError(ProviderError):
    pass
