"""Error taxonomy for media staging, reconciliation and property saves"""

from typing import Optional


class StagingError(Exception):
    """Base class for every error raised by the staging engine"""


class ValidationError(StagingError):
    """A local file was refused by the validation policy"""

    reason = "invalid"

    def __init__(self, file_name: str, message: Optional[str] = None):
        self.file_name = file_name
        super().__init__(message or f"{file_name}: {self.reason}")


class InvalidExtension(ValidationError):
    reason = "invalid extension"

    def __init__(self, file_name: str, extension: str, allowed):
        self.extension = extension
        self.allowed = sorted(allowed)
        super().__init__(
            file_name,
            f"{file_name}: extension '{extension or '<none>'}' not allowed "
            f"(allowed: {', '.join(self.allowed)})",
        )


class TooLarge(ValidationError):
    reason = "file too large"

    def __init__(self, file_name: str, size: int, max_bytes: int):
        self.size = size
        self.max_bytes = max_bytes
        super().__init__(
            file_name,
            f"{file_name}: {size} bytes exceeds the {max_bytes} byte limit",
        )


class GalleryFullError(StagingError):
    """Adding the batch would exceed the gallery capacity"""

    def __init__(self, current: int, adding: int, max_images: int):
        self.current = current
        self.adding = adding
        self.max_images = max_images
        super().__init__(
            f"Only {max_images} images allowed per property; "
            f"gallery has {current}, tried to add {adding}"
        )


class AssetNotFoundError(StagingError, KeyError):
    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"Asset {asset_id} is not staged in this session")

    def __str__(self):
        return self.args[0]


class SessionBusyError(StagingError):
    """A save is in flight; staging mutations must wait for it"""


class SessionClosedError(StagingError):
    """The edit session has ended and its staging state was discarded"""


class DecodeError(StagingError):
    """Image bytes could not be decoded for thumbnail rendering"""


class SaveError(StagingError):
    """Fatal failure of a property save attempt"""

    @property
    def user_message(self) -> str:
        return str(self)


class UploadError(SaveError):
    """The batched upload failed at the network or server level"""

    def __init__(self, population: str, message: str, status_code: Optional[int] = None):
        self.population = population
        self.status_code = status_code
        super().__init__(f"Failed to upload {population}: {message}")


class ReconciliationError(SaveError):
    """The upload response could not be matched back to the submitted files"""

    def __init__(self, population: str, message: str):
        self.population = population
        super().__init__(f"Failed to upload {population}: {message}")


class PersistenceError(SaveError):
    """The create/update property call failed after media was reconciled"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(f"Failed to save property: {message}")
