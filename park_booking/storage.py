"""
Binary object store for ticket QR images.

The booking engine hands PNG bytes to an ImageStore keyed by booking id and
keeps the returned reference URL on the booking.
"""
import logging
import os
from abc import ABC, abstractmethod

from park_booking.errors import DependencyFailureError

logger = logging.getLogger(__name__)


class ImageStore(ABC):
    """Interface for QR image persistence."""

    @abstractmethod
    def save(self, key: str, data: bytes) -> str:
        """Store image bytes under key and return a reference URL."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the image stored under key, if any."""
        ...


class LocalImageStore(ImageStore):
    """Writes PNG files into a directory served as static files."""

    def __init__(self, directory: str, base_url: str):
        self.directory = directory
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.directory, exist_ok=True)

    def _filename(self, key: str) -> str:
        return f"QR_{key}.png"

    def save(self, key: str, data: bytes) -> str:
        filename = self._filename(key)
        file_path = os.path.join(self.directory, filename)
        try:
            with open(file_path, "wb") as fh:
                fh.write(data)
        except OSError as e:
            raise DependencyFailureError(f"Failed to store QR image: {e}") from e
        return f"{self.base_url}/{filename}"

    def delete(self, key: str) -> None:
        file_path = os.path.join(self.directory, self._filename(key))
        try:
            os.remove(file_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise DependencyFailureError(f"Failed to delete QR image: {e}") from e
