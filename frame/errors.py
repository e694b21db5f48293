"""
Error types for frame composition and editing.

Composition failures split into fatal validation errors, which abort a single
composition, and resource load errors, which the pipeline recovers from in
place. Store errors belong to editing mutations and abort only the mutation
in progress.
"""

from typing import Any, Dict, Optional


class FrameError(Exception):
    """Base exception for all frame studio errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(FrameError):
    """Raised when a composition request cannot produce any output."""
    pass


class NoActiveItemsError(ValidationError):
    """Raised when a group has no active products to draw."""

    def __init__(self, group_id: Optional[str] = None, group_name: Optional[str] = None):
        super().__init__(
            "Could not generate image: no active products found",
            details={"group_id": group_id, "group_name": group_name},
        )


class ResourceLoadError(FrameError):
    """A font or image could not be loaded. Always recovered with a fallback."""
    pass


class FontLoadError(ResourceLoadError):
    """Raised when no font file matches a requested font style."""
    pass


class ImageDecodeError(ResourceLoadError):
    """Raised when stored bytes are not a decodable image."""
    pass


class StoreError(FrameError):
    """Raised when a blob store operation fails."""
    pass


class BlobNotFoundError(StoreError):
    """Raised when a blob id does not resolve to stored bytes."""

    def __init__(self, blob_id: str):
        super().__init__(f"Blob not found: {blob_id}", details={"blob_id": blob_id})
        self.blob_id = blob_id


class RecordNotFoundError(FrameError):
    """Raised when a group or product id is unknown to the editor."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind.capitalize()} not found: {record_id}",
                         details={"kind": kind, "id": record_id})
