"""Error taxonomy shared by the HTTP routes and the realtime channel."""

from typing import Optional


class ChatRelayError(Exception):
    status_code = 500
    error = "Internal error"

    def __init__(self, details: Optional[str] = None):
        super().__init__(details or self.error)
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.details:
            body["details"] = self.details
        return body


class StorageError(ChatRelayError):
    """A Mongo or GridFS operation failed."""
    error = "Storage failure"


class InvalidFileId(ChatRelayError):
    status_code = 400
    error = "Invalid file ID"


class MissingUpload(ChatRelayError):
    status_code = 400
    error = "No file uploaded"


class BlobNotFound(ChatRelayError):
    status_code = 404
    error = "File not found"


class UploadFailed(ChatRelayError):
    error = "Failed to upload file"


class MetadataLookupFailed(ChatRelayError):
    error = "Error fetching file metadata"


class DownloadFailed(ChatRelayError):
    error = "Error during file download"
