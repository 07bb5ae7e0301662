"""
Error taxonomy shared by the store, upload and HTTP layers.

Each error knows the status code and JSON body it maps to, so route
handlers can simply raise and let the app-level handlers render them.
"""

from __future__ import annotations

IMAGE_ONLY_MESSAGE = "Only image uploads are allowed"


class TreePageError(Exception):
    status_code = 500

    def __init__(self, message: str, *, ok_flag: bool = False):
        super().__init__(message)
        self.message = message
        # Delete-photo responses carry {"ok": false, ...}; the others do not.
        self.ok_flag = ok_flag

    def body(self) -> dict:
        if self.ok_flag:
            return {"ok": False, "error": self.message}
        return {"error": self.message}


class NotFound(TreePageError):
    status_code = 404


class InvalidInput(TreePageError):
    status_code = 400


class InvalidUpload(InvalidInput):
    def __init__(self, message: str = IMAGE_ONLY_MESSAGE):
        super().__init__(message)


class StorageIOError(TreePageError):
    """Backing-file write failed. Never rendered with detail."""


class GenerationExhausted(TreePageError):
    """Short-id generation kept colliding."""
