# src/staticsweep/errors.py
"""Exceptions raised by the cleanup pipeline. All of them abort an invocation."""

from __future__ import annotations


class CleanupError(Exception):
    """Base class for every fatal cleanup failure."""


class ConfigError(CleanupError):
    """The trigger payload or CLI options are missing or invalid."""


class RootNotFound(CleanupError):
    def __init__(self, root: str) -> None:
        super().__init__(f"S3 Deployment root directory not found:{root}")
        self.root = root


class VersionResolutionFailed(CleanupError):
    def __init__(self, detail: str = "") -> None:
        message = "Unable to determine deployed app versions"
        super().__init__(f"{message}: {detail}" if detail else message)


class MissingRequiredTag(CleanupError):
    def __init__(self, instance_id: str, tag_key: str) -> None:
        super().__init__(
            f"Instance {instance_id} is missing required tag '{tag_key}'"
        )
        self.instance_id = instance_id
        self.tag_key = tag_key


class MalformedFolderName(CleanupError):
    def __init__(self, folder: str, root: str) -> None:
        super().__init__(
            f"Folder '{folder}' does not match the expected '{root}<version>/' shape"
        )
        self.folder = folder


class DeletionFailed(CleanupError):
    def __init__(self, folder: str, detail: str = "") -> None:
        message = f"Error deleting s3 folder {folder}"
        super().__init__(f"{message}: {detail}" if detail else message)
        self.folder = folder
