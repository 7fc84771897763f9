# staticsweep/folders.py
"""
Pure helpers that decide which deployment folders are candidates for cleanup.

A deployment folder is a prefix of the form ``<root><version>/`` where
``<root>`` is the configured web root (itself ending in ``/``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from staticsweep.errors import MalformedFolderName
from staticsweep.fleet import AppVersionRecord

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class VersionFolder:
    path: str
    version: str


def known_folder_paths(root: str, names: Iterable[str]) -> list[str]:
    """Expands root-relative folder names (``applet/``) to full prefixes."""
    paths = []
    for name in names:
        name = name.strip("/")
        if name:
            paths.append(f"{root}{name}/")
    return paths


def filter_known_folders(folders: Sequence[str], known: Iterable[str]) -> list[str]:
    """Drops allow-listed, non-versioned folders. Exact match, order kept."""
    known_set = set(known)
    return [folder for folder in folders if folder not in known_set]


def parse_version_folder(folder: str, root: str) -> VersionFolder:
    """
    Extracts the version token from ``<root><version>/``.

    Raises MalformedFolderName for anything else: a different root, an empty
    version, a missing trailing separator or a nested path.
    """
    if not folder.startswith(root) or not folder.endswith("/"):
        raise MalformedFolderName(folder, root)
    version = folder[len(root) : -1]
    if not version or "/" in version:
        raise MalformedFolderName(folder, root)
    return VersionFolder(path=folder, version=version)


def select_unreferenced_folders(
    folders: Sequence[str], in_use: Iterable[AppVersionRecord], root: str
) -> list[str]:
    """Returns the folders whose version is not deployed on any instance."""
    in_use_versions = {record.app_version for record in in_use}
    # Parse everything first so a malformed name fails the whole selection.
    parsed = [parse_version_folder(folder, root) for folder in folders]
    return [vf.path for vf in parsed if vf.version not in in_use_versions]


def folder_age_days(last_modified: datetime, now: datetime) -> int:
    """Whole days since `last_modified`, rounded up. Future times count as 0."""
    elapsed = now - last_modified
    if elapsed <= timedelta(0):
        return 0
    return math.ceil(elapsed / ONE_DAY)


def is_expired(age_days: int, retain_days: int) -> bool:
    return age_days >= retain_days
