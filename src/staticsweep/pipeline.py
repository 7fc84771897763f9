# staticsweep/pipeline.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from rich.console import Console

from types_boto3_ec2.client import EC2Client
from types_boto3_s3.client import S3Client

from staticsweep import core
from staticsweep.config import RetentionConfig
from staticsweep.core import LastModifiedLookup, LookupStatus
from staticsweep.fleet import AppVersionRecord, get_deployed_app_versions
from staticsweep.folders import (
    filter_known_folders,
    folder_age_days,
    is_expired,
    known_folder_paths,
    select_unreferenced_folders,
)


console = Console()


@dataclass(frozen=True)
class FolderAge:
    """Expiry verdict for one unreferenced folder."""

    lookup: LastModifiedLookup
    age_days: Optional[int]
    expired: bool

    @property
    def folder(self) -> str:
        return self.lookup.folder


@dataclass
class CleanupReport:
    config: RetentionConfig
    in_use: list[AppVersionRecord] = field(default_factory=list)
    unreferenced: list[str] = field(default_factory=list)
    ages: list[FolderAge] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    deleted: dict[str, int] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return (
            f"Bucket:{self.config.bucket} Action:{self.config.action} "
            f"{len(self.expired)} {','.join(self.expired)}"
        )


def evaluate_folder(
    lookup: LastModifiedLookup, retain_days: int, now: datetime
) -> FolderAge:
    """
    Applies the retention rule to one lookup result.

    An empty folder is expired straight away; a failed lookup never is.
    """
    if lookup.status is LookupStatus.FOUND and lookup.last_modified is not None:
        age = folder_age_days(lookup.last_modified, now)
        return FolderAge(lookup, age, is_expired(age, retain_days))
    if lookup.status is LookupStatus.EMPTY:
        return FolderAge(lookup, None, True)
    return FolderAge(lookup, None, False)


def get_expired_folders(
    client: S3Client,
    config: RetentionConfig,
    folders: list[str],
    now: datetime,
) -> list[FolderAge]:
    """Looks up every folder in order and returns its expiry verdict."""
    ages = []
    for folder in folders:
        verdict = evaluate_folder(
            core.get_last_modified(client, config.bucket, folder),
            config.retain_days,
            now,
        )
        if verdict.lookup.status is LookupStatus.ERROR:
            console.print(
                f"[yellow]Skipping {folder}: last modified date unavailable[/]"
            )
        ages.append(verdict)
    return ages


def delete_folders(
    client: S3Client, config: RetentionConfig, folders: list[str]
) -> dict[str, int]:
    """
    Empties each folder in turn when the action is delete.

    Stops at the first DeletionFailed. Returns the object count per folder.
    """
    deleted: dict[str, int] = {}
    if not config.deleting:
        return deleted

    for folder in folders:
        count = core.empty_folder(client, config.bucket, folder)
        deleted[folder] = count
        console.print(f"Deleted: [red]{folder}[/] ({count} objects)")
    return deleted


def run_cleanup(
    config: RetentionConfig,
    s3_client: Optional[S3Client] = None,
    ec2_client: Optional[EC2Client] = None,
    now: Optional[datetime] = None,
) -> CleanupReport:
    """
    Runs the whole pipeline: enumerate, filter, resolve in-use versions,
    select unreferenced folders, apply retention and (maybe) delete.
    """
    s3 = s3_client or core.get_s3_client()
    ec2 = ec2_client or core.get_ec2_client()
    now = now or datetime.now(timezone.utc)

    console.print(
        f"Starting cleanup bucket:[cyan]{config.bucket}[/] "
        f"action:[cyan]{config.action}[/] retainDays:[cyan]{config.retain_days}[/]"
    )
    report = CleanupReport(config=config)

    all_folders = core.list_version_folders(s3, config.bucket, config.root)
    version_folders = filter_known_folders(
        all_folders, known_folder_paths(config.root, config.known_folders)
    )
    report.in_use = get_deployed_app_versions(
        ec2, config.role_tag_value, config.missing_tag_policy
    )
    report.unreferenced = select_unreferenced_folders(
        version_folders, report.in_use, config.root
    )
    report.ages = get_expired_folders(s3, config, report.unreferenced, now)
    report.expired = [age.folder for age in report.ages if age.expired]

    report.deleted = delete_folders(s3, config, report.expired)

    console.print(report.message)
    return report
