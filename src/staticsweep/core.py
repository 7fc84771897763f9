# staticsweep/core.py
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, TypedDict

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console

from types_boto3_ec2.client import EC2Client
from types_boto3_s3.client import S3Client

from staticsweep.config import settings
from staticsweep.errors import DeletionFailed, RootNotFound


console = Console()

# Upper bound of keys accepted by a single DeleteObjects request.
DELETE_BATCH_SIZE = 1000


class LookupStatus(str, Enum):
    FOUND = "found"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class LastModifiedLookup:
    """Outcome of looking up the newest object under a folder."""

    folder: str
    status: LookupStatus
    last_modified: Optional[datetime] = None
    error: Optional[str] = None

    @classmethod
    def found(cls, folder: str, last_modified: datetime) -> "LastModifiedLookup":
        return cls(folder, LookupStatus.FOUND, last_modified=last_modified)

    @classmethod
    def empty(cls, folder: str) -> "LastModifiedLookup":
        return cls(folder, LookupStatus.EMPTY)

    @classmethod
    def failed(cls, folder: str, error: str) -> "LastModifiedLookup":
        return cls(folder, LookupStatus.ERROR, error=error)


class PermissionDict(TypedDict):
    list: bool
    describe: bool
    delete: bool


class VerificationResult(TypedDict):
    target: str
    ok: bool
    permissions: PermissionDict
    message: str


def get_s3_client() -> S3Client:
    """Initializes and returns a boto3 S3 client."""
    return boto3.client("s3", region_name=settings.region)


def get_ec2_client() -> EC2Client:
    """Initializes and returns a boto3 EC2 client."""
    return boto3.client("ec2", region_name=settings.region)


def list_version_folders(client: S3Client, bucket: str, root: str) -> list[str]:
    """
    Lists the immediate child "folders" (common prefixes) under `root`.

    The store's order is preserved. Raises RootNotFound if the listing fails
    or if nothing at all lives under `root`.
    """
    folders: list[str] = []
    seen_objects = False
    try:
        paginator = client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=root, Delimiter="/"):
            folders.extend(cp["Prefix"] for cp in page.get("CommonPrefixes", []))
            seen_objects = seen_objects or bool(page.get("Contents"))
    except (ClientError, BotoCoreError) as e:
        raise RootNotFound(root) from e

    if not folders and not seen_objects:
        raise RootNotFound(root)
    return folders


def get_last_modified(client: S3Client, bucket: str, folder: str) -> LastModifiedLookup:
    """
    Returns the most recent LastModified among all objects under `folder`.

    Never raises for S3 errors: a failed listing is reported as an ERROR
    lookup so one bad folder does not abort the batch.
    """
    newest: Optional[datetime] = None
    try:
        paginator = client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=folder):
            for obj in page.get("Contents", []):
                if newest is None or obj["LastModified"] > newest:
                    newest = obj["LastModified"]
    except (ClientError, BotoCoreError) as e:
        console.print(f"[yellow]File not found error for {folder}: {e}[/]")
        return LastModifiedLookup.failed(folder, str(e))

    if newest is None:
        return LastModifiedLookup.empty(folder)
    return LastModifiedLookup.found(folder, newest)


def _delete_batch(
    client: S3Client, bucket: str, folder: str, keys: list[dict[str, str]]
) -> None:
    try:
        response = client.delete_objects(
            Bucket=bucket, Delete={"Objects": keys, "Quiet": True}
        )
    except (ClientError, BotoCoreError) as e:
        raise DeletionFailed(folder, str(e)) from e

    errors = response.get("Errors") or []
    if errors:
        first = errors[0]
        raise DeletionFailed(
            folder,
            f"{len(errors)} object(s) not deleted, e.g. {first.get('Key')} "
            f"({first.get('Code')}: {first.get('Message')})",
        )


def empty_folder(client: S3Client, bucket: str, folder: str) -> int:
    """
    Deletes every object under `folder`, one listing page at a time, until the
    listing is no longer truncated. Returns the number of objects deleted.
    """
    deleted = 0
    while True:
        try:
            listed = client.list_objects_v2(
                Bucket=bucket, Prefix=folder, MaxKeys=DELETE_BATCH_SIZE
            )
        except (ClientError, BotoCoreError) as e:
            raise DeletionFailed(folder, str(e)) from e

        keys = [{"Key": obj["Key"]} for obj in listed.get("Contents", [])]
        if not keys:
            if deleted == 0:
                console.print(f"Nothing to delete in [cyan]{folder}[/]...")
            return deleted

        # MaxKeys caps a page at one delete_objects batch
        _delete_batch(client, bucket, folder, keys)
        deleted += len(keys)

        if not listed.get("IsTruncated"):
            return deleted


def _check_bucket_access(client: Any, bucket: str) -> VerificationResult:
    """Checks that the bucket exists and can be listed and written to."""
    results: VerificationResult = {
        "target": f"s3://{bucket}",
        "ok": False,
        "permissions": {"list": False, "describe": False, "delete": False},
        "message": "",
    }

    try:
        client.head_bucket(Bucket=bucket)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code")
        if error_code == "404":
            results["message"] = "Bucket not found."
        elif error_code == "403":
            results["message"] = "Access Denied. Cannot view bucket."
        else:
            results["message"] = f"Connection error: {e}"
        return results

    try:
        client.list_objects_v2(
            Bucket=bucket, Prefix=settings.web_root, Delimiter="/", MaxKeys=1
        )
        results["permissions"]["list"] = True
    except ClientError:
        pass

    # Delete permission is checked on a throwaway object outside the web root.
    test_key = f"staticsweep-verify-test-{uuid.uuid4()}.tmp"
    try:
        client.put_object(Bucket=bucket, Key=test_key, Body=b"verify")
        client.delete_object(Bucket=bucket, Key=test_key)
        results["permissions"]["delete"] = True
    except ClientError:
        pass
    finally:
        try:
            client.delete_object(Bucket=bucket, Key=test_key)
        except ClientError:
            pass

    results["ok"] = results["permissions"]["list"]
    if results["permissions"]["list"] and results["permissions"]["delete"]:
        results["message"] = "List and delete access verified."
    elif results["permissions"]["list"]:
        results["message"] = "List only: action 'delete' will fail."
    else:
        results["message"] = "Cannot list objects."
    return results


def _check_fleet_access(client: Any) -> VerificationResult:
    """Checks that EC2 instances can be described."""
    results: VerificationResult = {
        "target": "ec2:DescribeInstances",
        "ok": False,
        "permissions": {"list": False, "describe": False, "delete": False},
        "message": "",
    }
    try:
        client.describe_instances(MaxResults=5)
        results["permissions"]["describe"] = True
        results["ok"] = True
        results["message"] = "Instance tags readable."
    except ClientError as e:
        results["message"] = f"Cannot describe instances: {e}"
    return results


def verify_aws_access(bucket: str) -> list[VerificationResult]:
    """
    Verifies the credentials can run the cleanup against `bucket`.

    Returns:
        A list of result dictionaries, one for the bucket and one for EC2.
    """
    results = []
    try:
        results.append(_check_bucket_access(get_s3_client(), bucket))
        results.append(_check_fleet_access(get_ec2_client()))
    except (BotoCoreError, ClientError) as e:
        # Client creation errors (bad region, missing credentials)
        connection_error: VerificationResult = {
            "target": "Connection",
            "ok": False,
            "permissions": {"list": False, "describe": False, "delete": False},
            "message": f"Failed to create AWS client: {e}",
        }
        results.append(connection_error)
    return results
