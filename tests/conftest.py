# tests/conftest.py
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Optional

import pytest
from botocore.exceptions import ClientError

from staticsweep import pipeline
from staticsweep.config import RetentionConfig

ROOT = "web/resources/"
NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


class FakePaginator:
    def __init__(self, method: Any) -> None:
        self._method = method

    def paginate(self, **kwargs: Any) -> Iterator[dict[str, Any]]:
        token: Optional[str] = None
        while True:
            if token:
                kwargs["ContinuationToken"] = token
            page = self._method(**kwargs)
            yield page
            if not page.get("IsTruncated"):
                return
            token = page["NextContinuationToken"]


class FakeS3:
    """
    Minimal in-memory stand-in for the boto3 S3 client.

    Keys are listed in insertion order, not sorted, so callers cannot depend
    on lexical ordering.
    """

    def __init__(self, objects: Optional[dict[str, datetime]] = None) -> None:
        self.objects: dict[str, datetime] = dict(objects or {})
        self.delete_calls: list[list[str]] = []
        self.fail_delete_for: Optional[str] = None
        self.fail_listing_for: Optional[str] = None

    def add_folder(self, folder: str, count: int, last_modified: datetime) -> None:
        for i in range(count):
            self.objects[f"{folder}file-{i:05d}.js"] = last_modified

    def keys_under(self, prefix: str) -> list[str]:
        return [key for key in self.objects if key.startswith(prefix)]

    def list_objects_v2(
        self,
        Bucket: str,
        Prefix: str = "",
        Delimiter: Optional[str] = None,
        MaxKeys: int = 1000,
        ContinuationToken: Optional[str] = None,
    ) -> dict[str, Any]:
        if self.fail_listing_for and Prefix.startswith(self.fail_listing_for):
            raise ClientError(
                {"Error": {"Code": "AccessDenied", "Message": "Denied"}},
                "ListObjectsV2",
            )
        if Bucket == "missing-bucket":
            raise ClientError(
                {"Error": {"Code": "NoSuchBucket", "Message": "Not Found"}},
                "ListObjectsV2",
            )

        entries: list[tuple[str, str]] = []
        seen_prefixes: set[str] = set()
        for key in self.keys_under(Prefix):
            rest = key[len(Prefix) :]
            if Delimiter and Delimiter in rest:
                common = Prefix + rest.split(Delimiter)[0] + Delimiter
                if common not in seen_prefixes:
                    seen_prefixes.add(common)
                    entries.append(("prefix", common))
            else:
                entries.append(("object", key))

        start = int(ContinuationToken or 0)
        window = entries[start : start + MaxKeys]
        truncated = start + MaxKeys < len(entries)

        page: dict[str, Any] = {"IsTruncated": truncated, "KeyCount": len(window)}
        contents = [
            {"Key": key, "LastModified": self.objects[key]}
            for kind, key in window
            if kind == "object"
        ]
        prefixes = [{"Prefix": p} for kind, p in window if kind == "prefix"]
        if contents:
            page["Contents"] = contents
        if prefixes:
            page["CommonPrefixes"] = prefixes
        if truncated:
            page["NextContinuationToken"] = str(start + MaxKeys)
        return page

    def delete_objects(self, Bucket: str, Delete: dict[str, Any]) -> dict[str, Any]:
        keys = [obj["Key"] for obj in Delete["Objects"]]
        assert len(keys) <= 1000
        self.delete_calls.append(keys)
        if self.fail_delete_for and any(
            k.startswith(self.fail_delete_for) for k in keys
        ):
            raise ClientError(
                {"Error": {"Code": "AccessDenied", "Message": "Denied"}},
                "DeleteObjects",
            )
        for key in keys:
            self.objects.pop(key, None)
        return {}

    def get_paginator(self, operation: str) -> FakePaginator:
        assert operation == "list_objects_v2"
        return FakePaginator(self.list_objects_v2)


def instance(
    instance_id: str,
    name: Optional[str] = "CoreApp",
    stack: Optional[str] = "core-stack",
    version: Optional[str] = None,
) -> dict[str, Any]:
    tags = []
    if name is not None:
        tags.append({"Key": "Name", "Value": name})
    if stack is not None:
        tags.append({"Key": "aws:cloudformation:stack-name", "Value": stack})
    if version is not None:
        tags.append({"Key": "ApplicationVersion", "Value": version})
    return {"InstanceId": instance_id, "Tags": tags}


class FakeEC2:
    """In-memory stand-in for the boto3 EC2 client's describe_instances."""

    def __init__(self, *instances: dict[str, Any], fail: bool = False) -> None:
        self.instances = list(instances)
        self.fail = fail

    def describe_instances(self, **kwargs: Any) -> dict[str, Any]:
        if self.fail:
            raise ClientError(
                {"Error": {"Code": "UnauthorizedOperation", "Message": "Denied"}},
                "DescribeInstances",
            )
        # One instance per reservation, like separately launched instances.
        return {"Reservations": [{"Instances": [i]} for i in self.instances]}

    def get_paginator(self, operation: str) -> FakePaginator:
        assert operation == "describe_instances"
        return FakePaginator(self.describe_instances)


@pytest.fixture
def s3() -> FakeS3:
    """
    Two version folders (v1 in use, v2 forty days old) and one
    allow-listed asset folder.
    """
    client = FakeS3()
    client.add_folder(f"{ROOT}v1/", 3, days_ago(90))
    client.add_folder(f"{ROOT}v2/", 3, days_ago(40))
    client.add_folder(f"{ROOT}applet/", 2, days_ago(400))
    return client


@pytest.fixture
def ec2() -> FakeEC2:
    return FakeEC2(
        instance("i-001", version="v1"),
        instance("i-002", name="Bastion", stack=None),
    )


@pytest.fixture
def list_config() -> RetentionConfig:
    return RetentionConfig(
        bucket="static-web-test",
        action="list",
        retain_days=30,
        root=ROOT,
        known_folders=("applet/",),
        role_tag_value="CoreApp",
    )


@pytest.fixture
def delete_config(list_config: RetentionConfig) -> RetentionConfig:
    return RetentionConfig(
        bucket=list_config.bucket,
        action="delete",
        retain_days=list_config.retain_days,
        root=list_config.root,
        known_folders=list_config.known_folders,
        role_tag_value=list_config.role_tag_value,
    )


def pinned_runner(s3: FakeS3, ec2: FakeEC2) -> Any:
    """
    Side effect for patching run_cleanup: runs the real pipeline against the
    fakes with a fixed clock and layout, keeping the caller's bucket, action,
    retention and tag policy.
    """
    # Bound now, before the caller patches pipeline.run_cleanup itself.
    real_run_cleanup = pipeline.run_cleanup

    def run(config: RetentionConfig, **kwargs: Any) -> pipeline.CleanupReport:
        pinned = RetentionConfig(
            bucket=config.bucket,
            action=config.action,
            retain_days=config.retain_days,
            root=ROOT,
            known_folders=("applet/",),
            role_tag_value="CoreApp",
            missing_tag_policy=config.missing_tag_policy,
        )
        return real_run_cleanup(pinned, s3_client=s3, ec2_client=ec2, now=NOW)  # type: ignore[arg-type]

    return run
