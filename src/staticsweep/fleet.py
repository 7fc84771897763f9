# staticsweep/fleet.py
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console

from types_boto3_ec2.client import EC2Client

from staticsweep.errors import MissingRequiredTag, VersionResolutionFailed


console = Console()

NAME_TAG = "Name"
STACK_NAME_TAG = "aws:cloudformation:stack-name"
APP_VERSION_TAG = "ApplicationVersion"
UNKNOWN_STACK = "<unknown>"


@dataclass(frozen=True)
class AppVersionRecord:
    stack_name: str
    app_version: str


def _tags(instance: dict[str, Any]) -> dict[str, str]:
    return {tag["Key"]: tag["Value"] for tag in instance.get("Tags", [])}


def get_deployed_app_versions(
    client: EC2Client, role_tag_value: str, missing_tag_policy: str = "fail"
) -> list[AppVersionRecord]:
    """
    Get the deployed app versions of every instance whose Name tag equals
    `role_tag_value`.

    Every such instance must carry the stack-name and ApplicationVersion
    tags. With the "fail" policy a missing tag raises MissingRequiredTag.
    With "skip", an instance without ApplicationVersion is reported and
    ignored, while one missing only its stack name is kept under
    UNKNOWN_STACK so its version stays protected. Duplicates are kept.
    """
    app_versions: list[AppVersionRecord] = []
    try:
        paginator = client.get_paginator("describe_instances")
        pages = list(paginator.paginate())
    except (ClientError, BotoCoreError) as e:
        raise VersionResolutionFailed(str(e)) from e

    for page in pages:
        for reservation in page.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                tags = _tags(instance)
                if tags.get(NAME_TAG) != role_tag_value:
                    continue

                instance_id = instance.get("InstanceId", "<unknown>")
                missing = [
                    key for key in (STACK_NAME_TAG, APP_VERSION_TAG) if key not in tags
                ]
                if missing and missing_tag_policy != "skip":
                    raise MissingRequiredTag(instance_id, missing[0])
                if APP_VERSION_TAG in missing:
                    console.print(
                        f"[yellow]Skipping {instance_id}: missing tag '{APP_VERSION_TAG}'[/]"
                    )
                    continue
                if STACK_NAME_TAG in missing:
                    console.print(
                        f"[yellow]{instance_id} has no '{STACK_NAME_TAG}' tag; "
                        f"keeping version {tags[APP_VERSION_TAG]}[/]"
                    )

                app_versions.append(
                    AppVersionRecord(
                        stack_name=tags.get(STACK_NAME_TAG, UNKNOWN_STACK),
                        app_version=tags[APP_VERSION_TAG],
                    )
                )
    return app_versions
