"""
Reconciliation of resource tags.

CloudFormation hands tags to a handler from three sources: system tags (``aws:cloudformation:*``),
stack level tags and the ``Tags`` property of the resource itself. A ``TagSet`` keeps them apart,
so that errors on tags the user asked for can be treated differently from errors on system tags.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from rds_cfn.services.cloudformation.error_rules import ErrorRuleSet, ignore
from rds_cfn.services.cloudformation.progress import Step, handle_exception
from rds_cfn.services.cloudformation.resource_provider import (
    CallbackContext,
    HandlerErrorCode,
    ProgressEvent,
    StepOutcome,
)
from rds_cfn.services.rds.commons import ACCESS_DENIED_ERROR_CODES
from rds_cfn.utils.aws.tags import Tag, tag_dict_to_list

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagSet:
    system_tags: dict[str, str] = field(default_factory=dict)
    stack_tags: dict[str, str] = field(default_factory=dict)
    resource_tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "TagSet":
        return cls()

    def is_empty(self) -> bool:
        return not (self.system_tags or self.stack_tags or self.resource_tags)

    def flat(self) -> dict[str, str]:
        """A single view of all tags, resource tags win over stack tags."""
        return {**self.system_tags, **self.stack_tags, **self.resource_tags}

    def without_system_tags(self) -> "TagSet":
        return TagSet(stack_tags=self.stack_tags, resource_tags=self.resource_tags)

    def only_system_tags(self) -> "TagSet":
        return TagSet(system_tags=self.system_tags)


def diff(previous: TagSet, desired: TagSet) -> tuple[TagSet, TagSet]:
    """
    Computes which tags to remove from and which tags to add to a resource to go from the previous
    to the desired tags. Keys are compared on the flat view of both sets, the result keeps the
    provenance of every tag.

    - removed: keys present previously but no longer desired
    - added: keys not present previously, or present with a different value
    """
    previous_flat = previous.flat()
    desired_flat = desired.flat()

    def _removed(tags: dict[str, str]) -> dict[str, str]:
        return {key: value for key, value in tags.items() if key not in desired_flat}

    def _added(tags: dict[str, str]) -> dict[str, str]:
        return {
            key: value
            for key, value in tags.items()
            if key not in previous_flat or previous_flat[key] != value
        }

    to_remove = TagSet(
        system_tags=_removed(previous.system_tags),
        stack_tags=_removed(previous.stack_tags),
        resource_tags=_removed(previous.resource_tags),
    )
    to_add = TagSet(
        system_tags=_added(desired.system_tags),
        stack_tags=_added(desired.stack_tags),
        resource_tags=_added(desired.resource_tags),
    )
    return to_remove, to_add


def to_sdk_tags(tags: TagSet) -> list[Tag]:
    return tag_dict_to_list(tags.flat())


def add_tags(rds_client, arn: str, tags: TagSet) -> None:
    if tags.is_empty():
        return
    LOG.debug("Adding tags %s to %s", list(tags.flat()), arn)
    rds_client.add_tags_to_resource(ResourceName=arn, Tags=to_sdk_tags(tags))


def remove_tags(rds_client, arn: str, tags: TagSet) -> None:
    if tags.is_empty():
        return
    LOG.debug("Removing tags %s from %s", list(tags.flat()), arn)
    rds_client.remove_tags_from_resource(ResourceName=arn, TagKeys=list(tags.flat()))


def update_tags(
    progress: ProgressEvent,
    rds_client,
    previous: TagSet,
    desired: TagSet,
    rule_set: ErrorRuleSet,
    get_arn: Callable[[CallbackContext], Optional[str]],
    fetch_arn: Step,
) -> ProgressEvent:
    """
    Brings the tags of a resource from the previous to the desired set. Nothing is called if both
    sets are equal. Otherwise the tags to remove are removed first, then the tags to add are added.

    """
    to_remove, to_add = diff(previous, desired)
    if to_remove.is_empty() and to_add.is_empty():
        return progress

    if get_arn(progress.callback_context) is None:
        progress = fetch_arn(progress)
        if progress.outcome is not StepOutcome.CONTINUE:
            return progress
    arn = get_arn(progress.callback_context)

    try:
        remove_tags(rds_client, arn, to_remove)
        add_tags(rds_client, arn, to_add)
    except Exception as e:
        return handle_exception(progress, e, rule_set)

    return progress


def best_effort_error_rule_set(
    rule_set: ErrorRuleSet, previous: TagSet, desired: TagSet
) -> ErrorRuleSet:
    """
    Extends the given rule set so that missing tagging permissions are ignored, as long as the
    system tags stay unchanged. System tags have to be applied, a stack that cannot apply them fails.
    """
    if previous.system_tags != desired.system_tags:
        return rule_set
    return ErrorRuleSet.extend(rule_set).with_error_codes(ignore(), *ACCESS_DENIED_ERROR_CODES)


def create_with_tagging_fallback(
    create: Callable[[ProgressEvent, TagSet], ProgressEvent],
    progress: ProgressEvent,
    tags: TagSet,
) -> ProgressEvent:
    """
    Creates a resource with all tags in the create request. If the caller is not allowed to tag,
    the resource is created with the system tags only; the other tags are then added by a separate
    tagging step, whose errors can be handled on their own.
    """
    result = create(progress, tags)
    if (
        result.is_failed()
        and result.error_code == HandlerErrorCode.AccessDenied
        and not tags.without_system_tags().is_empty()
    ):
        LOG.info("Not allowed to create resource with tags, retrying with system tags only")
        return create(progress, tags.only_system_tags())
    return result
