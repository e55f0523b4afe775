import logging
from dataclasses import dataclass
from typing import Any, Optional, TypedDict

from botocore.exceptions import ClientError

from rds_cfn.config import HandlerConfig
from rds_cfn.constants import RESOURCE_TYPE_DB_PARAMETER_GROUP, STACK_NAME
from rds_cfn.services.cloudformation.error_rules import ErrorRuleSet, fail_with, get_error_code
from rds_cfn.services.cloudformation.exceptions import (
    InvalidRequestError,
    NotFoundError,
    NotUpdatableError,
)
from rds_cfn.services.cloudformation.identifiers import IdentifierFactory
from rds_cfn.services.cloudformation.idempotency import safe_create
from rds_cfn.services.cloudformation.progress import (
    chain,
    execute_once,
    handle_exception,
    service_call,
)
from rds_cfn.services.cloudformation.resource_provider import (
    CallbackContext,
    HandlerErrorCode,
    ProgressEvent,
    ResourceProvider,
    ResourceRequest,
)
from rds_cfn.services.rds.commons import DEFAULT_ERROR_RULE_SET
from rds_cfn.services.rds.tagging import (
    TagSet,
    best_effort_error_rule_set,
    create_with_tagging_fallback,
    update_tags,
)
from rds_cfn.services.rds.translator import (
    resource_tags,
    translate_from_db_parameter_group,
    translate_to_create_db_parameter_group_request,
    translate_to_delete_db_parameter_group_request,
    translate_to_describe_db_parameter_groups_request,
    translate_to_list_db_parameter_groups_request,
    translate_to_parameters,
    translate_to_reset_parameters,
)
from rds_cfn.utils.collections import chunked
from rds_cfn.utils.strings import is_blank

LOG = logging.getLogger(__name__)

DB_PARAMETER_GROUP_NAME_MAX_LENGTH = 255

# ModifyDBParameterGroup and ResetDBParameterGroup accept at most 20 parameters per call
MAX_PARAMETERS_PER_REQUEST = 20

CREATE_ONLY_PROPERTIES = ["DBParameterGroupName", "Family", "Description"]


class RDSDBParameterGroupProperties(TypedDict, total=False):
    DBParameterGroupName: Optional[str]
    Description: Optional[str]
    Family: Optional[str]
    Parameters: Optional[dict[str, Any]]
    Tags: Optional[list[dict]]


@dataclass
class DBParameterGroupCallbackContext(CallbackContext):
    create_complete: bool = False
    add_tags_complete: bool = False
    parameters_applied: bool = False
    update_tags_complete: bool = False
    db_parameter_group_arn: Optional[str] = None


DB_PARAMETER_GROUP_ERROR_RULE_SET = (
    ErrorRuleSet.extend(DEFAULT_ERROR_RULE_SET)
    .with_error_codes(fail_with(HandlerErrorCode.AlreadyExists), "DBParameterGroupAlreadyExists")
    .with_error_codes(fail_with(HandlerErrorCode.NotFound), "DBParameterGroupNotFound")
    .with_error_codes(
        fail_with(HandlerErrorCode.ServiceLimitExceeded), "DBParameterGroupQuotaExceeded"
    )
    .with_error_codes(
        fail_with(HandlerErrorCode.ResourceConflict), "InvalidDBParameterGroupState"
    )
)


class RDSDBParameterGroupProvider(ResourceProvider[RDSDBParameterGroupProperties]):
    TYPE = RESOURCE_TYPE_DB_PARAMETER_GROUP
    CALLBACK_CONTEXT = DBParameterGroupCallbackContext

    def __init__(self, handler_config: Optional[HandlerConfig] = None):
        self.handler_config = handler_config or HandlerConfig()
        self.error_rule_set = DB_PARAMETER_GROUP_ERROR_RULE_SET
        self.identifier_factory = IdentifierFactory(
            STACK_NAME, "dbparametergroup", DB_PARAMETER_GROUP_NAME_MAX_LENGTH
        )

    def create(
        self,
        request: ResourceRequest[RDSDBParameterGroupProperties],
    ) -> ProgressEvent[RDSDBParameterGroupProperties]:
        """
        Create a new resource.

        Primary identifier fields:
          - /properties/DBParameterGroupName

        Required properties:
          - Family
          - Description

        Create-only properties:
          - /properties/DBParameterGroupName
          - /properties/Family
          - /properties/Description

        IAM permissions required:
          - rds:CreateDBParameterGroup
          - rds:DescribeDBParameterGroups
          - rds:DescribeDBParameters
          - rds:ModifyDBParameterGroup
          - rds:AddTagsToResource
          - rds:ListTagsForResource
        """
        rds = request.aws_client_factory.rds
        model = request.desired_state
        tags = TagSet(
            system_tags=request.system_tags,
            stack_tags=request.stack_tags,
            resource_tags=resource_tags(model),
        )

        if is_blank(model.get("DBParameterGroupName")):
            model["DBParameterGroupName"] = self.identifier_factory.new_identifier(
                request.stack_id, request.logical_resource_id, request.request_token
            )

        def _create(progress: ProgressEvent) -> ProgressEvent:
            def _probe(model: RDSDBParameterGroupProperties):
                group = self._describe_db_parameter_group(rds, model)
                if arn := group.get("DBParameterGroupArn"):
                    progress.callback_context.db_parameter_group_arn = arn
                return translate_from_db_parameter_group(group)

            return safe_create(
                _probe,
                lambda p: create_with_tagging_fallback(
                    lambda p_, tag_set: self._create_db_parameter_group(rds, p_, tag_set), p, tags
                ),
                progress,
                self.TYPE,
                model["DBParameterGroupName"],
                probing_enabled=self.handler_config.probing_enabled,
            )

        def _add_tags(progress: ProgressEvent) -> ProgressEvent:
            return self._update_tags(rds, progress, TagSet.empty(), tags.without_system_tags())

        return chain(
            ProgressEvent.progress(model, request.callback_context),
            execute_once(_create, "create_complete"),
            execute_once(_add_tags, "add_tags_complete"),
            execute_once(
                lambda p: self._apply_parameters(rds, p, {}, model.get("Parameters") or {}),
                "parameters_applied",
            ),
            lambda p: self._read(rds, p),
        )

    def read(
        self,
        request: ResourceRequest[RDSDBParameterGroupProperties],
    ) -> ProgressEvent[RDSDBParameterGroupProperties]:
        """
        Fetch resource information

        IAM permissions required:
          - rds:DescribeDBParameterGroups
          - rds:ListTagsForResource
        """
        progress = ProgressEvent.progress(request.desired_state, request.callback_context)
        return self._read(request.aws_client_factory.rds, progress)

    def update(
        self,
        request: ResourceRequest[RDSDBParameterGroupProperties],
    ) -> ProgressEvent[RDSDBParameterGroupProperties]:
        """
        Update a resource

        IAM permissions required:
          - rds:DescribeDBParameters
          - rds:ModifyDBParameterGroup
          - rds:ResetDBParameterGroup
          - rds:AddTagsToResource
          - rds:RemoveTagsFromResource
        """
        rds = request.aws_client_factory.rds
        model = request.desired_state
        previous = request.previous_state or {}

        if not model.get("DBParameterGroupName") and previous.get("DBParameterGroupName"):
            model["DBParameterGroupName"] = previous["DBParameterGroupName"]

        changed = [key for key in CREATE_ONLY_PROPERTIES if model.get(key) != previous.get(key)]
        if changed:
            raise NotUpdatableError(self.TYPE, changed)

        previous_tags = TagSet(
            system_tags=request.previous_system_tags,
            stack_tags=request.previous_stack_tags,
            resource_tags=resource_tags(previous),
        )
        desired_tags = TagSet(
            system_tags=request.system_tags,
            stack_tags=request.stack_tags,
            resource_tags=resource_tags(model),
        )

        return chain(
            ProgressEvent.progress(model, request.callback_context),
            execute_once(
                lambda p: self._apply_parameters(
                    rds, p, previous.get("Parameters") or {}, model.get("Parameters") or {}
                ),
                "parameters_applied",
            ),
            execute_once(
                lambda p: self._update_tags(rds, p, previous_tags, desired_tags),
                "update_tags_complete",
            ),
            lambda p: self._read(rds, p),
        )

    def delete(
        self,
        request: ResourceRequest[RDSDBParameterGroupProperties],
    ) -> ProgressEvent[RDSDBParameterGroupProperties]:
        """
        Delete a resource

        IAM permissions required:
          - rds:DeleteDBParameterGroup
        """
        rds = request.aws_client_factory.rds
        return chain(
            ProgressEvent.progress(request.desired_state, request.callback_context),
            lambda p: service_call(
                "rds:DeleteDBParameterGroup",
                p,
                translate_to_delete_db_parameter_group_request,
                rds.delete_db_parameter_group,
                self.handle_error,
            ),
            lambda p: ProgressEvent.success(None),
        )

    def list(
        self,
        request: ResourceRequest[RDSDBParameterGroupProperties],
    ) -> ProgressEvent[RDSDBParameterGroupProperties]:
        """
        List all parameter groups of the account, one page per invocation

        IAM permissions required:
          - rds:DescribeDBParameterGroups
        """
        rds = request.aws_client_factory.rds

        def _done(response: dict, model, context) -> ProgressEvent:
            models = [
                translate_from_db_parameter_group(group)
                for group in response.get("DBParameterGroups") or []
            ]
            return ProgressEvent.success_list(models, response.get("Marker"))

        return service_call(
            "rds:DescribeDBParameterGroups",
            ProgressEvent.progress(None, request.callback_context),
            lambda _: translate_to_list_db_parameter_groups_request(request.next_token),
            rds.describe_db_parameter_groups,
            self.handle_error,
            _done,
        )

    def handle_error(self, progress: ProgressEvent, error: Exception) -> ProgressEvent:
        return handle_exception(progress, error, self.error_rule_set)

    def _create_db_parameter_group(
        self, rds, progress: ProgressEvent, tags: TagSet
    ) -> ProgressEvent:
        def _done(response: dict, model, context: DBParameterGroupCallbackContext):
            context.db_parameter_group_arn = response["DBParameterGroup"]["DBParameterGroupArn"]
            return ProgressEvent.progress(model, context)

        return service_call(
            "rds:CreateDBParameterGroup",
            progress,
            lambda model: translate_to_create_db_parameter_group_request(model, tags),
            rds.create_db_parameter_group,
            self.handle_error,
            _done,
        )

    def _describe_db_parameter_group(self, rds, model: RDSDBParameterGroupProperties) -> dict:
        name = model.get("DBParameterGroupName")
        try:
            response = rds.describe_db_parameter_groups(
                **translate_to_describe_db_parameter_groups_request(model)
            )
        except ClientError as e:
            if get_error_code(e) == "DBParameterGroupNotFound":
                raise NotFoundError(self.TYPE, name) from e
            raise

        groups = response.get("DBParameterGroups") or []
        if not groups:
            raise NotFoundError(self.TYPE, name)
        return groups[0]

    def _read(self, rds, progress: ProgressEvent) -> ProgressEvent:
        model = progress.resource_model
        try:
            group = self._describe_db_parameter_group(rds, model)
            tags = rds.list_tags_for_resource(ResourceName=group["DBParameterGroupArn"])
        except Exception as e:
            return self.handle_error(progress, e)

        result = translate_from_db_parameter_group(group)
        # the API only knows the full parameter set of the family, keep the declared subset
        if model.get("Parameters") is not None:
            result["Parameters"] = model["Parameters"]
        result["Tags"] = tags.get("TagList") or []
        return ProgressEvent.success(result)

    def _fetch_current_parameters(self, rds, group_name: str) -> dict[str, dict]:
        paginator = rds.get_paginator("describe_db_parameters")
        current = {}
        for page in paginator.paginate(DBParameterGroupName=group_name):
            for parameter in page.get("Parameters") or []:
                current[parameter["ParameterName"]] = parameter
        return current

    def _apply_parameters(
        self,
        rds,
        progress: ProgressEvent,
        previous: dict[str, Any],
        desired: dict[str, Any],
    ) -> ProgressEvent:
        """
        Resets the parameters that are no longer declared and modifies the declared ones whose value
        differs from the current value of the group.
        """
        if not previous and not desired:
            return progress

        group_name = progress.resource_model["DBParameterGroupName"]
        try:
            current = self._fetch_current_parameters(rds, group_name)
            self._validate_parameters(desired, current)

            to_reset = [name for name in previous if name not in desired]
            to_modify = {
                name: value
                for name, value in desired.items()
                if current[name].get("ParameterValue") != str(value)
            }

            for names in chunked(to_reset, MAX_PARAMETERS_PER_REQUEST):
                LOG.debug("Resetting parameters %s of %s", names, group_name)
                rds.reset_db_parameter_group(
                    DBParameterGroupName=group_name,
                    Parameters=translate_to_reset_parameters(names, current),
                )
            for names in chunked(list(to_modify), MAX_PARAMETERS_PER_REQUEST):
                LOG.debug("Modifying parameters %s of %s", names, group_name)
                rds.modify_db_parameter_group(
                    DBParameterGroupName=group_name,
                    Parameters=translate_to_parameters(
                        {name: to_modify[name] for name in names}, current
                    ),
                )
        except Exception as e:
            return self.handle_error(progress, e)

        return progress

    def _validate_parameters(self, desired: dict[str, Any], current: dict[str, dict]) -> None:
        unknown = [name for name in desired if name not in current]
        if unknown:
            raise InvalidRequestError(f"Invalid / Unsupported DB Parameter: {', '.join(unknown)}")

        read_only = [
            name
            for name, value in desired.items()
            if not current[name].get("IsModifiable", True)
            and current[name].get("ParameterValue") != str(value)
        ]
        if read_only:
            raise InvalidRequestError(
                f"Invalid / Unmodifiable / Unsupported DB Parameter: {', '.join(read_only)}"
            )

    def _fetch_arn(self, rds, progress: ProgressEvent) -> ProgressEvent:
        try:
            group = self._describe_db_parameter_group(rds, progress.resource_model)
        except Exception as e:
            return self.handle_error(progress, e)

        progress.callback_context.db_parameter_group_arn = group["DBParameterGroupArn"]
        return progress

    def _update_tags(
        self, rds, progress: ProgressEvent, previous: TagSet, desired: TagSet
    ) -> ProgressEvent:
        return update_tags(
            progress,
            rds,
            previous,
            desired,
            best_effort_error_rule_set(self.error_rule_set, previous, desired),
            lambda context: context.db_parameter_group_arn,
            lambda p: self._fetch_arn(rds, p),
        )
