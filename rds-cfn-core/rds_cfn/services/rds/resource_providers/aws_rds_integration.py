import logging
from dataclasses import dataclass
from typing import Optional, TypedDict

from botocore.exceptions import ClientError

from rds_cfn import config
from rds_cfn.config import HandlerConfig
from rds_cfn.constants import RESOURCE_TYPE_INTEGRATION, STACK_NAME
from rds_cfn.services.cloudformation.error_rules import (
    ErrorRuleSet,
    conditional,
    fail_with,
    get_error_code,
    get_error_message,
    retry,
)
from rds_cfn.services.cloudformation.exceptions import NotFoundError, NotUpdatableError
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
from rds_cfn.services.cloudformation.stabilization import StatusPoller, stabilize
from rds_cfn.services.rds.commons import DEFAULT_ERROR_RULE_SET
from rds_cfn.services.rds.tagging import TagSet, create_with_tagging_fallback, update_tags
from rds_cfn.services.rds.translator import (
    integration_identifier,
    resource_tags,
    translate_from_describe_integrations,
    translate_from_integration,
    translate_to_create_integration_request,
    translate_to_delete_integration_request,
    translate_to_describe_integration_request,
    translate_to_list_integrations_request,
    translate_to_modify_integration_request,
)
from rds_cfn.utils.backoff import ConstantBackoff
from rds_cfn.utils.strings import is_blank

LOG = logging.getLogger(__name__)

INTEGRATION_NAME_MAX_LENGTH = 63

CREATE_ONLY_PROPERTIES = ["SourceArn", "TargetArn", "KMSKeyId", "AdditionalEncryptionContext"]

# the integration passes through these statuses on its way to "active"
INTEGRATION_VALID_CREATING_STATUSES = ("creating", "active", "modifying", "syncing")
INTEGRATION_STABILIZED_STATUSES = ("active",)

# the target warehouse is busy, the same request succeeds later
CONFLICT_OPERATION_RETRIABLE_MESSAGE = (
    "because another operation is in progress for the Amazon Redshift data warehouse specified "
    "by the Amazon Resource Name (ARN). Try again after the current operation completes."
)
INVALID_STATE_RETRIABLE_MESSAGE = (
    "because it is not in a valid state. Wait until the integration is in a valid state and try again."
)


class RDSIntegrationProperties(TypedDict, total=False):
    SourceArn: Optional[str]
    TargetArn: Optional[str]
    IntegrationName: Optional[str]
    IntegrationArn: Optional[str]
    KMSKeyId: Optional[str]
    AdditionalEncryptionContext: Optional[dict[str, str]]
    Description: Optional[str]
    DataFilter: Optional[str]
    CreateTime: Optional[str]
    Tags: Optional[list[dict]]


@dataclass
class IntegrationCallbackContext(CallbackContext):
    create_complete: bool = False
    add_tags_complete: bool = False
    modify_complete: bool = False
    update_tags_complete: bool = False
    delete_complete: bool = False
    integration_arn: Optional[str] = None
    stabilization_started_at: Optional[float] = None


def retry_if_message_contains(text: str, delay: int):
    """Retries the request if the error message contains ``text``, otherwise fails with a conflict."""

    def _resolve(error: Exception):
        if text in get_error_message(error):
            return retry(delay)
        return fail_with(HandlerErrorCode.ResourceConflict)

    return conditional(_resolve)


def integration_error_rule_set(callback_delay: int) -> ErrorRuleSet:
    return (
        ErrorRuleSet.extend(DEFAULT_ERROR_RULE_SET)
        .with_error_codes(
            fail_with(HandlerErrorCode.AlreadyExists), "IntegrationAlreadyExistsFault"
        )
        .with_error_codes(fail_with(HandlerErrorCode.NotFound), "IntegrationNotFoundFault")
        .with_error_codes(
            fail_with(HandlerErrorCode.ServiceLimitExceeded), "IntegrationQuotaExceededFault"
        )
        .with_error_codes(fail_with(HandlerErrorCode.AccessDenied), "KMSKeyNotAccessibleFault")
        .with_error_codes(
            retry_if_message_contains(CONFLICT_OPERATION_RETRIABLE_MESSAGE, callback_delay),
            "IntegrationConflictOperationFault",
        )
        .with_error_codes(
            retry_if_message_contains(INVALID_STATE_RETRIABLE_MESSAGE, callback_delay),
            "InvalidIntegrationStateFault",
        )
    )


INTEGRATION_ERROR_RULE_SET = integration_error_rule_set(config.CALLBACK_DELAY_SECONDS)


class RDSIntegrationProvider(ResourceProvider[RDSIntegrationProperties]):
    TYPE = RESOURCE_TYPE_INTEGRATION
    CALLBACK_CONTEXT = IntegrationCallbackContext

    def __init__(self, handler_config: Optional[HandlerConfig] = None):
        self.handler_config = handler_config or HandlerConfig()
        self.error_rule_set = integration_error_rule_set(self.handler_config.callback_delay)
        self.identifier_factory = IdentifierFactory(
            STACK_NAME, "integration", INTEGRATION_NAME_MAX_LENGTH
        )

    def create(
        self,
        request: ResourceRequest[RDSIntegrationProperties],
    ) -> ProgressEvent[RDSIntegrationProperties]:
        """
        Create a new resource.

        Primary identifier fields:
          - /properties/IntegrationArn

        Required properties:
          - SourceArn
          - TargetArn

        Create-only properties:
          - /properties/SourceArn
          - /properties/TargetArn
          - /properties/KMSKeyId
          - /properties/AdditionalEncryptionContext

        Read-only properties:
          - /properties/IntegrationArn
          - /properties/CreateTime

        IAM permissions required:
          - rds:CreateIntegration
          - rds:DescribeIntegrations
          - rds:AddTagsToResource
          - kms:CreateGrant
          - kms:DescribeKey
          - redshift:CreateInboundIntegration
        """
        rds = request.aws_client_factory.rds
        tags = TagSet(
            system_tags=request.system_tags,
            stack_tags=request.stack_tags,
            resource_tags=resource_tags(request.desired_state),
        )

        def _set_default_name(progress: ProgressEvent) -> ProgressEvent:
            model = progress.resource_model
            if is_blank(model.get("IntegrationName")):
                model["IntegrationName"] = self.identifier_factory.new_identifier(
                    request.stack_id, request.logical_resource_id, request.request_token
                )
            return progress

        def _create(progress: ProgressEvent) -> ProgressEvent:
            result = safe_create(
                lambda model: translate_from_integration(self._describe_integration(rds, model)),
                lambda p: create_with_tagging_fallback(
                    lambda p_, tag_set: self._create_integration(rds, p_, tag_set), p, tags
                ),
                progress,
                self.TYPE,
                progress.resource_model.get("IntegrationName"),
                probing_enabled=self.handler_config.probing_enabled,
            )
            context = result.callback_context
            if context.integration_arn is None and result.resource_model.get("IntegrationArn"):
                context.integration_arn = result.resource_model["IntegrationArn"]
            return result

        def _add_tags(progress: ProgressEvent) -> ProgressEvent:
            return self._update_tags(rds, progress, TagSet.empty(), tags.without_system_tags())

        return chain(
            ProgressEvent.progress(request.desired_state, request.callback_context),
            _set_default_name,
            execute_once(_create, "create_complete"),
            execute_once(_add_tags, "add_tags_complete"),
            lambda p: self._stabilize(rds, p, self.handler_config.create_update_delay),
            lambda p: self._read(rds, p),
        )

    def read(
        self,
        request: ResourceRequest[RDSIntegrationProperties],
    ) -> ProgressEvent[RDSIntegrationProperties]:
        """
        Fetch resource information

        IAM permissions required:
          - rds:DescribeIntegrations
        """
        progress = ProgressEvent.progress(request.desired_state, request.callback_context)
        return self._read(request.aws_client_factory.rds, progress)

    def update(
        self,
        request: ResourceRequest[RDSIntegrationProperties],
    ) -> ProgressEvent[RDSIntegrationProperties]:
        """
        Update a resource

        IAM permissions required:
          - rds:ModifyIntegration
          - rds:DescribeIntegrations
          - rds:AddTagsToResource
          - rds:RemoveTagsFromResource
        """
        rds = request.aws_client_factory.rds
        model = request.desired_state
        previous = request.previous_state or {}

        changed = [key for key in CREATE_ONLY_PROPERTIES if model.get(key) != previous.get(key)]
        if changed:
            raise NotUpdatableError(self.TYPE, changed)

        for key in ("IntegrationArn", "IntegrationName"):
            if not model.get(key) and previous.get(key):
                model[key] = previous[key]

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

        def _modify(progress: ProgressEvent) -> ProgressEvent:
            modify_request = translate_to_modify_integration_request(previous, progress.resource_model)
            if len(modify_request) == 1:
                LOG.debug("No updatable integration properties changed, skipping modify")
                return progress
            return service_call(
                "rds:ModifyIntegration",
                progress,
                lambda _: modify_request,
                rds.modify_integration,
                self.handle_error,
            )

        return chain(
            ProgressEvent.progress(model, request.callback_context),
            execute_once(_modify, "modify_complete"),
            lambda p: self._stabilize(rds, p, self.handler_config.create_update_delay),
            execute_once(
                lambda p: self._update_tags(rds, p, previous_tags, desired_tags),
                "update_tags_complete",
            ),
            lambda p: self._read(rds, p),
        )

    def delete(
        self,
        request: ResourceRequest[RDSIntegrationProperties],
    ) -> ProgressEvent[RDSIntegrationProperties]:
        """
        Delete a resource

        IAM permissions required:
          - rds:DeleteIntegration
          - rds:DescribeIntegrations
        """
        rds = request.aws_client_factory.rds

        def _delete(progress: ProgressEvent) -> ProgressEvent:
            return service_call(
                "rds:DeleteIntegration",
                progress,
                translate_to_delete_integration_request,
                rds.delete_integration,
                self.handle_error,
            )

        def _stabilize_deleted(progress: ProgressEvent) -> ProgressEvent:
            return stabilize(
                progress,
                lambda model: self._is_deleted(rds, model),
                self.handler_config.delete_delay,
                self.handle_error,
                self.TYPE,
            )

        return chain(
            ProgressEvent.progress(request.desired_state, request.callback_context),
            execute_once(_delete, "delete_complete"),
            _stabilize_deleted,
            lambda p: ProgressEvent.success(None),
        )

    def list(
        self,
        request: ResourceRequest[RDSIntegrationProperties],
    ) -> ProgressEvent[RDSIntegrationProperties]:
        """
        List all integrations of the account, one page per invocation

        IAM permissions required:
          - rds:DescribeIntegrations
        """
        rds = request.aws_client_factory.rds

        def _done(response: dict, model, context) -> ProgressEvent:
            models = [
                translate_from_integration(integration)
                for integration in response.get("Integrations") or []
            ]
            return ProgressEvent.success_list(models, response.get("Marker"))

        return service_call(
            "rds:DescribeIntegrations",
            ProgressEvent.progress(None, request.callback_context),
            lambda _: translate_to_list_integrations_request(request.next_token),
            rds.describe_integrations,
            self.handle_error,
            _done,
        )

    def handle_error(self, progress: ProgressEvent, error: Exception) -> ProgressEvent:
        return handle_exception(progress, error, self.error_rule_set)

    def _create_integration(self, rds, progress: ProgressEvent, tags: TagSet) -> ProgressEvent:
        def _done(response: dict, model: RDSIntegrationProperties, context) -> ProgressEvent:
            arn = response.get("IntegrationArn")
            context.integration_arn = arn
            return ProgressEvent.defer(
                {**model, "IntegrationArn": arn}, context, self.handler_config.callback_delay
            )

        return service_call(
            "rds:CreateIntegration",
            progress,
            lambda model: translate_to_create_integration_request(model, tags),
            rds.create_integration,
            self.handle_error,
            _done,
        )

    def _describe_integration(self, rds, model: RDSIntegrationProperties) -> dict:
        """Returns the API shape of the integration of the given model, raises ``NotFoundError`` if there is none."""
        identifier = integration_identifier(model)
        try:
            response = rds.describe_integrations(**translate_to_describe_integration_request(model))
        except ClientError as e:
            if get_error_code(e) == "IntegrationNotFoundFault":
                raise NotFoundError(self.TYPE, identifier) from e
            raise

        integrations = response.get("Integrations") or []
        if not integrations:
            raise NotFoundError(self.TYPE, identifier)
        return integrations[0]

    def _read(self, rds, progress: ProgressEvent) -> ProgressEvent:
        try:
            integration = self._describe_integration(rds, progress.resource_model)
        except Exception as e:
            return self.handle_error(progress, e)

        return ProgressEvent.success(translate_from_integration(integration))

    def _fetch_arn(self, rds, progress: ProgressEvent) -> ProgressEvent:
        def _done(response: dict, model, context: IntegrationCallbackContext) -> ProgressEvent:
            integration = translate_from_describe_integrations(response)
            if integration is None:
                return ProgressEvent.failed(
                    model,
                    context,
                    HandlerErrorCode.NotFound,
                    str(NotFoundError(self.TYPE, integration_identifier(model))),
                )
            context.integration_arn = integration["IntegrationArn"]
            return ProgressEvent.progress(model, context)

        return service_call(
            "rds:DescribeIntegrations",
            progress,
            translate_to_describe_integration_request,
            rds.describe_integrations,
            self.handle_error,
            _done,
        )

    def _update_tags(
        self, rds, progress: ProgressEvent, previous: TagSet, desired: TagSet
    ) -> ProgressEvent:
        # tagging errors of integrations are never ignored
        return update_tags(
            progress,
            rds,
            previous,
            desired,
            self.error_rule_set,
            lambda context: context.integration_arn,
            lambda p: self._fetch_arn(rds, p),
        )

    def _stabilize(self, rds, progress: ProgressEvent, backoff: ConstantBackoff) -> ProgressEvent:
        poller = StatusPoller(
            lambda model: self._describe_integration(rds, model).get("Status"),
            stabilized_statuses=INTEGRATION_STABILIZED_STATUSES,
            valid_statuses=INTEGRATION_VALID_CREATING_STATUSES,
            resource_type=self.TYPE,
        )
        return stabilize(
            progress,
            lambda model: poller.is_stabilized(model, integration_identifier(model)),
            backoff,
            self.handle_error,
            self.TYPE,
        )

    def _is_deleted(self, rds, model: RDSIntegrationProperties) -> bool:
        try:
            integration = self._describe_integration(rds, model)
        except NotFoundError:
            return True
        LOG.debug(
            "Integration %s still exists in status %s",
            integration_identifier(model),
            integration.get("Status"),
        )
        return False
