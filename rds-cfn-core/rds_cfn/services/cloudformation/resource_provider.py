from __future__ import annotations

import copy
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, ClassVar, Generic, Optional, Type, TypedDict, TypeVar

from plux import Plugin, PluginManager

from rds_cfn import config
from rds_cfn.aws.connect import ServiceLevelClientFactory, connect_to
from rds_cfn.utils.strings import long_uid

LOG = logging.getLogger(__name__)

Properties = TypeVar("Properties")


class OperationStatus(Enum):
    IN_PROGRESS = auto()
    SUCCESS = auto()
    FAILED = auto()


class HandlerErrorCode(str, Enum):
    NotUpdatable = "NotUpdatable"
    InvalidRequest = "InvalidRequest"
    AccessDenied = "AccessDenied"
    InvalidCredentials = "InvalidCredentials"
    AlreadyExists = "AlreadyExists"
    NotFound = "NotFound"
    ResourceConflict = "ResourceConflict"
    Throttling = "Throttling"
    ServiceLimitExceeded = "ServiceLimitExceeded"
    NotStabilized = "NotStabilized"
    GeneralServiceException = "GeneralServiceException"
    ServiceInternalError = "ServiceInternalError"
    NetworkFailure = "NetworkFailure"
    InternalFailure = "InternalFailure"
    InvalidTypeConfiguration = "InvalidTypeConfiguration"


class Action(Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LIST = "LIST"

    @classmethod
    def from_payload(cls, value: str) -> "Action":
        """Accepts both the handler contract names and the stack change types of a change set"""
        match value:
            case "Add":
                return cls.CREATE
            case "Modify" | "Dynamic":
                return cls.UPDATE
            case "Remove":
                return cls.DELETE
            case _:
                return cls(value.upper())


class StepOutcome(Enum):
    """How the step chain proceeds after a progress event has been produced."""

    CONTINUE = auto()
    SUSPEND = auto()
    TERMINAL = auto()


def _is_unset(value: Any) -> bool:
    # 0 and 0.0 are legitimate values, only None and False count as unset
    return value is None or value is False


@dataclass
class CallbackContext:
    """
    Base class of the records that are round-tripped by CloudFormation between two invocations of
    the same handler. Fields are monotonic: once a flag is set (or an optional value is known) it is
    never reset, so that steps guarded by a flag never run twice.
    """

    def __setattr__(self, key, value):
        current = self.__dict__.get(key)
        if not _is_unset(current) and _is_unset(value):
            raise ValueError(f"Callback context field {key} cannot be reset once set")
        super().__setattr__(key, value)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}

    @classmethod
    def from_dict(cls, data: Optional[dict]):
        data = data or {}
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in names})


@dataclass
class ProgressEvent(Generic[Properties]):
    status: OperationStatus
    resource_model: Optional[Properties] = None
    resource_models: Optional[list[Properties]] = None
    callback_context: Optional[CallbackContext] = None
    callback_delay_seconds: int = 0

    message: Optional[str] = None
    error_code: Optional[HandlerErrorCode] = None
    next_token: Optional[str] = None

    @classmethod
    def progress(
        cls, model: Optional[Properties], context: Optional[CallbackContext]
    ) -> ProgressEvent[Properties]:
        """An in-progress event that lets the next step of a chain run immediately."""
        return cls(OperationStatus.IN_PROGRESS, resource_model=model, callback_context=context)

    @classmethod
    def defer(
        cls,
        model: Optional[Properties],
        context: Optional[CallbackContext],
        callback_delay_seconds: int,
        error_code: Optional[HandlerErrorCode] = None,
    ) -> ProgressEvent[Properties]:
        """An in-progress event asking CloudFormation to re-invoke the handler after the given delay."""
        return cls(
            OperationStatus.IN_PROGRESS,
            resource_model=model,
            callback_context=context,
            callback_delay_seconds=callback_delay_seconds,
            error_code=error_code,
        )

    @classmethod
    def success(
        cls, model: Optional[Properties], context: Optional[CallbackContext] = None
    ) -> ProgressEvent[Properties]:
        return cls(OperationStatus.SUCCESS, resource_model=model, callback_context=context)

    @classmethod
    def success_list(
        cls, models: list[Properties], next_token: Optional[str] = None
    ) -> ProgressEvent[Properties]:
        return cls(OperationStatus.SUCCESS, resource_models=models, next_token=next_token)

    @classmethod
    def failed(
        cls,
        model: Optional[Properties],
        context: Optional[CallbackContext],
        error_code: HandlerErrorCode,
        message: Optional[str] = None,
    ) -> ProgressEvent[Properties]:
        return cls(
            OperationStatus.FAILED,
            resource_model=model,
            callback_context=context,
            error_code=error_code,
            message=message or f"Handler failed with error code {error_code.value}",
        )

    def is_failed(self) -> bool:
        return self.status == OperationStatus.FAILED

    def is_success(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    def is_in_progress(self) -> bool:
        return self.status == OperationStatus.IN_PROGRESS

    @property
    def outcome(self) -> StepOutcome:
        if self.status != OperationStatus.IN_PROGRESS:
            return StepOutcome.TERMINAL
        if self.callback_delay_seconds > 0:
            return StepOutcome.SUSPEND
        return StepOutcome.CONTINUE

    def to_dict(self) -> dict:
        """Serializes the event into the camel-cased form the handler contract expects."""
        result = {
            "status": self.status.name,
            "callbackDelaySeconds": self.callback_delay_seconds,
            "errorCode": self.error_code.value if self.error_code else None,
            "message": self.message,
            "resourceModel": self.resource_model,
            "resourceModels": self.resource_models,
            "callbackContext": self.callback_context.to_dict() if self.callback_context else None,
            "nextToken": self.next_token,
        }
        return {key: value for key, value in result.items() if value is not None}


class Credentials(TypedDict):
    accessKeyId: str
    secretAccessKey: str
    sessionToken: str


class ResourceProviderPayloadRequestData(TypedDict, total=False):
    logicalResourceId: str
    resourceProperties: Properties
    previousResourceProperties: Optional[Properties]
    callerCredentials: Credentials
    providerCredentials: Credentials
    systemTags: dict[str, str]
    previousSystemTags: dict[str, str]
    stackTags: dict[str, str]
    previousStackTags: dict[str, str]


class ResourceProviderPayload(TypedDict, total=False):
    callbackContext: dict
    stackId: str
    requestData: ResourceProviderPayloadRequestData
    resourceType: str
    resourceTypeVersion: str
    awsAccountId: str
    bearerToken: str
    clientRequestToken: str
    region: str
    action: str
    nextToken: Optional[str]


@dataclass
class ResourceRequest(Generic[Properties]):
    aws_client_factory: ServiceLevelClientFactory
    request_token: str
    stack_id: str
    account_id: str
    region_name: str
    action: Action

    desired_state: Properties

    logical_resource_id: str
    resource_type: str

    custom_context: dict = field(default_factory=dict)
    callback_context: Optional[CallbackContext] = None

    previous_state: Optional[Properties] = None
    system_tags: dict[str, str] = field(default_factory=dict)
    previous_system_tags: dict[str, str] = field(default_factory=dict)
    stack_tags: dict[str, str] = field(default_factory=dict)
    previous_stack_tags: dict[str, str] = field(default_factory=dict)
    next_token: Optional[str] = None


def convert_payload(payload: ResourceProviderPayload) -> ResourceRequest[Properties]:
    request_data = payload["requestData"]
    credentials = request_data.get("callerCredentials") or {}
    client_factory = connect_to(
        aws_access_key_id=credentials.get("accessKeyId"),
        aws_session_token=credentials.get("sessionToken"),
        aws_secret_access_key=credentials.get("secretAccessKey"),
        region_name=payload.get("region"),
    )
    rr = ResourceRequest(
        aws_client_factory=client_factory,
        request_token=(
            payload.get("clientRequestToken") or payload.get("bearerToken") or long_uid()
        ),
        stack_id=payload.get("stackId"),
        account_id=payload.get("awsAccountId"),
        region_name=payload.get("region"),
        action=Action.from_payload(payload["action"]),
        desired_state=request_data.get("resourceProperties") or {},
        logical_resource_id=request_data.get("logicalResourceId"),
        resource_type=payload["resourceType"],
        custom_context=payload.get("callbackContext") or {},
        system_tags=request_data.get("systemTags") or {},
        previous_system_tags=request_data.get("previousSystemTags") or {},
        stack_tags=request_data.get("stackTags") or {},
        previous_stack_tags=request_data.get("previousStackTags") or {},
        next_token=payload.get("nextToken"),
    )

    if previous_properties := request_data.get("previousResourceProperties"):
        rr.previous_state = previous_properties

    return rr


class CloudFormationResourceProviderPlugin(Plugin):
    """
    Base class for resource provider plugins.
    """

    namespace = "rds_cfn.cloudformation.resource_providers"


class ResourceProvider(Generic[Properties]):
    """
    This provides a base class onto which resource specific providers are built. Subclasses declare
    the resource type and the callback context record they round-trip, implement one method per
    action, and override ``handle_error`` to classify the errors they expect.
    """

    TYPE: ClassVar[str]
    CALLBACK_CONTEXT: ClassVar[Type[CallbackContext]] = CallbackContext

    def handle(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        if request.callback_context is None:
            request.callback_context = self.CALLBACK_CONTEXT.from_dict(request.custom_context)

        LOG.debug(
            "Handling %s of %s %s", request.action.value, self.TYPE, request.logical_resource_id
        )
        try:
            match request.action:
                case Action.CREATE:
                    return self.create(request)
                case Action.READ:
                    return self.read(request)
                case Action.UPDATE:
                    return self.update(request)
                case Action.DELETE:
                    return self.delete(request)
                case Action.LIST:
                    return self.list(request)
        except NotImplementedError:
            raise
        except Exception as e:
            progress = ProgressEvent.progress(request.desired_state, request.callback_context)
            return self.handle_error(progress, e)

        raise NotImplementedError(request.action)

    def handle_error(
        self, progress: ProgressEvent[Properties], error: Exception
    ) -> ProgressEvent[Properties]:
        """Turns an error that escaped an action into a failure event."""
        LOG.warning("Unhandled error in %s: %s", self.TYPE, error)
        return ProgressEvent.failed(
            progress.resource_model,
            progress.callback_context,
            HandlerErrorCode.InternalFailure,
            str(error) or type(error).__name__,
        )

    def create(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError

    def read(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError

    def update(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError

    def delete(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError

    def list(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError


class NoResourceProvider(Exception):
    pass


class ResourceProviderExecutor:
    """
    Drives resource providers locally the way CloudFormation does: the provider is re-invoked with
    the returned model and callback context until it reports a terminal status.
    """

    def __init__(self, sleep: Callable[[float], Any] = time.sleep):
        self._sleep = sleep

    def deploy_loop(
        self,
        raw_payload: ResourceProviderPayload,
        max_iterations: int = config.MAX_HANDLER_INVOCATIONS,
    ) -> ProgressEvent[Properties]:
        payload = copy.deepcopy(raw_payload)
        resource_provider = self.load_resource_provider(payload["resourceType"])

        for current_iteration in range(max_iterations):
            event = self.execute_action(resource_provider, payload)

            match event.status:
                case OperationStatus.FAILED | OperationStatus.SUCCESS:
                    return event
                case OperationStatus.IN_PROGRESS:
                    # update the shared state
                    payload["callbackContext"] = (
                        event.callback_context.to_dict() if event.callback_context else {}
                    )
                    if event.resource_model is not None:
                        payload["requestData"]["resourceProperties"] = event.resource_model

                    LOG.debug(
                        "Resource %s still in progress after invocation %s, waiting %ss",
                        payload["requestData"].get("logicalResourceId"),
                        current_iteration + 1,
                        event.callback_delay_seconds,
                    )
                    self._sleep(event.callback_delay_seconds)
                case invalid_status:
                    raise ValueError(
                        f"Invalid OperationStatus ({invalid_status}) returned for resource {payload['requestData'].get('logicalResourceId')} (type {payload['resourceType']})"
                    )

        raise TimeoutError(
            f"Resource handling for resource {payload['requestData'].get('logicalResourceId')} (type {payload['resourceType']}) did not finish after {max_iterations} invocations."
        )

    def execute_action(
        self, resource_provider: ResourceProvider, raw_payload: ResourceProviderPayload
    ) -> ProgressEvent[Properties]:
        request = convert_payload(raw_payload)
        return resource_provider.handle(request)

    def load_resource_provider(self, resource_type: str) -> ResourceProvider:
        try:
            plugin = plugin_manager.load(resource_type)
            return plugin.factory()
        except ValueError:
            # could not find a plugin for that name
            pass
        except Exception:
            if config.VERBOSE_ERRORS:
                LOG.warning(
                    "Failed to load resource type %s as a ResourceProvider.",
                    resource_type,
                    exc_info=LOG.isEnabledFor(logging.DEBUG),
                )

        raise NoResourceProvider(resource_type)


plugin_manager = PluginManager(CloudFormationResourceProviderPlugin.namespace)
