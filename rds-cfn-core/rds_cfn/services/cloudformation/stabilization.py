import logging
import time
from enum import Enum, auto
from typing import Callable, Collection, Optional, TypeVar

from rds_cfn.services.cloudformation.exceptions import NotStabilizedError
from rds_cfn.services.cloudformation.resource_provider import (
    CallbackContext,
    HandlerErrorCode,
    ProgressEvent,
)
from rds_cfn.utils.backoff import ConstantBackoff

LOG = logging.getLogger(__name__)

Properties = TypeVar("Properties")


class StabilizationState(Enum):
    CREATING_VALID = auto()
    CREATING_INVALID = auto()
    STABILIZED = auto()


class StatusPoller:
    """
    Classifies the remote status of a resource while it is being created or modified.

    A status is either the stabilized one, one of the statuses the resource passes through on its way
    there, or anything else, which means the resource will never get there on its own.
    """

    def __init__(
        self,
        fetch_status: Callable[[Properties], str],
        stabilized_statuses: Collection[str],
        valid_statuses: Collection[str],
        resource_type: str,
    ):
        self.fetch_status = fetch_status
        self.stabilized_statuses = set(stabilized_statuses)
        self.valid_statuses = set(valid_statuses) | self.stabilized_statuses
        self.resource_type = resource_type

    def classify(self, status: Optional[str]) -> StabilizationState:
        if status in self.stabilized_statuses:
            return StabilizationState.STABILIZED
        if status in self.valid_statuses:
            return StabilizationState.CREATING_VALID
        return StabilizationState.CREATING_INVALID

    def is_stabilized(self, model: Properties, identifier: Optional[str] = None) -> bool:
        status = self.fetch_status(model)
        state = self.classify(status)
        LOG.debug("%s %s is in status %s (%s)", self.resource_type, identifier, status, state.name)
        if state is StabilizationState.CREATING_INVALID:
            raise NotStabilizedError(
                self.resource_type, identifier, f"status {status} cannot complete the operation"
            )
        return state is StabilizationState.STABILIZED


def stabilize(
    progress: ProgressEvent[Properties],
    is_stabilized: Callable[[Properties], bool],
    backoff: ConstantBackoff,
    handle_error: Callable[[ProgressEvent, Exception], ProgressEvent],
    resource_type: str,
    now: Callable[[], float] = time.time,
) -> ProgressEvent[Properties]:
    """
    Polls the stabilization condition once. The chain continues when the resource is stabilized;
    otherwise the handler asks to be re-invoked after the delay of the backoff policy, until the
    policy's timeout (counted from the first poll, which is recorded in the callback context)
    expires and the operation fails with ``NotStabilized``.
    """
    model, context = progress.resource_model, progress.callback_context
    started_at = get_stabilization_start(context)
    if started_at is None:
        context.stabilization_started_at = now()
    elif backoff.is_expired(started_at, now()):
        LOG.warning("%s did not stabilize within %ss", resource_type, backoff.timeout)
        return ProgressEvent.failed(
            model,
            context,
            HandlerErrorCode.NotStabilized,
            f"Resource of type '{resource_type}' did not stabilize within {int(backoff.timeout)} seconds",
        )

    try:
        stabilized = is_stabilized(model)
    except Exception as e:
        return handle_error(progress, e)

    if stabilized:
        return ProgressEvent.progress(model, context)
    return ProgressEvent.defer(model, context, int(backoff.next_backoff()))


def get_stabilization_start(context: CallbackContext) -> Optional[float]:
    return getattr(context, "stabilization_started_at", None)
