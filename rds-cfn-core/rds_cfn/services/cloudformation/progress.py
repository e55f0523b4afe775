"""
Sequencing of handler steps.

A step is a callable that receives the current ``ProgressEvent`` and returns the next one. Steps are
chained, and the chain only proceeds while the events signal ``StepOutcome.CONTINUE``: the first
step that suspends (in-progress with a callback delay) or terminates (success or failure) ends the
invocation, and CloudFormation decides whether to call back with the returned context.
"""

import logging
from operator import attrgetter
from typing import Any, Callable, Optional, TypeVar

from rds_cfn import config
from rds_cfn.services.cloudformation.error_rules import (
    ErrorRuleSet,
    FailWith,
    Ignore,
    Retry,
    get_error_message,
)
from rds_cfn.services.cloudformation.resource_provider import (
    CallbackContext,
    HandlerErrorCode,
    ProgressEvent,
    StepOutcome,
)

LOG = logging.getLogger(__name__)

Properties = TypeVar("Properties")

Step = Callable[[ProgressEvent], ProgressEvent]


def handle_exception(
    progress: ProgressEvent, exception: Exception, rule_set: Optional[ErrorRuleSet]
) -> ProgressEvent:
    """
    Turns an error caught at a remote call into the event reported to CloudFormation, based on the
    classification of the given rule set.
    """
    model, context = progress.resource_model, progress.callback_context
    status = rule_set.classify(exception) if rule_set else None
    message = get_error_message(exception)

    match status:
        case Ignore():
            LOG.info("Ignoring error %s: %s", type(exception).__name__, message)
            return ProgressEvent.progress(model, context)
        case Retry(delay=delay):
            LOG.info("Retrying in %ss after %s: %s", delay, type(exception).__name__, message)
            return ProgressEvent.defer(model, context, delay, HandlerErrorCode.Throttling)
        case FailWith(error_code=error_code):
            log_method = LOG.exception if config.VERBOSE_ERRORS else LOG.warning
            log_method("Request failed with %s: %s", error_code.value, message)
            return ProgressEvent.failed(model, context, error_code, message)
        case _:
            LOG.warning("Unclassified error %s: %s", type(exception).__name__, message)
            return ProgressEvent.failed(model, context, HandlerErrorCode.InternalFailure, message)


class ProgressChain:
    """
    Threads a progress event through a sequence of steps::

        ProgressChain(ProgressEvent.progress(model, context)).then(create).then(read).event
    """

    def __init__(self, progress: ProgressEvent):
        self.event = progress

    def then(self, step: Step) -> "ProgressChain":
        if self.event.outcome is not StepOutcome.CONTINUE:
            return self

        LOG.debug("Running step %s", getattr(step, "__name__", step))
        self.event = step(self.event)
        return self


def chain(progress: ProgressEvent, *steps: Step) -> ProgressEvent:
    """Runs the given steps in order and stops at the first event that does not continue."""
    progress_chain = ProgressChain(progress)
    for step in steps:
        progress_chain.then(step)
    return progress_chain.event


def mark(flag: str) -> Callable[[CallbackContext], None]:
    def _mark(context: CallbackContext):
        setattr(context, flag, True)

    return _mark


def execute_once(
    step: Step,
    is_done: Callable[[CallbackContext], bool] | str,
    mark_done: Optional[Callable[[CallbackContext], None]] = None,
) -> Step:
    """
    Guards a step with a completion flag of the callback context, so that a re-invoked handler does
    not repeat it. The flag may be given as attribute name, or as getter and setter.

    The flag is set once the step has run, unless the step failed or asked to be retried.
    """
    if isinstance(is_done, str):
        flag = is_done
        is_done, mark_done = attrgetter(flag), mark(flag)

    def _execute_once(progress: ProgressEvent) -> ProgressEvent:
        context = progress.callback_context
        if is_done(context):
            LOG.debug("Skipping step %s, already completed", getattr(step, "__name__", step))
            return progress

        result = step(progress)
        if result.is_failed() or (result.is_in_progress() and result.error_code is not None):
            return result

        mark_done(result.callback_context or context)
        return result

    _execute_once.__name__ = f"once({getattr(step, '__name__', 'step')})"
    return _execute_once


def service_call(
    name: str,
    progress: ProgressEvent,
    translate: Callable[[Properties], dict],
    call: Callable[..., Any],
    handle_error: Callable[[ProgressEvent, Exception], ProgressEvent],
    done: Optional[Callable[[dict, Properties, CallbackContext], ProgressEvent]] = None,
) -> ProgressEvent:
    """
    Performs exactly one remote call on behalf of the given progress event: the model is translated
    into the request parameters, the call is made, and the response is handed to ``done`` (by default
    the chain simply continues). Any error is passed to ``handle_error`` to be classified.
    """
    model, context = progress.resource_model, progress.callback_context
    request = translate(model)
    LOG.debug("Invoking %s with %s", name, request)
    try:
        response = call(**request)
    except Exception as e:
        LOG.debug("%s failed: %s", name, e)
        return handle_error(progress, e)

    if done is None:
        return ProgressEvent.progress(model, context)
    return done(response, model, context)
