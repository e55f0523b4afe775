from dataclasses import dataclass
from typing import Optional
from unittest.mock import MagicMock, patch

import pytest

from rds_cfn.services.cloudformation import resource_provider
from rds_cfn.services.cloudformation.error_rules import ErrorRuleSet, fail_with
from rds_cfn.services.cloudformation.progress import handle_exception
from rds_cfn.services.cloudformation.resource_provider import (
    Action,
    CallbackContext,
    HandlerErrorCode,
    NoResourceProvider,
    OperationStatus,
    ProgressEvent,
    ResourceProvider,
    ResourceProviderExecutor,
    ResourceRequest,
    StepOutcome,
    convert_payload,
)


@dataclass
class CounterContext(CallbackContext):
    invocations: int = 0
    started: bool = False


@dataclass
class TimedContext(CallbackContext):
    started_at: Optional[float] = None


class CountingProvider(ResourceProvider[dict]):
    """Needs three invocations to create a resource."""

    TYPE = "Test::Counting::Resource"
    CALLBACK_CONTEXT = CounterContext

    def create(self, request: ResourceRequest[dict]) -> ProgressEvent[dict]:
        context = request.callback_context
        context.invocations += 1
        context.started = True
        if context.invocations < 3:
            return ProgressEvent.defer(request.desired_state, context, 5)
        return ProgressEvent.success({**request.desired_state, "Id": "counted"})


class FailingProvider(ResourceProvider[dict]):
    TYPE = "Test::Failing::Resource"
    error_rule_set = ErrorRuleSet().with_error_classes(
        fail_with(HandlerErrorCode.InvalidRequest), KeyError
    )

    def create(self, request):
        return request.desired_state["Missing"]

    def handle_error(self, progress, error):
        return handle_exception(progress, error, self.error_rule_set)


class UnclassifiedFailingProvider(ResourceProvider[dict]):
    TYPE = "Test::Failing::Resource"

    def create(self, request):
        raise RuntimeError("boom")


def payload(action: str = "CREATE", **kwargs) -> dict:
    return {
        "action": action,
        "awsAccountId": "000000000000",
        "bearerToken": "token-1",
        "region": "us-east-1",
        "resourceType": "Test::Counting::Resource",
        "stackId": "arn:aws:cloudformation:us-east-1:000000000000:stack/s/1",
        "requestData": {
            "logicalResourceId": "MyResource",
            "resourceProperties": {"Name": "foo"},
            "callerCredentials": {
                "accessKeyId": "test",
                "secretAccessKey": "test",
                "sessionToken": "session",
            },
            "systemTags": {"aws:cloudformation:stack-name": "s"},
            "stackTags": {"team": "data"},
            **kwargs,
        },
    }


class TestProgressEvent:
    def test_outcomes(self):
        assert ProgressEvent.progress({}, None).outcome == StepOutcome.CONTINUE
        assert ProgressEvent.defer({}, None, 6).outcome == StepOutcome.SUSPEND
        assert ProgressEvent.success({}).outcome == StepOutcome.TERMINAL
        assert (
            ProgressEvent.failed({}, None, HandlerErrorCode.NotFound).outcome
            == StepOutcome.TERMINAL
        )

    def test_success_carries_no_error(self):
        event = ProgressEvent.success({"Name": "foo"})

        assert event.error_code is None
        assert event.message is None
        assert event.callback_delay_seconds == 0

    def test_failed_always_has_a_message(self):
        event = ProgressEvent.failed({}, None, HandlerErrorCode.NotFound)

        assert event.message
        assert event.callback_delay_seconds == 0
        assert event.resource_models is None

    def test_to_dict(self):
        context = CounterContext(invocations=2, started=True)
        event = ProgressEvent.defer({"Name": "foo"}, context, 6, HandlerErrorCode.Throttling)

        assert event.to_dict() == {
            "status": "IN_PROGRESS",
            "callbackDelaySeconds": 6,
            "errorCode": "Throttling",
            "resourceModel": {"Name": "foo"},
            "callbackContext": {"invocations": 2, "started": True},
        }

    def test_list_to_dict(self):
        event = ProgressEvent.success_list([{"Name": "a"}, {"Name": "b"}], "next")

        assert event.to_dict() == {
            "status": "SUCCESS",
            "callbackDelaySeconds": 0,
            "resourceModels": [{"Name": "a"}, {"Name": "b"}],
            "nextToken": "next",
        }


class TestCallbackContext:
    def test_round_trip_ignores_unknown_keys(self):
        context = CounterContext.from_dict({"invocations": 1, "started": True, "unknown": "x"})

        assert context == CounterContext(invocations=1, started=True)
        assert CounterContext.from_dict(context.to_dict()) == context
        assert CounterContext.from_dict(None) == CounterContext()

    def test_flags_are_monotonic(self):
        context = CounterContext()
        context.started = True

        with pytest.raises(ValueError):
            context.started = False

    def test_zero_counts_as_a_value(self):
        context = TimedContext()
        context.started_at = 0.0

        with pytest.raises(ValueError):
            context.started_at = None
        assert context.started_at == 0.0


@pytest.mark.parametrize(
    "value,expected",
    [
        ("CREATE", Action.CREATE),
        ("Add", Action.CREATE),
        ("update", Action.UPDATE),
        ("Modify", Action.UPDATE),
        ("Dynamic", Action.UPDATE),
        ("Remove", Action.DELETE),
        ("READ", Action.READ),
        ("LIST", Action.LIST),
    ],
)
def test_action_from_payload(value, expected):
    assert Action.from_payload(value) == expected


def test_action_from_payload_rejects_unknown_values():
    with pytest.raises(ValueError):
        Action.from_payload("Import")


class TestConvertPayload:
    def test_convert(self):
        request = convert_payload(
            payload(
                "Modify",
                previousResourceProperties={"Name": "bar"},
                previousStackTags={"team": "ops"},
            )
        )

        assert request.action == Action.UPDATE
        assert request.desired_state == {"Name": "foo"}
        assert request.previous_state == {"Name": "bar"}
        assert request.system_tags == {"aws:cloudformation:stack-name": "s"}
        assert request.stack_tags == {"team": "data"}
        assert request.previous_stack_tags == {"team": "ops"}
        assert request.previous_system_tags == {}
        assert request.request_token == "token-1"
        assert request.logical_resource_id == "MyResource"
        assert request.custom_context == {}
        assert request.callback_context is None

    def test_client_request_token_is_preferred(self):
        raw = payload()
        raw["clientRequestToken"] = "client-token-1"

        assert convert_payload(raw).request_token == "client-token-1"

    def test_callback_context_is_passed_on(self):
        raw = payload()
        raw["callbackContext"] = {"invocations": 2}

        request = convert_payload(raw)

        assert request.custom_context == {"invocations": 2}


class TestResourceProvider:
    def test_handle_builds_callback_context(self):
        request = convert_payload(payload())

        event = CountingProvider().handle(request)

        assert isinstance(request.callback_context, CounterContext)
        assert event.callback_context.invocations == 1

    def test_unexpected_errors_are_classified(self):
        event = FailingProvider().handle(convert_payload(payload()))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.InvalidRequest

    def test_unclassified_errors_fail_with_internal_failure(self):
        event = UnclassifiedFailingProvider().handle(convert_payload(payload()))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.InternalFailure
        assert event.message == "boom"

    def test_missing_action_raises(self):
        with pytest.raises(NotImplementedError):
            CountingProvider().handle(convert_payload(payload("DELETE")))


class TestResourceProviderExecutor:
    @pytest.fixture
    def load_plugin(self):
        with patch.object(resource_provider, "plugin_manager") as plugin_manager:

            def _load(provider_class):
                plugin = MagicMock()
                plugin.factory = provider_class
                plugin_manager.load.return_value = plugin
                return plugin_manager

            yield _load

    def test_deploy_loop_re_invokes_until_terminal(self, load_plugin):
        load_plugin(CountingProvider)
        sleep = MagicMock()

        event = ResourceProviderExecutor(sleep=sleep).deploy_loop(payload())

        assert event.status == OperationStatus.SUCCESS
        assert event.resource_model == {"Name": "foo", "Id": "counted"}
        assert sleep.call_count == 2
        sleep.assert_called_with(5)

    def test_deploy_loop_gives_up(self, load_plugin):
        load_plugin(CountingProvider)

        with pytest.raises(TimeoutError):
            ResourceProviderExecutor(sleep=MagicMock()).deploy_loop(payload(), max_iterations=2)

    def test_unknown_resource_type(self, load_plugin):
        plugin_manager = load_plugin(CountingProvider)
        plugin_manager.load.side_effect = ValueError("no plugin")

        with pytest.raises(NoResourceProvider):
            ResourceProviderExecutor().load_resource_provider("Test::Unknown::Resource")
