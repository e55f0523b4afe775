from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from rds_cfn.config import HandlerConfig
from rds_cfn.services.cloudformation.resource_provider import Action, ResourceRequest
from rds_cfn.utils.backoff import ConstantBackoff

TEST_AWS_ACCESS_KEY_ID = "test"
TEST_AWS_SECRET_ACCESS_KEY = "test"
TEST_AWS_REGION_NAME = "us-east-1"
TEST_AWS_ACCOUNT_ID = "000000000000"
TEST_STACK_ID = f"arn:aws:cloudformation:{TEST_AWS_REGION_NAME}:{TEST_AWS_ACCOUNT_ID}:stack/my-stack/5f1b3e30-5e8d-11ee-8c99-0242ac120002"


@pytest.fixture(autouse=True)
def set_boto_test_credentials_and_region(monkeypatch):
    """
    Automatically sets the default credentials and region for all unit tests.
    """
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", TEST_AWS_ACCESS_KEY_ID)
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", TEST_AWS_SECRET_ACCESS_KEY)
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_AWS_REGION_NAME)


@pytest.fixture
def client_error():
    """Factory for the errors the RDS client raises."""

    def _create(code: str, message: str = "", operation_name: str = "Operation") -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": message}}, operation_name)

    return _create


@pytest.fixture
def handler_config():
    return HandlerConfig(
        probing_enabled=True,
        callback_delay=6,
        create_update_delay=ConstantBackoff(delay=30, timeout=8 * 60 * 60),
        delete_delay=ConstantBackoff(delay=30, timeout=30 * 60),
    )


@pytest.fixture
def rds_client():
    return MagicMock()


@pytest.fixture
def create_request(rds_client):
    """Creates handler requests whose client factory hands out the mocked RDS client."""

    def _create(
        action: Action, desired_state: dict, resource_type: str = "", **kwargs
    ) -> ResourceRequest:
        client_factory = MagicMock()
        client_factory.rds = rds_client
        return ResourceRequest(
            aws_client_factory=client_factory,
            request_token="b3a1c6a0-1d1e-4b1e-9d3e-3c1d5b6f7a8b",
            stack_id=TEST_STACK_ID,
            account_id=TEST_AWS_ACCOUNT_ID,
            region_name=TEST_AWS_REGION_NAME,
            action=action,
            desired_state=desired_state,
            logical_resource_id="MyResource",
            resource_type=resource_type,
            **kwargs,
        )

    return _create
