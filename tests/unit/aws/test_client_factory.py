from unittest.mock import MagicMock

from botocore.config import Config

from rds_cfn.aws.connect import ClientFactory, attribute_name_to_service_name


def test_attribute_name_to_service_name():
    assert attribute_name_to_service_name("rds") == "rds"
    assert attribute_name_to_service_name("resource_groups") == "resource-groups"
    assert attribute_name_to_service_name("lambda_") == "lambda"


def test_service_level_factory_passes_credentials():
    factory = ClientFactory(session=MagicMock())

    client = factory(
        region_name="eu-west-1",
        aws_access_key_id="AKID",
        aws_secret_access_key="secret",
        aws_session_token="token",
    ).rds

    factory._session.client.assert_called_once()
    kwargs = factory._session.client.call_args.kwargs
    assert kwargs["service_name"] == "rds"
    assert kwargs["region_name"] == "eu-west-1"
    assert kwargs["aws_access_key_id"] == "AKID"
    assert kwargs["aws_session_token"] == "token"
    assert isinstance(kwargs["config"], Config)
    assert client is factory._session.client.return_value


def test_clients_are_cached():
    factory = ClientFactory(session=MagicMock())

    first = factory(region_name="eu-west-1").rds
    second = factory(region_name="eu-west-1").rds

    assert first is second
    factory._session.client.assert_called_once()


def test_session_region_is_the_default():
    session = MagicMock()
    session.region_name = None
    factory = ClientFactory(session=session)

    factory.get_client("rds")

    assert session.client.call_args.kwargs["region_name"] == "us-east-1"
