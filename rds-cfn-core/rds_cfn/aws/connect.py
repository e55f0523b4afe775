"""
Client stack of the resource handlers.

Handlers never create boto clients themselves; they receive a ``ServiceLevelClientFactory`` that is
preseeded with the caller credentials of the current request and hands out cached clients.
"""

import logging
import threading
from functools import lru_cache
from typing import TYPE_CHECKING, Optional

from boto3.session import Session
from botocore.client import BaseClient
from botocore.config import Config

from rds_cfn import config as rds_cfn_config
from rds_cfn.constants import AWS_REGION_US_EAST_1, VERSION

if TYPE_CHECKING:
    from mypy_boto3_rds import RDSClient

LOG = logging.getLogger(__name__)


def attribute_name_to_service_name(attribute_name):
    """
    Converts a python-compatible attribute name to the boto service name
    :param attribute_name: Python compatible attribute name using the following replacements:
                            a) Add an underscore suffix `_` to any reserved Python keyword (PEP-8).
                            b) Replace any dash `-` with an underscore `_`
    :return: the boto service name
    """
    if attribute_name.endswith("_"):
        attribute_name = attribute_name[:-1]
    return attribute_name.replace("_", "-")


class ServiceLevelClientFactory:
    """
    A service level client factory, preseeded with parameters for the boto3 client creation.
    Will create any service client with parameters already provided by the ClientFactory.
    """

    if TYPE_CHECKING:
        rds: "RDSClient"

    def __init__(
        self, *, factory: "ClientFactory", client_creation_params: dict[str, str | Config | None]
    ):
        self._factory = factory
        self._client_creation_params = client_creation_params

    def get_client(self, service: str):
        return self._factory.get_client(service_name=service, **self._client_creation_params)

    def __getattr__(self, service: str):
        if service.startswith("__"):
            raise AttributeError(service)
        return self.get_client(attribute_name_to_service_name(service))


class ClientFactory:
    """
    Factory to build the AWS clients.

    Boto client creation is resource intensive. This class caches all Boto
    clients it creates and must be used instead of directly using boto lib.
    """

    def __init__(self, session: Session = None, config: Config = None):
        """
        :param session: Session to be used for client creation. Will create a new session if not provided.
        :param config: Config used as default for client creation.
        """
        self._config: Config = config or Config(
            retries={"max_attempts": rds_cfn_config.BOTO_MAX_ATTEMPTS, "mode": "standard"},
            user_agent_extra=f"rds-cfn-providers/{VERSION}",
        )
        self._session: Session = session or Session()
        self._create_client_lock = threading.RLock()

    def __call__(
        self,
        *,
        region_name: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        endpoint_url: str = None,
        config: Config = None,
    ) -> ServiceLevelClientFactory:
        """
        Get back an object which lets you select the service you want to access with the given attributes

        :param region_name: Name of the AWS region to be associated with the client
            If set to None, loads from botocore session.
        :param aws_access_key_id: Access key to use for the client.
            If set to None, loads from botocore session.
        :param aws_secret_access_key: Secret key to use for the client.
            If set to None, loads from botocore session.
        :param aws_session_token: Session token to use for the client.
            Not being used if not set.
        :param endpoint_url: Full endpoint URL to be used by the client.
        :param config: Boto config for advanced use.
        :return: Service Region Client Creator
        """
        params = {
            "region_name": region_name,
            "aws_access_key_id": aws_access_key_id,
            "aws_secret_access_key": aws_secret_access_key,
            "aws_session_token": aws_session_token,
            "endpoint_url": endpoint_url,
            "config": config,
        }
        return ServiceLevelClientFactory(factory=self, client_creation_params=params)

    def get_client(
        self,
        service_name: str,
        region_name: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        config: Optional[Config] = None,
    ) -> BaseClient:
        return self._get_client(
            service_name=service_name,
            region_name=region_name or self._get_session_region(),
            endpoint_url=endpoint_url,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            aws_session_token=aws_session_token,
            config=config or self._config,
        )

    # TODO @lru_cache here keeps a reference to `self`, factories are module level singletons for now
    @lru_cache(maxsize=256)
    def _get_client(
        self,
        service_name: str,
        region_name: str,
        endpoint_url: Optional[str],
        aws_access_key_id: Optional[str],
        aws_secret_access_key: Optional[str],
        aws_session_token: Optional[str],
        config: Config,
    ) -> BaseClient:
        """
        Returns a boto3 client with the given configuration.
        This is a cached call, so modifications to the used client will affect others.
        Client creation is behind a lock as it is not generally thread safe.
        """
        with self._create_client_lock:
            LOG.debug("Creating %s client for region %s", service_name, region_name)
            return self._session.client(
                service_name=service_name,
                region_name=region_name,
                endpoint_url=endpoint_url,
                aws_access_key_id=aws_access_key_id,
                aws_secret_access_key=aws_secret_access_key,
                aws_session_token=aws_session_token,
                config=config.merge(self._config),
            )

    def _get_session_region(self) -> str:
        """
        Return the AWS region as set in the Boto session, falling back to us-east-1.
        """
        return self._session.region_name or AWS_REGION_US_EAST_1


connect_to = ClientFactory()
