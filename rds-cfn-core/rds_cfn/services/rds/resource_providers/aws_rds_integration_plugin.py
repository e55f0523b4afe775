from typing import Optional, Type

from rds_cfn.services.cloudformation.resource_provider import (
    CloudFormationResourceProviderPlugin,
    ResourceProvider,
)


class RDSIntegrationProviderPlugin(CloudFormationResourceProviderPlugin):
    name = "AWS::RDS::Integration"

    def __init__(self):
        self.factory: Optional[Type[ResourceProvider]] = None

    def load(self):
        from rds_cfn.services.rds.resource_providers.aws_rds_integration import (
            RDSIntegrationProvider,
        )

        self.factory = RDSIntegrationProvider
