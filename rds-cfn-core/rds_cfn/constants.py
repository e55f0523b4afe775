from rds_cfn.version import __version__

VERSION = __version__

# default encoding used for all string conversions
DEFAULT_ENCODING = "utf-8"

# strings to indicate truthy/falsy values
TRUE_STRINGS = ("1", "true", "True")
FALSE_STRINGS = ("0", "false", "False")
# strings with valid log levels for RDS_CFN_LOG
LOG_LEVELS = ("trace", "debug", "info", "warn", "error", "warning")

# trace log level, configurable via $RDS_CFN_LOG
LOG_TRACE = "trace"
TRACE_LOG_LEVELS = [LOG_TRACE]

# stack name component used when generating physical resource names
STACK_NAME = "rds"

# default region if neither the payload nor the boto session provide one
AWS_REGION_US_EAST_1 = "us-east-1"

# CloudFormation resource type names
RESOURCE_TYPE_INTEGRATION = "AWS::RDS::Integration"
RESOURCE_TYPE_DB_PARAMETER_GROUP = "AWS::RDS::DBParameterGroup"
