"""Client for the CloudConvert file conversion API."""

from cloudconvert.api import conversion_types, convert
from cloudconvert.config import Configuration, default_config
from cloudconvert.errors import (
    CancelledByUser,
    CloudConvertError,
    InvalidState,
    OutputUnavailable,
    ServerRejected,
    TransportFailure,
)
from cloudconvert.process import ConversionJob, ConversionListener
from cloudconvert.utils.enums.job_status import JobStatus

__version__ = "1.0.0"


def set_api_key(api_key):
    """Set the API key of the process-wide configuration."""
    default_config.set_api_key(api_key)


__all__ = [
    "CancelledByUser",
    "CloudConvertError",
    "Configuration",
    "ConversionJob",
    "ConversionListener",
    "InvalidState",
    "JobStatus",
    "OutputUnavailable",
    "ServerRejected",
    "TransportFailure",
    "conversion_types",
    "convert",
    "default_config",
    "set_api_key",
]
