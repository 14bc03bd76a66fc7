"""resilient-fetch: resilient async HTTP requests.

One logical request runs through a composable chain of timeout, retry,
rate limiting and circuit breaking, and resolves to a ``ResponseEnvelope`` or
a classified ``FetchError``.
"""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_package_version

from resilient_fetch.client import (
    FetchBuilder,
    FetchClient,
    fetch,
    get_default_client,
    reset_default_client_for_testing,
)
from resilient_fetch.config import FetchSettings
from resilient_fetch.core.context import correlation_context
from resilient_fetch.core.errors import (
    CircuitBreakerError,
    ErrorKind,
    FetchError,
    HTTPResponseError,
    RateLimitError,
    RetryError,
    SchemaIssue,
    SchemaValidationError,
    TimeoutException,
    TransportError,
)
from resilient_fetch.core.hooks import LifecycleHooks
from resilient_fetch.core.request import RequestDescriptor, RequestInit
from resilient_fetch.core.resilience.models import (
    CircuitBreakerOptions,
    CircuitState,
    ClientStatus,
    ContainerOptions,
    RateLimitOptions,
    RequestOptions,
    RetryMode,
    RetryOptions,
    TimeoutOptions,
)
from resilient_fetch.core.response import ResponseEnvelope
from resilient_fetch.core.transport import HttpxTransport

try:
    __version__ = get_package_version("resilient-fetch")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    # Client
    "FetchBuilder",
    "FetchClient",
    "fetch",
    "get_default_client",
    "reset_default_client_for_testing",
    "FetchSettings",
    "correlation_context",
    "HttpxTransport",
    # Request / response
    "RequestDescriptor",
    "RequestInit",
    "ResponseEnvelope",
    "LifecycleHooks",
    # Options
    "CircuitBreakerOptions",
    "CircuitState",
    "ClientStatus",
    "ContainerOptions",
    "RateLimitOptions",
    "RequestOptions",
    "RetryMode",
    "RetryOptions",
    "TimeoutOptions",
    # Errors
    "CircuitBreakerError",
    "ErrorKind",
    "FetchError",
    "HTTPResponseError",
    "RateLimitError",
    "RetryError",
    "SchemaIssue",
    "SchemaValidationError",
    "TimeoutException",
    "TransportError",
]
