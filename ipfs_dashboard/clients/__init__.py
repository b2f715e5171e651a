"""HTTP clients for the IPFS daemons, the cluster API and Prometheus."""

from .cluster import ClusterClient  # noqa: F401
from .http import JSONHTTPClient, UpstreamError  # noqa: F401
from .ipfs import IPFSNodeClient  # noqa: F401
from .prometheus import PrometheusClient  # noqa: F401
