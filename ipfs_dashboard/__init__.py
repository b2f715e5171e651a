"""Health aggregation for the IPFS storage nodes and cluster behind the admin dashboard."""

from .config import DashboardConfig  # noqa: F401
from .runtime import DashboardRuntime  # noqa: F401
