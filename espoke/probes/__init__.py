from .cluster_probe import ClusterProbe as ClusterProbe
from .dashboard_probe import DashboardProbe as DashboardProbe
from .documents import (
    DATA as DATA,
    ProbeDocument as ProbeDocument,
    durability_document as durability_document,
    latency_document as latency_document,
)
from .search_probe import SearchClusterProbe as SearchClusterProbe
from .signals import CancellationSignal as CancellationSignal
from .state import (
    ProbeState as ProbeState,
    VALID_TRANSITIONS as VALID_TRANSITIONS,
)
from .timers import ProbeTimers as ProbeTimers
from .versions import (
    DashboardStatusSchema as DashboardStatusSchema,
    SearchResponseSchema as SearchResponseSchema,
    parse_major_version as parse_major_version,
    restore_supported as restore_supported,
)
