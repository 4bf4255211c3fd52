from .discovery import (
    discover_clusters as discover_clusters,
    discover_nodes as discover_nodes,
    resolve_cluster_endpoint as resolve_cluster_endpoint,
)
from .models import (
    CatalogEntry as CatalogEntry,
    HealthEntry as HealthEntry,
    MonitoredCluster as MonitoredCluster,
    MonitoredNode as MonitoredNode,
    NodeIdentity as NodeIdentity,
)
from .registry import (
    ConsulRegistry as ConsulRegistry,
    ServiceRegistry as ServiceRegistry,
)
from .tags import (
    cluster_name_from_tags as cluster_name_from_tags,
    scheme_from_tags as scheme_from_tags,
    value_from_tags as value_from_tags,
)
