from .node_client import NodeClient as NodeClient
from .search_cluster_client import SearchClusterClient as SearchClusterClient
