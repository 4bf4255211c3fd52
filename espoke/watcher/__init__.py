from .watcher import (
    DASHBOARD_SYSTEM as DASHBOARD_SYSTEM,
    SEARCH_SYSTEM as SEARCH_SYSTEM,
    ProbeHandle as ProbeHandle,
    Watcher as Watcher,
    diff_clusters as diff_clusters,
)
