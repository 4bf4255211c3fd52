from __future__ import annotations

from typing import Callable, Dict, Literal, Union

from pydantic import BaseModel, StrictBool, StrictInt, StrictStr

PrimaryType = Union[str, int, float, bytes, bool]


def to_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Env(BaseModel):
    # Consul
    ESPOKE_CONSUL_API: StrictStr = "127.0.0.1:8500"
    ESPOKE_CONSUL_TOKEN: StrictStr | None = None
    ESPOKE_CONSUL_PERIOD: StrictStr = "120s"

    # Scheduling
    ESPOKE_PROBE_PERIOD: StrictStr = "30s"
    ESPOKE_RESTORE_PERIOD: StrictStr = "24h"
    ESPOKE_CLEANING_PERIOD: StrictStr = "600s"
    ESPOKE_LATENCY_PROBE_RATE_PER_MIN: StrictInt = 120

    # Elasticsearch / OpenSearch
    ESPOKE_ELASTICSEARCH_CONSUL_TAG: StrictStr = "maintenance-elasticsearch"
    ESPOKE_ELASTICSEARCH_ENDPOINT_SUFFIX: StrictStr = ".service.{dc}.foo.bar"
    ESPOKE_ELASTICSEARCH_ENDPOINT_PORT: StrictInt = 0
    ESPOKE_ELASTICSEARCH_USER: StrictStr | None = None
    ESPOKE_ELASTICSEARCH_PASSWORD: StrictStr | None = None
    ESPOKE_ELASTICSEARCH_DURABILITY_INDEX: StrictStr = ".espoke.durability"
    ESPOKE_ELASTICSEARCH_LATENCY_INDEX: StrictStr = ".espoke.latency"
    ESPOKE_ELASTICSEARCH_RESTORE_INDEX: StrictStr = ".espoke.restore"
    ESPOKE_ELASTICSEARCH_NUMBER_OF_DURABILITY_DOCUMENTS: StrictInt = 100000
    ESPOKE_ELASTICSEARCH_DURABILITY_BULK_SIZE: StrictInt = 1000
    ESPOKE_ELASTICSEARCH_RESTORE: StrictBool = False
    ESPOKE_ELASTICSEARCH_RESTORE_SNAPSHOT_REPOSITORY: StrictStr = "ceph_s3"
    ESPOKE_ELASTICSEARCH_RESTORE_SNAPSHOT_POLICY: StrictStr = "probe-snapshot-sm"
    ESPOKE_OPENSEARCH: StrictBool = True

    # Kibana
    ESPOKE_KIBANA_CONSUL_TAG: StrictStr = "maintenance-kibana"

    # Process
    ESPOKE_METRICS_PORT: StrictInt = 2112
    ESPOKE_LOG_LEVEL: Literal[
        "trace", "debug", "info", "warn", "error", "critical", "fatal"
    ] = "info"
    ESPOKE_LOG_OUTPUT: Literal["stdout", "stderr"] = "stdout"
    ESPOKE_LOG_FILE: StrictStr | None = None

    @classmethod
    def types_map(cls) -> Dict[str, Callable[[str], PrimaryType]]:
        return {
            "ESPOKE_CONSUL_API": str,
            "ESPOKE_CONSUL_TOKEN": str,
            "ESPOKE_CONSUL_PERIOD": str,
            "ESPOKE_PROBE_PERIOD": str,
            "ESPOKE_RESTORE_PERIOD": str,
            "ESPOKE_CLEANING_PERIOD": str,
            "ESPOKE_LATENCY_PROBE_RATE_PER_MIN": int,
            "ESPOKE_ELASTICSEARCH_CONSUL_TAG": str,
            "ESPOKE_ELASTICSEARCH_ENDPOINT_SUFFIX": str,
            "ESPOKE_ELASTICSEARCH_ENDPOINT_PORT": int,
            "ESPOKE_ELASTICSEARCH_USER": str,
            "ESPOKE_ELASTICSEARCH_PASSWORD": str,
            "ESPOKE_ELASTICSEARCH_DURABILITY_INDEX": str,
            "ESPOKE_ELASTICSEARCH_LATENCY_INDEX": str,
            "ESPOKE_ELASTICSEARCH_RESTORE_INDEX": str,
            "ESPOKE_ELASTICSEARCH_NUMBER_OF_DURABILITY_DOCUMENTS": int,
            "ESPOKE_ELASTICSEARCH_DURABILITY_BULK_SIZE": int,
            "ESPOKE_ELASTICSEARCH_RESTORE": to_bool,
            "ESPOKE_ELASTICSEARCH_RESTORE_SNAPSHOT_REPOSITORY": str,
            "ESPOKE_ELASTICSEARCH_RESTORE_SNAPSHOT_POLICY": str,
            "ESPOKE_OPENSEARCH": to_bool,
            "ESPOKE_KIBANA_CONSUL_TAG": str,
            "ESPOKE_METRICS_PORT": int,
            "ESPOKE_LOG_LEVEL": str,
            "ESPOKE_LOG_OUTPUT": str,
            "ESPOKE_LOG_FILE": str,
        }
