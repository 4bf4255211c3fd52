"""
Probing configuration.

Derives the runtime configuration used by the watcher and every probe from
the loaded environment. All time values are in seconds.
"""

from dataclasses import dataclass

from espoke.env import Env, TimeParser


MIN_CONSUL_PERIOD_SECONDS = 60.0
MIN_PROBE_PERIOD_SECONDS = 20.0
MIN_CLEANING_PERIOD_SECONDS = 240.0
REQUEST_TIMEOUT_MARGIN_SECONDS = 2.0
MILLISECONDS_IN_MINUTE = 60_000


@dataclass(slots=True)
class ProbingConfig:
    """
    Configuration shared by the watcher and the cluster probes.

    Periods are not validated on construction so tests can drive probes on
    short schedules; `enforce_floors` applies the production minimums.
    """

    # Consul
    consul_api: str = "127.0.0.1:8500"
    consul_token: str | None = None
    consul_period_seconds: float = 120.0

    # Scheduling
    probe_period_seconds: float = 30.0
    restore_period_seconds: float = 86400.0
    cleaning_period_seconds: float = 600.0
    latency_probe_rate_per_min: int = 120

    # Elasticsearch / OpenSearch
    elasticsearch_consul_tag: str = "maintenance-elasticsearch"
    elasticsearch_endpoint_suffix: str = ".service.{dc}.foo.bar"
    elasticsearch_endpoint_port: int = 0
    elasticsearch_user: str | None = None
    elasticsearch_password: str | None = None
    elasticsearch_durability_index: str = ".espoke.durability"
    elasticsearch_latency_index: str = ".espoke.latency"
    elasticsearch_restore_index: str = ".espoke.restore"
    elasticsearch_number_of_durability_documents: int = 100000
    elasticsearch_durability_bulk_size: int = 1000
    elasticsearch_restore: bool = False
    elasticsearch_restore_snapshot_repository: str = "ceph_s3"
    elasticsearch_restore_snapshot_policy: str = "probe-snapshot-sm"
    opensearch: bool = True

    # Kibana
    kibana_consul_tag: str = "maintenance-kibana"

    # Process
    metrics_port: int = 2112

    @property
    def request_timeout_seconds(self) -> float:
        return max(
            self.probe_period_seconds - REQUEST_TIMEOUT_MARGIN_SECONDS,
            REQUEST_TIMEOUT_MARGIN_SECONDS,
        )

    @property
    def restore_timeout_seconds(self) -> float:
        return max(
            self.restore_period_seconds - REQUEST_TIMEOUT_MARGIN_SECONDS,
            self.request_timeout_seconds,
        )

    @property
    def latency_period_seconds(self) -> float:
        rate = max(self.latency_probe_rate_per_min, 1)
        return (MILLISECONDS_IN_MINUTE // rate) / 1000

    @property
    def credentials(self) -> tuple[str, str] | None:
        if self.elasticsearch_user is None:
            return None

        return (self.elasticsearch_user, self.elasticsearch_password or "")

    def enforce_floors(self) -> list[str]:
        """
        Clamp refresh periods up to their minimums.

        Returns:
            One warning message per clamped period.
        """
        warnings: list[str] = []

        if self.consul_period_seconds < MIN_CONSUL_PERIOD_SECONDS:
            warnings.append(
                "Refreshing discovery more than once a minute is not allowed, fallback to 60s"
            )
            self.consul_period_seconds = MIN_CONSUL_PERIOD_SECONDS

        if self.probe_period_seconds < MIN_PROBE_PERIOD_SECONDS:
            warnings.append(
                "Probing elasticsearch nodes more than 3 times a minute is not allowed, fallback to 20s"
            )
            self.probe_period_seconds = MIN_PROBE_PERIOD_SECONDS

        if self.cleaning_period_seconds < MIN_CLEANING_PERIOD_SECONDS:
            warnings.append(
                "Cleaning metrics faster than every 4 minutes is not allowed, fallback to 240s"
            )
            self.cleaning_period_seconds = MIN_CLEANING_PERIOD_SECONDS

        return warnings


def create_probing_config_from_env(env: Env) -> ProbingConfig:
    """
    Create the probing configuration from environment variables.

    Args:
        env: Loaded environment

    Returns:
        ProbingConfig with durations parsed to seconds
    """
    parser = TimeParser()

    return ProbingConfig(
        consul_api=env.ESPOKE_CONSUL_API,
        consul_token=env.ESPOKE_CONSUL_TOKEN,
        consul_period_seconds=parser.parse(env.ESPOKE_CONSUL_PERIOD),
        probe_period_seconds=parser.parse(env.ESPOKE_PROBE_PERIOD),
        restore_period_seconds=parser.parse(env.ESPOKE_RESTORE_PERIOD),
        cleaning_period_seconds=parser.parse(env.ESPOKE_CLEANING_PERIOD),
        latency_probe_rate_per_min=env.ESPOKE_LATENCY_PROBE_RATE_PER_MIN,
        elasticsearch_consul_tag=env.ESPOKE_ELASTICSEARCH_CONSUL_TAG,
        elasticsearch_endpoint_suffix=env.ESPOKE_ELASTICSEARCH_ENDPOINT_SUFFIX,
        elasticsearch_endpoint_port=env.ESPOKE_ELASTICSEARCH_ENDPOINT_PORT,
        elasticsearch_user=env.ESPOKE_ELASTICSEARCH_USER,
        elasticsearch_password=env.ESPOKE_ELASTICSEARCH_PASSWORD,
        elasticsearch_durability_index=env.ESPOKE_ELASTICSEARCH_DURABILITY_INDEX,
        elasticsearch_latency_index=env.ESPOKE_ELASTICSEARCH_LATENCY_INDEX,
        elasticsearch_restore_index=env.ESPOKE_ELASTICSEARCH_RESTORE_INDEX,
        elasticsearch_number_of_durability_documents=env.ESPOKE_ELASTICSEARCH_NUMBER_OF_DURABILITY_DOCUMENTS,
        elasticsearch_durability_bulk_size=env.ESPOKE_ELASTICSEARCH_DURABILITY_BULK_SIZE,
        elasticsearch_restore=env.ESPOKE_ELASTICSEARCH_RESTORE,
        elasticsearch_restore_snapshot_repository=env.ESPOKE_ELASTICSEARCH_RESTORE_SNAPSHOT_REPOSITORY,
        elasticsearch_restore_snapshot_policy=env.ESPOKE_ELASTICSEARCH_RESTORE_SNAPSHOT_POLICY,
        opensearch=env.ESPOKE_OPENSEARCH,
        kibana_consul_tag=env.ESPOKE_KIBANA_CONSUL_TAG,
        metrics_port=env.ESPOKE_METRICS_PORT,
    )
