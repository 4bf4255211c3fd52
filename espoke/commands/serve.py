import asyncio
import signal
import sys

import click
import pydantic
import uvloop

from espoke.config import ProbingConfig, create_probing_config_from_env
from espoke.discovery import ConsulRegistry
from espoke.env import Env, load_env
from espoke.errors import RegistryError
from espoke.logging import Logger, LoggingConfig
from espoke.logging.espoke_logging_models import ServeFatal, ServeInfo, ServeWarning
from espoke.metrics import MetricsSink
from espoke.watcher import Watcher


@click.command(help="Discover clusters from Consul and probe them, exposing Prometheus metrics.")
@click.option("--env-file", default=None, type=str, help="Dotenv file to load settings from (default .env when present).")
@click.option("--consul-api", "-a", default=None, type=str, help="Consul API address (host:port).")
@click.option("--consul-token", default=None, type=str, help="Consul ACL token.")
@click.option("--consul-period", default=None, type=str, help="Nodes discovery update interval (e.g. 120s).")
@click.option("--probe-period", default=None, type=str, help="Elasticsearch/Kibana nodes probing interval (e.g. 30s).")
@click.option("--restore-period", default=None, type=str, help="Snapshot restore verification interval (e.g. 24h).")
@click.option("--cleaning-period", default=None, type=str, help="Prometheus metrics cleaning interval for vanished nodes.")
@click.option("--latency-probe-rate-per-min", default=None, type=int, help="Latency probes per minute.")
@click.option("--elasticsearch-consul-tag", default=None, type=str, help="Consul tag of Elasticsearch clusters.")
@click.option("--elasticsearch-endpoint-suffix", default=None, type=str, help="Suffix appended to the service name to build the cluster endpoint, {dc} is replaced by the datacenter.")
@click.option("--elasticsearch-endpoint-port", default=None, type=int, help="Port overriding the registry port of cluster endpoints (0 keeps it).")
@click.option("--elasticsearch-user", default=None, type=str, help="Elasticsearch username.")
@click.option("--elasticsearch-password", default=None, type=str, help="Elasticsearch password.")
@click.option("--elasticsearch-durability-index", default=None, type=str, help="Index used to verify durability.")
@click.option("--elasticsearch-latency-index", default=None, type=str, help="Index used to measure latency.")
@click.option("--elasticsearch-restore-index", default=None, type=str, help="Index the durability snapshot is restored to.")
@click.option("--elasticsearch-number-of-durability-documents", default=None, type=int, help="Number of documents kept in the durability index.")
@click.option("--elasticsearch-durability-bulk-size", default=None, type=int, help="Documents per bulk request when filling the durability index.")
@click.option("--elasticsearch-restore/--no-elasticsearch-restore", default=None, help="Verify snapshot restore of the durability index.")
@click.option("--elasticsearch-restore-snapshot-repository", default=None, type=str, help="Snapshot repository to restore from.")
@click.option("--elasticsearch-restore-snapshot-policy", default=None, type=str, help="Snapshot policy whose newest snapshot is restored.")
@click.option("--opensearch/--no-opensearch", default=None, help="Locate snapshots through the repository listing instead of the SLM API.")
@click.option("--kibana-consul-tag", default=None, type=str, help="Consul tag of Kibana clusters.")
@click.option("--metrics-port", "-p", default=None, type=int, help="Port of the Prometheus /metrics endpoint.")
@click.option("--log-level", "-l", default=None, type=click.Choice(["trace", "debug", "info", "warn", "error", "critical", "fatal"]), help="Log level.")
@click.option("--log-output", default=None, type=click.Choice(["stdout", "stderr"]), help="Console stream logs are written to.")
@click.option("--log-file", default=None, type=str, help="JSON file logs are appended to instead of the console.")
def serve(
    env_file: str | None,
    consul_api: str | None,
    consul_token: str | None,
    consul_period: str | None,
    probe_period: str | None,
    restore_period: str | None,
    cleaning_period: str | None,
    latency_probe_rate_per_min: int | None,
    elasticsearch_consul_tag: str | None,
    elasticsearch_endpoint_suffix: str | None,
    elasticsearch_endpoint_port: int | None,
    elasticsearch_user: str | None,
    elasticsearch_password: str | None,
    elasticsearch_durability_index: str | None,
    elasticsearch_latency_index: str | None,
    elasticsearch_restore_index: str | None,
    elasticsearch_number_of_durability_documents: int | None,
    elasticsearch_durability_bulk_size: int | None,
    elasticsearch_restore: bool | None,
    elasticsearch_restore_snapshot_repository: str | None,
    elasticsearch_restore_snapshot_policy: str | None,
    opensearch: bool | None,
    kibana_consul_tag: str | None,
    metrics_port: int | None,
    log_level: str | None,
    log_output: str | None,
    log_file: str | None,
):
    override = {
        "ESPOKE_CONSUL_API": consul_api,
        "ESPOKE_CONSUL_TOKEN": consul_token,
        "ESPOKE_CONSUL_PERIOD": consul_period,
        "ESPOKE_PROBE_PERIOD": probe_period,
        "ESPOKE_RESTORE_PERIOD": restore_period,
        "ESPOKE_CLEANING_PERIOD": cleaning_period,
        "ESPOKE_LATENCY_PROBE_RATE_PER_MIN": latency_probe_rate_per_min,
        "ESPOKE_ELASTICSEARCH_CONSUL_TAG": elasticsearch_consul_tag,
        "ESPOKE_ELASTICSEARCH_ENDPOINT_SUFFIX": elasticsearch_endpoint_suffix,
        "ESPOKE_ELASTICSEARCH_ENDPOINT_PORT": elasticsearch_endpoint_port,
        "ESPOKE_ELASTICSEARCH_USER": elasticsearch_user,
        "ESPOKE_ELASTICSEARCH_PASSWORD": elasticsearch_password,
        "ESPOKE_ELASTICSEARCH_DURABILITY_INDEX": elasticsearch_durability_index,
        "ESPOKE_ELASTICSEARCH_LATENCY_INDEX": elasticsearch_latency_index,
        "ESPOKE_ELASTICSEARCH_RESTORE_INDEX": elasticsearch_restore_index,
        "ESPOKE_ELASTICSEARCH_NUMBER_OF_DURABILITY_DOCUMENTS": elasticsearch_number_of_durability_documents,
        "ESPOKE_ELASTICSEARCH_DURABILITY_BULK_SIZE": elasticsearch_durability_bulk_size,
        "ESPOKE_ELASTICSEARCH_RESTORE": elasticsearch_restore,
        "ESPOKE_ELASTICSEARCH_RESTORE_SNAPSHOT_REPOSITORY": elasticsearch_restore_snapshot_repository,
        "ESPOKE_ELASTICSEARCH_RESTORE_SNAPSHOT_POLICY": elasticsearch_restore_snapshot_policy,
        "ESPOKE_OPENSEARCH": opensearch,
        "ESPOKE_KIBANA_CONSUL_TAG": kibana_consul_tag,
        "ESPOKE_METRICS_PORT": metrics_port,
        "ESPOKE_LOG_LEVEL": log_level,
        "ESPOKE_LOG_OUTPUT": log_output,
        "ESPOKE_LOG_FILE": log_file,
    }

    try:
        env = load_env(env_file=env_file, override=override)
        config = create_probing_config_from_env(env)

    except (pydantic.ValidationError, ValueError) as err:
        raise click.ClickException(f"Invalid configuration: {err}") from err

    sys.exit(uvloop.run(run_server(env, config)))


def create_registry(config: ProbingConfig) -> ConsulRegistry:
    return ConsulRegistry(
        config.consul_api,
        token=config.consul_token,
        timeout=config.request_timeout_seconds,
    )


async def run_server(env: Env, config: ProbingConfig) -> int:
    """
    Run the prober until SIGINT or SIGTERM.

    Returns:
        The process exit code, 1 on a fatal startup error.
    """
    LoggingConfig().update(
        log_level=env.ESPOKE_LOG_LEVEL,
        log_output=env.ESPOKE_LOG_OUTPUT,
    )

    logger = Logger()
    if env.ESPOKE_LOG_FILE:
        logger.configure(path=env.ESPOKE_LOG_FILE)

    for warning in config.enforce_floors():
        await logger.log(ServeWarning(message=warning))

    metrics = MetricsSink()

    try:
        metrics.start_endpoint(config.metrics_port)

    except OSError as err:
        await logger.log(
            ServeFatal(message=f"Unable to start metrics endpoint on port {config.metrics_port}: {err}")
        )
        await logger.close()
        return 1

    await logger.log(
        ServeInfo(message=f"Prometheus /metrics endpoint listening on port {config.metrics_port}")
    )

    registry = create_registry(config)
    watcher = Watcher(config, registry, metrics, logger)

    exit_code = 0

    try:
        await watcher.bootstrap()

    except RegistryError as err:
        await logger.log(
            ServeFatal(message=f"Impossible to list services from Consul during bootstrap: {err}")
        )
        exit_code = 1

    if exit_code == 0:
        exit_code = await _watch_until_stopped(watcher, logger)

    await watcher.shutdown()
    await registry.close()
    metrics.close()

    await logger.log(ServeInfo(message="Espoke stopped"))
    await logger.close()

    return exit_code


async def _watch_until_stopped(watcher: Watcher, logger: Logger) -> int:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    for signame in ("SIGINT", "SIGTERM"):
        loop.add_signal_handler(getattr(signal, signame), stop.set)

    watch_task = asyncio.create_task(watcher.watch_forever())
    stop_task = asyncio.create_task(stop.wait())

    await logger.log(ServeInfo(message="Watching registry for clusters to probe"))

    try:
        await asyncio.wait(
            {watch_task, stop_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

    finally:
        for signame in ("SIGINT", "SIGTERM"):
            loop.remove_signal_handler(getattr(signal, signame))

    exit_code = 0
    if watch_task.done() and not watch_task.cancelled() and watch_task.exception():
        await logger.log(
            ServeFatal(message=f"Watcher stopped unexpectedly: {watch_task.exception()!r}")
        )
        exit_code = 1

    for task in (watch_task, stop_task):
        task.cancel()

    await asyncio.gather(watch_task, stop_task, return_exceptions=True)

    await logger.log(ServeInfo(message="Shutting down probes"))

    return exit_code
