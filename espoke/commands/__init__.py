import click

from .serve import serve


@click.group(help="Whitebox prober for Elasticsearch/OpenSearch and Kibana clusters.")
def cli():
    pass


cli.add_command(serve)
