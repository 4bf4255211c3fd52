"""
espoke: whitebox prober for Elasticsearch/OpenSearch clusters and their
Kibana front-ends, discovered through Consul.
"""

__version__ = "0.1.0"
