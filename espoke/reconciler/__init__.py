from .known_nodes import KnownNodes as KnownNodes
