"""
Exception taxonomy for espoke.

Errors are raised where a failure is detected and caught at the probe or
watcher boundary, where they are logged and counted.
"""


class EspokeError(Exception):
    """Base class for every error raised by espoke."""


class RegistryError(EspokeError):
    """The service registry was unreachable or returned an unusable answer."""


class ClusterRequestError(EspokeError):
    """
    A request against a monitored cluster failed, timed out or returned a
    non-success status.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        cluster: str,
        index: str | None = None,
        document_id: str | None = None,
        status: int | None = None,
    ) -> None:
        self.operation = operation
        self.cluster = cluster
        self.index = index
        self.document_id = document_id
        self.status = status

        context = f"operation={operation} cluster={cluster}"
        if index:
            context += f" index={index}"

        if document_id:
            context += f" document_id={document_id}"

        if status is not None:
            context += f" status={status}"

        super().__init__(f"{message} ({context})")


class ResponseParseError(ClusterRequestError):
    """A monitored cluster answered with a body of unexpected shape."""


class ProbePreparationError(EspokeError):
    """A probe could not complete its preparation phase."""


class InvalidProbeTransition(EspokeError):
    """A probe was asked to move between two unconnected states."""


class RestoreError(EspokeError):
    """A step of the snapshot restore sequence failed."""
