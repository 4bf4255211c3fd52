from .models import Entry, LogLevel


class ServeInfo(Entry, kw_only=True):
    level: LogLevel = LogLevel.INFO


class ServeWarning(Entry, kw_only=True):
    level: LogLevel = LogLevel.WARN


class ServeFatal(Entry, kw_only=True):
    level: LogLevel = LogLevel.FATAL


class DiscoveryDebug(Entry, kw_only=True):
    service: str
    level: LogLevel = LogLevel.DEBUG


class DiscoveryError(Entry, kw_only=True):
    service: str
    level: LogLevel = LogLevel.ERROR


class WatcherDebug(Entry, kw_only=True):
    system: str
    level: LogLevel = LogLevel.DEBUG


class WatcherInfo(Entry, kw_only=True):
    system: str
    level: LogLevel = LogLevel.INFO


class WatcherWarning(Entry, kw_only=True):
    system: str
    level: LogLevel = LogLevel.WARN


class WatcherError(Entry, kw_only=True):
    system: str
    level: LogLevel = LogLevel.ERROR


class ProbeTrace(Entry, kw_only=True):
    cluster: str
    level: LogLevel = LogLevel.TRACE


class ProbeDebug(Entry, kw_only=True):
    cluster: str
    level: LogLevel = LogLevel.DEBUG


class ProbeInfo(Entry, kw_only=True):
    cluster: str
    level: LogLevel = LogLevel.INFO


class ProbeWarning(Entry, kw_only=True):
    cluster: str
    level: LogLevel = LogLevel.WARN


class ProbeError(Entry, kw_only=True):
    cluster: str
    operation: str | None = None
    index: str | None = None
    document_id: str | None = None
    level: LogLevel = LogLevel.ERROR
