from enum import Enum


class ProbeState(Enum):
    """
    Lifecycle of a cluster probe.

    A probe is registered by the watcher only once it reaches RUNNING. A
    failed preparation goes straight to STOPPED.
    """
    INITIALIZING = "initializing"   # Discovering nodes and creating fixtures
    RUNNING = "running"             # Servicing ticks
    DRAINING = "draining"           # Cancellation received, retracting metrics
    STOPPED = "stopped"             # Terminal


VALID_TRANSITIONS: dict[ProbeState, set[ProbeState]] = {
    ProbeState.INITIALIZING: {
        ProbeState.RUNNING,
        ProbeState.STOPPED,
    },
    ProbeState.RUNNING: {
        ProbeState.DRAINING,
    },
    ProbeState.DRAINING: {
        ProbeState.STOPPED,
    },
    ProbeState.STOPPED: set(),
}


def is_valid_transition(current: ProbeState, target: ProbeState) -> bool:
    return target in VALID_TRANSITIONS[current]
