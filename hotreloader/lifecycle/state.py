"""Service lifecycle states."""

from enum import Enum


class ServerState(Enum):
    """Orchestrator lifecycle; transitions are serialized by the orchestrator lock."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
