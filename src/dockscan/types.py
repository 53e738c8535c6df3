"""Barrel re-export of all domain types."""

from dockscan.actions.dispatcher import Collection, ContainerAction
from dockscan.discovery.types import Backend, BackendPreference, ResolvedEndpoint, SocketCandidate
from dockscan.engine.types import (
    Container,
    ContainerDetails,
    EngineInfo,
    EnvVar,
    Image,
    Mount,
    Network,
    NetworkAttachment,
    Port,
    Volume,
)
from dockscan.logs.subscription import SubscriptionState
from dockscan.state.store import EngineState

__all__ = [
    "Backend",
    "BackendPreference",
    "Collection",
    "Container",
    "ContainerAction",
    "ContainerDetails",
    "EngineInfo",
    "EngineState",
    "EnvVar",
    "Image",
    "Mount",
    "Network",
    "NetworkAttachment",
    "Port",
    "ResolvedEndpoint",
    "SocketCandidate",
    "SubscriptionState",
    "Volume",
]
