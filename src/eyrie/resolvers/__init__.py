"""Resolvers producing replies for client queries."""

from .authoritative import AuthoritativeResolver
from .base import BaseResolver
from .chain import ResolverChain
from .forwarding import ForwardingResolver
from .health import HealthMonitor

__all__ = [
    "AuthoritativeResolver",
    "BaseResolver",
    "ForwardingResolver",
    "HealthMonitor",
    "ResolverChain",
]
