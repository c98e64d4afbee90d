"""Endpoint failover for interchangeable RPC backends."""

from .endpoint_rotator import EndpointRotator, RotationPass, RotationState

__all__ = [
    'EndpointRotator',
    'RotationPass',
    'RotationState',
]
