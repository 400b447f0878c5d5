"""Capability transports module."""

from escalator.capabilities.base import (
    CapabilityError,
    CapabilityTimeout,
    CapabilityUnavailableError,
    FunctionCapability,
)
from escalator.capabilities.client import HttpCapability

__all__ = [
    "CapabilityError",
    "CapabilityTimeout",
    "CapabilityUnavailableError",
    "FunctionCapability",
    "HttpCapability",
]
