"""Compile master bring-up toolkit."""

from .runner import RemoteExecutor
from .sequence import ProvisioningSequence

__all__ = ["RemoteExecutor", "ProvisioningSequence"]
