from .base import Operation
from .exec import ExecOperation
from .file import FileOperation
from .host_entry import HostEntryOperation
from .package import PackageOperation
from .puppet import (
    ApplyPrepOperation,
    PuppetAgentRunOperation,
    PuppetApplyOperation,
    PuppetCertOperation,
    PuppetConfOperation,
)
from .service import ServiceOperation
from .ssh_keygen import SshKeygenOperation

OPERATION_REGISTRY = {
    "package": PackageOperation,
    "service": ServiceOperation,
    "exec": ExecOperation,
    "file": FileOperation,
    "host_entry": HostEntryOperation,
    "puppet_conf": PuppetConfOperation,
    "puppet_cert": PuppetCertOperation,
    "puppet_agent": PuppetAgentRunOperation,
    "apply_prep": ApplyPrepOperation,
    "puppet_apply": PuppetApplyOperation,
    "ssh_keygen": SshKeygenOperation,
}

__all__ = [
    "Operation",
    "PackageOperation",
    "ServiceOperation",
    "ExecOperation",
    "FileOperation",
    "HostEntryOperation",
    "PuppetConfOperation",
    "PuppetCertOperation",
    "PuppetAgentRunOperation",
    "ApplyPrepOperation",
    "PuppetApplyOperation",
    "SshKeygenOperation",
    "OPERATION_REGISTRY",
]
