"""nms-provision — unattended single-host service provisioning."""

__version__ = "0.1.0"
