"""linux-init — fault-tolerant first-boot provisioning for Linux hosts."""

__version__ = "0.1.0"
