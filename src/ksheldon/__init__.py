"""ksheldon - remote shell automation for the PTP daemon container."""

__version__ = "0.1.0"
