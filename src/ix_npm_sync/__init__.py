"""Register TrueNAS ix apps with Nginx Proxy Manager."""

__version__ = "0.1.0"
