from .container import ContainerEvent, ContainerRecord
from .credential import IdentityCredential, Token, TokenCredential
from .proxy_host import Override, ProxyHostRequest, ProxyTarget, Scheme

__all__ = [
    "ContainerEvent",
    "ContainerRecord",
    "IdentityCredential",
    "Override",
    "ProxyHostRequest",
    "ProxyTarget",
    "Scheme",
    "Token",
    "TokenCredential",
]
