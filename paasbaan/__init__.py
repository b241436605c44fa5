"""
Paasbaan: access group based authorization for async Python services.
"""

from paasbaan.access_control import AccessControl
from paasbaan.core.config import AccessControlConfig, RouteRule

__all__ = ["AccessControl", "AccessControlConfig", "RouteRule"]

__version__ = "0.1.0"
