from .client import ApiClient, login, get_auth_token, AUTH_API_KEY, AUTH_JWT
from .resources import ProxiesApi, AccountApi, PortsApi, RotationApi, X402SessionApi

__all__ = [
    "ApiClient",
    "login",
    "get_auth_token",
    "AUTH_API_KEY",
    "AUTH_JWT",
    "ProxiesApi",
    "AccountApi",
    "PortsApi",
    "RotationApi",
    "X402SessionApi",
]
