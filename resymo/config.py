"""
Agent configuration model.

The YAML file uses camelCase keys:

    uplinks:
      httpServer: {bindHost, bindPort, token, disableAuthentication, tlsCertificate, tlsKey}
      homeassistant: {deviceId, base, discoveryPrefix, host, port, clientId, username,
                      password, disableTls, keepAlive}
    collectors:
      memory: {disabled}
      swap: {disabled}
      diskFree: {disabled}
      loadAvg: {disabled}
      exec: {disabled, items: {<name>: {period, command, args, envs, cleanEnv, discovery}}}
    commands:
      exec: {disabled, items: {<name>: {command, args, envs, cleanEnv, discovery}}}
"""
import socket
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .utils import ConfigError, load_file, parse_duration

DEFAULT_HTTP_PORT = 4242
DEFAULT_HTTP_HOST = '::1'
DEFAULT_BASE = 'resymo'
DEFAULT_DISCOVERY_PREFIX = 'homeassistant'
DEFAULT_CLIENT_ID = 'resymo'
DEFAULT_KEEP_ALIVE = 5.0


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f'"{key}" must be a mapping')
    return value


def _opt_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    return None if value is None else str(value)


def _opt_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f'"{key}" must be an integer, got: {value!r}') from e


@dataclass(frozen=True)
class HttpServerOptions:
    bind_host: str = DEFAULT_HTTP_HOST
    bind_port: int = DEFAULT_HTTP_PORT
    token: Optional[str] = None
    disable_authentication: bool = False
    tls_certificate: Optional[str] = None
    tls_key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HttpServerOptions':
        tls_certificate = _opt_str(data, 'tlsCertificate')
        tls_key = _opt_str(data, 'tlsKey')
        if (tls_certificate is None) != (tls_key is None):
            raise ConfigError('Enabling TLS requires both "tlsKey" and "tlsCertificate"')
        port = _opt_int(data, 'bindPort')
        return cls(
            bind_host=_opt_str(data, 'bindHost') or DEFAULT_HTTP_HOST,
            bind_port=DEFAULT_HTTP_PORT if port is None else port,
            token=_opt_str(data, 'token'),
            disable_authentication=bool(data.get('disableAuthentication', False)),
            tls_certificate=tls_certificate,
            tls_key=tls_key,
        )


@dataclass(frozen=True)
class HomeAssistantOptions:
    host: str
    device_id: str
    base: str = DEFAULT_BASE
    discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX
    port: Optional[int] = None
    client_id: str = DEFAULT_CLIENT_ID
    username: Optional[str] = None
    password: Optional[str] = None
    disable_tls: bool = False
    keep_alive: float = DEFAULT_KEEP_ALIVE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HomeAssistantOptions':
        host = _opt_str(data, 'host')
        if not host:
            raise ConfigError('homeassistant: "host" is required')
        return cls(
            host=host,
            device_id=_opt_str(data, 'deviceId') or socket.gethostname(),
            base=_opt_str(data, 'base') or DEFAULT_BASE,
            discovery_prefix=_opt_str(data, 'discoveryPrefix') or DEFAULT_DISCOVERY_PREFIX,
            port=_opt_int(data, 'port'),
            client_id=_opt_str(data, 'clientId') or DEFAULT_CLIENT_ID,
            username=_opt_str(data, 'username'),
            password=_opt_str(data, 'password'),
            disable_tls=bool(data.get('disableTls', False)),
            keep_alive=parse_duration(data.get('keepAlive'), DEFAULT_KEEP_ALIVE),
        )

    @property
    def effective_port(self) -> int:
        if self.port is not None:
            return self.port
        return 1883 if self.disable_tls else 8883


@dataclass(frozen=True)
class Config:
    http_server: Optional[HttpServerOptions] = None
    homeassistant: Optional[HomeAssistantOptions] = None
    collectors: Dict[str, Any] = field(default_factory=dict)
    commands: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        uplinks = _section(data, 'uplinks')
        http_server = uplinks.get('httpServer')
        homeassistant = uplinks.get('homeassistant')
        return cls(
            http_server=HttpServerOptions.from_dict(_section(uplinks, 'httpServer')) if http_server is not None else None,
            homeassistant=HomeAssistantOptions.from_dict(_section(uplinks, 'homeassistant')) if homeassistant is not None else None,
            collectors=_section(data, 'collectors'),
            commands=_section(data, 'commands'),
        )


def load_config(path: str) -> Config:
    return Config.from_dict(load_file(path))


def is_disabled(section: Dict[str, Any], key: str) -> bool:
    return bool(_section(section, key).get('disabled', False))


def exec_items(section: Dict[str, Any]) -> Dict[str, Any]:
    return _section(_section(section, 'exec'), 'items')
