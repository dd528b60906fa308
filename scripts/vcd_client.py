import requests
import logging
import os
import threading
from dataclasses import dataclass
from typing import List, Optional, Literal

import yaml
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

AUTH_HEADER = 'x-vcloud-authorization'
DEFAULT_API_VERSION = '5.1'
BODY_SNIPPET_LENGTH = 512


# Config validation
class EntityConfig(BaseModel):
    name: str
    href: str


class VCloudConfig(BaseModel):
    host: str
    verify_ssl: bool = True
    timeout: int = 30
    api_version: str = DEFAULT_API_VERSION
    confirm: Literal['required', 'auto-approved', 'always-decline'] = 'required'
    entities: List[EntityConfig] = []


class VCloudError(Exception):
    pass


class ConfigError(VCloudError):
    pass


class TransportError(VCloudError):
    """Connection, timeout or non-2xx failure talking to the API."""
    def __init__(self, message, status_code=None, response_body=None):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(self.message)


class MalformedResponse(VCloudError):
    """The API answered with a document that cannot be read as expected."""
    def __init__(self, message, body_snippet=None):
        self.message = message
        self.body_snippet = body_snippet
        super().__init__(self.message)


class NotConfirmed(VCloudError):
    pass


def snippet(body):
    """Return a short printable prefix of a response body."""
    if body is None:
        return None
    if isinstance(body, bytes):
        body = body.decode('utf-8', errors='replace')
    return body[:BODY_SNIPPET_LENGTH]


@dataclass(frozen=True)
class EntityHandle:
    """A resolved VM or vApp reference."""

    name: str
    href: str


class VCloudSession:
    def __init__(self, host, token, verify_ssl=True, timeout=30, api_version=DEFAULT_API_VERSION):
        """
        Wrap an already authenticated vCloud Director session.

        :param host: vCD host (e.g., 'vcd.example.com')
        :param token: Session token issued at login
        :param verify_ssl: Whether to verify SSL certificates
        :param timeout: Request timeout in seconds
        :param api_version: Version pinned in the Accept header
        """
        self.host = host
        self.token = token
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.api_version = api_version
        self.base_url = f"https://{host}/api"
        self._local = threading.local()

    @property
    def http(self):
        """requests.Session owned by the calling thread."""
        if not hasattr(self._local, "http"):
            self._local.http = requests.Session()
        return self._local.http

    def send(self, request):
        """
        Perform one HTTP exchange described by a request descriptor.

        :param request: Object with method, url, headers and body attributes
        :return: Raw response body as bytes
        """
        logger.debug(f"{request.method} {request.url}")
        resp = None
        try:
            resp = self.http.request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body,
                verify=self.verify_ssl,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            # redirects requests did not follow and other non-2xx codes
            if not 200 <= resp.status_code < 300:
                body = snippet(resp.text)
                raise TransportError(f"HTTP {resp.status_code}: {body}", status_code=resp.status_code, response_body=body)
            return resp.content
        except requests.exceptions.Timeout:
            raise TransportError("Request timed out")
        except requests.exceptions.SSLError:
            raise TransportError("SSL verification failed")
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            body = snippet(e.response.text)
            raise TransportError(f"HTTP {status}: {body}", status_code=status, response_body=body)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}")
        finally:
            if resp is not None:
                resp.close()


def _workspace_dir():
    skill_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.getenv('VCD_SNAPSHOT_WORKSPACE', skill_dir)


def load_config(path=None):
    """
    Read and validate the vcd section of the YAML config.

    :param path: Config file path, defaults to secrets/config.vcd.yaml in the workspace
    :return: VCloudConfig
    """
    if path is None:
        path = os.path.join(_workspace_dir(), 'secrets', 'config.vcd.yaml')
    try:
        with open(path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}")
    if 'vcd' not in raw_config:
        raise ConfigError(f"Config {path} has no 'vcd' section")
    try:
        return VCloudConfig(**raw_config['vcd'])
    except ValidationError as e:
        raise ConfigError(f"Invalid config: {e}")


def load_session(config=None, token_path=None):
    """
    Build a VCloudSession from the workspace config and token file.
    """
    if config is None:
        config = load_config()
    if token_path is None:
        token_path = os.path.join(_workspace_dir(), 'secrets', 'vcd-token.txt')
    try:
        with open(token_path, 'r') as f:
            token = f.read().strip()
    except OSError as e:
        raise ConfigError(f"Cannot read session token {token_path}: {e}")
    if not token:
        raise ConfigError(f"Session token file {token_path} is empty")
    return VCloudSession(config.host, token, config.verify_ssl, config.timeout, config.api_version)


def load_inventory(config: VCloudConfig) -> List[EntityHandle]:
    """Entities listed under 'entities' in the config, in file order."""
    return [EntityHandle(e.name, e.href) for e in config.entities]


def find_entity(config: VCloudConfig, name: str) -> Optional[EntityHandle]:
    for entity in load_inventory(config):
        if entity.name == name:
            return entity
    return None
