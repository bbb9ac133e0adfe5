# transport.py

"""Transports for reading live utilization from node agents."""

import logging
from typing import Any, Dict, Optional

import requests

from .config import AGENT_USER_AGENT, AGENT_UTILIZATION_PATH
from .exceptions import AgentError
from .models import Node

logger = logging.getLogger(__name__)


class AgentTransport:
    """Interface for fetching a node's utilization payload.

    Subclasses must override fetch_utilization.
    """

    def fetch_utilization(self, node: Node, timeout: float) -> Dict[str, Any]:
        """
        Return the agent's utilization payload.

        Implementations raise AgentError on any failure.
        """
        raise NotImplementedError


class WingsTransport(AgentTransport):
    """HTTP transport speaking to the Wings daemon running on each node."""

    def __init__(self, session: Optional[requests.Session] = None,
                 verify_tls: bool = True):
        self.session = session or requests.Session()
        self.verify_tls = verify_tls

    @staticmethod
    def base_url(node: Node) -> str:
        host = node.fqdn.rstrip("/")
        # Proxied nodes are reachable on the scheme's default port
        if node.behind_proxy:
            return f"{node.scheme}://{host}"
        return f"{node.scheme}://{host}:{node.daemon_port}"

    def headers(self, node: Node) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": AGENT_USER_AGENT,
        }
        if node.daemon_token:
            headers["Authorization"] = f"Bearer {node.daemon_token}"
        return headers

    def fetch_utilization(self, node: Node, timeout: float) -> Dict[str, Any]:
        url = f"{self.base_url(node)}{AGENT_UTILIZATION_PATH}"
        try:
            response = self.session.get(
                url,
                headers=self.headers(node),
                timeout=timeout,
                verify=self.verify_tls,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise AgentError(f"Timed out contacting {url}: {e}", "timeout")
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise AgentError(f"{url} answered HTTP {status}", f"HTTP {status}")
        except requests.exceptions.RequestException as e:
            raise AgentError(f"Failed to reach {url}: {e}", "connection error")

        try:
            data = response.json()
        except ValueError as e:
            raise AgentError(f"Invalid JSON from {url}: {e}", "invalid response")

        if not isinstance(data, dict) or not data:
            raise AgentError(f"Empty utilization payload from {url}",
                             "invalid response")

        logger.debug(f"Node {node.id} utilization payload: {data}")
        return data
