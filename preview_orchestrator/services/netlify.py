"""
Netlify Deployment Service
Publishes a generated app directory and returns its live URL.
"""

import io
import logging
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx

from preview_orchestrator.workers.base import ConfigurationError, DeploymentError

logger = logging.getLogger(__name__)


class DeploymentTarget(ABC):
    """Capability: publish an artifact under a name and return its URL."""

    @abstractmethod
    async def deploy(self, artifact: Path, name: str) -> str:
        """
        Deploy an app directory.

        Args:
            artifact: Directory produced by a CodeGenerator
            name: Desired site name

        Returns:
            Live URL (an empty string means the provider gave none)
        """


class NetlifyDeploymentTarget(DeploymentTarget):
    """Deploys to Netlify: create a site, then upload the zipped directory."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.netlify.com/api/v1",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def deploy(self, artifact: Path, name: str) -> str:
        # Credential is optional at startup and required here
        if not self.token:
            raise ConfigurationError("NETLIFY_TOKEN environment variable is not set")

        archive = zip_directory(artifact)
        headers = {"Authorization": f"Bearer {self.token}"}

        try:
            async with httpx.AsyncClient(
                base_url=self.api_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport
            ) as client:
                # 1. Create a new site
                site_response = await client.post("/sites", json={"name": name})
                site_response.raise_for_status()
                site = site_response.json()
                site_id = site.get("id")
                if not site_id:
                    raise DeploymentError("Netlify API error: site creation returned no id")

                # 2. Upload the zipped app as a deploy
                deploy_response = await client.post(
                    f"/sites/{site_id}/deploys",
                    content=archive,
                    headers={"Content-Type": "application/zip"}
                )
                deploy_response.raise_for_status()
                deploy = deploy_response.json()

        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            raise DeploymentError(f"Netlify API error: {message}") from e
        except httpx.HTTPError as e:
            raise DeploymentError(f"Netlify API error: {e}") from e

        live_url = (
            deploy.get("ssl_url")
            or deploy.get("url")
            or site.get("ssl_url")
            or site.get("url")
            or ""
        )
        logger.info(f"[Netlify] Deployed {name} (site {site_id}) -> {live_url or '<no url>'}")
        return live_url


def zip_directory(path: Path) -> bytes:
    """Zip a directory in memory, with paths relative to its root."""
    root = Path(path)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for file_path in sorted(root.rglob("*")):
            if file_path.is_file():
                archive.write(file_path, file_path.relative_to(root).as_posix())
    return buffer.getvalue()


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"HTTP {response.status_code}"


__all__ = ["DeploymentTarget", "NetlifyDeploymentTarget", "zip_directory"]
