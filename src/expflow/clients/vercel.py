# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Vercel REST API client for experiment preview deployments.

Deployments are created from the experiment branch via ``gitSource`` and
polled at a fixed interval until READY, ERROR/CANCELED, or the time budget
runs out. Polling terminates within ``timeout_ms`` plus one interval; the
sleep and clock functions are injectable so tests never wait.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from expflow.clients.base import DEFAULT_TIMEOUT_SECONDS, BaseAPIClient
from expflow.clients.models import Deployment, DeploymentResult, DeploymentState
from expflow.contracts.models import DEFAULT_DEPLOYMENT_TIMEOUT_MS
from expflow.lib.errors import MissingCredentialsError

if TYPE_CHECKING:
    from expflow.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.vercel.com"
DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_PREVIEW_DOMAIN_SUFFIX = "dh25-demo-site.vercel.app"

PROJECT_SETTINGS = {
    "framework": "nextjs",
    "buildCommand": "npm run build",
    "outputDirectory": ".next",
    "installCommand": "npm ci",
    "devCommand": "npm run dev",
}

_SLUG_UNSAFE = re.compile(r"[^a-z0-9-]")


def branch_slug(branch: str) -> str:
    """``exp/Prime_Banner`` -> ``exp-prime-banner``."""
    return _SLUG_UNSAFE.sub("-", branch.lower())


def preview_url_for_branch(
    branch: str, domain_suffix: str = DEFAULT_PREVIEW_DOMAIN_SUFFIX
) -> str:
    """Guess the preview URL Vercel aliases a branch deployment to."""
    return f"https://{branch_slug(branch)}-{domain_suffix}"


class VercelClient(BaseAPIClient):
    """Vercel deployments for one project.

    Raises:
        MissingCredentialsError: If any of token, org id or project id is
            empty.
    """

    service = "vercel"

    def __init__(
        self,
        token: str,
        org_id: str,
        project_id: str,
        repository: str = "",
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        preview_domain_suffix: str = DEFAULT_PREVIEW_DOMAIN_SUFFIX,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        missing = [
            name
            for name, value in (
                ("VERCEL_TOKEN", token),
                ("VERCEL_ORG_ID", org_id),
                ("VERCEL_PROJECT_ID", project_id),
            )
            if not value
        ]
        if missing:
            raise MissingCredentialsError("Vercel", missing)
        super().__init__(
            base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        self.org_id = org_id
        self.project_id = project_id
        self.repository = repository or "unknown/repo"
        self.poll_interval_seconds = poll_interval_seconds
        self.preview_domain_suffix = preview_domain_suffix
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.BaseTransport | None = None
    ) -> VercelClient:
        missing = settings.missing_vercel()
        if missing:
            raise MissingCredentialsError("Vercel", missing)
        return cls(
            settings.vercel_token,
            settings.vercel_org_id,
            settings.vercel_project_id,
            repository=settings.github_repository,
            base_url=settings.vercel_api_base_url,
            timeout=settings.http_timeout_seconds,
            poll_interval_seconds=settings.vercel_poll_interval_seconds,
            preview_domain_suffix=settings.preview_domain_suffix,
            transport=transport,
        )

    def _params(self, **extra: Any) -> dict[str, Any]:
        return {"teamId": self.org_id, **extra}

    @staticmethod
    def _path(deployment_id: str, suffix: str = "") -> str:
        return f"/v13/deployments/{quote(deployment_id, safe='')}{suffix}"

    def preview_alias(self, branch: str) -> str:
        return f"{branch_slug(branch)}-{self.preview_domain_suffix}"

    def create_deployment(self, branch: str) -> Deployment:
        """Create a preview deployment of ``branch``."""
        body = {
            "name": self.project_id,
            "gitSource": {
                "type": "github",
                "ref": branch,
                "repo": self.repository,
            },
            "projectSettings": PROJECT_SETTINGS,
            "target": "preview",
            "alias": [self.preview_alias(branch)],
        }
        payload = self._request(
            "POST", "/v13/deployments", params=self._params(), json=body
        )
        deployment = Deployment.from_api(payload or {})
        logger.info("Created Vercel deployment %s for %s", deployment.id, branch)
        return deployment

    def get_deployment(self, deployment_id: str) -> Deployment:
        payload = self._request("GET", self._path(deployment_id), params=self._params())
        return Deployment.from_api(payload or {})

    def poll_deployment(
        self, deployment_id: str, timeout_ms: int = DEFAULT_DEPLOYMENT_TIMEOUT_MS
    ) -> DeploymentResult:
        """Poll until the deployment settles or ``timeout_ms`` elapses.

        Returns:
            A successful result for READY; a failed result carrying the
            remote error for ERROR/CANCELED; a failed result with
            ``timed_out=True`` when the budget runs out.

        Raises:
            RemoteAPIError / TransportError: From the status request.
        """
        deadline = self._clock() + timeout_ms / 1000
        deployment: Deployment | None = None

        while True:
            deployment = self.get_deployment(deployment_id)
            logger.debug("Deployment %s state: %s", deployment_id, deployment.state)
            if deployment.state.is_terminal:
                if deployment.state is DeploymentState.READY:
                    return DeploymentResult(
                        success=True, deployment=deployment, url=deployment.url
                    )
                return DeploymentResult(
                    success=False,
                    deployment=deployment,
                    error=deployment.error
                    or f"Deployment {deployment.state.value.lower()}",
                )
            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            self._sleep(min(self.poll_interval_seconds, remaining))

        logger.warning("Deployment %s timed out after %d ms", deployment_id, timeout_ms)
        return DeploymentResult(
            success=False,
            deployment=deployment,
            error=(
                "Deployment timeout - deployment did not complete within the "
                "specified time"
            ),
            timed_out=True,
            timeout_ms=timeout_ms,
        )

    def wait_for_deployment(
        self, branch: str, timeout_ms: int = DEFAULT_DEPLOYMENT_TIMEOUT_MS
    ) -> DeploymentResult:
        """Create a deployment of ``branch`` and poll it to completion."""
        deployment = self.create_deployment(branch)
        if not deployment.id:
            return DeploymentResult(
                success=False, deployment=deployment, error="No deployment ID returned"
            )
        return self.poll_deployment(deployment.id, timeout_ms)

    def get_deployment_url(self, deployment_id: str) -> str | None:
        return self.get_deployment(deployment_id).url

    def list_deployments(self, limit: int = 10) -> list[Deployment]:
        payload = self._request(
            "GET",
            "/v6/deployments",
            params=self._params(projectId=self.project_id, limit=limit),
        )
        items = (payload or {}).get("deployments", [])
        return [Deployment.from_api(item) for item in items if isinstance(item, dict)]

    def cancel_deployment(self, deployment_id: str) -> bool:
        self._request(
            "POST", self._path(deployment_id, "/cancel"), params=self._params()
        )
        return True

    def delete_deployment(self, deployment_id: str) -> bool:
        self._request("DELETE", self._path(deployment_id), params=self._params())
        return True

    def get_deployment_logs(self, deployment_id: str) -> list[str]:
        payload = self._request(
            "GET",
            f"/v2/deployments/{quote(deployment_id, safe='')}/events",
            params=self._params(),
        )
        events = payload if isinstance(payload, list) else []
        lines = []
        for event in events:
            if not isinstance(event, dict):
                continue
            text = event.get("text") or (event.get("payload") or {}).get("text") or ""
            lines.append(str(text))
        return lines
