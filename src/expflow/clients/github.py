# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""GitHub REST API client for experiment pull requests."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from expflow.clients.base import DEFAULT_TIMEOUT_SECONDS, BaseAPIClient
from expflow.clients.models import (
    PullRequest,
    PullRequestConfig,
    PullRequestReview,
    PullRequestStatus,
)
from expflow.contracts.models import ExperimentContract
from expflow.lib.errors import InvalidConfigurationError, MissingCredentialsError

if TYPE_CHECKING:
    from expflow.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"
EXPERIMENT_LABELS = ("experiment", "automated")


def _pull_request(payload: dict[str, Any]) -> PullRequest:
    return PullRequest(
        number=payload["number"],
        url=payload.get("url", ""),
        html_url=payload.get("html_url", ""),
    )


def render_experiment_pr_body(contract: ExperimentContract, deployment_url: str) -> str:
    """Render the markdown description of an experiment pull request."""
    key = contract.experiment_key
    code_changes = (
        "\n".join(
            f"- **{change.file}**: {change.function} ({change.parameter_usage})"
            for change in contract.code_changes
        )
        or "None specified"
    )
    metrics = ", ".join(metric.name for metric in contract.primary_metrics) or "N/A"
    return f"""## Experiment: {key}

**Deployment URL:** {deployment_url}

**Status:** Ready for review

### Experiment Details
- **Key:** `{key}`
- **Branch:** `{contract.branch_name}`
- **Deployment:** {deployment_url}
- **Status:** Deployed and ready for testing

### Contract Summary
- **Name:** {contract.name}
- **Description:** {contract.description or "N/A"}
- **Hypothesis:** {contract.hypothesis or "N/A"}
- **Variants:** {", ".join(contract.variants)}
- **Primary metrics:** {metrics}

### Code Changes
{code_changes}

### Next Steps
- [ ] Review code changes
- [ ] Test deployment at {deployment_url}
- [ ] Verify experiment is working
- [ ] Approve and merge
- [ ] Start experiment in Statsig

### Testing Checklist
- [ ] Visit the preview URL
- [ ] Check console for any errors
- [ ] Test both variants
- [ ] Verify no breaking changes

---
*This PR was created automatically by the experiment automation workflow.*
"""


class GitHubClient(BaseAPIClient):
    """Pull request operations against one repository.

    Args:
        token: Token with ``repo`` scope.
        repository: ``owner/repo``.
    """

    service = "github"

    def __init__(
        self,
        token: str,
        repository: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        missing = [
            name
            for name, value in (
                ("GITHUB_TOKEN", token),
                ("GITHUB_REPOSITORY", repository),
            )
            if not value
        ]
        if missing:
            raise MissingCredentialsError("GitHub", missing)
        owner, _, repo = repository.partition("/")
        if not owner or not repo:
            raise InvalidConfigurationError(
                "GITHUB_REPOSITORY",
                f"expected 'owner/repo' form, got {repository!r}",
            )
        super().__init__(
            base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github.v3+json",
            },
            timeout=timeout,
            transport=transport,
        )
        self.owner = owner
        self.repo = repo

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.BaseTransport | None = None
    ) -> GitHubClient:
        missing = settings.missing_github()
        if missing:
            raise MissingCredentialsError("GitHub", missing)
        return cls(
            settings.github_token,
            settings.github_repository,
            base_url=settings.github_api_base_url,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def create_pull_request(self, config: PullRequestConfig) -> PullRequest:
        """Open a pull request, then apply labels, assignees and reviewers."""
        payload = self._request(
            "POST",
            f"{self._repo_path}/pulls",
            json={
                "title": config.title,
                "body": config.body,
                "head": config.head,
                "base": config.base,
            },
        )
        pr = _pull_request(payload)
        logger.info("Created pull request #%d: %s", pr.number, pr.html_url)
        if config.labels:
            self.add_labels(pr.number, config.labels)
        if config.assignees:
            self._request(
                "POST",
                f"{self._repo_path}/issues/{pr.number}/assignees",
                json={"assignees": config.assignees},
            )
        if config.reviewers:
            self.request_reviewers(pr.number, config.reviewers)
        return pr

    def request_reviewers(self, pr_number: int, reviewers: Sequence[str]) -> bool:
        self._request(
            "POST",
            f"{self._repo_path}/pulls/{pr_number}/requested_reviewers",
            json={"reviewers": list(reviewers)},
        )
        return True

    def add_labels(self, pr_number: int, labels: Sequence[str]) -> bool:
        self._request(
            "POST",
            f"{self._repo_path}/issues/{pr_number}/labels",
            json={"labels": list(labels)},
        )
        return True

    def add_comment(self, pr_number: int, body: str) -> bool:
        self._request(
            "POST",
            f"{self._repo_path}/issues/{pr_number}/comments",
            json={"body": body},
        )
        return True

    def find_existing_pr(self, head: str, base: str = "main") -> PullRequest | None:
        """Return the first open PR from ``head`` into ``base``, if any."""
        payload = self._request(
            "GET",
            f"{self._repo_path}/pulls",
            params={"head": f"{self.owner}:{head}", "base": base, "state": "open"},
        )
        if isinstance(payload, list) and payload:
            return _pull_request(payload[0])
        return None

    def get_pr_status(self, pr_number: int) -> PullRequestStatus:
        pr = self._request("GET", f"{self._repo_path}/pulls/{pr_number}")
        reviews = self._request("GET", f"{self._repo_path}/pulls/{pr_number}/reviews")
        return PullRequestStatus(
            state=pr.get("state", ""),
            mergeable=pr.get("mergeable"),
            reviews=[
                PullRequestReview(
                    state=review.get("state", ""),
                    login=(review.get("user") or {}).get("login", ""),
                )
                for review in reviews or []
            ],
        )

    def merge_pr(self, pr_number: int, method: str = "squash") -> bool:
        self._request(
            "PUT",
            f"{self._repo_path}/pulls/{pr_number}/merge",
            json={"merge_method": method},
        )
        return True

    def delete_branch(self, branch: str) -> bool:
        self._request(
            "DELETE", f"{self._repo_path}/git/refs/heads/{quote(branch, safe='/')}"
        )
        return True

    def create_experiment_pr(
        self,
        contract: ExperimentContract,
        deployment_url: str,
        reviewers: Sequence[str] = (),
    ) -> PullRequest:
        """Open (or reuse) the pull request for an experiment branch.

        An already-open PR for the branch gets a comment with the new
        deployment URL instead of a duplicate PR.
        """
        head = contract.branch_name
        base = contract.branch_config.target_branch
        existing = self.find_existing_pr(head, base)
        if existing is not None:
            logger.info("Reusing open pull request #%d for %s", existing.number, head)
            self.add_comment(
                existing.number, f"Updated preview deployment: {deployment_url}"
            )
            return existing

        config = PullRequestConfig(
            title=f"feat(experiment): {contract.experiment_key}",
            body=render_experiment_pr_body(contract, deployment_url),
            head=head,
            base=base,
            labels=[*EXPERIMENT_LABELS, f"exp-{contract.experiment_key}"],
            reviewers=list(reviewers),
        )
        return self.create_pull_request(config)
