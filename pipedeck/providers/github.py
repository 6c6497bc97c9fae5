from typing import Any, Dict, List, Optional

import httpx

from pipedeck.domain import Job, Pipeline, PipelineStatus, Repository, Step, parse_timestamp, span
from pipedeck.logging import get_logger, log_extra
from pipedeck.providers.base import PipelineProvider
from pipedeck.providers.http import APIClient

log = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"


def map_github_status(status: Optional[str], conclusion: Optional[str]) -> PipelineStatus:
    if status in ("in_progress", "queued", "waiting"):
        return PipelineStatus.RUNNING
    if status == "completed":
        if conclusion == "success":
            return PipelineStatus.SUCCESS
        if conclusion in ("failure", "timed_out"):
            return PipelineStatus.FAILED
        if conclusion == "cancelled":
            return PipelineStatus.CANCELLED
    return PipelineStatus.PENDING


def _to_pipeline(run: Dict[str, Any], jobs: tuple = ()) -> Pipeline:
    created = parse_timestamp(run.get("created_at"))
    updated = parse_timestamp(run.get("updated_at"))
    commit = run.get("head_commit") or {}
    return Pipeline(
        id=str(run.get("id", "")),
        branch=run.get("head_branch") or "",
        commit_sha=run.get("head_sha") or "",
        commit_message=commit.get("message") or "",
        author=(commit.get("author") or {}).get("name") or "",
        status=map_github_status(run.get("status"), run.get("conclusion")),
        created_at=created,
        duration=span(created, updated),
        jobs=jobs,
    )


def _to_job(raw: Dict[str, Any]) -> Job:
    started = parse_timestamp(raw.get("started_at"))
    completed = parse_timestamp(raw.get("completed_at"))
    steps = tuple(
        Step(
            name=step.get("name") or "",
            status=map_github_status(step.get("status"), step.get("conclusion")),
            duration=span(parse_timestamp(step.get("started_at")), parse_timestamp(step.get("completed_at"))),
        )
        for step in raw.get("steps") or []
    )
    return Job(
        id=str(raw.get("id", "")),
        name=raw.get("name") or "",
        status=map_github_status(raw.get("status"), raw.get("conclusion")),
        started_at=started,
        duration=span(started, completed),
        steps=steps,
    )


class GitHubProvider(PipelineProvider):
    """GitHub Actions workflow runs exposed as pipelines."""

    name = "github"

    def __init__(
        self,
        token: Optional[str],
        base_url: Optional[str] = None,
        limit: int = 3,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.limit = limit
        self.client = APIClient(
            base_url=base_url or DEFAULT_BASE_URL,
            token=token,
            label="github",
            headers={"Accept": "application/vnd.github+json"},
            transport=transport,
        )

    def set_token(self, token: str) -> None:
        self.client.token = token

    def _repo_path(self, repo: Repository) -> str:
        return f"/repos/{repo.owner}/{repo.name}/actions"

    def list_pipelines(self, repo: Repository) -> List[Pipeline]:
        data = self.client.get_json(f"{self._repo_path(repo)}/runs", params={"per_page": self.limit})
        runs = data.get("workflow_runs") or []
        log.debug("github_runs_listed", extra=log_extra(provider=self.name, repo=repo.slug, count=len(runs)))
        return [_to_pipeline(run) for run in runs]

    def get_pipeline(self, repo: Repository, pipeline_id: str) -> Pipeline:
        run = self.client.get_json(f"{self._repo_path(repo)}/runs/{pipeline_id}")
        jobs = self.client.get_json(f"{self._repo_path(repo)}/runs/{pipeline_id}/jobs")
        return _to_pipeline(run, tuple(_to_job(job) for job in jobs.get("jobs") or []))

    def get_job_logs(self, repo: Repository, job_id: str) -> str:
        # The endpoint answers 302 to a pre-signed URL; httpx drops the
        # Authorization header when the redirect leaves the API origin.
        return self.client.get_text(f"{self._repo_path(repo)}/jobs/{job_id}/logs")

    def rerun_pipeline(self, repo: Repository, pipeline_id: str) -> None:
        self.client.post(f"{self._repo_path(repo)}/runs/{pipeline_id}/rerun")

    def cancel_pipeline(self, repo: Repository, pipeline_id: str) -> None:
        self.client.post(f"{self._repo_path(repo)}/runs/{pipeline_id}/cancel")
