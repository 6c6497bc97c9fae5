from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from pipedeck.domain import Job, Pipeline, PipelineStatus, Repository, parse_timestamp, span
from pipedeck.logging import get_logger, log_extra
from pipedeck.providers.base import PipelineProvider
from pipedeck.providers.http import APIClient

log = get_logger(__name__)

DEFAULT_BASE_URL = "https://gitlab.com"

_STATUS_MAP = {
    "success": PipelineStatus.SUCCESS,
    "failed": PipelineStatus.FAILED,
    "running": PipelineStatus.RUNNING,
    "canceled": PipelineStatus.CANCELLED,
    "pending": PipelineStatus.PENDING,
    "created": PipelineStatus.PENDING,
    "waiting_for_resource": PipelineStatus.PENDING,
    "preparing": PipelineStatus.PENDING,
    "scheduled": PipelineStatus.PENDING,
}


def map_gitlab_status(status: Optional[str]) -> PipelineStatus:
    return _STATUS_MAP.get(status or "", PipelineStatus.PENDING)


def _to_pipeline(raw: Dict[str, Any], jobs: tuple = ()) -> Pipeline:
    created = parse_timestamp(raw.get("created_at"))
    updated = parse_timestamp(raw.get("updated_at"))
    user = raw.get("user") or {}
    return Pipeline(
        id=str(raw.get("id", "")),
        branch=raw.get("ref") or "",
        commit_sha=raw.get("sha") or "",
        author=user.get("name") or "",
        status=map_gitlab_status(raw.get("status")),
        created_at=created,
        duration=span(created, updated),
        jobs=jobs,
    )


def _to_job(raw: Dict[str, Any]) -> Job:
    started = parse_timestamp(raw.get("started_at"))
    finished = parse_timestamp(raw.get("finished_at"))
    return Job(
        id=str(raw.get("id", "")),
        name=raw.get("name") or "",
        stage=raw.get("stage") or "",
        status=map_gitlab_status(raw.get("status")),
        started_at=started,
        duration=span(started, finished),
    )


class GitLabProvider(PipelineProvider):
    """GitLab CI pipelines for gitlab.com or a self-hosted instance."""

    name = "gitlab"

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
            label="gitlab",
            transport=transport,
        )

    def set_token(self, token: str) -> None:
        self.client.token = token

    @staticmethod
    def _project_path(repo: Repository) -> str:
        return f"/api/v4/projects/{quote(repo.slug, safe='')}"

    def list_pipelines(self, repo: Repository) -> List[Pipeline]:
        runs = self.client.get_json(f"{self._project_path(repo)}/pipelines", params={"per_page": self.limit}) or []
        log.debug("gitlab_pipelines_listed", extra=log_extra(provider=self.name, repo=repo.slug, count=len(runs)))
        return [_to_pipeline(run) for run in runs]

    def get_pipeline(self, repo: Repository, pipeline_id: str) -> Pipeline:
        base = f"{self._project_path(repo)}/pipelines/{pipeline_id}"
        run = self.client.get_json(base)
        jobs = self.client.get_json(f"{base}/jobs") or []
        return _to_pipeline(run, tuple(_to_job(job) for job in jobs))

    def get_job_logs(self, repo: Repository, job_id: str) -> str:
        return self.client.get_text(f"{self._project_path(repo)}/jobs/{job_id}/trace")

    def rerun_pipeline(self, repo: Repository, pipeline_id: str) -> None:
        self.client.post(f"{self._project_path(repo)}/pipelines/{pipeline_id}/retry")

    def cancel_pipeline(self, repo: Repository, pipeline_id: str) -> None:
        self.client.post(f"{self._project_path(repo)}/pipelines/{pipeline_id}/cancel")
