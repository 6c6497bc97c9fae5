from abc import ABC, abstractmethod
from typing import List

from pipedeck.domain import Pipeline, Repository


class PipelineProvider(ABC):
    """
    Port implemented by every CI backend adapter.

    Any operation may raise UnauthorizedError when the token is rejected;
    everything else surfaces as ProviderAPIError.
    """

    name: str = "provider"

    @abstractmethod
    def list_pipelines(self, repo: Repository) -> List[Pipeline]:
        """Return the most recent pipeline runs, newest first."""

    @abstractmethod
    def get_pipeline(self, repo: Repository, pipeline_id: str) -> Pipeline:
        """Return one pipeline with its jobs (and their steps when available)."""

    @abstractmethod
    def get_job_logs(self, repo: Repository, job_id: str) -> str:
        """Return the raw log text of a job."""

    @abstractmethod
    def rerun_pipeline(self, repo: Repository, pipeline_id: str) -> None:
        ...

    @abstractmethod
    def cancel_pipeline(self, repo: Repository, pipeline_id: str) -> None:
        ...
