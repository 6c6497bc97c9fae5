import threading
from typing import Callable, List, TypeVar

from pipedeck.domain import Pipeline, Repository
from pipedeck.errors import AuthExpiredError, TokenRefreshError, UnauthorizedError
from pipedeck.logging import get_logger, log_extra
from pipedeck.providers.base import PipelineProvider

log = get_logger(__name__)

T = TypeVar("T")

RefreshFn = Callable[[], str]
UpdateTokenFn = Callable[[str], None]


def fail_fast_refresh(provider_name: str) -> RefreshFn:
    """refresh_fn for backends without silent refresh: always escalates."""

    def _refresh() -> str:
        raise TokenRefreshError(f"{provider_name} does not support silent token refresh")

    return _refresh


class RefreshingProvider(PipelineProvider):
    """
    Decorates a provider so a rejected token is refreshed once and the call
    retried once. When the refresh fails, or the retry is rejected again,
    callers get a single AuthExpiredError instead of UnauthorizedError.
    """

    def __init__(
        self,
        inner: PipelineProvider,
        provider_name: str,
        refresh_fn: RefreshFn,
        update_token: UpdateTokenFn,
    ) -> None:
        self.inner = inner
        self.name = provider_name
        self.refresh_fn = refresh_fn
        self.update_token = update_token
        self._lock = threading.Lock()
        # Bumped on every credential write; a call that failed with an older
        # token retries with the current one instead of refreshing again.
        self._generation = 0

    def set_token(self, token: str) -> None:
        """Install a token obtained outside the decorator (interactive re-auth)."""
        with self._lock:
            self.update_token(token)
            self._generation += 1
        log.info("token_installed", extra=log_extra(provider=self.name))

    def _call(self, op: str, fn: Callable[[], T]) -> T:
        generation = self._generation
        try:
            return fn()
        except UnauthorizedError:
            log.info("provider_unauthorized", extra=log_extra(provider=self.name, command=op))
        with self._lock:
            if self._generation == generation:
                try:
                    token = self.refresh_fn()
                except Exception as exc:
                    log.warning(
                        "token_refresh_failed",
                        extra=log_extra(
                            provider=self.name, command=op, error=str(exc), error_type=exc.__class__.__name__
                        ),
                    )
                    raise AuthExpiredError(self.name) from exc
                self.update_token(token)
                self._generation += 1
                log.info("token_refreshed", extra=log_extra(provider=self.name, command=op))
        try:
            return fn()
        except UnauthorizedError as exc:
            log.warning("provider_unauthorized_after_refresh", extra=log_extra(provider=self.name, command=op))
            raise AuthExpiredError(self.name) from exc

    def list_pipelines(self, repo: Repository) -> List[Pipeline]:
        return self._call("list_pipelines", lambda: self.inner.list_pipelines(repo))

    def get_pipeline(self, repo: Repository, pipeline_id: str) -> Pipeline:
        return self._call("get_pipeline", lambda: self.inner.get_pipeline(repo, pipeline_id))

    def get_job_logs(self, repo: Repository, job_id: str) -> str:
        return self._call("get_job_logs", lambda: self.inner.get_job_logs(repo, job_id))

    def rerun_pipeline(self, repo: Repository, pipeline_id: str) -> None:
        return self._call("rerun_pipeline", lambda: self.inner.rerun_pipeline(repo, pipeline_id))

    def cancel_pipeline(self, repo: Repository, pipeline_id: str) -> None:
        return self._call("cancel_pipeline", lambda: self.inner.cancel_pipeline(repo, pipeline_id))
