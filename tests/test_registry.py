import pytest

from pipedeck.errors import ProviderNotFoundError
from pipedeck.providers.github import GitHubProvider
from pipedeck.providers.gitlab import GitLabProvider
from pipedeck.providers.registry import ProviderRegistry


def _registry():
    registry = ProviderRegistry()
    github = GitHubProvider("t")
    gitlab = GitLabProvider("t")
    registry.register("github.com", github)
    registry.register("gitlab.com", gitlab)
    registry.register("git.corp.example", gitlab)
    return registry, github, gitlab


def test_detect_by_host_fragment() -> None:
    registry, github, gitlab = _registry()
    assert registry.detect("git@github.com:acme/api.git") is github
    assert registry.detect("https://gitlab.com/group/project") is gitlab
    assert registry.detect("git@git.corp.example:team/app.git") is gitlab


def test_first_registration_wins() -> None:
    registry = ProviderRegistry()
    first, second = GitHubProvider("a"), GitHubProvider("b")
    registry.register("github.com", first)
    registry.register("github.com", second)
    assert registry.detect("https://github.com/a/b") is first


def test_unknown_host() -> None:
    registry, _, _ = _registry()
    with pytest.raises(ProviderNotFoundError):
        registry.detect("git@bitbucket.org:acme/api.git")
