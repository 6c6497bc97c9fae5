from pathlib import Path

from pipedeck.domain import Repository
from pipedeck.errors import RepositoryDetectionError


def detect_repository(directory: Path) -> Repository:
    """
    Read .git/config under directory and build a Repository from the origin remote.
    """
    config_path = Path(directory) / ".git" / "config"
    try:
        lines = config_path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise RepositoryDetectionError(f"could not open {config_path}: {exc}") from exc

    in_origin = False
    for raw in lines:
        line = raw.strip()
        if line == '[remote "origin"]':
            in_origin = True
            continue
        if in_origin and line.startswith("["):
            break
        if in_origin and line.startswith("url"):
            key, sep, value = line.partition("=")
            if sep and key.strip() == "url":
                return parse_remote_url(value.strip())
    raise RepositoryDetectionError("no origin remote found in .git/config")


def parse_remote_url(raw_url: str) -> Repository:
    """
    Parse an origin URL in SSH (git@host:owner/repo.git) or HTTPS
    (https://host/owner/repo.git) form. remote_url keeps the input unchanged.
    """
    normalized = raw_url[:-4] if raw_url.endswith(".git") else raw_url

    if normalized.startswith("git@"):
        _, sep, path = normalized[len("git@"):].partition(":")
        if not sep:
            raise RepositoryDetectionError(f"invalid SSH remote URL: {raw_url}")
        owner, sep, name = path.partition("/")
        if not sep or not owner or not name:
            raise RepositoryDetectionError(f"invalid SSH remote URL path: {path}")
        return Repository(owner=owner, name=name, remote_url=raw_url)

    for scheme in ("https://", "http://"):
        if normalized.startswith(scheme):
            parts = normalized[len(scheme):].split("/", 2)
            if len(parts) != 3 or not parts[1] or not parts[2]:
                raise RepositoryDetectionError(f"invalid HTTPS remote URL: {raw_url}")
            return Repository(owner=parts[1], name=parts[2], remote_url=raw_url)

    raise RepositoryDetectionError(f"unsupported remote URL format: {raw_url}")
