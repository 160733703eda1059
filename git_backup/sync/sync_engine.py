"""
Synchronization engine for mirroring remote repositories to local disk.

Decides between a fresh mirror clone and an incremental update of all
branches and tags, and classifies git failures into domain outcomes.
"""

import base64
import shutil
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, NamedTuple, Optional, Tuple
from urllib.parse import unquote, urlsplit, urlunsplit

from git import FetchInfo, GitCommandError, RemoteProgress, Repo
from git.exc import InvalidGitRepositoryError, NoSuchPathError

from ..config.config import ProxyConfig
from ..errors import SyncError
from ..logger.logger import get_logger
from ..models import OutcomeKind, RemoteTarget
from .memory import MemoryMonitor

BRANCH_REFSPEC = "+refs/heads/*:refs/heads/*"
TAG_REFSPEC = "+refs/tags/*:refs/tags/*"
MIRROR_REFSPEC = "+refs/*:refs/*"
TRACKING_REFSPEC = "+refs/heads/*:refs/remotes/origin/*"


class GitResult(Enum):
    """What a single clone/pull/fetch call amounted to."""

    OK = "ok"
    ALREADY_UP_TO_DATE = "already-up-to-date"
    EMPTY_REMOTE = "empty-remote"
    ALREADY_EXISTS = "already-exists"
    ERROR = "error"


class StepResult(NamedTuple):
    kind: GitResult
    error: Optional[Exception] = None
    # git's messages as collected by the progress handler
    output: str = ""


def classify_git_error(error: Exception, output: str = "") -> GitResult:
    """Map a git failure onto a GitResult.

    git runs with LC_ALL=C under GitPython, so the messages are stable.
    With a progress handler attached GitPython hands git's stderr to the
    handler rather than to the exception, so ``output`` carries those lines.
    """
    if not isinstance(error, GitCommandError):
        return GitResult.ERROR

    message = f"{error.stderr or ''} {error.stdout or ''} {output}".lower()
    if "already exists and is not an empty directory" in message:
        return GitResult.ALREADY_EXISTS
    if "already up to date" in message or "already up-to-date" in message:
        return GitResult.ALREADY_UP_TO_DATE
    if "no such ref was fetched" in message or "remote repository is empty" in message:
        return GitResult.EMPTY_REMOTE
    return GitResult.ERROR


def classify_fetch_infos(infos: Iterable[FetchInfo]) -> StepResult:
    """Turn the per-ref results of a fetch into one StepResult."""
    infos = list(infos)
    failed = [info for info in infos if info.flags & (FetchInfo.ERROR | FetchInfo.REJECTED)]
    if failed:
        names = ", ".join(str(info.name) for info in failed)
        return StepResult(GitResult.ERROR, RuntimeError(f"rejected refs: {names}"))
    if all(info.flags & FetchInfo.HEAD_UPTODATE for info in infos):
        return StepResult(GitResult.ALREADY_UP_TO_DATE)
    return StepResult(GitResult.OK)


def split_credentials(url: str) -> Tuple[str, Optional[Tuple[str, str]]]:
    """Split user-info off ``url``.

    Returns:
        Tuple of (url without credentials, (username, password) or None)
    """
    parts = urlsplit(url)
    if parts.username is None:
        return url, None

    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    clean_url = urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))
    return clean_url, (unquote(parts.username), unquote(parts.password or ""))


def describe_error(error: Optional[Exception], output: str = "") -> str:
    """Short, single-line reason for logs and the run summary."""
    output_lines = [line.strip() for line in output.splitlines() if line.strip()]
    failures = [line for line in output_lines if line.startswith(("fatal:", "error:"))]
    if failures:
        return failures[-1]
    if error is None:
        return "unknown error"
    if isinstance(error, GitCommandError):
        detail = (error.stderr or error.stdout or "").strip()
        detail = detail.replace("stderr: ", "").strip(" '\n")
        lines = [line.strip() for line in detail.splitlines() if line.strip()] or output_lines
        # git puts the actual failure on the last line
        return lines[-1] if lines else f"git exited with status {error.status}"
    return str(error)


def progress_output(progress: Optional[RemoteProgress]) -> str:
    """Everything git wrote that the progress handler did not parse as progress."""
    if progress is None:
        return ""
    return "\n".join(progress.error_lines + progress.other_lines)


class _LogProgress(RemoteProgress):
    """Forwards git transfer progress to the debug log."""

    def __init__(self, logger, full_name: str):
        super().__init__()
        self.logger = logger
        self.full_name = full_name

    def update(self, op_code, cur_count, max_count=None, message=""):
        if op_code & RemoteProgress.END:
            self.logger.debug(f"[{self.full_name}] {self._cur_line}")


class SyncEngine:
    """Makes a local repository mirror a remote one."""

    def __init__(
        self,
        log_config=None,
        proxy_config: Optional[ProxyConfig] = None,
        insecure: bool = False,
        memory_monitor: Optional[MemoryMonitor] = None,
    ):
        """Initialize sync engine.

        Args:
            log_config: Optional logging configuration
            proxy_config: Optional proxy configuration
            insecure: Disable TLS certificate verification for git
            memory_monitor: Memory accounting hooks, enabled by default
        """
        self.proxy_config = proxy_config
        self.insecure = insecure
        self.logger = get_logger("sync_engine", log_config)
        self.memory = memory_monitor or MemoryMonitor(log_config=log_config)

    def _get_git_env(self, credentials: Optional[Tuple[str, str]] = None) -> Dict[str, str]:
        """Build Git environment variables for one repository.

        Credentials travel as an HTTP Authorization header so they are never
        written into the local repository configuration.
        """
        git_env = {
            "GIT_TERMINAL_PROMPT": "0",
        }

        if credentials is not None:
            token = base64.b64encode(f"{credentials[0]}:{credentials[1]}".encode("utf-8")).decode("ascii")
            git_env.update({
                "GIT_CONFIG_COUNT": "1",
                "GIT_CONFIG_KEY_0": "http.extraHeader",
                "GIT_CONFIG_VALUE_0": f"Authorization: Basic {token}",
            })

        if self.insecure:
            git_env["GIT_SSL_NO_VERIFY"] = "1"

        proxy_url = self.proxy_config.effective_url() if self.proxy_config else None
        if proxy_url:
            git_env["http_proxy"] = proxy_url
            git_env["https_proxy"] = proxy_url
            git_env["HTTP_PROXY"] = proxy_url
            git_env["HTTPS_PROXY"] = proxy_url

        return git_env

    def materialize(self, remote: RemoteTarget, local_path, bare: bool = False) -> OutcomeKind:
        """Make ``local_path`` mirror ``remote``.

        Args:
            remote: Repository to mirror
            local_path: Directory of the local mirror
            bare: Clone without a working tree (mirror layout)

        Returns:
            CLONED, UPDATED, ALREADY_CURRENT or SKIPPED_EMPTY

        Raises:
            SyncError: If the repository could not be cloned or updated
        """
        local_path = Path(local_path)
        url, credentials = split_credentials(remote.url)
        env = self._get_git_env(credentials)
        name = remote.full_name

        self.memory.log_usage(f"Starting sync for {name}")

        try:
            return self._materialize(url, local_path, bare, env, name)
        except (GitCommandError, AssertionError, OSError, ValueError) as e:
            # GitPython raises AssertionError on remotes without a fetch refspec
            reason = describe_error(e)
            self.logger.error(f"Sync failed for {name}: {reason}")
            raise SyncError(name, f"Sync failed: {reason}", e) from e

    def _materialize(self, url: str, local_path: Path, bare: bool, env: Dict[str, str], name: str) -> OutcomeKind:
        existed = local_path.exists()
        step, repo = self._clone(url, local_path, bare, env, name)
        self.memory.log_usage(f"After clone attempt for {name}")

        if step.kind is GitResult.OK:
            with repo:
                if not repo.references:
                    self.logger.info(f"{name} is an empty repository")
                    self._discard_clone(local_path, existed)
                    return OutcomeKind.SKIPPED_EMPTY
                if not bare:
                    # a working-tree clone only has the default branch locally
                    final, _ = self._refresh_refs(repo, name, env, update_head_ok=True)
                    self._raise_on_error(final, name, "Fetch after clone failed")
            self.logger.info(f"Cloned {name}")
            return OutcomeKind.CLONED

        if step.kind is GitResult.EMPTY_REMOTE:
            self.logger.info(f"{name} is an empty repository")
            return OutcomeKind.SKIPPED_EMPTY

        if step.kind is not GitResult.ALREADY_EXISTS:
            self._raise_on_error(step, name, "Clone failed")

        return self._update_existing(local_path, url, env, name)

    def _clone(self, url: str, local_path: Path, bare: bool, env: Dict[str, str], name: str) -> Tuple[StepResult, Optional[Repo]]:
        """Attempt a mirror clone (``--mirror`` when bare)."""
        self.logger.info(f"Starting {'mirror' if bare else 'full'} clone for {name}")
        progress = _LogProgress(self.logger, name)
        try:
            repo = Repo.clone_from(
                url,
                local_path,
                mirror=bare,
                env=env,
                progress=progress,
            )
        except GitCommandError as e:
            output = progress_output(progress)
            return StepResult(classify_git_error(e, output), e, output), None
        except OSError as e:
            return StepResult(GitResult.ERROR, e), None
        return StepResult(GitResult.OK), repo

    def _discard_clone(self, local_path: Path, existed: bool) -> None:
        """Remove what a clone wrote, leaving ``local_path`` as it was found."""
        if not existed:
            shutil.rmtree(local_path, ignore_errors=True)
            return
        for child in local_path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child, ignore_errors=True)
            else:
                child.unlink()

    def _update_existing(self, local_path: Path, url: str, env: Dict[str, str], name: str) -> OutcomeKind:
        """Bring an existing local repository up to date."""
        try:
            repo = Repo(local_path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise SyncError(name, f"{local_path} exists but is not a git repository", e) from e

        with repo:
            if "origin" not in repo.remotes:
                repo.create_remote("origin", url)
            else:
                repo.remotes.origin.set_url(url)
            self._ensure_fetch_refspec(repo, name)

            changed = False
            if not repo.bare:
                step, changed = self._pull(repo, env, name)
                if step.kind is GitResult.EMPTY_REMOTE:
                    self.logger.info(f"{name} is an empty repository")
                    return OutcomeKind.SKIPPED_EMPTY
                if step.kind is GitResult.ALREADY_UP_TO_DATE:
                    self.logger.info(f"No need to pull, {name} is already up-to-date")
                self._raise_on_error(step, name, "Pull failed")

            final, fetched = self._refresh_refs(repo, name, env, update_head_ok=not repo.bare)
            self._raise_on_error(final, name, "Fetch failed")

        if changed or fetched:
            self.logger.info(f"Updated {name}")
            return OutcomeKind.UPDATED

        self.logger.info(f"All refs up-to-date for {name}")
        return OutcomeKind.ALREADY_CURRENT

    def _ensure_fetch_refspec(self, repo: Repo, name: str) -> None:
        """Give ``origin`` a fetch refspec when it has none (``git clone --bare``)."""
        try:
            repo.git.config("--get-all", "remote.origin.fetch")
            return
        except GitCommandError as e:
            # exit status 1 means the key is not set
            if e.status != 1:
                raise

        refspec = MIRROR_REFSPEC if repo.bare else TRACKING_REFSPEC
        self.logger.info(f"Adding fetch refspec {refspec} to origin of {name}")
        repo.git.config("--add", "remote.origin.fetch", refspec)

    def _pull(self, repo: Repo, env: Dict[str, str], name: str) -> Tuple[StepResult, bool]:
        """Fast-forward the checked-out branch.

        Returns:
            Tuple of (step result, whether HEAD moved or new objects arrived)
        """
        head_before = self._head_commit(repo)
        progress = _LogProgress(self.logger, name)
        try:
            infos = repo.remotes.origin.pull(
                env=env,
                ff_only=True,
                progress=progress,
            )
        except GitCommandError as e:
            output = progress_output(progress)
            kind = classify_git_error(e, output)
            if kind is GitResult.EMPTY_REMOTE and not self._remote_is_empty(repo, env):
                # the upstream branch is gone but the remote has other refs
                kind = GitResult.ERROR
            return StepResult(kind, e, output), False

        step = classify_fetch_infos(infos)
        moved = self._head_commit(repo) != head_before
        if step.kind is GitResult.ALREADY_UP_TO_DATE and moved:
            step = StepResult(GitResult.OK)
        return step, step.kind is GitResult.OK

    def _remote_is_empty(self, repo: Repo, env: Dict[str, str]) -> bool:
        try:
            return not repo.git.ls_remote("origin", env=env).strip()
        except GitCommandError:
            return False

    @staticmethod
    def _head_commit(repo: Repo) -> Optional[str]:
        try:
            return repo.head.commit.hexsha
        except ValueError:
            # unborn branch
            return None

    def _fetch(self, repo: Repo, refspec: Optional[str], env: Dict[str, str], name: str, **options) -> StepResult:
        progress = _LogProgress(self.logger, name)
        try:
            infos = repo.remotes.origin.fetch(
                refspec,
                env=env,
                force=True,
                progress=progress,
                **options,
            )
        except GitCommandError as e:
            output = progress_output(progress)
            return StepResult(classify_git_error(e, output), e, output)
        return classify_fetch_infos(infos)

    def _refresh_refs(self, repo: Repo, name: str, env: Dict[str, str], update_head_ok: bool) -> Tuple[StepResult, bool]:
        """Fetch all branches, then all tags, as two separate forced fetches.

        Splitting the fetch keeps the object graph git and GitPython hold at
        any time smaller on repositories with very many refs.

        Returns:
            Tuple of (result of the last fetch, whether anything new arrived)
        """
        self.logger.info(f"Fetching all branches and tags for {name}")
        self.memory.log_usage(f"Before fetch for {name}")

        branches = self._fetch(repo, BRANCH_REFSPEC, env, name, update_head_ok=update_head_ok)
        self.memory.log_usage(f"After branch fetch for {name}")
        if branches.kind is GitResult.ERROR:
            self.logger.warning(f"Branch fetch failed for {name}: {describe_error(branches.error, branches.output)}")

        self.memory.reclaim(f"Between branch and tag fetch for {name}")

        tags = self._fetch(repo, None, env, name, tags=True, update_head_ok=update_head_ok)
        self.memory.log_usage(f"After tag fetch for {name}")
        if tags.kind is GitResult.ERROR:
            self.logger.warning(
                f"Tag fetch failed for {name}: {describe_error(tags.error, tags.output)}, "
                f"retrying with explicit refspec"
            )
            tags = self._fetch(repo, TAG_REFSPEC, env, name, update_head_ok=update_head_ok)

        self.memory.reclaim(f"After fetch for {name}")

        fetched = GitResult.OK in (branches.kind, tags.kind)
        return tags, fetched

    def _raise_on_error(self, step: StepResult, name: str, what: str) -> None:
        if step.kind is GitResult.ERROR:
            reason = describe_error(step.error, step.output)
            self.logger.error(f"{what} for {name}: {reason}")
            raise SyncError(name, f"{what}: {reason}", step.error) from step.error
