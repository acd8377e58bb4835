"""
Path access control for Vault Bridge MCP Server.

Evaluates vault paths against forbidden, read-only and writable glob lists.
"""

import re
from collections.abc import Iterable
from functools import lru_cache

import structlog

from .models import AccessDecision, PathACL
from .utils import AccessDeniedError, WriteDeniedError

logger = structlog.get_logger(__name__)


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a glob into a regex matched against the whole path.

    ``**`` matches any run of characters including ``/``; ``*`` matches any
    run of characters except ``/``. Everything else is literal.
    """
    translated = []
    for part in pattern.split("**"):
        translated.append("[^/]*".join(re.escape(piece) for piece in part.split("*")))
    return re.compile(".*".join(translated))


def matches_glob(path: str, pattern: str) -> bool:
    return compile_glob(pattern).fullmatch(path) is not None


class PathAccessChecker:
    """Grants or denies read and write access for vault paths.

    Decisions are pure functions of the path and the ACL; denials raised by
    ``check_read``/``check_write`` are logged at warning level.
    """

    def __init__(self, acl: PathACL):
        self.acl = acl

    @staticmethod
    def _matches_any(path: str, patterns: Iterable[str]) -> bool:
        return any(matches_glob(path, pattern) for pattern in patterns)

    def _read_denial(self, path: str) -> str | None:
        if self._matches_any(path, self.acl.forbidden):
            return "forbidden"
        return None

    def _write_denial(self, path: str) -> str | None:
        if self._matches_any(path, self.acl.forbidden):
            return "forbidden"
        if self.acl.writable and not self._matches_any(path, self.acl.writable):
            return "not in writable list"
        if self._matches_any(path, self.acl.read_only):
            return "read-only"
        return None

    def check_read(self, path: str) -> None:
        """Raise AccessDeniedError if ``path`` matches a forbidden pattern."""
        if self._read_denial(path) is not None:
            logger.warning("acl_denied", path=path, access="read", reason="forbidden")
            raise AccessDeniedError(f"Access forbidden: {path}")

    def check_write(self, path: str) -> None:
        """Raise AccessDeniedError (forbidden) or WriteDeniedError (read-only, not writable)."""
        reason = self._write_denial(path)
        if reason is None:
            return

        logger.warning("acl_denied", path=path, access="write", reason=reason)
        if reason == "forbidden":
            raise AccessDeniedError(f"Access forbidden: {path}")
        raise WriteDeniedError(f"Write access denied: {path} ({reason})")

    def can_read(self, path: str) -> bool:
        return self._read_denial(path) is None

    def filter_readable(self, paths: Iterable[str]) -> list[str]:
        """Drop forbidden paths without raising."""
        allowed = []
        for path in paths:
            if self.can_read(path):
                allowed.append(path)
            else:
                logger.debug("acl_filtered", path=path)
        return allowed

    def describe(self, path: str) -> AccessDecision:
        """Explain the read and write decision for ``path``."""
        read_denial = self._read_denial(path)
        write_denial = self._write_denial(path)
        return AccessDecision(
            path=path,
            can_read=read_denial is None,
            can_write=write_denial is None,
            reason=write_denial or "allowed",
        )
