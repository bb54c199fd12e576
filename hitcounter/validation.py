"""Domain and project identifier normalization plus allow-list checks."""

from __future__ import annotations

import re

from hitcounter.config import CounterPolicy

MAX_DOMAIN_LENGTH = 253
MAX_PROJECT_LENGTH = 80

_DOMAIN_RE = re.compile(r"^[a-z0-9.-]{1,253}$")
_PROJECT_RE = re.compile(r"^[a-z0-9][a-z0-9._-]{0,79}$")


class CounterInputError(ValueError):
    """Base error for requests the counter refuses; carries the wire error code."""

    code = "invalid_request"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidDomainError(CounterInputError):
    code = "invalid_domain"


class InvalidProjectError(CounterInputError):
    code = "invalid_project"


class DomainNotAllowedError(CounterInputError):
    """Raised for well-formed domains outside the configured allow-list."""

    code = "domain_not_allowed"


def normalize_domain(raw: str | None) -> str:
    """Lowercase and trim a domain, raising InvalidDomainError when unusable."""

    value = (raw or "").strip().lower()
    if not _DOMAIN_RE.fullmatch(value):
        raise InvalidDomainError("Domain must be 1-253 characters of a-z, 0-9, '.' or '-'")
    return value


def normalize_project(raw: str | None) -> str | None:
    """
    Normalize an optional project key.

    Returns None when no project was requested. One leading and one trailing
    slash are tolerated so callers can pass path-like keys such as "/blog/".
    """

    if raw is None or not raw.strip():
        return None

    value = raw.strip()
    if value.startswith("/"):
        value = value[1:]
    if value.endswith("/"):
        value = value[:-1]
    value = value.lower()

    if not _PROJECT_RE.fullmatch(value):
        raise InvalidProjectError(
            "Project must start with a-z or 0-9 and contain at most 80 of a-z, 0-9, '.', '_' or '-'"
        )
    return value


def is_allowed_domain(domain: str, policy: CounterPolicy) -> bool:
    if policy.allow_all:
        return True
    return any(
        domain == root or domain.endswith(f".{root}") for root in policy.allowed_root_domains
    )


def resolve_target(
    raw_domain: str | None,
    raw_project: str | None,
    policy: CounterPolicy,
) -> tuple[str, str | None]:
    """
    Validate a (domain, project) pair in the order shared by hits and queries.

    Raises:
        InvalidDomainError: the domain is malformed.
        DomainNotAllowedError: the domain is not covered by the allow-list.
        InvalidProjectError: a project was supplied but is malformed.
    """

    domain = normalize_domain(raw_domain)
    if not is_allowed_domain(domain, policy):
        raise DomainNotAllowedError(f"Domain {domain} is not allowed on this counter")
    project = normalize_project(raw_project)
    return domain, project
