"""Hit recording and stats aggregation over the counter store."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from hitcounter.client_ip import anonymize_address
from hitcounter.config import CounterPolicy
from hitcounter.models import CounterRecord, DomainRecord, Store
from hitcounter.store import JsonCounterStore
from hitcounter.validation import resolve_target
from hitcounter.writer import WriteSerializer


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class HitOutcome:
    """Result of an accepted hit."""

    domain: str
    project: str | None
    ts: int

    def to_payload(self) -> dict[str, Any]:
        return {"ok": True, "domain": self.domain, "project": self.project, "ts": self.ts}


@dataclass(slots=True)
class StatsSnapshot:
    """Read-only counters for a domain or one of its projects."""

    domain: str
    project: str | None
    total: int
    last: int
    ips: dict[str, dict[str, int]] | None = None
    projects: dict[str, dict[str, int]] | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": True, "domain": self.domain}
        if self.project is not None:
            payload["project"] = self.project
        payload["total"] = self.total
        payload["last"] = self.last
        if self.ips is not None:
            payload["ips"] = self.ips
        if self.projects is not None:
            payload["projects"] = self.projects
        return payload


def _dump_ips(record: CounterRecord | None) -> dict[str, dict[str, int]]:
    if record is None:
        return {}
    return {address: visitor.model_dump() for address, visitor in record.ips.items()}


def _project_overview(record: DomainRecord | None) -> dict[str, dict[str, int]]:
    if record is None:
        return {}
    return {
        key: {"total": project.total, "last": project.last}
        for key, project in record.projects.items()
    }


def apply_hit(store: Store, domain: str, project: str | None, address: str, now: int) -> None:
    """Count one hit against the domain and, when given, against its project too."""

    domain_record = store.get_or_create_domain(domain)
    domain_record.record_hit(address, now)
    if project is not None:
        domain_record.get_or_create_project(project).record_hit(address, now)


def build_stats_snapshot(
    store: Store,
    domain: str,
    project: str | None,
    *,
    include_ips: bool = False,
    include_projects: bool = False,
) -> StatsSnapshot:
    """
    Build the stats view for a domain or one of its projects.

    Unknown domains and projects produce a zero snapshot. The project
    overview only lists totals and timestamps; per-project addresses are
    exposed solely through a project-scoped query with include_ips.
    """

    domain_record = store.domains.get(domain)

    if project is not None:
        project_record = domain_record.projects.get(project) if domain_record else None
        return StatsSnapshot(
            domain=domain,
            project=project,
            total=project_record.total if project_record else 0,
            last=project_record.last if project_record else 0,
            ips=_dump_ips(project_record) if include_ips else None,
        )

    return StatsSnapshot(
        domain=domain,
        project=None,
        total=domain_record.total if domain_record else 0,
        last=domain_record.last if domain_record else 0,
        ips=_dump_ips(domain_record) if include_ips else None,
        projects=_project_overview(domain_record) if include_projects else None,
    )


class CounterService:
    """Validated hit and stats operations sharing one store and write queue."""

    def __init__(self, store: JsonCounterStore, writer: WriteSerializer | None = None) -> None:
        self.store = store
        self.writer = writer or WriteSerializer(store)

    async def hit(
        self,
        raw_domain: str | None,
        raw_project: str | None,
        client_address: str,
        *,
        policy: CounterPolicy,
        now: int | None = None,
    ) -> HitOutcome:
        domain, project = resolve_target(raw_domain, raw_project, policy)
        address = anonymize_address(client_address) if policy.anonymize_ip else client_address
        ts = now if now is not None else now_ms()

        def _mutation(store: Store) -> HitOutcome:
            apply_hit(store, domain, project, address, ts)
            return HitOutcome(domain=domain, project=project, ts=ts)

        return await self.writer.enqueue(_mutation, label=f"hit:{domain}")

    async def stats(
        self,
        raw_domain: str | None,
        raw_project: str | None,
        *,
        policy: CounterPolicy,
        include_ips: bool = False,
        include_projects: bool = False,
    ) -> StatsSnapshot:
        domain, project = resolve_target(raw_domain, raw_project, policy)
        store = await asyncio.to_thread(self.store.load)
        return build_stats_snapshot(
            store,
            domain,
            project,
            include_ips=include_ips,
            include_projects=include_projects,
        )

    async def close(self) -> None:
        await self.writer.close()
