"""Pydantic models for the persisted counter document."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

CURRENT_SCHEMA_VERSION = 2


class IpRecord(BaseModel):
    """Per-address visit bookkeeping."""

    count: int = Field(default=0, ge=0)
    first: int = Field(default=0, ge=0)
    last: int = Field(default=0, ge=0)


class CounterRecord(BaseModel):
    """Shared counters for domains and projects."""

    total: int = Field(default=0, ge=0)
    last: int = Field(default=0, ge=0)
    ips: dict[str, IpRecord] = Field(default_factory=dict)

    def record_hit(self, address: str, now: int) -> None:
        """Apply one hit: bump the total, advance `last`, and track the address."""

        self.total += 1
        self.last = max(self.last, now)
        if not address:
            return

        visitor = self.ips.get(address)
        if visitor is None:
            visitor = IpRecord(first=now)
            self.ips[address] = visitor
        visitor.count += 1
        visitor.last = max(visitor.last, now)


class ProjectRecord(CounterRecord):
    pass


class DomainRecord(CounterRecord):
    projects: dict[str, ProjectRecord] = Field(default_factory=dict)

    def get_or_create_project(self, key: str) -> ProjectRecord:
        record = self.projects.get(key)
        if record is None:
            record = ProjectRecord()
            self.projects[key] = record
        return record


class Store(BaseModel):
    """Root document holding every domain's counters."""

    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION, alias="schemaVersion")
    domains: dict[str, DomainRecord] = Field(default_factory=dict)

    def get_or_create_domain(self, domain: str) -> DomainRecord:
        record = self.domains.get(domain)
        if record is None:
            record = DomainRecord()
            self.domains[domain] = record
        return record

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
