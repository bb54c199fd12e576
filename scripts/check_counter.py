#!/usr/bin/env python3
from __future__ import annotations

import argparse
import time
from dataclasses import dataclass

import httpx

from hitcounter.validation import InvalidProjectError, normalize_project


class CheckFailed(AssertionError):
    pass


@dataclass(frozen=True)
class CheckTarget:
    base_url: str
    domain: str
    project: str


def build_target(base_url: str, domain_suffix: str, project: str | None) -> CheckTarget:
    ts = int(time.time() * 1000)
    suffix = domain_suffix.lower().lstrip(".")
    domain = f"test-{ts}.{suffix}"
    try:
        candidate = normalize_project(project) or f"proj-{ts}"
    except InvalidProjectError:
        candidate = f"proj-{ts}"
    return CheckTarget(base_url=base_url.rstrip("/"), domain=domain, project=candidate)


def _expect(condition: bool, message: str) -> None:
    if not condition:
        raise CheckFailed(message)


def _get_json(client: httpx.Client, url: str, params: dict[str, str], *, status: int = 200) -> dict:
    response = client.get(url, params=params, headers={"Cache-Control": "no-store"})
    _expect(
        response.status_code == status,
        f"expected HTTP {status} from {response.url}, got {response.status_code}",
    )
    try:
        return response.json()
    except ValueError as exc:
        raise CheckFailed(f"non-JSON body from {response.url}: {response.text!r}") from exc


def run_checks(client: httpx.Client, target: CheckTarget) -> list[str]:
    """Run the end-to-end counter checks and return the names of passed steps."""

    stats_url = f"{target.base_url}/stats"
    hit_url = f"{target.base_url}/hit"
    domain_params = {"d": target.domain}
    project_params = {"d": target.domain, "p": target.project}
    passed: list[str] = []

    data = _get_json(client, stats_url, domain_params)
    _expect(data.get("total") == 0 and data.get("last") == 0, f"fresh domain not zero: {data}")
    data = _get_json(client, stats_url, project_params)
    _expect(data.get("project") == target.project, f"project key mismatch: {data}")
    _expect(data.get("total") == 0, f"fresh project not zero: {data}")
    passed.append("initial stats are zero")

    data = _get_json(client, hit_url, {**domain_params, "debug": "1"})
    _expect(data.get("domain") == target.domain, f"hit debug domain mismatch: {data}")
    response = client.get(hit_url, params=domain_params)
    _expect(response.status_code == 204, f"plain hit returned {response.status_code}")
    passed.append("domain hits acknowledged")

    data = _get_json(client, hit_url, {**project_params, "debug": "1"})
    _expect(data.get("project") == target.project, f"hit debug project mismatch: {data}")
    response = client.get(hit_url, params=project_params)
    _expect(response.status_code == 204, f"plain project hit returned {response.status_code}")
    passed.append("project hits acknowledged")

    data = _get_json(client, stats_url, domain_params)
    _expect(data.get("total") == 4, f"domain total should include project hits: {data}")
    data = _get_json(client, stats_url, project_params)
    _expect(data.get("total") == 2, f"project total should be 2: {data}")
    passed.append("totals aggregate correctly")

    data = _get_json(client, stats_url, {**domain_params, "includeProjects": "1"})
    overview = data.get("projects") or {}
    _expect(overview.get(target.project, {}).get("total") == 2, f"project overview wrong: {data}")
    data = _get_json(client, stats_url, {**domain_params, "includeIps": "1"})
    _expect(isinstance(data.get("ips"), dict), f"ips map missing: {data}")
    passed.append("optional sections present")

    data = _get_json(client, stats_url, {"d": "bad!!domain"}, status=400)
    _expect(data.get("error") == "invalid_domain", f"unexpected error body: {data}")
    data = _get_json(client, stats_url, {**domain_params, "p": "bad/slash"}, status=400)
    _expect(data.get("error") == "invalid_project", f"unexpected error body: {data}")
    data = _get_json(client, hit_url, {**domain_params, "p": "bad/slash", "debug": "1"}, status=400)
    _expect(data.get("error") == "invalid_project", f"unexpected error body: {data}")
    passed.append("invalid input rejected")

    return passed


def main() -> int:
    parser = argparse.ArgumentParser(description="Regression check against a running hit counter")
    parser.add_argument(
        "--base-url",
        default="http://127.0.0.1:8787",
        help="Counter base URL (default: http://127.0.0.1:8787)",
    )
    parser.add_argument(
        "--domain",
        default="localhost",
        help="Domain suffix for the throwaway test domain (default: localhost)",
    )
    parser.add_argument("--project", default=None, help="Project key to use (default: generated)")
    args = parser.parse_args()

    target = build_target(args.base_url, args.domain, args.project)
    print(f"Checking {target.base_url} with domain={target.domain} project={target.project}")

    with httpx.Client(timeout=10) as client:
        try:
            passed = run_checks(client, target)
        except (CheckFailed, httpx.HTTPError) as exc:
            print(f"FAILED: {exc}")
            return 1

    for name in passed:
        print(f"- ok: {name}")
    print("All checks passed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
