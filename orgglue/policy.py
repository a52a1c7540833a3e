"""Policy-as-code — the YAML file declaring which checks run and how.

A policy names check instances of the built-in check types and the bot
accounts every check must leave alone::

    name: archlinux
    bots: [archbot]
    checks:
      - name: staff-team
        type: group_members
        resource: archlinux/teams/staff
        sources:
          - group: /Arch Linux Staff
            role: reporter
            recursive: true
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

from orgglue.engine.checks import Check, registry
from orgglue.errors import ConfigError


@dataclass
class CheckSpec:
    """One check entry of a policy file."""

    name: str
    type: str
    enabled: bool = True
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class Policy:
    """A loaded policy file."""

    name: str = "unnamed"
    bots: list[str] = field(default_factory=list)
    checks: list[CheckSpec] = field(default_factory=list)

    def build_checks(self, selected: Iterable[str] | None = None) -> list[Check]:
        """Instantiate the enabled checks, optionally only the *selected* names.

        Raises ``ConfigError`` for unknown types, duplicate names, invalid
        parameters, or selected names the policy does not define.
        """
        wanted = {name.strip() for name in selected} if selected else None
        seen: set[str] = set()
        checks: list[Check] = []
        for spec in self.checks:
            if spec.name in seen:
                raise ConfigError(f"duplicate check name '{spec.name}'")
            seen.add(spec.name)
            check_cls = registry.get(spec.type)
            if check_cls is None:
                known = ", ".join(sorted(registry.all()))
                raise ConfigError(
                    f"check '{spec.name}' has unknown type '{spec.type}' (known: {known})"
                )
            if wanted is not None:
                if spec.name not in wanted:
                    continue
            elif not spec.enabled:
                continue
            checks.append(check_cls(spec.name, spec.params))

        if wanted is not None:
            missing = sorted(wanted - seen)
            if missing:
                raise ConfigError(f"unknown check(s): {', '.join(missing)}")
        return sorted(checks, key=lambda c: c.name)


def load_policy(path: str | Path) -> Policy:
    """Load a policy from a YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read policy {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid policy {path}: {e}") from e
    return parse_policy(data or {})


def parse_policy(data: dict[str, Any]) -> Policy:
    if not isinstance(data, dict):
        raise ConfigError("policy must be a mapping")

    checks = []
    for index, check_data in enumerate(data.get("checks") or []):
        if not isinstance(check_data, dict):
            raise ConfigError(f"checks[{index}] must be a mapping")
        params = dict(check_data)
        check_type = str(params.pop("type", "")).strip().lower()
        if not check_type:
            raise ConfigError(f"checks[{index}] is missing 'type'")
        name = str(params.pop("name", check_type)).strip()
        enabled = params.pop("enabled", True)
        checks.append(
            CheckSpec(
                name=name,
                type=check_type,
                enabled=str(enabled).lower() != "false",
                params=params,
            )
        )

    bots = data.get("bots") or []
    if not isinstance(bots, list):
        raise ConfigError("'bots' must be a list of usernames")

    return Policy(
        name=str(data.get("name", "unnamed")),
        bots=[str(bot) for bot in bots],
        checks=checks,
    )
