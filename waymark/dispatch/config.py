"""Dispatch configuration: retry tuning and the distribution document.

The distribution document declares named channels and the static rules
that route events to them::

    rules:
      - match: {event: item.created, type: [issue, bug]}
        channels: [github-main, ops-slack]
      - match: {priority: critical}
        channels: [ops-slack]
    channels:
      github-main:
        adapter: github-issue
        repo: coco-xyz/clawmark
        token: ghp_...
      ops-slack:
        adapter: slack
        webhook_url: https://hooks.slack.com/services/T000/B000/XXX

Usage
-----
>>> config = DispatchConfig.from_env()
>>> distribution = load_distribution_config("distribution.yml")

"""

from __future__ import annotations

import dataclasses as dc
import os
import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from waymark.dispatch.errors import DistributionConfigError

YAML_VERSION = (1, 2)


@dc.dataclass(frozen=True, slots=True)
class DispatchConfig:
    """Retry sweep tuning.

    Attributes
    ----------
    retry_base_delay_s
        Base of the exponential backoff. Default 5 seconds.
    retry_max_attempts
        Failed attempts after which an entry is ``exhausted``. Default 3.
    retry_interval_s
        Interval at which the external scheduler should trigger the sweep.
        Default 30 seconds.
    last_error_max_length
        Characters of an error message kept in ``last_error``.
    distribution_path
        Optional YAML distribution document loaded at startup.

    """

    retry_base_delay_s: float = 5.0
    retry_max_attempts: int = 3
    retry_interval_s: float = 30.0
    last_error_max_length: int = 500
    distribution_path: Path | None = None

    @staticmethod
    def _parse_positive_float(env_var: str, default: float) -> float:
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            msg = f"{env_var} must be a number, got: {raw!r}"
            raise ValueError(msg) from exc
        if value <= 0:
            msg = f"{env_var} must be positive, got: {value}"
            raise ValueError(msg)
        return value

    @staticmethod
    def _parse_positive_int(env_var: str, default: int) -> int:
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise ValueError(msg) from exc
        if value < 1:
            msg = f"{env_var} must be positive, got: {value}"
            raise ValueError(msg)
        return value

    @classmethod
    def from_env(cls) -> DispatchConfig:
        """Create configuration from environment variables.

        Reads ``WAYMARK_RETRY_BASE_DELAY_S``, ``WAYMARK_RETRY_MAX_ATTEMPTS``,
        ``WAYMARK_RETRY_INTERVAL_S`` and ``WAYMARK_DISTRIBUTION_PATH``.

        Raises
        ------
        ValueError
            If a numeric variable is not a positive number.

        """
        distribution_path: Path | None = None
        raw_path = os.environ.get("WAYMARK_DISTRIBUTION_PATH", "")
        if raw_path.strip():
            distribution_path = Path(raw_path.strip())

        return cls(
            retry_base_delay_s=cls._parse_positive_float(
                "WAYMARK_RETRY_BASE_DELAY_S", 5.0
            ),
            retry_max_attempts=cls._parse_positive_int(
                "WAYMARK_RETRY_MAX_ATTEMPTS", 3
            ),
            retry_interval_s=cls._parse_positive_float("WAYMARK_RETRY_INTERVAL_S", 30.0),
            distribution_path=distribution_path,
        )


class RuleMatch(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Conditions of a static rule; absent fields are unconstrained.

    List values mean "any of".
    """

    event: str | list[str] | None = None
    type: str | list[str] | None = None
    priority: str | list[str] | None = None
    status: str | list[str] | None = None
    app_id: str | list[str] | None = None


class StaticRule(msgspec.Struct, kw_only=True):
    """Route events matching ``match`` to every channel in ``channels``."""

    match: RuleMatch = msgspec.field(default_factory=RuleMatch)
    channels: list[str] = msgspec.field(default_factory=list)


class DistributionConfig(msgspec.Struct, kw_only=True):
    """Static rules plus the channel definitions they refer to.

    Each channel maps a name to ``{adapter: <type>, ...per-type fields}``.
    """

    rules: list[StaticRule] = msgspec.field(default_factory=list)
    channels: dict[str, dict[str, typ.Any]] = msgspec.field(default_factory=dict)


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml


def parse_distribution_config(loaded: object) -> DistributionConfig:
    """Convert a parsed document into a ``DistributionConfig``.

    Raises
    ------
    DistributionConfigError
        If the document does not have the expected shape.

    """
    if loaded is None:
        return DistributionConfig()
    try:
        return msgspec.convert(loaded, type=DistributionConfig)
    except msgspec.ValidationError as exc:
        raise DistributionConfigError([f"schema validation failed: {exc}"]) from exc


def load_distribution_config(path: Path | str) -> DistributionConfig:
    """Parse a YAML distribution document using a YAML 1.2 loader."""
    try:
        loaded = _yaml().load(Path(path).read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise DistributionConfigError([f"failed to parse YAML: {exc}"]) from exc
    return parse_distribution_config(loaded)
