"""Runtime configuration for the support metrics backend."""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), "..", "config", "metrics-config.json"
)


@dataclass(frozen=True)
class MetricsConfig:
    """Settings for classification rules, the cache and the Jira client."""

    project_key: str = "EAB"
    internal_labels: frozenset = field(default_factory=lambda: frozenset(
        {"InternalSupport", "internal-support", "Internal_Support"}
    ))
    delivery_labels: frozenset = field(default_factory=lambda: frozenset(
        {"Delivery", "delivery-team"}
    ))
    escalation_statuses: frozenset = field(default_factory=lambda: frozenset(
        {"Escalated", "Escalated to Engineering", "Engineering"}
    ))
    cache_ttl_seconds: int = 15 * 60
    cache_max_entries: int = 128
    request_timeout: int = 30
    max_results: int = 100
    enrichment_workers: int = 10


# Env var -> config attribute, integer settings only
_INT_ENV_VARS = {
    "SUPPORT_CACHE_TTL_SECONDS": "cache_ttl_seconds",
    "SUPPORT_CACHE_MAX_ENTRIES": "cache_max_entries",
    "SUPPORT_JIRA_TIMEOUT": "request_timeout",
    "SUPPORT_ENRICHMENT_WORKERS": "enrichment_workers",
}

# JSON key -> config attribute, label and status sets
_SET_FILE_KEYS = {
    "internalLabels": "internal_labels",
    "deliveryLabels": "delivery_labels",
    "escalationStatuses": "escalation_statuses",
}


def _load_file_overrides(path: str) -> dict:
    """Read overrides from the optional JSON config file."""
    if not os.path.exists(path):
        logger.info("No metrics-config.json found, using default classification rules")
        return {}

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        logger.warning(f"Failed to load metrics config: {e}")
        return {}

    overrides = {}
    if data.get("projectKey"):
        overrides["project_key"] = str(data["projectKey"])
    for key, attr in _SET_FILE_KEYS.items():
        values = data.get(key)
        if isinstance(values, list) and values:
            overrides[attr] = frozenset(str(v) for v in values)

    logger.info(f"Loaded metrics config overrides: {sorted(overrides)}")
    return overrides


def _load_env_overrides(environ) -> dict:
    overrides = {}
    project_key = environ.get("SUPPORT_PROJECT_KEY")
    if project_key:
        overrides["project_key"] = project_key.strip()

    for var, attr in _INT_ENV_VARS.items():
        raw = environ.get(var)
        if not raw:
            continue
        try:
            value = int(raw)
        except ValueError:
            logger.warning(f"Ignoring non-integer {var}={raw!r}")
            continue
        if value <= 0:
            logger.warning(f"Ignoring non-positive {var}={value}")
            continue
        overrides[attr] = value
    return overrides


def load_config(path: Optional[str] = None, environ=None) -> MetricsConfig:
    """Build the config from defaults, the JSON file, then the environment.

    Environment variables win over the file.
    """
    if environ is None:
        environ = os.environ
    if path is None:
        path = environ.get("SUPPORT_METRICS_CONFIG", DEFAULT_CONFIG_PATH)

    overrides = _load_file_overrides(path)
    overrides.update(_load_env_overrides(environ))
    return replace(MetricsConfig(), **overrides)
