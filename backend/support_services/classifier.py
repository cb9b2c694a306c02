"""Filters that partition a pool of issue records.

All filters return new lists in input order and skip records that lack the
field being tested.
"""

from typing import Iterable, Optional, Union

# Jira exposes the resolution timestamp under either name depending on API version
RESOLUTION_FIELDS = ("resolutiondate", "resolved")


def _fields(issue: dict) -> dict:
    return issue.get("fields") or {}


def first_present(issue: dict, field_names: Union[str, Iterable[str]]):
    """Return the first truthy value among candidate field names."""
    if isinstance(field_names, str):
        field_names = (field_names,)
    fields = _fields(issue)
    for name in field_names:
        value = fields.get(name)
        if value:
            return value
    return None


def filter_by_project(issues: list, prefix: str) -> list:
    """Keep issues whose key belongs to the given project.

    The master query is a text search, so it also matches issues in other
    projects that merely mention the key.
    """
    marker = f"{prefix}-"
    return [i for i in issues if isinstance(i.get("key"), str) and i["key"].startswith(marker)]


def filter_by_date_field(issues: list, field: Union[str, Iterable[str]],
                         start: str, end: Optional[str] = None) -> list:
    """Keep issues whose date field falls in ``[start, end 23:59:59]``.

    Comparison is on the ISO string, so ``start``/``end`` are ``YYYY-MM-DD``.
    """
    upper = f"{end}T23:59:59" if end else None
    result = []
    for issue in issues:
        value = first_present(issue, field)
        if not isinstance(value, str):
            continue
        if value < start:
            continue
        if upper and value > upper:
            continue
        result.append(issue)
    return result


def filter_by_label_set(issues: list, allowed_labels: Iterable[str]) -> list:
    allowed = set(allowed_labels)
    return [
        i for i in issues
        if any(label in allowed for label in (_fields(i).get("labels") or []))
    ]


def filter_by_status_set(issues: list, allowed_statuses: Iterable[str]) -> list:
    allowed = set(allowed_statuses)
    result = []
    for issue in issues:
        status = _fields(issue).get("status") or {}
        if isinstance(status, dict) and status.get("name") in allowed:
            result.append(issue)
    return result


def filter_by_priority(issues: list, priority: Optional[str]) -> list:
    """Priority hook for the aggregation pipeline.

    The dashboard sends a priority selection but whether it should narrow
    the metrics is undecided, so this returns every issue unchanged.
    """
    return list(issues)
