"""Нормализация URL для группировки ошибок в паттерны.

Числовые сегменты пути заменяются на ``:id``, query-строка отбрасывается,
поэтому ``/projects/42/tasks?tab=1`` и ``/projects/7/tasks`` дают один ключ.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Compiled patterns
# ---------------------------------------------------------------------------

_NUMERIC_SEGMENT_RE = re.compile(r"/\d+")
_QUERY_RE = re.compile(r"\?.*")


def normalize_url_pattern(url: str) -> str:
    """``https://app/users/42/edit?x=1`` → ``https://app/users/:id/edit``."""
    return _QUERY_RE.sub("", _NUMERIC_SEGMENT_RE.sub("/:id", url or ""))


def common_url_prefix(urls: list[str]) -> str:
    """Общий префикс URL по сегментам пути.

    Один URL возвращается как есть. Если общих сегментов нет —
    ``"multiple pages"``.
    """
    if not urls:
        return "multiple pages"
    if len(urls) == 1:
        return urls[0]

    split = [url.split("/") for url in urls]
    common: list[str] = []
    for segments in zip(*split):
        if all(segment == segments[0] for segment in segments):
            common.append(segments[0])
        else:
            break

    return "/".join(common) or "multiple pages"
