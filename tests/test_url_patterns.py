"""Тесты нормализации URL для группировки ошибок."""

from __future__ import annotations

from vigil.utils.url_patterns import common_url_prefix, normalize_url_pattern


def test_numeric_segments_and_query_are_normalized() -> None:
    assert (
        normalize_url_pattern("http://app/projects/42/tasks/7?tab=1")
        == "http://app/projects/:id/tasks/:id"
    )


def test_urls_differing_by_id_share_pattern() -> None:
    assert normalize_url_pattern("/users/1") == normalize_url_pattern("/users/999")


def test_empty_url() -> None:
    assert normalize_url_pattern("") == ""


def test_common_prefix_by_segments() -> None:
    urls = ["http://app/api/teams/1", "http://app/api/teams/2", "http://app/api/teams"]

    assert common_url_prefix(urls) == "http://app/api/teams"


def test_common_prefix_single_and_empty() -> None:
    assert common_url_prefix(["http://app/x"]) == "http://app/x"
    assert common_url_prefix([]) == "multiple pages"


def test_no_common_prefix() -> None:
    assert common_url_prefix(["/a", "b"]) == "multiple pages"
