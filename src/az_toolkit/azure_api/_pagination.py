"""ARM pagination helpers."""

from __future__ import annotations

from collections.abc import Callable, Iterator


def iter_pages(
    first_url: str,
    fetch: Callable[[str], dict],
) -> Iterator[list[dict]]:
    """Yield the ``value`` list of each page, following ``nextLink`` lazily.

    The next page is only requested once the caller asks for it.
    """
    url: str | None = first_url
    while url:
        data = fetch(url)
        yield data.get("value", [])
        url = data.get("nextLink")


def _paginate(first_url: str, fetch: Callable[[str], dict]) -> list[dict]:
    """Fetch all pages from an ARM list endpoint and return the merged values."""
    items: list[dict] = []
    for page in iter_pages(first_url, fetch):
        items.extend(page)
    return items
