import asyncio
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from codeshelf.core.search_index import SearchIndex, SortSpec, sort_projects
from codeshelf.db.migrations import apply_migrations
from codeshelf.db.store import JSONStore
from codeshelf.models.project import Project, ProjectKind

names = st.text(alphabet="abcdefghij-_", min_size=1, max_size=12)
scan_times = st.datetimes(
    min_value=datetime(2000, 1, 1), max_value=datetime(2100, 1, 1), timezones=st.just(UTC)
)

projects = st.builds(
    Project,
    name=names,
    path=names.map(lambda name: f"/code/{name}"),
    kind=st.sampled_from(list(ProjectKind)),
    importance=st.integers(min_value=0, max_value=5),
    size_bytes=st.integers(min_value=0, max_value=10**9),
    last_scanned_at=st.none() | scan_times,
    tags=st.lists(st.sampled_from(["work", "home", "oss"]), max_size=3),
)


def _unique_paths(items: list[Project]) -> list[Project]:
    seen: dict[str, Project] = {}
    for item in items:
        seen[item.path] = item
    return list(seen.values())


@settings(max_examples=25, deadline=None)
@given(st.lists(projects, max_size=8))
def test_store_reload_returns_what_was_flushed(items: list[Project]) -> None:
    expected = _unique_paths(items)

    async def scenario(data_dir: Path) -> list[Project]:
        store = JSONStore(data_dir)
        for item in items:
            await store.upsert_project(item)
        await store.flush()
        return await JSONStore(data_dir).list_projects()

    with tempfile.TemporaryDirectory() as tmp:
        reloaded = asyncio.run(scenario(Path(tmp)))

    assert sorted(reloaded, key=lambda p: p.path) == sorted(expected, key=lambda p: p.path)


@given(st.lists(projects, max_size=20), st.integers(min_value=1, max_value=7))
def test_pages_partition_the_listing(items: list[Project], page_size: int) -> None:
    index = SearchIndex()
    index.build_index(items)
    sort = SortSpec(by="sizeBytes", order="desc")

    collected: list[str] = []
    page = 1
    while True:
        result = index.get_all(sort=sort, page=page, page_size=page_size)
        assert result.total == len(items)
        if not result.projects:
            break
        collected.extend(project.id for project in result.projects)
        page += 1

    assert collected == [project.id for project in sort_projects(items, sort)]


@given(st.lists(projects, max_size=20), st.sampled_from(["asc", "desc"]))
def test_missing_scan_times_always_sort_last(items: list[Project], order: str) -> None:
    sort = SortSpec(by="lastScannedAt", order=order)  # type: ignore[arg-type]
    stamps = [project.last_scanned_at for project in sort_projects(items, sort)]
    first_missing = stamps.index(None) if None in stamps else len(stamps)
    assert all(stamp is None for stamp in stamps[first_missing:])
    present = stamps[:first_missing]
    assert present == sorted(present, reverse=order == "desc")


@settings(deadline=None)
@given(
    st.lists(
        st.fixed_dictionaries(
            {"id": st.uuids().map(str)},
            optional={
                "importance": st.one_of(st.integers(-10, 10), st.text(max_size=3), st.none()),
                "scanStatus": st.sampled_from(["complete", "user-modified", ""]),
                "created_at": st.just("2020-01-01T00:00:00Z"),
            },
        ),
        max_size=5,
    ),
    st.integers(min_value=0, max_value=2),
)
def test_migrations_are_idempotent(raw_projects: list[dict], version: int) -> None:
    once = apply_migrations({"meta": {"version": version}, "projects": raw_projects})
    assert apply_migrations(once) == once
    if version < 2:
        assert all(0 <= project["importance"] <= 5 for project in once["projects"])


@settings(max_examples=50, deadline=None)
@given(
    st.lists(
        st.tuples(st.sampled_from(["p1", "p2", "p3"]), st.sampled_from(["/a", "/b", "/c"])),
        max_size=12,
    )
)
def test_upserts_keep_one_record_per_path(pairs: list[tuple[str, str]]) -> None:
    async def scenario(data_dir: Path) -> list[Project]:
        store = JSONStore(data_dir, debounce_seconds=0)
        for project_id, path in pairs:
            await store.upsert_project(Project(id=project_id, name=project_id, path=path))
        listed = await store.list_projects()
        await store.close()
        return listed

    with tempfile.TemporaryDirectory() as tmp:
        listed = asyncio.run(scenario(Path(tmp)))

    paths = [project.path for project in listed]
    ids = [project.id for project in listed]
    assert len(paths) == len(set(paths))
    assert len(ids) == len(set(ids))
    if pairs:
        last_id, last_path = pairs[-1]
        assert any(p.id == last_id and p.path == last_path for p in listed)
