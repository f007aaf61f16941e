"""Tests for the SQLite client against a temporary database file."""

import asyncio
from datetime import date

import pytest

from src.core import db_client
from src.core.errors import NotFoundError, PersistenceError
from src.domain.task import Task, TaskStatus
from src.services import series_service, task_service


@pytest.fixture
async def sqlite_db(tmp_path, monkeypatch):
    """Initialize a fresh database file and close its connection afterwards."""
    db_path = str(tmp_path / "allme-test.db")
    monkeypatch.setattr("src.core.db_client.settings.sqlite_db_path", db_path)

    await db_client.init_db()
    yield db_path
    await db_client.close_connection()


def _task_data(**overrides):
    data = {"owner_id": "user-1", "title": "Task", "due_date": "2026-01-05", "status": TaskStatus.TODO}
    data.update(overrides)
    return data


@pytest.mark.unit
class TestParseFilter:
    def test_and_with_or_group_and_null(self):
        where, params = db_client.parse_filter('owner_id = "u1" && (series_id = null || due_date != null)')

        assert where == "owner_id = ? AND (series_id IS NULL OR due_date IS NOT NULL)"
        assert params == ["u1"]

    def test_range_and_like(self):
        where, params = db_client.parse_filter('due_date >= "2026-01-01" && title ~ "gym"')

        assert where == "due_date >= ? AND title LIKE ? ESCAPE '\\'"
        assert params == ["2026-01-01", "%gym%"]

    def test_invalid_filter(self):
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            db_client.parse_filter("owner_id == user")

    def test_null_with_range_operator(self):
        with pytest.raises(ValueError, match="cannot be used with null"):
            db_client.parse_filter("due_date > null")

    def test_quoted_values_stay_strings(self):
        where, params = db_client.parse_filter('owner_id = "007" && title = "true" && due_date = "1.5"')

        assert where == "owner_id = ? AND title = ? AND due_date = ?"
        assert params == ["007", "true", "1.5"]

    @pytest.mark.parametrize(
        "value",
        ["it's", 'say "hi"', "a && b", "x || y", "(paren)", "back\\slash", "Zoë", "tab\there"],
    )
    def test_sanitized_values_are_one_parameter(self, value):
        where, params = db_client.parse_filter(
            f'owner_id = "{db_client.sanitize_param(value)}" && (series_id = null || due_date != null)'
        )

        assert where == "owner_id = ? AND (series_id IS NULL OR due_date IS NOT NULL)"
        assert params == [value]

    def test_single_quoted_value(self):
        assert db_client.parse_filter("title = 'a && b'") == ("title = ?", ["a && b"])

    def test_like_escapes_wildcards(self):
        pattern = db_client.sanitize_param("50%_off\\")

        _, params = db_client.parse_filter(f'title ~ "{pattern}"')

        assert params == ["%50\\%\\_off\\\\%"]

    @pytest.mark.parametrize(
        "query",
        ['title = "open', 'title = "a" && (b = "c"', 'title = "a" && && due_date = null'],
    )
    def test_malformed_filters(self, query):
        with pytest.raises(ValueError, match="Invalid filter"):
            db_client.parse_filter(query)

    def test_parse_sort(self):
        assert db_client.parse_sort("-due_date,+created") == "due_date DESC, created ASC"
        assert db_client.parse_sort("due_date; DROP TABLE tasks") == "id ASC"

    def test_sanitize_param_escapes_quotes(self):
        assert db_client.sanitize_param('a"b') == 'a\\"b'


@pytest.mark.unit
class TestCrud:
    async def test_create_and_get(self, sqlite_db):
        created = await db_client.create_record(
            collection="tasks",
            data=_task_data(is_recurring=True, recurrence_days=["mon", "wed"], series_id="s-1"),
        )

        fetched = await db_client.get_record(collection="tasks", record_id=created["id"])
        task = Task.model_validate(fetched)

        assert isinstance(created["id"], str)
        assert task.recurrence_days == ["mon", "wed"]
        assert task.is_recurring is True
        assert task.status == TaskStatus.TODO

    async def test_get_missing_record(self, sqlite_db):
        with pytest.raises(NotFoundError):
            await db_client.get_record(collection="tasks", record_id="999")
        with pytest.raises(NotFoundError):
            await db_client.get_record(collection="tasks", record_id="not-a-number")

    async def test_check_constraints_raise_persistence_error(self, sqlite_db):
        with pytest.raises(PersistenceError):
            await db_client.create_record(collection="tasks", data=_task_data(title=""))
        with pytest.raises(PersistenceError):
            await db_client.create_record(
                collection="tasks", data=_task_data(start_time="10:00", end_time="09:00")
            )
        with pytest.raises(PersistenceError):
            await db_client.create_record(collection="tasks", data=_task_data(is_recurring=True))

    async def test_bulk_create_is_atomic(self, sqlite_db):
        records = [
            _task_data(series_id="s-1", due_date="2026-01-05"),
            _task_data(series_id="s-1", due_date="2026-01-07"),
            _task_data(series_id="s-1", due_date="2026-01-05"),
        ]

        with pytest.raises(PersistenceError):
            await db_client.create_records(collection="tasks", records=records)

        assert await db_client.list_records(collection="tasks") == []

    async def test_bulk_create_empty(self, sqlite_db):
        assert await db_client.create_records(collection="tasks", records=[]) == []

    async def test_update_record(self, sqlite_db):
        created = await db_client.create_record(collection="tasks", data=_task_data())

        updated = await db_client.update_record(
            collection="tasks", record_id=created["id"], data={"status": TaskStatus.DONE}
        )

        assert updated["status"] == "done"
        assert updated["updated"] >= created["updated"]

    async def test_update_missing_record(self, sqlite_db):
        with pytest.raises(NotFoundError):
            await db_client.update_record(collection="tasks", record_id="42", data={"title": "x"})

    async def test_delete_missing_record(self, sqlite_db):
        with pytest.raises(NotFoundError):
            await db_client.delete_record(collection="tasks", record_id="42")

    async def test_bulk_update_and_delete_by_filter(self, sqlite_db):
        await db_client.create_records(
            collection="tasks",
            records=[
                _task_data(series_id="s-1", due_date="2026-01-05"),
                _task_data(series_id="s-1", due_date="2026-01-07", status=TaskStatus.DONE),
                _task_data(series_id="s-2", due_date="2026-01-05"),
            ],
        )

        changed = await db_client.update_records(
            collection="tasks",
            filter_query='series_id = "s-1" && status != "done"',
            data={"status": TaskStatus.DONE},
        )
        removed = await db_client.delete_records(collection="tasks", filter_query='series_id = "s-1"')

        assert changed == 1
        assert removed == 2
        (survivor,) = await db_client.list_records(collection="tasks")
        assert survivor["series_id"] == "s-2"

    async def test_bulk_operations_require_filter(self, sqlite_db):
        with pytest.raises(ValueError, match="requires a filter"):
            await db_client.delete_records(collection="tasks", filter_query="")
        with pytest.raises(ValueError, match="requires a filter"):
            await db_client.update_records(collection="tasks", filter_query="", data={"title": "x"})

    async def test_list_sort_and_pagination(self, sqlite_db):
        for due in ["2026-01-07", "2026-01-05", "2026-01-09"]:
            await db_client.create_record(collection="tasks", data=_task_data(due_date=due))

        first_page = await db_client.list_records(collection="tasks", per_page=2, sort="-due_date")
        second_page = await db_client.list_records(collection="tasks", page=2, per_page=2, sort="-due_date")

        assert [r["due_date"] for r in first_page] == ["2026-01-09", "2026-01-07"]
        assert [r["due_date"] for r in second_page] == ["2026-01-05"]

    async def test_get_first_record(self, sqlite_db):
        await db_client.create_record(collection="tasks", data=_task_data(title="Only"))

        assert (await db_client.get_first_record(collection="tasks", filter_query='title = "Only"'))["title"] == "Only"
        assert await db_client.get_first_record(collection="tasks", filter_query='title = "None"') is None

    async def test_concurrent_commit_does_not_split_bulk_insert(self, sqlite_db):
        other = await db_client.create_record(collection="tasks", data=_task_data(title="Other"))
        batch = [_task_data(series_id="s-1", due_date=f"2026-01-0{day}") for day in range(1, 6)]
        batch.append(_task_data(series_id="s-1", due_date="2026-01-01"))

        results = await asyncio.gather(
            db_client.create_records(collection="tasks", records=batch),
            db_client.update_record(collection="tasks", record_id=other["id"], data={"title": "Renamed"}),
            return_exceptions=True,
        )

        assert isinstance(results[0], PersistenceError)
        assert results[1]["title"] == "Renamed"
        assert await db_client.list_records(collection="tasks", filter_query='series_id = "s-1"') == []
        assert (await db_client.get_record(collection="tasks", record_id=other["id"]))["title"] == "Renamed"

    async def test_failed_bulk_insert_keeps_concurrent_writes(self, sqlite_db):
        batch = [_task_data(series_id="s-1"), _task_data(series_id="s-1")]

        results = await asyncio.gather(
            db_client.create_record(collection="tasks", data=_task_data(title="Plain")),
            db_client.create_records(collection="tasks", records=batch),
            db_client.delete_records(collection="tasks", filter_query='title = "Nothing"'),
            return_exceptions=True,
        )

        assert results[0]["title"] == "Plain"
        assert isinstance(results[1], PersistenceError)
        assert results[2] == 0
        assert [r["title"] for r in await db_client.list_records(collection="tasks")] == ["Plain"]


@pytest.mark.unit
class TestServicesOnSqlite:
    async def test_series_lifecycle(self, sqlite_db):
        created = await series_service.create_series(
            owner_id="user-1",
            series={"title": "Gym", "recurrence_days": ["mon", "wed"]},
            today=date(2026, 1, 5),
            horizon_days=13,
        )

        visible = await task_service.list_visible_tasks(owner_id="user-1")
        assert [task.due_date for task in visible] == ["2026-01-05", "2026-01-07", "2026-01-12", "2026-01-14"]

        await series_service.delete_occurrence(task_id=visible[1].id, owner_id="user-1")
        assert await series_service.complete_series(series_id=created.series_id, owner_id="user-1") == 3
        assert await series_service.complete_series(series_id=created.series_id, owner_id="user-1") == 0

        assert await series_service.delete_series(series_id=created.series_id, owner_id="user-1") == 4
        assert await db_client.list_records(collection="tasks") == []

    @pytest.mark.parametrize("owner_id", ["007", "true", "1.50", "o'brien && (x || y)", 'say "hi"', "Zoë"])
    async def test_owner_ids_are_opaque(self, sqlite_db, owner_id):
        plain = await task_service.create_task(owner_id=owner_id, task={"title": "Mine", "due_date": "2026-01-05"})
        created = await series_service.create_series(
            owner_id=owner_id,
            series={"title": "Gym", "recurrence_days": ["mon", "wed"]},
            today=date(2026, 1, 5),
            horizon_days=13,
        )

        assert len(await task_service.list_visible_tasks(owner_id=owner_id)) == 5
        assert await task_service.list_visible_tasks(owner_id="7") == []

        view = await series_service.get_series(series_id=created.series_id, owner_id=owner_id)
        assert view.template.owner_id == owner_id
        assert await series_service.complete_series(series_id=created.series_id, owner_id=owner_id) == 4
        assert await series_service.delete_series(series_id=created.series_id, owner_id=owner_id) == 5

        (remaining,) = await task_service.list_visible_tasks(owner_id=owner_id)
        assert remaining.id == plain.id

    @pytest.mark.parametrize("series_id", ["it's", "a && b", "x || (y)", '"quoted"', "999"])
    async def test_unknown_series_ids_are_no_ops(self, sqlite_db, series_id):
        await series_service.create_series(
            owner_id="user-1",
            series={"title": "Gym", "recurrence_days": ["mon", "wed"]},
            today=date(2026, 1, 5),
            horizon_days=13,
        )

        assert await series_service.complete_series(series_id=series_id, owner_id="user-1") == 0
        assert await series_service.delete_series(series_id=series_id, owner_id="user-1") == 0
        assert await series_service.extend_series(series_id=series_id, owner_id="user-1") == 0
        with pytest.raises(NotFoundError):
            await series_service.get_series(series_id=series_id, owner_id="user-1")

        visible = await task_service.list_visible_tasks(owner_id="user-1")
        assert [task.status for task in visible] == [TaskStatus.TODO] * 4
