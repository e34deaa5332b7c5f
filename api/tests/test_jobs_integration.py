from __future__ import annotations

import asyncio
import os
from collections.abc import Coroutine
from decimal import Decimal
from pathlib import Path
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest
from fastapi.testclient import TestClient

from jobly.core.auth import Principal
from jobly.core.config import get_settings
from jobly.core.security import get_admin_principal
from jobly.main import app
from jobly.services.database import Database, get_database
from jobly.services.repository import (
    JobRepository,
    NoFieldsToUpdateError,
    RepositoryDuplicateError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    UnrecognizedFilterError,
    get_repository,
)

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "db" / "schema.sql"

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("JOBLY_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require JOBLY_DATABASE_URL or DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_reset_tables(database_url))


@pytest.fixture
def api_client(database_url: str) -> TestClient:
    os.environ["JOBLY_DATABASE_URL"] = database_url
    get_settings.cache_clear()
    get_database.cache_clear()
    get_repository.cache_clear()
    app.dependency_overrides[get_admin_principal] = lambda: Principal(
        subject="admin-1",
        role="admin",
        scopes=frozenset({"jobs:read", "jobs:write"}),
    )

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("JOBLY_DATABASE_URL", None)
    get_repository.cache_clear()
    get_database.cache_clear()
    get_settings.cache_clear()


def test_find_all_combines_title_salary_and_equity_filters(database_url: str) -> None:
    async def scenario(repository: JobRepository) -> None:
        everything = await repository.find_all({})
        assert [job["title"] for job in everything] == ["guest service"]

        matching = await repository.find_all({"title": "GUEST", "minSalary": "30000", "hasEquity": "false"})
        assert matching == [
            {
                "id": matching[0]["id"],
                "title": "guest service",
                "salary": 32000,
                "equity": Decimal("0"),
                "company_handle": "c1",
            }
        ]

        assert await repository.find_all({"title": "guest", "minSalary": "30000", "hasEquity": "true"}) == []
        assert await repository.find_all({"minSalary": "40000"}) == []
        assert len(await repository.find_all({"hasEquity": "maybe"})) == 1

        with pytest.raises(UnrecognizedFilterError):
            await repository.find_all({"hello": "world"})

    _run(_with_repository(database_url, scenario))


def test_find_all_treats_title_as_data(database_url: str) -> None:
    async def scenario(repository: JobRepository) -> None:
        assert await repository.find_all({"title": "' or 1=1 --"}) == []
        assert len(await _fetch_jobs(database_url)) == 1

    _run(_with_repository(database_url, scenario))


def test_create_rejects_natural_key_duplicates(database_url: str) -> None:
    async def scenario(repository: JobRepository) -> None:
        with pytest.raises(RepositoryDuplicateError):
            await repository.create(
                title="guest service", salary=32000, equity=Decimal("0"), company_handle="c1"
            )

        created = await repository.create(
            title="guest service", salary=32001, equity=Decimal("0"), company_handle="c1"
        )
        assert created["salary"] == 32001
        assert isinstance(created["id"], int)

        await repository.create(title="no salary", salary=None, equity=None, company_handle="c1")
        with pytest.raises(RepositoryDuplicateError):
            await repository.create(title="no salary", salary=None, equity=None, company_handle="c1")

    _run(_with_repository(database_url, scenario))


def test_concurrent_creates_of_the_same_job_insert_once(database_url: str) -> None:
    async def scenario(repository: JobRepository) -> None:
        results = await asyncio.gather(
            *[
                repository.create(title="rush", salary=1000, equity=Decimal("0.5"), company_handle="c1")
                for _ in range(4)
            ],
            return_exceptions=True,
        )
        created = [result for result in results if isinstance(result, dict)]
        duplicates = [result for result in results if isinstance(result, RepositoryDuplicateError)]
        assert len(created) == 1
        assert len(created) + len(duplicates) == 4

    _run(_with_repository(database_url, scenario, create_max_attempts=10))
    titles = [row["title"] for row in _run(_fetch_jobs(database_url))]
    assert titles.count("rush") == 1


def test_create_unknown_company_is_validation_error(database_url: str) -> None:
    async def scenario(repository: JobRepository) -> None:
        with pytest.raises(RepositoryValidationError, match="company not found: nope"):
            await repository.create(title="ghost", salary=1, equity=None, company_handle="nope")

    _run(_with_repository(database_url, scenario))


def test_get_update_remove_lifecycle(database_url: str) -> None:
    async def scenario(repository: JobRepository) -> None:
        job_id = (await repository.find_all({}))[0]["id"]

        assert (await repository.get(job_id))["title"] == "guest service"

        with pytest.raises(NoFieldsToUpdateError):
            await repository.update(job_id, {})

        updated = await repository.update(job_id, {"title": "cx analyst", "salary": 50000, "equity": Decimal("0")})
        assert updated == {
            "id": job_id,
            "title": "cx analyst",
            "salary": 50000,
            "equity": Decimal("0"),
            "company_handle": "c1",
        }

        await repository.remove(job_id)
        with pytest.raises(RepositoryNotFoundError):
            await repository.remove(job_id)

        for missing in (job_id, 123456, 2**40):
            with pytest.raises(RepositoryNotFoundError):
                await repository.get(missing)
            with pytest.raises(RepositoryNotFoundError):
                await repository.update(missing, {"title": "nobody"})

    _run(_with_repository(database_url, scenario))


def test_http_job_flow(api_client: TestClient) -> None:
    created = api_client.post(
        "/jobs",
        json={"title": "owner support", "salary": 35000, "equity": 0, "company_handle": "c1"},
    )
    assert created.status_code == 201
    job = created.json()["job"]
    assert job["equity"] == "0"

    listed = api_client.get("/jobs", params={"minSalary": "30000"})
    assert listed.status_code == 200
    assert [item["title"] for item in listed.json()["jobs"]] == ["guest service", "owner support"]

    assert api_client.get("/jobs", params={"minSalary": "abc"}).status_code == 400
    assert api_client.get("/jobs", params={"minSalary": "99999999999"}).status_code == 400
    assert api_client.get("/jobs", params={"title": "a\x00b"}).status_code == 400

    patched = api_client.patch(f"/jobs/{job['id']}", json={"salary": 36000})
    assert patched.status_code == 200
    assert patched.json()["job"]["salary"] == 36000

    duplicate = api_client.post(
        "/jobs",
        json={"title": "owner support", "salary": 36000, "equity": 0, "company_handle": "c1"},
    )
    assert duplicate.status_code == 400

    deleted = api_client.delete(f"/jobs/{job['id']}")
    assert deleted.json() == {"deleted": f"Job id {job['id']}"}
    assert api_client.get(f"/jobs/{job['id']}").status_code == 404


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def _with_repository(database_url: str, scenario: Any, *, create_max_attempts: int = 3) -> None:
    database = Database(database_url=database_url, min_pool_size=1, max_pool_size=5, command_timeout=15)
    try:
        await scenario(JobRepository(database, create_max_attempts=create_max_attempts))
    finally:
        await database.close()


async def _reset_tables(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
        await conn.execute("truncate table jobs, companies restart identity cascade")
        await conn.execute(
            """
            insert into companies (handle, name, num_employees, description, logo_url)
            values ('c1', 'C1', 1, 'Desc1', 'http://c1.img'),
                   ('c2', 'C2', 2, 'Desc2', 'http://c2.img')
            """
        )
        await conn.execute(
            """
            insert into jobs (title, salary, equity, company_handle)
            values ($1, $2, $3, $4)
            """,
            "guest service",
            32000,
            Decimal("0"),
            "c1",
        )
    finally:
        await conn.close()


async def _fetch_jobs(database_url: str) -> list[asyncpg.Record]:
    conn = await asyncpg.connect(database_url)
    try:
        return await conn.fetch("select id, title from jobs order by id")
    finally:
        await conn.close()
