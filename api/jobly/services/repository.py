from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from jobly.core.config import get_settings
from jobly.services.database import Database, get_database
from jobly.services.errors import (
    InvalidFilterValueError,
    NoFieldsToUpdateError,
    RepositoryDuplicateError,
    RepositoryError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    UnrecognizedFilterError,
)
from jobly.services.sql import sql_for_job_filters, sql_for_partial_update

__all__ = [
    "InvalidFilterValueError",
    "JobRepository",
    "NoFieldsToUpdateError",
    "RepositoryDuplicateError",
    "RepositoryError",
    "RepositoryNotFoundError",
    "RepositoryUnavailableError",
    "RepositoryValidationError",
    "UnrecognizedFilterError",
    "get_repository",
]

JOB_RETURNING_COLUMNS = "id, title, salary, equity, company_handle"
# Application field names match the jobs columns one to one.
JOB_COLUMN_MAP: dict[str, str] = {}


class JobRepository:
    def __init__(self, database: Database, *, create_max_attempts: int = 3) -> None:
        self.database = database
        self.create_max_attempts = max(1, create_max_attempts)

    async def create(
        self,
        *,
        title: str,
        salary: int | None,
        equity: Decimal | None,
        company_handle: str,
    ) -> dict[str, Any]:
        """Insert a job unless one with the same natural key already exists.

        The natural key is (title, salary, equity, company_handle). The check
        and the insert share one serializable transaction; when Postgres
        aborts it because a concurrent create touched the same rows, the
        transaction is replayed so the loser observes the winner's row and
        fails with ``RepositoryDuplicateError``.
        """
        pool = await self.database.get_pool()
        attempt = 1
        while True:
            try:
                async with pool.acquire() as conn:
                    async with conn.transaction(isolation="serializable"):
                        existing_id = await conn.fetchval(
                            """
                            select id
                            from jobs
                            where title = $1
                              and salary is not distinct from $2
                              and equity is not distinct from $3
                              and company_handle = $4
                            limit 1
                            """,
                            title,
                            salary,
                            equity,
                            company_handle,
                        )
                        if existing_id is not None:
                            raise RepositoryDuplicateError(f"duplicate job at {company_handle}: {title}")

                        row = await conn.fetchrow(
                            f"""
                            insert into jobs (title, salary, equity, company_handle)
                            values ($1, $2, $3, $4)
                            returning {JOB_RETURNING_COLUMNS}
                            """,
                            title,
                            salary,
                            equity,
                            company_handle,
                        )
                break
            except pg_exc.SerializationError:
                if attempt >= self.create_max_attempts:
                    raise
                attempt += 1
            except pg_exc.IntegrityConstraintViolationError as exc:
                raise self._integrity_error(exc, company_handle=company_handle) from exc
            except asyncpg.DataError as exc:
                raise RepositoryValidationError(f"invalid job payload: {exc}") from exc

        return self._job_row_to_dict(row)

    async def find_all(self, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        where = sql_for_job_filters(filters)
        pool = await self.database.get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {JOB_RETURNING_COLUMNS}
                from jobs
                {where.render()}
                order by title
                """,
                *where.params,
            )
        except asyncpg.DataError as exc:
            raise RepositoryValidationError(f"invalid job filter: {exc}") from exc
        return [self._job_row_to_dict(row) for row in rows]

    async def get(self, job_id: int) -> dict[str, Any]:
        pool = await self.database.get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                select {JOB_RETURNING_COLUMNS}
                from jobs
                where id = $1
                """,
                job_id,
            )
        except asyncpg.DataError as exc:
            raise RepositoryNotFoundError("job not found") from exc
        if not row:
            raise RepositoryNotFoundError("job not found")
        return self._job_row_to_dict(row)

    async def update(self, job_id: int, data: Mapping[str, Any]) -> dict[str, Any]:
        """Apply a sparse update; callers strip immutable fields beforehand."""
        set_clause = sql_for_partial_update(data, JOB_COLUMN_MAP)
        pool = await self.database.get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update jobs
                set {set_clause.sql}
                where id = {set_clause.next_placeholder}
                returning {JOB_RETURNING_COLUMNS}
                """,
                *set_clause.values,
                job_id,
            )
        except pg_exc.IntegrityConstraintViolationError as exc:
            raise self._integrity_error(exc, company_handle=None) from exc
        except asyncpg.DataError as exc:
            if not self._fits_int4(job_id):
                raise RepositoryNotFoundError("job not found") from exc
            raise RepositoryValidationError(f"invalid job payload: {exc}") from exc
        if not row:
            raise RepositoryNotFoundError("job not found")
        return self._job_row_to_dict(row)

    async def remove(self, job_id: int) -> None:
        pool = await self.database.get_pool()
        try:
            deleted_id = await pool.fetchval(
                """
                delete from jobs
                where id = $1
                returning id
                """,
                job_id,
            )
        except asyncpg.DataError as exc:
            raise RepositoryNotFoundError("job not found") from exc
        if deleted_id is None:
            raise RepositoryNotFoundError("job not found")

    @staticmethod
    def _integrity_error(
        exc: pg_exc.IntegrityConstraintViolationError,
        *,
        company_handle: str | None,
    ) -> RepositoryError:
        if isinstance(exc, pg_exc.UniqueViolationError):
            return RepositoryDuplicateError("duplicate job")
        if isinstance(exc, pg_exc.ForeignKeyViolationError):
            if company_handle:
                return RepositoryValidationError(f"company not found: {company_handle}")
            return RepositoryValidationError("company not found")
        constraint = getattr(exc, "constraint_name", None) or getattr(exc, "column_name", None)
        if constraint:
            return RepositoryValidationError(f"job violates constraint: {constraint}")
        return RepositoryValidationError("job violates a storage constraint")

    @staticmethod
    def _fits_int4(value: int) -> bool:
        return -(2**31) <= value < 2**31

    @staticmethod
    def _job_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": int(row["id"]),
            "title": row["title"],
            "salary": row["salary"],
            "equity": row["equity"],
            "company_handle": row["company_handle"],
        }


@lru_cache
def get_repository() -> JobRepository:
    settings = get_settings()
    return JobRepository(get_database(), create_max_attempts=settings.create_max_attempts)
