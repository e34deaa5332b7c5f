import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from jobly.core.auth import Principal
from jobly.core.security import get_admin_principal
from jobly.schemas.jobs import JobCreateRequest, JobDeletedOut, JobEnvelope, JobListOut, JobOut, JobUpdateRequest
from jobly.services.repository import (
    RepositoryDuplicateError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=JobEnvelope, status_code=status.HTTP_201_CREATED)
async def create_job(
    payload: JobCreateRequest,
    principal: Principal = Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> JobEnvelope:
    try:
        row = await repository.create(
            title=payload.title,
            salary=payload.salary,
            equity=payload.equity,
            company_handle=payload.company_handle,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except (RepositoryDuplicateError, RepositoryValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    logger.info("job created id=%s company=%s by=%s", row["id"], row["company_handle"], principal.describe())
    return JobEnvelope(job=JobOut(**row))


@router.get("", response_model=JobListOut)
async def list_jobs(request: Request, repository=Depends(get_repository)) -> JobListOut:
    """List jobs ordered by title.

    Accepts ``title``, ``minSalary`` and ``hasEquity`` query parameters; any
    other parameter is rejected.
    """
    try:
        rows = await repository.find_all(dict(request.query_params))
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return JobListOut(jobs=[JobOut(**row) for row in rows])


@router.get("/{job_id}", response_model=JobEnvelope)
async def get_job(job_id: int, repository=Depends(get_repository)) -> JobEnvelope:
    try:
        row = await repository.get(job_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobEnvelope(job=JobOut(**row))


@router.patch("/{job_id}", response_model=JobEnvelope)
async def patch_job(
    job_id: int,
    payload: JobUpdateRequest,
    principal: Principal = Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> JobEnvelope:
    try:
        row = await repository.update(job_id, payload.changes())
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    logger.info("job updated id=%s fields=%s by=%s", job_id, ",".join(payload.changes()), principal.describe())
    return JobEnvelope(job=JobOut(**row))


@router.delete("/{job_id}", response_model=JobDeletedOut)
async def delete_job(
    job_id: int,
    principal: Principal = Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> JobDeletedOut:
    try:
        await repository.remove(job_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    logger.info("job deleted id=%s by=%s", job_id, principal.describe())
    return JobDeletedOut(deleted=f"Job id {job_id}")
