from fastapi import APIRouter, Depends, HTTPException, Request
from ..schemas import PropertyInput, SubmitResponse, JobStatusResponse
from ..services.jobs import JobOrchestrator
from ..core.errors import InvalidPropertyInput, JobNotFound, JobQueueFull
from ..core.security import require_api_key, rate_limit

router = APIRouter()

def orchestrator_dep(request: Request) -> JobOrchestrator:
    # Built once in the app lifespan; shared by every request.
    return request.app.state.jobs

@router.post("/evaluate-quick", response_model=SubmitResponse)
async def submit_quick_evaluation(
    body: PropertyInput,
    _auth = Depends(require_api_key),     # API key guard
    _lim  = Depends(rate_limit),          # Rate limiting
    jobs: JobOrchestrator = Depends(orchestrator_dep),
):
    try:
        job_id = await jobs.submit(body)
    except InvalidPropertyInput as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except JobQueueFull as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return SubmitResponse(job_id=job_id)

@router.get(
    "/evaluate-quick/{job_id}/status",
    response_model=JobStatusResponse,
    response_model_exclude_unset=True,
)
async def quick_evaluation_status(
    job_id: str,
    _auth = Depends(require_api_key),
    jobs: JobOrchestrator = Depends(orchestrator_dep),
):
    try:
        return await jobs.poll(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
