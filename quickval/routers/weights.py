from fastapi import APIRouter, Depends, HTTPException, Request
from ..schemas import WeightsPayload
from ..services.weights import WeightConfiguration, WeightConfigurationStore
from ..core.errors import ActiveWeightsDeletion, WeightsNotFound
from ..core.security import require_api_key, rate_limit

router = APIRouter(
    prefix="/historic-sales-weights",
    dependencies=[Depends(require_api_key), Depends(rate_limit)],
)

def weights_dep(request: Request) -> WeightConfigurationStore:
    return request.app.state.weights

def _fields(body) -> dict:
    return body.model_dump(exclude_none=True)

@router.get("", response_model=WeightConfiguration)
async def active_weights(weights: WeightConfigurationStore = Depends(weights_dep)):
    return await weights.get_active()

@router.post("", response_model=WeightConfiguration)
async def create_weights(body: WeightsPayload, weights: WeightConfigurationStore = Depends(weights_dep)):
    return await weights.create(_fields(body))

# Static paths before /{config_id}
@router.get("/all", response_model=list[WeightConfiguration])
async def all_weights(weights: WeightConfigurationStore = Depends(weights_dep)):
    return await weights.list_all()

@router.post("/reset", response_model=WeightConfiguration)
async def reset_weights(weights: WeightConfigurationStore = Depends(weights_dep)):
    return await weights.reset()

@router.put("/{config_id}", response_model=WeightConfiguration)
async def update_weights(
    config_id: str,
    body: WeightsPayload,
    weights: WeightConfigurationStore = Depends(weights_dep),
):
    try:
        return await weights.update(config_id, _fields(body))
    except WeightsNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))

@router.post("/{config_id}/activate", response_model=WeightConfiguration)
async def activate_weights(config_id: str, weights: WeightConfigurationStore = Depends(weights_dep)):
    try:
        return await weights.activate(config_id)
    except WeightsNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))

@router.delete("/{config_id}")
async def delete_weights(config_id: str, weights: WeightConfigurationStore = Depends(weights_dep)):
    try:
        await weights.delete(config_id)
    except WeightsNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ActiveWeightsDeletion as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"success": True, "id": config_id}
