"""
交易参数路由
GET /api/config  - 当前交易参数
PUT /api/config  - 更新交易参数
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ValidationError

from trading_analyzer.models.response import ApiResponse
from trading_analyzer.routers.analysis import get_analyzer
from trading_analyzer.services.analyzer_service import AnalyzerService

router = APIRouter(prefix="/api/config", tags=["交易参数"])


class ProfileUpdate(BaseModel):
    symbol: Optional[str] = None
    interval: Optional[str] = None
    leverage: Optional[int] = None
    position_size: Optional[float] = None
    risk_tolerance: Optional[str] = None


@router.get("", response_model=ApiResponse)
async def get_config(svc: AnalyzerService = Depends(get_analyzer)):
    return ApiResponse.ok(data={"config": svc.profile.model_dump()})


@router.put("", response_model=ApiResponse)
async def update_config(body: ProfileUpdate, svc: AnalyzerService = Depends(get_analyzer)):
    try:
        profile = svc.update_profile(**body.model_dump())
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return ApiResponse.ok(data={"config": profile.model_dump()}, message="Configuration updated")
