# routers/portfolio_metrics_routes.py
from fastapi import APIRouter, Depends, Query

from routers.dependencies import get_metrics_service, get_snapshot_service
from schemas.portfolio_metrics import Timeframe
from services.analytics.portfolio_metrics_service import PortfolioMetricsService
from services.analytics.snapshot_service import PortfolioSnapshotService

router = APIRouter()


@router.get("/{user_id}/metrics")
def advanced_metrics(
    user_id: str,
    svc: PortfolioMetricsService = Depends(get_metrics_service),
):
    return svc.compute_advanced_metrics(user_id).to_dict()


@router.get("/{user_id}/risk-analysis")
def risk_analysis(
    user_id: str,
    svc: PortfolioMetricsService = Depends(get_metrics_service),
):
    return svc.risk_analysis(user_id).model_dump(mode="json", by_alias=True)


@router.get("/{user_id}/performance-attribution")
def performance_attribution(
    user_id: str,
    svc: PortfolioMetricsService = Depends(get_metrics_service),
):
    return svc.performance_attribution(user_id).model_dump(mode="json", by_alias=True)


@router.get("/{user_id}/benchmark-comparison")
def benchmark_comparison(
    user_id: str,
    svc: PortfolioMetricsService = Depends(get_metrics_service),
):
    return svc.benchmark_comparison(user_id).model_dump(mode="json", by_alias=True)


@router.get("/{user_id}/timeline")
def performance_timeline(
    user_id: int,
    timeframe: Timeframe = Query("1M"),
    svc: PortfolioSnapshotService = Depends(get_snapshot_service),
):
    return [p.model_dump(mode="json", by_alias=True) for p in svc.performance_timeline(str(user_id), timeframe)]


@router.get("/{user_id}/performance")
def performance_metrics(
    user_id: int,
    timeframe: Timeframe = Query("1M"),
    svc: PortfolioSnapshotService = Depends(get_snapshot_service),
):
    return svc.performance_metrics(str(user_id), timeframe).model_dump(mode="json", by_alias=True)


@router.post("/{user_id}/snapshots")
def store_snapshot(
    user_id: int,
    svc: PortfolioSnapshotService = Depends(get_snapshot_service),
):
    return svc.store_snapshot(str(user_id)).model_dump(mode="json", by_alias=True)
