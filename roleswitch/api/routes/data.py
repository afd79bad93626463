"""Full data export and import."""

from fastapi import APIRouter, Depends, Query

from roleswitch.api.deps import get_data_transfer
from roleswitch.schemas import ExportBundle, ImportResult
from roleswitch.services.data_transfer import DataTransferService

router = APIRouter()


@router.get("/export", response_model=ExportBundle)
async def export_data(
    transfer: DataTransferService = Depends(get_data_transfer),
) -> ExportBundle:
    return await transfer.export_all()


@router.post("/import", response_model=ImportResult)
async def import_data(
    bundle: ExportBundle,
    replace_existing: bool = Query(default=False, description="Clear stored roles and history first"),
    transfer: DataTransferService = Depends(get_data_transfer),
) -> ImportResult:
    """Merge an exported bundle. The running session is left untouched."""
    return await transfer.import_data(bundle, replace_existing=replace_existing)
