from dataclasses import asdict

from fastapi import APIRouter, Depends

from .. import auth, checklist, models, schemas

router = APIRouter(prefix="/api/checklist", tags=["checklist"])


@router.get("/")
async def read_checklist(current_user: models.User = Depends(auth.get_current_user)):
    return checklist.catalog_payload()


@router.post("/progress")
async def checklist_progress(
    payload: schemas.ChecklistIn,
    current_user: models.User = Depends(auth.get_current_user),
):
    """Report how far a draft checklist is from being submittable."""
    validation = checklist.validate_responses(payload.responses, payload.cope_compliance)
    return {
        "progress": checklist.progress(payload.responses),
        "categories": checklist.completion_status(payload.responses),
        "validation": asdict(validation),
    }
