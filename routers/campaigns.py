"""Admin e-mail campaigns, sent once as a single BCC message to every user."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from database import ensure_object_id, serialize, utcnow
from dependencies import Services, get_services, require_admin
from errors import NotFound, ValidationFailed

logger = logging.getLogger(__name__)

router = APIRouter()


class CampaignIn(BaseModel):
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)


@router.post("/campaigns", status_code=201)
def create_campaign(payload: CampaignIn, admin: dict = Depends(require_admin),
                    services: Services = Depends(get_services)):
    campaign = services.store.campaigns.create({
        "subject": payload.subject,
        "body": payload.body,
        "createdBy": str(admin["_id"]),
        "sentAt": None,
        "recipientCount": 0,
    })
    return serialize(campaign)


@router.get("/campaigns")
def list_campaigns(_: dict = Depends(require_admin), services: Services = Depends(get_services)):
    return [serialize(c) for c in services.store.campaigns.find(sort=[("created_at", -1)])]


@router.post("/campaigns/{campaign_id}/send")
def send_campaign(campaign_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    ensure_object_id(campaign_id)
    store = services.store
    campaign = store.campaigns.get(campaign_id)
    if not campaign:
        raise NotFound("Campaign not found")
    if campaign.get("sentAt"):
        raise ValidationFailed("Campaign already sent")
    recipients = store.users.emails()
    if not recipients:
        raise ValidationFailed("No users to send email to")

    services.tasks.submit("campaign", services.mailer.send_campaign, campaign["subject"], campaign["body"], recipients)
    updated = store.campaigns.update(campaign_id, {"sentAt": utcnow(), "recipientCount": len(recipients)})
    logger.info("Campaign %s queued for %d recipients", campaign_id, len(recipients))
    return {"message": "Campaign sent successfully", "campaign": serialize(updated)}


@router.delete("/campaigns/{campaign_id}")
def delete_campaign(campaign_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    ensure_object_id(campaign_id)
    if not services.store.campaigns.delete(campaign_id):
        raise NotFound("Campaign not found")
    return {"message": "Campaign deleted successfully"}
