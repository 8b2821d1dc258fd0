import logging

from fastapi import APIRouter, Depends

from agriconnect.dependencies import rate_limit
from agriconnect.schemas.common import SuccessResponse
from agriconnect.schemas.public import ContactRequest
from agriconnect.services.email_service import send_contact_message

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=SuccessResponse,
    summary="Send a message to the AgriConnect team",
    dependencies=[Depends(rate_limit("general"))],
)
def send_contact(body: ContactRequest):
    logger.info("Contact form submission from %s: %s", body.email, body.subject)
    try:
        send_contact_message(body.name, body.email, body.subject, body.message)
    except Exception:
        logger.exception("Failed to forward contact message from %s", body.email)
    return SuccessResponse(message="Thank you for your message. We will get back to you soon.")
