import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agriconnect.dependencies import rate_limit
from agriconnect.models import NewsletterSubscription, get_db
from agriconnect.schemas.common import SuccessResponse
from agriconnect.schemas.public import NewsletterSubscribeRequest
from agriconnect.services.email_service import send_newsletter_welcome

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/subscribe",
    response_model=SuccessResponse,
    summary="Subscribe an email address to the newsletter",
    dependencies=[Depends(rate_limit("general"))],
)
def subscribe(
    body: NewsletterSubscribeRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Subscribing twice is not an error; the welcome email goes out once."""
    email = body.email.lower()
    if db.query(NewsletterSubscription.id).filter(NewsletterSubscription.email == email).first():
        return SuccessResponse(message="You are already subscribed.")

    db.add(NewsletterSubscription(email=email))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return SuccessResponse(message="You are already subscribed.")

    try:
        send_newsletter_welcome(email)
    except Exception:
        logger.exception("Failed to send newsletter welcome email")
    return SuccessResponse(message="Thank you for subscribing!")
