"""
WhatsApp Cloud API webhook.

GET  performs the subscription handshake (hub.mode / hub.verify_token /
     hub.challenge).
POST receives message notifications. Text messages such as
     "vacina 123 Aftosa" from a registered phone become health records.
     The endpoint always answers 200 so the provider does not redeliver.
"""
import hmac
import logging
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config, crud
from ..auth import get_db
from ..schemas import WebhookAckOut
from ..utils import parse_health_command

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_class=PlainTextResponse)
def verify_subscription(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: str = Query(default="", alias="hub.challenge"),
):
    expected = config.whatsapp_verify_token()
    if mode == "subscribe" and token and expected and hmac.compare_digest(token, expected):
        logger.info("WhatsApp webhook verified")
        return PlainTextResponse(challenge)
    raise HTTPException(status_code=403, detail="Verification failed")


def _dicts(value: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(value, list):
        for item in value:
            if isinstance(item, dict):
                yield item


def iter_messages(payload: Any) -> Iterator[Dict[str, Any]]:
    """Yield every message object from a Cloud API notification.

    Anything that does not have the expected shape is skipped.
    """
    if not isinstance(payload, dict):
        return
    for entry in _dicts(payload.get("entry")):
        for change in _dicts(entry.get("changes")):
            value = change.get("value")
            if isinstance(value, dict):
                yield from _dicts(value.get("messages"))


def _message_time(message: Dict[str, Any]) -> datetime:
    try:
        return datetime.utcfromtimestamp(int(message["timestamp"]))
    except (KeyError, TypeError, ValueError, OverflowError, OSError):
        return datetime.utcnow()


def _text_body(message: Dict[str, Any]) -> Optional[str]:
    text = message.get("text")
    if not isinstance(text, dict):
        return None
    body = text.get("body")
    return body if isinstance(body, str) else None


def handle_message(db: Session, message: Dict[str, Any]) -> str:
    """Process one inbound message; return a short result label."""
    if message.get("type") != "text":
        return "ignored"

    command = parse_health_command(_text_body(message))
    if command is None:
        return "not_a_command"

    sender = message.get("from")
    user = crud.get_user_by_phone(db, sender) if isinstance(sender, (str, int)) else None
    if user is None:
        return "unknown_sender"

    try:
        crud.create_health_record(
            db,
            user.id,
            type=command.type,
            date=_message_time(message),
            brinco=command.brinco,
            product=command.product,
            notes="via WhatsApp",
        )
    except HTTPException:
        return "unknown_animal"
    return "health_record_created"


@router.post("", response_model=WebhookAckOut)
def receive(payload: Any = Body(default=None), db=Depends(get_db)):
    ack = WebhookAckOut()
    for message in iter_messages(payload):
        try:
            result = handle_message(db, message)
        except SQLAlchemyError as e:
            # Acknowledge anyway; a redelivery would hit the same failure.
            db.rollback()
            logger.warning("Failed to store WhatsApp message %s: %s", message.get("id"), e)
            result = "error"

        ack.processed += 1
        ack.details.append({"id": message.get("id"), "result": result})
        logger.info(
            "whatsapp_message",
            extra={"wa_message_id": message.get("id"), "sender": message.get("from"), "result": result},
        )
    return ack
