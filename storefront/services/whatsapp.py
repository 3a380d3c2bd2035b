import httpx
import logging
import asyncio
from datetime import datetime, timedelta
from typing import Dict
from config import settings
from storefront.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

# Rate limiting storage (in production, use Redis)
rate_limit_store: Dict[str, list] = {}
RATE_LIMIT_WINDOW = 3600  # 1 hour in seconds
MAX_MESSAGES_PER_HOUR = 10  # Max messages per phone number per hour
MAX_RETRIES = 3
# Three attempts plus backoff must finish inside CHECKOUT_STEP_TIMEOUT
REQUEST_TIMEOUT = 2.5
BACKOFF_BASE = 0.5
GRAPH_API_URL = "https://graph.facebook.com/v18.0"

async def is_rate_limited(phone: str) -> bool:
    """Check if phone number is rate limited"""
    now = datetime.now()
    cutoff_time = now - timedelta(seconds=RATE_LIMIT_WINDOW)

    if phone not in rate_limit_store:
        rate_limit_store[phone] = []

    # Remove old entries
    rate_limit_store[phone] = [
        timestamp for timestamp in rate_limit_store[phone]
        if timestamp > cutoff_time
    ]

    if len(rate_limit_store[phone]) >= MAX_MESSAGES_PER_HOUR:
        logger.warning(f"[WhatsApp] Rate limit exceeded for {phone}")
        return True

    return False

async def record_message_sent(phone: str):
    """Record that a message was sent"""
    if phone not in rate_limit_store:
        rate_limit_store[phone] = []
    rate_limit_store[phone].append(datetime.now())

def backoff_delay(retry_count: int) -> float:
    return BACKOFF_BASE * 2 ** (retry_count - 1)

def is_shop_line(phone: str) -> bool:
    return bool(settings.ORDER_NOTIFICATION_PHONE) and phone == settings.ORDER_NOTIFICATION_PHONE

async def send_whatsapp_message(phone: str, message: str) -> dict:
    """
    Sends a plain text WhatsApp message with rate limiting.

    With WHATSAPP_DRY_RUN set the message is only logged.
    The shop's own order line is never throttled.
    """
    throttled = not is_shop_line(phone)
    if throttled and await is_rate_limited(phone):
        logger.error(f"[WhatsApp] Message blocked due to rate limit: {phone}")
        raise RateLimitExceeded(f"Rate limit exceeded for {phone}")

    if settings.WHATSAPP_DRY_RUN:
        logger.info(f"[WhatsApp] DRY RUN - Would send to {phone}:\n{message}")
        if throttled:
            await record_message_sent(phone)
        return {"message_id": f"test_msg_{datetime.now().timestamp()}", "status": "simulated"}

    url = f"{GRAPH_API_URL}/{settings.WHATSAPP_PHONE_ID}/messages"

    headers = {
        "Authorization": f"Bearer {settings.WHATSAPP_TOKEN}",
        "Content-Type": "application/json"
    }

    body = {
        "messaging_product": "whatsapp",
        "to": phone,
        "type": "text",
        "text": {"preview_url": False, "body": message}
    }

    retry_count = 0

    while True:
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(url, headers=headers, json=body)
                response.raise_for_status()

            if throttled:
                await record_message_sent(phone)
            logger.info(f"[WhatsApp] Sent message to {phone}")
            return response.json()

        except httpx.HTTPStatusError as e:
            retry_count += 1
            logger.error(f"[WhatsApp] Attempt {retry_count} failed to send to {phone}: {e.response.text}")
            if retry_count >= MAX_RETRIES:
                logger.error(f"[WhatsApp] Max retries reached for {phone}")
                raise
        except httpx.HTTPError as e:
            retry_count += 1
            logger.error(f"[WhatsApp] Attempt {retry_count} failed with error: {str(e)}")
            if retry_count >= MAX_RETRIES:
                logger.error(f"[WhatsApp] Max retries reached for {phone}")
                raise

        await asyncio.sleep(backoff_delay(retry_count))  # Exponential backoff
