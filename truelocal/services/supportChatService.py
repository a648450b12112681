"""
Support Chat Service
====================

Stateless proxy between the site's help widget and an OpenAI-compatible
chat-completions API.  A fixed system prompt describing the marketplace is
prepended to the visitor's messages and the provider's raw JSON response
is returned unchanged.

One attempt per request: no retries, no streaming, no conversation memory.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx

from truelocal.core.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SupportChatError(Exception):
    """Raised when the completion request fails for any reason."""
    pass


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

ALLOWED_ROLES: frozenset[str] = frozenset({"user", "assistant"})

SITE_DATA: str = """
Our website is an online service marketplace where users can register either as customers or service providers.

Key features:
1. User Registration & Login: Anyone can create an account and log in.
2. Become a Provider: Users can register as service providers to create and manage their own listings.
3. Service Listings:
   - Providers can create listings for any type of service they want.
   - Providers can set their own pricing and time limits.
   - Listings are reviewed and verified by the admin before being published (takes 3-7 days).
4. Booking:
   - Customers can browse and book any available service.
   - Bookings are based on the provider's availability and terms.

Service Categories & Examples:
- Home Repair & Maintenance: Electrician, Plumber, Carpenter, AC Repair, Appliance Repair, Handyman, Painter, Mason, Roofer, Welder
- Cleaning Services: Home Deep Cleaning, Bathroom Cleaning, Sofa/Curtain Cleaning, Carpet Cleaning, Office Cleaning, Water Tank Cleaning, Kitchen Cleaning, Car Wash
- Outdoor & Gardening: Gardener, Lawn Mowing, Tree Trimming, Landscape Maintenance, Pest Control
- Moving & Transportation: House Shifting, Office Relocation, Furniture Moving, Packers & Movers, Pickup Van/Truck Rental
- Beauty & Personal Care: Haircut at Home, Salon for Women, Salon for Men, Makeup Artist, Massage Therapy
- Laundry & Ironing: Clothes Washing, Dry Cleaning Pickup, Ironing Service
- IT & Electronics: Laptop/PC Repair, Mobile Repair, CCTV Installation, Wi-Fi Setup, Smart Home Device Setup
- Tutoring & Education: Home Tutor, Language Tutor, Exam Preparation, Computer Courses
- Food & Catering: Home Cook, Event Catering, Tiffin Service
- Child & Elderly Care: Babysitter, Elderly Caregiver, Nanny
- Event & Occasional: Photographer, Videographer, Event Decorator, DJ & Sound Setup, Party Organizer
- Professional Services: Accountant, Lawyer, Consultant, Document Writing/Typing, Translator
- Other: Custom Service (providers can define)

Platform Rules:
- Only verified listings are published.
- Providers manage their own schedule and pricing.
- Customers communicate directly with providers via the platform.
- Admin ensures quality and trust by approving services before they go live.

When answering user questions:
- Always base your answers strictly on the information above.
- If a question is unrelated to the platform, politely say you cannot answer it.
"""

SYSTEM_PROMPT: str = (
    "You are a helpful assistant for our service marketplace. "
    "Use the following information to answer all questions:\n" + SITE_DATA
)


def build_payload(messages: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Request body for the completions API with the system prompt first."""
    conversation = [{"role": "system", "content": SYSTEM_PROMPT}]
    for message in messages:
        role = message.get("role")
        content = message.get("content")
        if role not in ALLOWED_ROLES or not isinstance(content, str):
            raise SupportChatError(f"Unsupported chat message: role={role!r}")
        conversation.append({"role": role, "content": content})
    return {
        "model": settings.llm_model,
        "messages": conversation,
        "temperature": settings.llm_temperature,
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def complete(
    messages: Sequence[Mapping[str, Any]],
    *,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Forward the visitor's messages and return the raw completion JSON.

    Raises:
        SupportChatError: On invalid input, transport errors, non-2xx
            responses or a body that is not JSON.
    """
    payload = build_payload(messages)
    headers = {
        "Authorization": f"Bearer {settings.llm_api_key}",
        "Content-Type": "application/json",
    }

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=settings.llm_timeout_seconds)
    try:
        response = await http.post(settings.llm_api_url, json=payload, headers=headers)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as exc:
        logger.error(
            "Completion API returned %d: %s",
            exc.response.status_code, exc.response.text[:500],
        )
        raise SupportChatError("Completion API returned an error") from exc
    except httpx.HTTPError as exc:
        logger.error("Completion API request failed: %s", exc)
        raise SupportChatError("Completion API request failed") from exc
    except ValueError as exc:
        logger.error("Completion API returned a non-JSON body")
        raise SupportChatError("Completion API returned invalid JSON") from exc
    finally:
        if owns_client:
            await http.aclose()

    logger.info("Support chat completed: %d messages in", len(messages))
    return data
