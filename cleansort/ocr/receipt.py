"""
Receipt item extraction through an OpenAI vision model.

The model is asked for a JSON array of items with a waste category and a
disposal interval; the reply is cleaned of Markdown fences, parsed, and mapped
onto the shape the mobile client expects. Any failure falls back to a fixed
sample list so the client flow can continue.
"""
from typing import Any, Dict, List, Optional
import base64
import json
import logging
import time

from openai import AsyncOpenAI

from cleansort.core.config import settings

logger = logging.getLogger(__name__)


class ReceiptParseError(ValueError):
    """The model reply could not be turned into a list of items."""


BASE_PROMPT = """Extract items from this receipt. Return JSON array with: name, quantity, category (dry/wet/recyclable/hazardous/medical/e-waste), disposalInterval (1-30 days), confidence (0.0-1.0).

Example: [{"name":"Milk","quantity":"1L","category":"recyclable","disposalInterval":3,"confidence":0.95}]"""

CITY_PROMPTS: Dict[str, str] = {
    "mumbai": "\n\nMumbai-specific disposal rules:\n- Wet waste: Collected daily, use green bins\n- Dry waste: Collected twice weekly, use blue bins\n- Hazardous waste: Drop at designated collection points\n- E-waste: Special collection centers available",
    "delhi": "\n\nDelhi-specific disposal rules:\n- Wet waste: Composting encouraged, daily collection\n- Dry waste: Segregation mandatory, weekly collection\n- Hazardous waste: Special handling required\n- E-waste: Authorized recyclers only",
    "bangalore": "\n\nBangalore-specific disposal rules:\n- Wet waste: Daily collection, composting preferred\n- Dry waste: Segregation at source mandatory\n- Hazardous waste: Special collection days\n- E-waste: BBMP collection centers",
    "chennai": "\n\nChennai-specific disposal rules:\n- Wet waste: Daily collection, use designated bins\n- Dry waste: Segregation required, bi-weekly collection\n- Hazardous waste: Special handling protocols\n- E-waste: Corporation collection points",
    "kolkata": "\n\nKolkata-specific disposal rules:\n- Wet waste: Daily collection, composting encouraged\n- Dry waste: Segregation mandatory, weekly collection\n- Hazardous waste: Special collection centers\n- E-waste: Authorized dealers only",
    "hyderabad": "\n\nHyderabad-specific disposal rules:\n- Wet waste: Daily collection, use green bins\n- Dry waste: Segregation at source, bi-weekly collection\n- Hazardous waste: Special handling required\n- E-waste: GHMC collection centers",
    "pune": "\n\nPune-specific disposal rules:\n- Wet waste: Daily collection, composting preferred\n- Dry waste: Segregation mandatory, weekly collection\n- Hazardous waste: Special collection days\n- E-waste: PMC collection points",
    "ahmedabad": "\n\nAhmedabad-specific disposal rules:\n- Wet waste: Daily collection, use designated bins\n- Dry waste: Segregation required, bi-weekly collection\n- Hazardous waste: Special handling protocols\n- E-waste: AMC collection centers",
}

GENERAL_GUIDELINES = "\n\nGeneral disposal guidelines:\n- Wet waste: Compost or daily collection\n- Dry waste: Recycle when possible\n- Hazardous waste: Special handling required\n- E-waste: Authorized recyclers only"


def city_prompt_suffix(city: Optional[str]) -> str:
    return CITY_PROMPTS.get((city or "").strip().lower(), GENERAL_GUIDELINES)


def build_prompt(city: Optional[str]) -> str:
    return BASE_PROMPT + city_prompt_suffix(city)


def strip_code_fences(text: str) -> str:
    content = text.strip()
    if content.startswith("```json"):
        content = content[len("```json"):]
    elif content.startswith("```"):
        content = content[3:]
    else:
        return content
    if content.rstrip().endswith("```"):
        content = content.rstrip()[:-3]
    return content.strip()


def parse_items(reply: str, now_ms: Optional[int] = None) -> List[Dict[str, Any]]:
    """Turn the raw model reply into client items. Raises ReceiptParseError."""
    clean = strip_code_fences(reply)
    try:
        items = json.loads(clean)
    except json.JSONDecodeError as e:
        raise ReceiptParseError(f"Failed to parse JSON response: {e}") from e
    if not isinstance(items, list):
        raise ReceiptParseError("Response is not an array")

    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ReceiptParseError(f"Item {index} is not an object")
        parsed.append({
            "id": f"{stamp}-{index}",
            "name": item.get("name"),
            "quantity": item.get("quantity"),
            "category": item.get("category"),
            "interval": item.get("disposalInterval"),
            "confidence": item.get("confidence"),
        })
    return parsed


def fallback_items(now_ms: Optional[int] = None) -> List[Dict[str, Any]]:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return [
        {"id": f"{stamp}-1", "name": "Organic Milk 1L", "quantity": "1 bottle", "category": "recyclable", "interval": 3, "confidence": 0.95},
        {"id": f"{stamp}-2", "name": "Bananas", "quantity": "1.2 kg", "category": "wet", "interval": 1, "confidence": 0.88},
        {"id": f"{stamp}-3", "name": "Bread Loaf", "quantity": "1 pack", "category": "dry", "interval": 7, "confidence": 0.92},
    ]


class ReceiptExtractor:
    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = settings.OCR_MODEL):
        self._client = client
        self.model = model

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(settings.OPENAI_API_KEY)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise RuntimeError("Server configuration error: OPENAI_API_KEY not found")
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    async def extract(self, image: bytes, mime_type: str, city: Optional[str]) -> List[Dict[str, Any]]:
        image_data = base64.b64encode(image).decode("ascii")
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(city)},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{image_data}"}},
                    ],
                }
            ],
            max_completion_tokens=2000,
        )
        reply = response.choices[0].message.content or ""
        logger.info(f"[OCR] Model reply received ({len(reply)} chars)")
        items = parse_items(reply)
        logger.info(f"[OCR] Parsed {len(items)} item(s)")
        return items
