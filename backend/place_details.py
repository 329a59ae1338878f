"""Short fun fact and historical significance for a map popup.

One GPT call per place, asked for a two-field JSON object. Both fields are
capped at 200 characters. A missing API key or an API failure yields fixed
fallback copy so the popup always has something to show.
"""

import json
import logging

from openai import AsyncOpenAI

from models import PlaceDetailsResponse

logger = logging.getLogger(__name__)

# The OpenAI model used for place details.
DETAILS_MODEL = "gpt-5.2"

MAX_FIELD_CHARS: int = 200

_FALLBACK = PlaceDetailsResponse(
    fun_fact="This location has many interesting stories worth exploring.",
    historical_significance="This location holds important historical significance.",
)

_NO_KEY = PlaceDetailsResponse(
    fun_fact="OpenAI API key not configured for location details.",
    historical_significance="API configuration needed to load historical significance.",
)

_DETAILS_PROMPT = """\
Provide information about "{name}" located at coordinates {latitude}, \
{longitude}. This is a {category} location.

Return ONLY a valid JSON object with exactly these two fields:

  funFact
    A fascinating, lesser-known fun fact ({limit} characters max).

  historicalSignificance
    Why this location is historically important ({limit} characters max).

Requirements for both: engaging and informative; focus on history,
architecture, culture, or interesting stories; don't mention coordinates;
start directly with the content, no introductory phrases.\
"""


def _truncate(text: str, limit: int = MAX_FIELD_CHARS) -> str:
    text = text.strip()
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


async def get_place_details(
    name: str,
    latitude: float,
    longitude: float,
    category: str,
    *,
    client: AsyncOpenAI | None = None,
    api_key: str = "",
) -> PlaceDetailsResponse:
    """Returns a fun fact and historical significance for one place.

    Args:
        name: Place name as shown on the map.
        latitude: Place latitude.
        longitude: Place longitude.
        category: Display category, e.g. "Museum".
        client: Optional pre-constructed ``AsyncOpenAI`` client.
        api_key: Key used when ``client`` is omitted.

    Returns:
        ``PlaceDetailsResponse``; never raises for API or parsing failures.
    """
    if client is None:
        if not api_key:
            return _NO_KEY
        client = AsyncOpenAI(api_key=api_key)

    prompt = _DETAILS_PROMPT.format(
        name=name,
        latitude=latitude,
        longitude=longitude,
        category=(category or "point of interest").lower(),
        limit=MAX_FIELD_CHARS,
    )

    logger.info("Getting place details for %r", name)
    try:
        response = await client.chat.completions.create(
            model=DETAILS_MODEL,
            messages=[{"role": "user", "content": prompt}],
            max_completion_tokens=300,
            response_format={"type": "json_object"},
        )
    except Exception:  # noqa: BLE001
        logger.exception("Place details request failed for %r", name)
        return _FALLBACK

    if not response.choices:
        logger.warning("Place details response had no choices for %r", name)
        return _FALLBACK
    raw = (response.choices[0].message.content or "").strip()
    if not raw:
        return _FALLBACK

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Place details response was not JSON; using first lines")
        lines = [line for line in raw.splitlines() if line.strip()]
        return PlaceDetailsResponse(
            fun_fact=_truncate(lines[0]) if lines else _FALLBACK.fun_fact,
            historical_significance=(
                _truncate(lines[1]) if len(lines) > 1
                else _FALLBACK.historical_significance
            ),
        )

    if not isinstance(parsed, dict):
        return _FALLBACK
    return PlaceDetailsResponse(
        fun_fact=_truncate(str(parsed.get("funFact") or _FALLBACK.fun_fact)),
        historical_significance=_truncate(
            str(parsed.get("historicalSignificance") or _FALLBACK.historical_significance)
        ),
    )
