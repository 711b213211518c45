"""Vision analysis of quotes (offertes).

A quote with photos and/or dimensions is sent to OpenAI or Gemini. Both are asked
for the same JSON object, which is validated before it is stored on the quote.
"""

import base64
import json
import logging
from typing import Annotated, Literal, Optional, Union
from urllib.parse import quote as quote_path

import requests
from openai import OpenAI
from pydantic import BaseModel, Field, StringConstraints, ValidationError

from .common import now_iso

logger = logging.getLogger(__name__)

MAX_ANALYSIS_PHOTOS = 6
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

NOT_ANALYZED = "Niet geanalyseerd"
IN_PROGRESS = "Bezig"
COMPLETED = "Voltooid"
FALLBACK = "Fallback"
FAILED = "Mislukt"
AI_STATUSES = [NOT_ANALYZED, IN_PROGRESS, COMPLETED, FALLBACK, FAILED]

PROVIDER_LABELS = {"openai": "OpenAI", "gemini": "Gemini"}

RESPONSE_SCHEMA = (
    '{"summary":"string","scope":["string"],"recommendations":["string"],"riskFlags":["string"],'
    '"complexity":"Laag|Middel|Hoog","confidence":0.0,"estimatedCost":{"min":0,"max":0,"currency":"EUR"},'
    '"materials":[{"name":"string","quantity":0,"unit":"string"}]}'
)


# ================= RESULT =================

ScopeLine = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=240)]
Recommendation = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=280)]


class EstimatedCost(BaseModel):
    min: Annotated[float, Field(ge=0)]
    max: Annotated[float, Field(ge=0)]
    currency: str = "EUR"


class Material(BaseModel):
    name: str
    quantity: Union[float, str]
    unit: str


class AnalysisResult(BaseModel):
    summary: Annotated[str, StringConstraints(strip_whitespace=True, min_length=12, max_length=1400)]
    scope: Annotated[list[ScopeLine], Field(max_length=8)] = []
    recommendations: Annotated[list[Recommendation], Field(max_length=10)] = []
    riskFlags: Annotated[list[ScopeLine], Field(max_length=8)] = []
    complexity: Literal["Laag", "Middel", "Hoog"] = "Middel"
    confidence: Annotated[float, Field(ge=0, le=1)] = 0.6
    estimatedCost: Optional[EstimatedCost] = None
    materials: Optional[list[Material]] = None


def validate_analysis(data, source: str):
    """Validated analysis dict tagged with its source, or None when the data does not fit."""
    try:
        result = AnalysisResult.model_validate(data)
    except ValidationError:
        return None
    analysis = result.model_dump(exclude_none=True)
    analysis["source"] = source
    analysis["generatedAt"] = now_iso()
    return analysis


def _string_list(value):
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, str)]


def normalize_stored_analysis(value):
    """Read back an analysis saved on a quote. Tolerant of older or partial payloads."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    if not isinstance(value, dict):
        return None

    summary = value.get("summary") if isinstance(value.get("summary"), str) else ""
    if not summary.strip():
        return None

    confidence = value.get("confidence")
    if isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
        confidence = max(0.0, min(1.0, float(confidence)))
    else:
        confidence = 0.5

    source = value.get("source")
    analysis = {
        "summary": summary,
        "scope": _string_list(value.get("scope")),
        "recommendations": _string_list(value.get("recommendations")),
        "riskFlags": _string_list(value.get("riskFlags")),
        "complexity": value.get("complexity") if value.get("complexity") in ("Laag", "Hoog") else "Middel",
        "confidence": confidence,
        "source": source if source in ("openai", "gemini") else "fallback",
        "generatedAt": value.get("generatedAt") if isinstance(value.get("generatedAt"), str) else now_iso(),
    }

    cost = value.get("estimatedCost")
    if isinstance(cost, dict):
        analysis["estimatedCost"] = {
            "min": _number_or_zero(cost.get("min")),
            "max": _number_or_zero(cost.get("max")),
            "currency": str(cost.get("currency") or "EUR"),
        }

    materials = value.get("materials")
    if isinstance(materials, list):
        analysis["materials"] = [
            {
                "name": str(item.get("name") or ""),
                "quantity": item.get("quantity"),
                "unit": str(item.get("unit") or ""),
            }
            for item in materials
            if isinstance(item, dict)
        ]
    return analysis


def _number_or_zero(value):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return number if number == number else 0


# ================= PROVIDERS =================

def choose_provider(requested, settings):
    """Return ``(provider, api_key, error)``. Auto prefers Gemini over OpenAI."""
    openai_key = (settings.get("OPENAI_API_KEY") or "").strip() or None
    gemini_key = (settings.get("GEMINI_API_KEY") or "").strip() or None

    if requested == "openai":
        if not openai_key:
            return None, None, "OPENAI_API_KEY ontbreekt. Kies Gemini of configureer OpenAI."
        return "openai", openai_key, None
    if requested == "gemini":
        if not gemini_key:
            return None, None, "GEMINI_API_KEY ontbreekt. Kies OpenAI of configureer Gemini."
        return "gemini", gemini_key, None

    if gemini_key:
        return "gemini", gemini_key, None
    if openai_key:
        return "openai", openai_key, None
    return None, None, "Geen AI provider geconfigureerd. Zet GEMINI_API_KEY of OPENAI_API_KEY."


def format_number_nl(value) -> str:
    text = f"{float(value):,.3f}".rstrip("0").rstrip(".")
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def _measure(value, unit):
    if value is None:
        return "-"
    return f"{format_number_nl(value)} {unit}"


def has_dimensions(dimensions) -> bool:
    if not dimensions:
        return False
    for room in dimensions.get("rooms") or []:
        if any(room.get(key) is not None for key in ("length", "width", "height", "area", "volume")):
            return True
    return any(dimensions.get(key) is not None for key in ("lengte", "breedte", "hoogte"))


def describe_dimensions(dimensions) -> str:
    if not dimensions:
        return "Geen afmetingen opgegeven."

    unit = dimensions.get("eenheid") or "cm"
    rooms = dimensions.get("rooms")
    if isinstance(rooms, list) and rooms:
        lines = []
        for index, room in enumerate(rooms, start=1):
            room_unit = room.get("unit") or unit
            lines.append(
                f"Ruimte {index} ({room.get('name')}): "
                f"{_measure(room.get('length'), room_unit)} x "
                f"{_measure(room.get('width'), room_unit)} x "
                f"{_measure(room.get('height'), room_unit)}"
            )
        return "\n".join(lines)

    if any(dimensions.get(key) is not None for key in ("lengte", "breedte", "hoogte")):
        return (
            f"Lengte: {_measure(dimensions.get('lengte'), unit)}, "
            f"breedte: {_measure(dimensions.get('breedte'), unit)}, "
            f"hoogte: {_measure(dimensions.get('hoogte'), unit)}."
        )
    return "Geen afmetingen opgegeven."


def build_prompt(quote) -> str:
    bedrag = quote["bedrag"]
    if isinstance(bedrag, float) and bedrag.is_integer():
        bedrag = int(bedrag)
    return "\n".join([
        "Je bent een offerte-assistent voor technische inschattingen.",
        "Analyseer de beelden en afmetingen en geef een zakelijke samenvatting.",
        "Schat ook de materiaalkosten en benodigde materialen in.",
        "Antwoord als geldig JSON-object zonder markdown met exact dit schema:",
        RESPONSE_SCHEMA,
        f"Offerte: {quote['nummer']}, klant: {quote['klant']}, bedrag: {bedrag}.",
        f"Afmetingen: {describe_dimensions(quote.get('dimensions'))}",
    ])


def extract_response_text(payload) -> str:
    if not isinstance(payload, dict):
        return ""
    output_text = payload.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    fragments = []
    for item in payload.get("output") or []:
        if not isinstance(item, dict):
            continue
        for piece in item.get("content") or []:
            text = piece.get("text") if isinstance(piece, dict) else None
            if isinstance(text, str) and text.strip():
                fragments.append(text.strip())
    return "\n".join(fragments).strip()


def extract_gemini_text(payload) -> str:
    if not isinstance(payload, dict):
        return ""
    fragments = []
    for candidate in payload.get("candidates") or []:
        content = candidate.get("content") if isinstance(candidate, dict) else None
        if not isinstance(content, dict):
            continue
        for part in content.get("parts") or []:
            text = part.get("text") if isinstance(part, dict) else None
            if isinstance(text, str) and text.strip():
                fragments.append(text.strip())
    return "\n".join(fragments).strip()


def extract_json_block(raw_text: str) -> str:
    trimmed = (raw_text or "").strip()
    if not trimmed:
        return ""
    try:
        json.loads(trimmed)
        return trimmed
    except ValueError:
        start = trimmed.find("{")
        end = trimmed.rfind("}")
        if start == -1 or end <= start:
            return ""
        return trimmed[start:end + 1]


def parse_analysis_text(raw_text: str, source: str):
    block = extract_json_block(raw_text)
    if not block:
        return None
    try:
        data = json.loads(block)
    except ValueError:
        return None
    return validate_analysis(data, source)


def _encoded_photos(photos, read_photo):
    for photo in photos[:MAX_ANALYSIS_PHOTOS]:
        mime_type = photo.get("mimeType") or "image/jpeg"
        yield mime_type, base64.b64encode(read_photo(photo["path"])).decode("ascii")


def analyze_with_openai(quote, api_key, settings, read_photo):
    content = [{"type": "input_text", "text": build_prompt(quote)}]
    for mime_type, data in _encoded_photos(quote["photos"], read_photo):
        content.append({
            "type": "input_image",
            "image_url": f"data:{mime_type};base64,{data}",
            "detail": "high",
        })

    client = OpenAI(api_key=api_key, timeout=settings.get("AI_REQUEST_TIMEOUT", 60))
    response = client.responses.create(
        model=settings.get("OPENAI_VISION_MODEL") or "gpt-4.1-mini",
        temperature=0.2,
        max_output_tokens=1200,
        input=[{"role": "user", "content": content}],
    )

    raw_text = getattr(response, "output_text", None)
    if not isinstance(raw_text, str) or not raw_text.strip():
        raw_text = extract_response_text(response.model_dump())
    return parse_analysis_text(raw_text, "openai")


def analyze_with_gemini(quote, api_key, settings, read_photo):
    if not quote["photos"]:
        return None

    parts = [{"text": build_prompt(quote)}]
    for mime_type, data in _encoded_photos(quote["photos"], read_photo):
        parts.append({"inline_data": {"mime_type": mime_type, "data": data}})

    model = settings.get("GEMINI_VISION_MODEL") or "gemini-1.5-flash"
    resp = requests.post(
        GEMINI_URL.format(model=quote_path(model, safe="")),
        params={"key": api_key},
        json={"contents": [{"parts": parts}]},
        timeout=settings.get("AI_REQUEST_TIMEOUT", 60),
    )
    if not resp.ok:
        raise RuntimeError(f"Gemini request mislukt ({resp.status_code}): {resp.text[:180]}")

    return parse_analysis_text(extract_gemini_text(resp.json()), "gemini")


ANALYZERS = {
    "openai": analyze_with_openai,
    "gemini": analyze_with_gemini,
}


def run_quote_analysis(quote, settings, read_photo, provider=None):
    """Analyze a quote and return ``{"status", "analysis", "error"}``.

    ``quote`` holds ``nummer``, ``klant``, ``bedrag``, ``dimensions`` and ``photos``;
    ``read_photo`` returns the bytes of a stored photo path.
    """
    if not quote.get("photos") and not has_dimensions(quote.get("dimensions")):
        return {"status": NOT_ANALYZED, "analysis": None, "error": None}

    requested = provider if provider in ANALYZERS else "auto"
    chosen, api_key, error = choose_provider(requested, settings)
    if error:
        logger.info("Quote %s not analyzed: %s", quote.get("nummer"), error)
        return {"status": FAILED, "analysis": None, "error": error}

    label = PROVIDER_LABELS[chosen]
    logger.info("Analyzing quote %s with %s", quote.get("nummer"), label)
    try:
        analysis = ANALYZERS[chosen](quote, api_key, settings, read_photo)
    except Exception as exc:
        logger.warning("%s analysis of quote %s failed: %s", label, quote.get("nummer"), exc)
        return {"status": FAILED, "analysis": None, "error": str(exc) or f"{label}-analyse mislukt."}

    if analysis is None:
        return {
            "status": FAILED,
            "analysis": None,
            "error": f"{label}-output kon niet gelezen worden als geldige analyse.",
        }
    return {"status": COMPLETED, "analysis": analysis, "error": None}
