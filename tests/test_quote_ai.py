import json

import pytest

from backoffice import quote_ai

ANALYSIS = {
    "summary": "Badkamer opnieuw betegelen inclusief kitwerk.",
    "scope": ["Oude tegels verwijderen", "Nieuwe wandtegels plaatsen"],
    "recommendations": ["Vochtmeting vooraf"],
    "complexity": "Middel",
    "confidence": 0.7,
    "estimatedCost": {"min": 1800, "max": 2400, "currency": "EUR"},
    "materials": [{"name": "Wandtegels", "quantity": 12, "unit": "m2"}],
}

SETTINGS = {"AI_REQUEST_TIMEOUT": 5, "OPENAI_VISION_MODEL": "gpt-test", "GEMINI_VISION_MODEL": "gemini-test"}


def _quote(photos=None, dimensions=None):
    return {
        "nummer": "OFF-2026-000001",
        "klant": "Acme",
        "bedrag": 2500.0,
        "dimensions": dimensions,
        "photos": photos or [],
    }


def _photo(path="1/foto.png"):
    return {"path": path, "url": f"/media/{path}", "mimeType": "image/png"}


@pytest.mark.parametrize("requested, settings, expected", [
    ("auto", {"OPENAI_API_KEY": "o", "GEMINI_API_KEY": "g"}, ("gemini", "g", None)),
    ("auto", {"OPENAI_API_KEY": "o", "GEMINI_API_KEY": "  "}, ("openai", "o", None)),
    ("openai", {"OPENAI_API_KEY": "o", "GEMINI_API_KEY": "g"}, ("openai", "o", None)),
    ("openai", {"GEMINI_API_KEY": "g"},
     (None, None, "OPENAI_API_KEY ontbreekt. Kies Gemini of configureer OpenAI.")),
    ("auto", {}, (None, None, "Geen AI provider geconfigureerd. Zet GEMINI_API_KEY of OPENAI_API_KEY.")),
])
def test_choose_provider(requested, settings, expected):
    assert quote_ai.choose_provider(requested, settings) == expected


def test_describe_dimensions():
    legacy = {"lengte": 1234.5, "breedte": None, "hoogte": 250, "eenheid": "cm"}
    assert quote_ai.describe_dimensions(legacy) == "Lengte: 1.234,5 cm, breedte: -, hoogte: 250 cm."

    rooms = {"rooms": [
        {"name": "Keuken", "length": 3.2, "width": 2.5},
        {"name": "Hal", "length": 1, "width": 4, "height": 2.6, "unit": "cm"},
    ], "eenheid": "m"}
    assert quote_ai.describe_dimensions(rooms) == (
        "Ruimte 1 (Keuken): 3,2 m x 2,5 m x -\n"
        "Ruimte 2 (Hal): 1 cm x 4 cm x 2,6 cm"
    )
    assert quote_ai.describe_dimensions(None) == "Geen afmetingen opgegeven."


def test_build_prompt_mentions_quote():
    prompt = quote_ai.build_prompt(_quote(dimensions={"lengte": 4, "eenheid": "m"}))
    assert "Offerte: OFF-2026-000001, klant: Acme, bedrag: 2500." in prompt
    assert "Afmetingen: Lengte: 4 m, breedte: -, hoogte: -." in prompt
    assert quote_ai.RESPONSE_SCHEMA in prompt


def test_extract_json_block():
    assert quote_ai.extract_json_block('{"a": 1}') == '{"a": 1}'
    assert quote_ai.extract_json_block('Hier is het:\n```json\n{"a": 1}\n```') == '{"a": 1}'
    assert quote_ai.extract_json_block("geen json") == ""
    assert quote_ai.extract_json_block("") == ""


def test_extract_response_text():
    assert quote_ai.extract_response_text({"output_text": "  hallo "}) == "hallo"
    payload = {"output": [{"content": [{"text": "een"}, {"type": "other"}]}, {"content": [{"text": "twee"}]}]}
    assert quote_ai.extract_response_text(payload) == "een\ntwee"
    assert quote_ai.extract_response_text(None) == ""


def test_extract_gemini_text():
    payload = {"candidates": [{"content": {"parts": [{"text": "een"}, {"text": " "}, {"text": "twee"}]}}]}
    assert quote_ai.extract_gemini_text(payload) == "een\ntwee"
    assert quote_ai.extract_gemini_text({"candidates": []}) == ""


def test_parse_analysis_text_applies_defaults():
    analysis = quote_ai.parse_analysis_text('{"summary": "Schilderwerk van de gevel."}', "gemini")
    assert analysis["complexity"] == "Middel"
    assert analysis["confidence"] == 0.6
    assert analysis["scope"] == []
    assert analysis["source"] == "gemini"
    assert analysis["generatedAt"].endswith("Z")


@pytest.mark.parametrize("raw", [
    '{"summary": "kort"}',
    '{"summary": "Schilderwerk van de gevel.", "confidence": 3}',
    '{"summary": "Schilderwerk van de gevel.", "complexity": "Extreem"}',
    "[1, 2]",
])
def test_parse_analysis_text_rejects_invalid(raw):
    assert quote_ai.parse_analysis_text(raw, "openai") is None


def test_normalize_stored_analysis():
    stored = quote_ai.normalize_stored_analysis(json.dumps({
        "summary": "Oud resultaat",
        "confidence": 7,
        "source": "handmatig",
        "complexity": "Onbekend",
        "scope": ["a", 3],
    }))
    assert stored["confidence"] == 1.0
    assert stored["source"] == "fallback"
    assert stored["complexity"] == "Middel"
    assert stored["scope"] == ["a"]

    assert quote_ai.normalize_stored_analysis({"summary": "Zonder score"})["confidence"] == 0.5
    assert quote_ai.normalize_stored_analysis({"summary": "  "}) is None
    assert quote_ai.normalize_stored_analysis("kapot") is None


def test_run_quote_analysis_without_input():
    result = quote_ai.run_quote_analysis(_quote(dimensions={"rooms": [{"name": "Leeg"}]}), {}, None)
    assert result == {"status": "Niet geanalyseerd", "analysis": None, "error": None}


def test_run_quote_analysis_without_keys():
    result = quote_ai.run_quote_analysis(_quote(photos=[_photo()]), {}, None)
    assert result["status"] == "Mislukt"
    assert result["error"].startswith("Geen AI provider geconfigureerd.")


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


def test_gemini_analysis(monkeypatch):
    calls = []

    def fake_post(url, params=None, json=None, timeout=None):
        calls.append({"url": url, "params": params, "json": json, "timeout": timeout})
        text = "```json\n" + _dumps(ANALYSIS) + "\n```"
        return FakeResponse(200, {"candidates": [{"content": {"parts": [{"text": text}]}}]})

    monkeypatch.setattr(quote_ai.requests, "post", fake_post)

    photos = [_photo(f"1/foto-{n}.png") for n in range(8)]
    settings = dict(SETTINGS, GEMINI_API_KEY="g-key")
    result = quote_ai.run_quote_analysis(_quote(photos=photos), settings, lambda path: b"img")

    assert result["status"] == "Voltooid"
    assert result["analysis"]["source"] == "gemini"
    assert result["analysis"]["estimatedCost"] == {"min": 1800, "max": 2400, "currency": "EUR"}

    call = calls[0]
    assert call["url"].endswith("/models/gemini-test:generateContent")
    assert call["params"] == {"key": "g-key"}
    assert call["timeout"] == 5
    parts = call["json"]["contents"][0]["parts"]
    assert "Offerte: OFF-2026-000001" in parts[0]["text"]
    assert len(parts) == 1 + quote_ai.MAX_ANALYSIS_PHOTOS
    assert parts[1]["inline_data"] == {"mime_type": "image/png", "data": "aW1n"}


def test_gemini_skips_quotes_without_photos(monkeypatch):
    monkeypatch.setattr(quote_ai.requests, "post", pytest.fail)
    result = quote_ai.run_quote_analysis(
        _quote(dimensions={"lengte": 2, "eenheid": "m"}), {"GEMINI_API_KEY": "g"}, None
    )
    assert result["status"] == "Mislukt"
    assert result["error"] == "Gemini-output kon niet gelezen worden als geldige analyse."


def test_gemini_http_error(monkeypatch):
    monkeypatch.setattr(quote_ai.requests, "post", lambda *a, **kw: FakeResponse(429, {"error": "quota"}))
    result = quote_ai.run_quote_analysis(_quote(photos=[_photo()]), {"GEMINI_API_KEY": "g"}, lambda path: b"x")
    assert result["status"] == "Mislukt"
    assert result["error"].startswith("Gemini request mislukt (429):")


class FakeOpenAI:
    instances = []

    def __init__(self, api_key=None, timeout=None):
        self.api_key = api_key
        self.timeout = timeout
        self.requests = []
        self.responses = self
        FakeOpenAI.instances.append(self)

    def create(self, **kwargs):
        self.requests.append(kwargs)
        return FakeOpenAIResponse(_dumps(ANALYSIS))


class FakeOpenAIResponse:
    def __init__(self, output_text):
        self.output_text = output_text

    def model_dump(self):
        return {"output_text": self.output_text}


def test_openai_analysis(monkeypatch):
    FakeOpenAI.instances = []
    monkeypatch.setattr(quote_ai, "OpenAI", FakeOpenAI)

    settings = dict(SETTINGS, OPENAI_API_KEY="sk-test")
    result = quote_ai.run_quote_analysis(
        _quote(photos=[_photo()]), settings, lambda path: b"img", provider="openai"
    )

    assert result["status"] == "Voltooid"
    assert result["analysis"]["source"] == "openai"
    assert result["analysis"]["materials"] == [{"name": "Wandtegels", "quantity": 12.0, "unit": "m2"}]

    client = FakeOpenAI.instances[0]
    assert client.api_key == "sk-test"
    assert client.timeout == 5
    sent = client.requests[0]
    assert sent["model"] == "gpt-test"
    assert sent["temperature"] == 0.2
    content = sent["input"][0]["content"]
    assert content[0]["type"] == "input_text"
    assert content[1]["image_url"] == "data:image/png;base64,aW1n"
    assert content[1]["detail"] == "high"


def test_openai_exception_becomes_error(monkeypatch):
    class Broken(FakeOpenAI):
        def create(self, **kwargs):
            raise RuntimeError("verbinding verbroken")

    monkeypatch.setattr(quote_ai, "OpenAI", Broken)
    result = quote_ai.run_quote_analysis(
        _quote(photos=[_photo()]), {"OPENAI_API_KEY": "sk"}, lambda path: b"img"
    )
    assert result == {"status": "Mislukt", "analysis": None, "error": "verbinding verbroken"}


def _dumps(value):
    return json.dumps(value, ensure_ascii=False)
