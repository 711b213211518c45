import base64
import sys
from pathlib import Path

import pytest

# Ensure project root is importable when running tests from repo root
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backoffice import create_app  # noqa: E402

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    b"iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR4nGNgYAAAAAMAASsJTYQAAAAASUVORK5CYII="
)


@pytest.fixture
def make_app(tmp_path):
    def _make_app(**overrides):
        config = {
            "DB_FILE": str(tmp_path / "crm.db"),
            "MEDIA_DIR": str(tmp_path / "media"),
            "MEDIA_URL_PREFIX": "/media/",
            "DEALS_SCHEMA": "dutch",
            "OFFERTE_AI_COLUMNS": True,
            "AUTO_INIT_DB": True,
            "OPENAI_API_KEY": None,
            "GEMINI_API_KEY": None,
            "E2E": False,
            "TESTING": True,
        }
        config.update(overrides)
        return create_app(config)

    return _make_app


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def png_bytes():
    return PNG_BYTES
