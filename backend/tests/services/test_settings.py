import pytest
from pydantic import ValidationError

from app.config import Settings


def test_api_keys_and_headers_are_parsed():
    config = Settings(
        DATABASE_URL="sqlite://",
        STATIC_API_KEYS=" key-a:user-1, key-b : user-2 ,broken,:nobody",
        AZURE_OPENAI_HEADERS="X-Tenant=acme,Ocp-Apim-Subscription-Key=abc=def",
    )

    assert config.api_key_map == {"key-a": "user-1", "key-b": "user-2"}
    assert config.azure_openai_extra_headers == {"X-Tenant": "acme", "Ocp-Apim-Subscription-Key": "abc=def"}


def test_ai_configuration_flag():
    assert Settings(DATABASE_URL="sqlite://", AZURE_OPENAI_ENDPOINT="https://x", AZURE_OPENAI_API_KEY="k").is_ai_configured
    assert not Settings(DATABASE_URL="sqlite://", AZURE_OPENAI_ENDPOINT="https://x", AZURE_OPENAI_API_KEY=None).is_ai_configured


def test_upload_size_must_be_positive():
    assert Settings(DATABASE_URL="sqlite://", MAX_UPLOAD_SIZE_MB=2).max_upload_size_bytes == 2 * 1024 * 1024

    with pytest.raises(ValidationError):
        Settings(DATABASE_URL="sqlite://", MAX_UPLOAD_SIZE_MB=0)
