import pytest
from pydantic import ValidationError

from mcp_local_artifact_resolver.config import Settings

_KEYS = [
    "RESOLVER_ROOT",
    "DEPMAP_PATHS",
    "METADATA_PATHS",
    "JAVA_ROOT",
    "REPOSITORY_CONFIG",
    "REPOSITORY_ID",
    "FRAGMENT_LOAD_TIMEOUT_SECONDS",
    "LOG_LEVEL",
    "LOG_JSON",
    "TRANSPORT",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_representative_fields():
    s = Settings()
    assert s.RESOLVER_ROOT == "/"
    assert s.DEPMAP_PATHS == ["etc/maven/fragments", "usr/share/maven-fragments"]
    assert s.METADATA_PATHS == ["usr/share/maven-metadata"]
    assert s.JAVA_ROOT == "usr/share/java"
    assert s.REPOSITORY_CONFIG is None
    assert s.FRAGMENT_LOAD_TIMEOUT_SECONDS is None
    assert s.LOG_LEVEL == "INFO"
    assert s.TRANSPORT == "stdio"


def test_env_overrides_str_list_float_bool(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RESOLVER_ROOT", "/srv/buildroot")
    monkeypatch.setenv("DEPMAP_PATHS", '["etc/fragments"]')
    monkeypatch.setenv("FRAGMENT_LOAD_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("log_json", "true")

    s = Settings()

    assert s.RESOLVER_ROOT == "/srv/buildroot"
    assert s.DEPMAP_PATHS == ["etc/fragments"]
    assert s.FRAGMENT_LOAD_TIMEOUT_SECONDS == 2.5
    assert s.LOG_JSON is True


@pytest.mark.parametrize(
    "key,value",
    [
        ("FRAGMENT_LOAD_TIMEOUT_SECONDS", "0"),
        ("LOG_LEVEL", "CHATTY"),
        ("TRANSPORT", "carrier-pigeon"),
    ],
)
def test_invalid_values_rejected(monkeypatch: pytest.MonkeyPatch, key: str, value: str):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValidationError):
        Settings()
