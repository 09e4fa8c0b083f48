import pytest

from lingolog.config import DEFAULT_DB_PATH, Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "LINGOLOG_DB_PATH",
        "DB_PATH",
        "REFRESH_DEBOUNCE_MS",
        "DELETE_GRACE_PERIOD_MS",
        "TRANSLATOR_PROXY_URL",
    ):
        monkeypatch.delenv(key, raising=False)


def test_defaults_match_repository_timings() -> None:
    s = Settings(_env_file=None)

    assert s.lingolog_db_path == DEFAULT_DB_PATH
    assert s.refresh_debounce_ms == 150
    assert s.delete_grace_period_ms == 300
    assert s.refresh_debounce_seconds == pytest.approx(0.15)
    assert s.delete_grace_period_seconds == pytest.approx(0.3)
    assert s.translator_region == "eastus"
    assert s.translator_proxy_url is None


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REFRESH_DEBOUNCE_MS", "40")
    monkeypatch.setenv("DB_PATH", "/tmp/words.sqlite3")

    s = Settings(_env_file=None)

    assert s.refresh_debounce_ms == 40
    assert s.lingolog_db_path == "/tmp/words.sqlite3"


def test_negative_timings_are_rejected() -> None:
    with pytest.raises(ValueError, match="timing values must be >= 0"):
        Settings(_env_file=None, delete_grace_period_ms=-1)


@pytest.mark.parametrize("raw, expected", [("  ", None), (" https://proxy.test/t ", "https://proxy.test/t")])
def test_proxy_url_is_normalised(raw: str, expected: str | None) -> None:
    assert Settings(_env_file=None, translator_proxy_url=raw).translator_proxy_url == expected


def test_proxy_url_requires_http_scheme() -> None:
    with pytest.raises(ValueError, match="must start with http"):
        Settings(_env_file=None, translator_proxy_url="ftp://proxy.test")
