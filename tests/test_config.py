from hn_digest.config import AppConfig, ProviderConfig, get_api_key, load_config


def test_load_config_without_path_returns_defaults():
    cfg = load_config(None)

    assert cfg == AppConfig()
    assert cfg.queue.max_concurrent == 3
    assert cfg.cache.max_cache_size == 500
    assert cfg.feed.base_url == "https://hacker-news.firebaseio.com/v0"


def test_load_config_merges_sections_and_ignores_unknown_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "queue:",
                "  max_concurrent: 5",
                "  not_a_field: 1",
                "provider:",
                "  name: gemini",
                "  model: gemini-2.0-flash",
                "unknown_section:",
                "  x: 1",
            ]
        ),
        encoding="utf-8",
    )

    cfg = load_config(str(path))

    assert cfg.queue.max_concurrent == 5
    assert cfg.queue.max_retries == 3
    assert cfg.provider.name == "gemini"
    assert cfg.provider.model == "gemini-2.0-flash"
    assert cfg.summary.max_tokens == 150


def test_get_api_key_prefers_inline_key(monkeypatch):
    monkeypatch.setenv("HN_TEST_KEY", "from-env")

    assert get_api_key(ProviderConfig(api_key_env="HN_TEST_KEY")) == "from-env"
    assert get_api_key(ProviderConfig(api_key_env="HN_TEST_KEY", api_key="inline")) == "inline"

    monkeypatch.delenv("HN_TEST_KEY")
    assert get_api_key(ProviderConfig(api_key_env="HN_TEST_KEY")) is None
