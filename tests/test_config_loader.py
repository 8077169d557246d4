import pytest

from newsreel.shared.config.config_loader import ConfigLoader, get_credentials, get_placeholder_news
from newsreel.shared.types.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clear_cache():
    ConfigLoader.clear_cache()
    yield
    ConfigLoader.clear_cache()


def test_packaged_config_has_playback_defaults(monkeypatch):
    monkeypatch.delenv('CONFIG_DIR', raising=False)
    assert ConfigLoader.get('playback.settle_delay') == 0.5
    assert ConfigLoader.get('playback.music_target_gain') == 0.08
    assert ConfigLoader.get('preload.timeout_seconds') == 20
    assert ConfigLoader.get('curation.story_count') == 5


def test_dot_get_returns_default_for_missing_key(monkeypatch):
    monkeypatch.delenv('CONFIG_DIR', raising=False)
    assert ConfigLoader.get('playback.nope', 'fallback') == 'fallback'
    assert ConfigLoader.section('does_not_exist') == {}


def test_config_dir_override(tmp_path, monkeypatch):
    (tmp_path / "app.yaml").write_text("playback:\n  settle_delay: 1.5\n", encoding='utf-8')
    monkeypatch.setenv('CONFIG_DIR', str(tmp_path))
    assert ConfigLoader.get('playback.settle_delay') == 1.5


def test_invalid_yaml_raises_configuration_error(tmp_path, monkeypatch):
    (tmp_path / "app.yaml").write_text("playback: [unclosed\n", encoding='utf-8')
    monkeypatch.setenv('CONFIG_DIR', str(tmp_path))
    with pytest.raises(ConfigurationError):
        ConfigLoader.load_config()


def test_placeholders_are_five(monkeypatch):
    monkeypatch.delenv('CONFIG_DIR', raising=False)
    placeholders = get_placeholder_news()
    assert [p['id'] for p in placeholders] == ['ph1', 'ph2', 'ph3', 'ph4', 'ph5']


def test_gemini_keys_collected_in_order_without_duplicates():
    credentials = get_credentials({
        'GEMINI_API_KEY': 'primary',
        'API_KEY': 'primary',
        'GEMINI_API_KEYS': ' backup1, ,backup2,primary ',
    })
    assert credentials.gemini_api_keys == ['primary', 'backup1', 'backup2']


def test_missing_credentials_fail_with_descriptive_messages():
    credentials = get_credentials({})
    with pytest.raises(ConfigurationError, match="NEWSDATA_API_KEY"):
        credentials.require_newsdata_key()
    with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
        credentials.require_gemini_keys()
    with pytest.raises(ConfigurationError, match="CLOUDINARY_CLOUD_NAME"):
        credentials.require_cloudinary()


def test_cloudinary_requires_preset_or_signing_pair():
    with pytest.raises(ConfigurationError, match="UPLOAD_PRESET"):
        get_credentials({'CLOUDINARY_CLOUD_NAME': 'demo'}).require_cloudinary()
    assert get_credentials({'CLOUDINARY_CLOUD_NAME': 'demo',
                            'CLOUDINARY_UPLOAD_PRESET': 'p'}).require_cloudinary() == 'demo'
    assert get_credentials({'CLOUDINARY_CLOUD_NAME': 'demo', 'CLOUDINARY_API_KEY': 'k',
                            'CLOUDINARY_API_SECRET': 's'}).require_cloudinary() == 'demo'
