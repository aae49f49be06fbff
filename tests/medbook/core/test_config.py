import pytest

from medbook.core import config


def test_get_bool_parses_common_truthy_values() -> None:
    assert config._get_bool(' Yes ') is True
    assert config._get_bool('0') is False
    assert config._get_bool(None, default=True) is True


def test_get_list_splits_and_strips() -> None:
    assert config._get_list('http://a.test, http://b.test ,', []) == ['http://a.test', 'http://b.test']
    assert config._get_list(None, ['fallback']) == ['fallback']


def test_validate_runtime_config_rejects_default_secret_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'JWT_SECRET_KEY', 'change-me')

    with pytest.raises(RuntimeError, match='JWT_SECRET_KEY'):
        config.validate_runtime_config()


def test_validate_runtime_config_requires_sender_for_ses(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'development')
    monkeypatch.setattr(config, 'NOTIFY_BACKEND', 'ses')
    monkeypatch.setattr(config, 'NOTIFY_SENDER', '')

    with pytest.raises(RuntimeError, match='NOTIFY_SENDER'):
        config.validate_runtime_config()


def test_validate_runtime_config_accepts_development_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'development')
    monkeypatch.setattr(config, 'NOTIFY_BACKEND', 'log')

    config.validate_runtime_config()
