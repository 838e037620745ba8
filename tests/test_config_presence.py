from pathlib import Path

from lib.settings import Settings
from migrate import EXPECTED_TABLES, migration_version


def test_required_configs_exist():
    repo = Path(__file__).resolve().parents[1]
    assert (repo / "pyproject.toml").exists()
    assert (repo / "sql" / "migrations" / "001_referral_core.sql").exists()


def test_migrations_create_expected_tables():
    repo = Path(__file__).resolve().parents[1]
    sql = (repo / "sql" / "migrations" / "001_referral_core.sql").read_text()
    for table in EXPECTED_TABLES - {"schema_migrations"}:
        assert f"CREATE TABLE IF NOT EXISTS {table} (" in sql


def test_migration_version_parsing():
    assert migration_version("001_referral_core.sql") == 1
    assert migration_version("readme.sql") is None


def test_settings_defaults():
    settings = Settings(database_url="postgresql://u:p@localhost/db", secret_key="s")
    assert settings.attribution_cookie_name == "ref_code"
    assert settings.attribution_cookie_max_age == 30 * 24 * 3600
    assert settings.fraud_velocity_threshold == 50.0
    assert settings.fraud_same_ip_threshold == 10


def test_production_always_requires_webhook_signatures():
    settings = Settings(
        database_url="postgresql://u:p@localhost/db",
        secret_key="s",
        environment="production",
    )
    assert settings.webhook_signature_required is True
