import pytest

from py_load_metaslim.config import Settings, get_settings, load_config

pytestmark = pytest.mark.unit


def test_settings_default_values():
    """
    Tests that the Settings model initializes with correct default values.
    """
    settings = Settings()
    assert settings.db_host == "localhost"
    assert settings.db_port == 5432
    assert settings.db_name == "metaslim"
    assert settings.db_table == "weight_loss_studies"
    assert settings.gemini_model == "gemini-2.5-flash"
    assert settings.max_pdf_pages == 15
    assert settings.max_text_chars == 30000


def test_settings_from_environment_variables(monkeypatch):
    """
    Tests that the Settings model correctly loads configuration
    from environment variables.
    """
    monkeypatch.setenv("METASLIM_DB_HOST", "testhost")
    monkeypatch.setenv("METASLIM_DB_PORT", "5433")
    monkeypatch.setenv("METASLIM_GEMINI_API_KEY", "secret")
    monkeypatch.setenv("METASLIM_PROXY_URL", "http://proxy.test/api/gemini-proxy")

    settings = Settings()

    assert settings.db_host == "testhost"
    assert settings.db_port == 5433
    assert settings.gemini_api_key == "secret"
    assert settings.proxy_url == "http://proxy.test/api/gemini-proxy"


def test_db_connection_string_computed_field():
    """
    Tests that the db_connection_string computed field is generated correctly.
    """
    settings = Settings(
        db_host="db_host",
        db_port=1234,
        db_user="db_user",
        db_password="db_password",
        db_name="db_name",
    )
    expected_conn_str = (
        "host='db_host' port='1234' "
        "user='db_user' password='db_password' "
        "dbname='db_name'"
    )
    assert settings.db_connection_string == expected_conn_str


def test_explicit_dsn_wins():
    settings = Settings(db_dsn="postgresql://u:p@h:5432/d", db_host="ignored")
    assert settings.db_connection_string == "postgresql://u:p@h:5432/d"


def test_load_config_missing_or_empty(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("")

    assert load_config(None) == {}
    assert load_config(str(tmp_path / "nope.yaml")) == {}
    assert load_config(str(empty)) == {}


def test_get_settings_merges_file_and_overrides(tmp_path):
    """Tests that explicit overrides beat the YAML file, and None is ignored."""
    config = tmp_path / "config.yaml"
    config.write_text("db_name: trials\ndb_table: cohorts\nmax_pdf_pages: 5\n")

    settings = get_settings(str(config), db_table="studies", db_dsn=None)

    assert settings.db_name == "trials"
    assert settings.db_table == "studies"
    assert settings.max_pdf_pages == 5
    assert settings.db_dsn is None
