"""Tests for configuration loading."""
import pytest

from schema_graph.config import DEFAULT_MAX_WORKERS, load_config

DATABASE_SECTION = """
[database]
dbname = shop
user = planner
password = secret
host = localhost
port = 5432
"""


@pytest.fixture
def write_config(tmp_path):
    def write(text):
        path = tmp_path / "config.ini"
        path.write_text(text)
        return str(path)
    return write


def test_load_config(write_config):
    path = write_config(DATABASE_SECTION + """
[planner]
schemas = app, billing ,
max_workers = 8
""")

    config = load_config(path)

    assert config.connection_params() == {
        'dbname': 'shop', 'user': 'planner', 'password': 'secret',
        'host': 'localhost', 'port': '5432',
    }
    assert config.schemas == ['app', 'billing']
    assert config.max_workers == 8


def test_planner_section_is_optional(write_config):
    config = load_config(write_config(DATABASE_SECTION))

    assert config.schemas == ['public']
    assert config.max_workers == DEFAULT_MAX_WORKERS


def test_missing_database_key(write_config):
    with pytest.raises(KeyError):
        load_config(write_config("[database]\ndbname = shop\n"))


def test_max_workers_must_be_positive(write_config):
    with pytest.raises(ValueError):
        load_config(write_config(DATABASE_SECTION + "[planner]\nmax_workers = 0\n"))
