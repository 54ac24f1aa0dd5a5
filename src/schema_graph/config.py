"""
Planner configuration: database connection and capture settings
"""
import configparser
from dataclasses import dataclass, field
from typing import Dict, List

DEFAULT_SCHEMAS = ['public']
DEFAULT_MAX_WORKERS = 4

DATABASE_KEYS = ('dbname', 'user', 'password', 'host', 'port')


@dataclass
class PlannerConfig:
    database: Dict[str, str]
    schemas: List[str] = field(default_factory=lambda: list(DEFAULT_SCHEMAS))
    max_workers: int = DEFAULT_MAX_WORKERS

    def connection_params(self) -> Dict[str, str]:
        """Keyword arguments for psycopg2.connect"""
        return dict(self.database)


def load_config(config_path: str) -> PlannerConfig:
    """Load planner configuration from an ini file.

    Args:
        config_path: Path to the configuration file

    Returns:
        PlannerConfig built from the [database] and optional [planner] sections
    """
    parser = configparser.ConfigParser()
    parser.read(config_path)

    database = {key: parser['database'][key] for key in DATABASE_KEYS}

    schemas = DEFAULT_SCHEMAS
    if parser.has_option('planner', 'schemas'):
        schemas = [name.strip() for name in parser.get('planner', 'schemas').split(',')
                   if name.strip()]
    max_workers = parser.getint('planner', 'max_workers', fallback=DEFAULT_MAX_WORKERS)
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}")

    return PlannerConfig(database=database, schemas=list(schemas), max_workers=max_workers)
