# Copyright 2025 Gowtham Rao <rao@ohdsi.org>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Manages the application's configuration using Pydantic."""

import logging
from typing import Any, Dict

import yaml
from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Manages configuration for the application.

    Reads settings from environment variables with the prefix 'METASLIM_'.
    """

    model_config = SettingsConfigDict(env_prefix="METASLIM_")

    # Database connection settings
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    # S105: Hardcoded password is used for local development.
    # In production, this should be set via environment variables.
    db_password: str = "postgres"
    db_name: str = "metaslim"
    db_schema: str = "public"
    db_table: str = "weight_loss_studies"
    db_dsn: str | None = None

    # AI extraction service
    proxy_url: str = "http://localhost:8888/api/gemini-proxy"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    request_timeout: float = 120.0

    # Extraction limits
    max_pdf_pages: int = 15
    max_text_chars: int = 30000

    @computed_field
    @property
    def db_connection_string(self) -> str:
        """Construct the libpq connection string, preferring an explicit DSN."""
        if self.db_dsn:
            return self.db_dsn
        return (
            f"host='{self.db_host}' port='{self.db_port}' "
            f"user='{self.db_user}' password='{self.db_password}' "
            f"dbname='{self.db_name}'"
        )


def load_config(config_file: str | None) -> Dict[str, Any]:
    """Loads configuration overrides from a YAML file.

    A missing file yields no overrides; an empty file is treated the same way.
    """
    if not config_file:
        return {}
    try:
        with open(config_file, "r") as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file not found: %s", config_file)
        return {}


def get_settings(config_file: str | None = None, **overrides: Any) -> Settings:
    """Builds Settings from env vars, an optional YAML file and explicit overrides."""
    values = load_config(config_file)
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)
