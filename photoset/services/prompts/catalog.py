import os
from functools import lru_cache

import yaml

from photoset.core.config import settings
from photoset.schemas.catalog import PromptCatalog

DEFAULT_CATALOG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "catalog",
    "catalog.yaml",
)


def load_catalog(path: str) -> PromptCatalog:
    with open(path, "r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    return PromptCatalog(**payload)


@lru_cache(maxsize=1)
def get_prompt_catalog() -> PromptCatalog:
    """Process-wide catalog (FastAPI dependency; override in tests)."""
    return load_catalog(settings.prompt_catalog_path or DEFAULT_CATALOG_PATH)
