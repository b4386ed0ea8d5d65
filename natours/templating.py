from functools import lru_cache
from pathlib import Path

from fastapi.templating import Jinja2Templates


@lru_cache
def get_templates(directory: Path) -> Jinja2Templates:
    return Jinja2Templates(directory=str(directory))
