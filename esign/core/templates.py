"""Shared template configuration for web routes"""

from pathlib import Path

from fastapi.templating import Jinja2Templates

from esign.core.config import settings
from esign.core.security import get_current_nonce

PACKAGE_DIR = Path(__file__).parent.parent

templates = Jinja2Templates(directory=str(PACKAGE_DIR / "templates"))

templates.env.globals["csp_nonce"] = get_current_nonce
templates.env.globals["app_name"] = settings.APP_NAME
templates.env.globals["app_version"] = settings.VERSION

__all__ = ["templates", "PACKAGE_DIR"]
