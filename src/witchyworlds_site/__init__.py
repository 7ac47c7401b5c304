from witchyworlds_site.config import SiteSettings, load_site_settings
from witchyworlds_site.errors import ErrorKind, PanelApiError, SiteError

__version__ = "0.1.0"

__all__ = [
    "ErrorKind",
    "PanelApiError",
    "SiteError",
    "SiteSettings",
    "__version__",
    "load_site_settings",
]
