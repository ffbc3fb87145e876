from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Tuple

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

PROXY_TYPE_APACHE = "apache"


def scalar_text(value: Any) -> Any:
    """Brief: Render an unquoted YAML scalar as the text it was written as.

    Inputs:
      - value: Parsed YAML value.

    Outputs:
      - str for bools (lowercase), numbers and dates; anything else unchanged
        so the str field still rejects mappings and lists.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


# Text fields also take unquoted scalars, e.g. "password: 123456".
Text = Annotated[str, BeforeValidator(scalar_text)]


class _Frozen(BaseModel):
    """Base for configuration models; instances reject attribute assignment."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class Database(_Frozen):
    """Brief: Database credentials for a single site.

    Inputs:
      - host: Database server host name.
      - port: TCP port of the database server.
      - name: Database (schema) name.
      - user: Login user.
      - password: Login password.
    """

    host: Text = "localhost"
    port: int = Field(default=3306, ge=0, le=65535)
    name: Text = ""
    user: Text = ""
    password: Text = ""


class SiteWordpress(_Frozen):
    """Site-specific WordPress settings."""

    database: Database = Field(default_factory=Database)
    force_https: bool = False


class Site(_Frozen):
    """Brief: A single managed site.

    Inputs:
      - domain_name: Domain identifying the site; also its directory name
        under wordpress_global.base_path.
      - name: Optional human-readable label.
      - root: Optional explicit document root.
      - wordpress: Per-site settings (database credentials, force_https).
    """

    domain_name: Text
    name: Text = ""
    root: Text = ""
    wordpress: SiteWordpress = Field(default_factory=SiteWordpress)


class WordpressGlobal(_Frozen):
    """Settings shared by every site: source archive URL and base directory."""

    zip_url: Text = ""
    base_path: Text = ""


class Proxy(_Frozen):
    """Reverse proxy selection, e.g. type "apache"."""

    type: Text = ""


class ManagerConfig(_Frozen):
    """Brief: Immutable snapshot of the managed-sites configuration document.

    Inputs:
      - sites: Managed sites, in document order.
      - wordpress_global: Global settings.
      - proxy: Reverse proxy section.

    Outputs:
      - ManagerConfig instance. Sequences are tuples and every nested model is
        frozen, so a published snapshot can be shared across threads without
        copying.

    Example:
      >>> cfg = ManagerConfig(sites=[{"domain_name": "a.example"}])
      >>> cfg.domains()
      ('a.example',)
    """

    sites: Tuple[Site, ...] = ()
    wordpress_global: WordpressGlobal = Field(default_factory=WordpressGlobal)
    proxy: Proxy = Field(default_factory=Proxy)

    def domains(self) -> Tuple[str, ...]:
        return tuple(site.domain_name for site in self.sites)
