"""
HTTP session with connection pooling, a fixed retry policy and SSL fix.

One session per ContentFetcher; no process-wide session. A request is
never retried inside urllib3: the fetcher owns the timeout budget and
decides itself whether a second attempt still fits.
"""

import os

import certifi
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .constants import AGENT_VERSION

_retry_strategy = Retry(
    total=0,
    connect=0,
    read=False,                                 # Surface read timeouts as-is
    allowed_methods=["HEAD", "GET"],
    raise_on_status=False,
)


def _get_ca_bundle():
    """Get the CA bundle path.

    Priority: permanent ProgramData copy → env var → certifi.
    The permanent copy survives PyInstaller _MEI temp dir cleanup.
    """
    permanent = os.path.join(
        os.environ.get("PROGRAMDATA", "C:\\ProgramData"),
        "EndpointHealth", "cacert.pem",
    )
    if os.path.isfile(permanent):
        return permanent
    env_ca = os.environ.get('REQUESTS_CA_BUNDLE') or os.environ.get('SSL_CERT_FILE')
    if env_ca and os.path.isfile(env_ca):
        return env_ca
    return certifi.where()


def create_session():
    """Create a new requests.Session with connection pooling, the retry policy and SSL."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=2,
        max_retries=_retry_strategy,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.verify = _get_ca_bundle()
    session.headers["User-Agent"] = f"EndpointHealth/{AGENT_VERSION}"
    return session


def reset_session(session):
    """Close and recreate the HTTP session (fixes stale connections)."""
    try:
        session.close()
    except Exception:
        pass
    return create_session()
