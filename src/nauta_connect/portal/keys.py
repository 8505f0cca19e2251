from __future__ import annotations

from dataclasses import dataclass


# Field names issued and echoed back by the portal. Matching is case-insensitive.
CSRFHW = "CSRFHW"
ATTRIBUTE_UUID = "ATTRIBUTE_UUID"
WLANUSERIP = "wlanuserip"
WLANACNAME = "wlanacname"
WLANMAC = "wlanmac"
SSID = "ssid"
DOMAIN = "domain"
LOGGER_ID = "loggerId"
USERNAME = "username"
PASSWORD = "password"
FIRSTURL = "firsturl"
USERTYPE = "usertype"
GOTOPAGE = "gotopage"
SUCCESSPAGE = "successpage"
LANG = "lang"
OP = "op"

MANDATORY_SCRIPT_TOKENS: tuple[str, ...] = (ATTRIBUTE_UUID, CSRFHW)
OPTIONAL_SCRIPT_TOKENS: tuple[str, ...] = (LOGGER_ID, USERNAME)

# Fields echoed on every authenticated request (query + logout).
SESSION_ECHO_FIELDS: tuple[str, ...] = (ATTRIBUTE_UUID, CSRFHW, WLANUSERIP, LOGGER_ID, USERNAME)
SESSION_BLANK_FIELDS: tuple[str, ...] = (SSID, DOMAIN, WLANACNAME, WLANMAC)

# Hidden fields the login form is expected to carry.
LOGIN_FORM_FIELDS: tuple[str, ...] = (
    WLANUSERIP,
    WLANACNAME,
    WLANMAC,
    FIRSTURL,
    SSID,
    USERTYPE,
    GOTOPAGE,
    SUCCESSPAGE,
    LOGGER_ID,
    LANG,
    CSRFHW,
)


@dataclass(frozen=True)
class PortalEndpoints:
    """
    Portal paths and markers. The portal is a third-party system; keep every path/marker here so
    changes on its side are a one-line fix.
    """

    root: str = "/"
    login: str = "/LoginServlet"
    query: str = "/EtecsaQueryServlet"
    logout: str = "/LogoutServlet"
    online_page: str = "/web/online.do"
    online_marker: str = "online.do"
    logout_success_marker: str = "SUCCESS"
    query_time_op: str = "getLeftTime"
