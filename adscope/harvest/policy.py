"""
Kerberos Policy Reader
======================

Reads the [Kerberos Policy] section of a GptTmpl.inf security template,
normally the one of the Default Domain Policy in SYSVOL.
"""

import configparser
import os
from typing import Optional

from ..errors import PolicyReadError
from ..model.schemas import KerberosPolicy


DEFAULT_DOMAIN_POLICY_GUID = "{31B2F340-016D-11D2-945F-00C04FB984F9}"
SECEDIT_TEMPLATE = os.path.join("MACHINE", "Microsoft", "Windows NT", "SecEdit", "GptTmpl.inf")

KERBEROS_SECTION = "Kerberos Policy"

# (template key, KerberosPolicy attribute)
KERBEROS_KEYS = [
    ("MaxServiceAge", "max_service_age"),
    ("MaxTicketAge", "max_ticket_age"),
    ("MaxRenewAge", "max_renew_age"),
    ("MaxClockSkew", "max_clock_skew"),
    ("TicketValidateClient", "ticket_validate_client"),
]


def default_domain_policy_path(policies_root: str) -> str:
    """GptTmpl.inf of the Default Domain Policy under a Policies folder."""
    return os.path.join(policies_root, DEFAULT_DOMAIN_POLICY_GUID, SECEDIT_TEMPLATE)


def _decode(raw: bytes) -> str:
    # secedit writes UTF-16 LE with a BOM; hand-edited copies are often UTF-8
    if raw.startswith((b"\xff\xfe", b"\xfe\xff")):
        return raw.decode("utf-16")
    return raw.decode("utf-8-sig", errors="replace")


def read_kerberos_policy(path: str) -> KerberosPolicy:
    """Parse the Kerberos settings out of a GptTmpl.inf file.

    Raises:
        PolicyReadError: If the file cannot be read or parsed, or has no
            [Kerberos Policy] section
    """
    try:
        with open(path, "rb") as f:
            text = _decode(f.read())
    except OSError as e:
        raise PolicyReadError(f"Cannot read {path}: {e.strerror or e}") from e

    parser = configparser.ConfigParser(interpolation=None, strict=False)
    parser.optionxform = str
    try:
        parser.read_string(text, source=path)
    except configparser.Error as e:
        raise PolicyReadError(f"Cannot parse {path}: {e}") from e

    if not parser.has_section(KERBEROS_SECTION):
        raise PolicyReadError(f"No [{KERBEROS_SECTION}] section in {path}")

    section = parser[KERBEROS_SECTION]
    values: dict[str, Optional[str]] = {}
    for key, attribute in KERBEROS_KEYS:
        value = section.get(key)
        values[attribute] = value.strip() if value is not None else None
    return KerberosPolicy(**values)
