"""
Result Projector Module
=======================

Turns a page of directory entries into formatted records for one output
shape (ProjectionMode).

Design Decisions:
-----------------
1. One record per emitted entry; records are produced lazily
2. Entries are never modified
3. The projection mode set is closed: each mode has its own method and an
   unknown mode is a TypeError, not a silent fallback
4. Binary values are rendered by attribute syntax (SID, GUID) or decoded
"""

from typing import Iterator

from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import parse_dn

from ..model.schemas import (
    Entry, ResultPage, ProjectedRecord,
    SingleValue, MultiValue, GroupPolicyObject, ServicePrincipalName,
    DomainAttributes, Generic
)
from .security import convert_sid, format_guid


SID_ATTRIBUTES = {'objectsid', 'securityidentifier', 'sidhistory'}
GUID_ATTRIBUTES = {'objectguid', 'rightsguid', 'schemaidguid', 'attributesecurityguid'}

# msDS-Behavior-Version
FUNCTIONAL_LEVELS = {
    0: 'Windows 2000',
    1: 'Windows Server 2003 Interim',
    2: 'Windows Server 2003',
    3: 'Windows Server 2008',
    4: 'Windows Server 2008 R2',
    5: 'Windows Server 2012',
    6: 'Windows Server 2012 R2',
    7: 'Windows Server 2016',
    10: 'Windows Server 2025',
}

# GPO flags attribute
GPO_STATUS = {
    0: 'Enabled',
    1: 'User configuration settings disabled',
    2: 'Computer configuration settings disabled',
    3: 'All settings disabled',
}

# pwdProperties bits
PASSWORD_PROPERTIES = [
    (0x01, 'DOMAIN_PASSWORD_COMPLEX'),
    (0x02, 'DOMAIN_PASSWORD_NO_ANON_CHANGE'),
    (0x04, 'DOMAIN_PASSWORD_NO_CLEAR_CHANGE'),
    (0x08, 'DOMAIN_LOCKOUT_ADMINS'),
    (0x10, 'DOMAIN_PASSWORD_STORE_CLEARTEXT'),
    (0x20, 'DOMAIN_REFUSE_PASSWORD_CHANGE'),
]

# (attribute, label, formatter name)
DOMAIN_FIELDS = [
    ('msDS-Behavior-Version', 'Functional Level', 'level'),
    ('minPwdLength', 'Minimum Password Length', 'plain'),
    ('minPwdAge', 'Minimum Password Age', 'days'),
    ('maxPwdAge', 'Maximum Password Age', 'days'),
    ('pwdHistoryLength', 'Password History Length', 'plain'),
    ('pwdProperties', 'Password Properties', 'pwd_properties'),
    ('lockoutThreshold', 'Lockout Threshold', 'plain'),
    ('lockoutDuration', 'Lockout Duration', 'minutes'),
    ('lockOutObservationWindow', 'Lockout Observation Window', 'minutes'),
    ('ms-DS-MachineAccountQuota', 'Machine Account Quota', 'plain'),
]

NEVER = -0x8000000000000000
TICKS_PER_MINUTE = 60 * 10 ** 7
TICKS_PER_DAY = 24 * 60 * TICKS_PER_MINUTE


def entry_name(entry: Entry) -> str:
    """Value of the entry's first RDN, or the DN when it cannot be parsed."""
    try:
        components = parse_dn(entry.dn)
    except (LDAPInvalidDnError, IndexError, ValueError):
        return entry.dn
    if not components:
        return entry.dn
    return components[0][1]


def format_value(attribute: str, value) -> str:
    """Render one attribute value as text."""
    if isinstance(value, bytes):
        name = attribute.lower()
        if name in SID_ATTRIBUTES:
            return convert_sid(value) or value.hex()
        if name in GUID_ATTRIBUTES and len(value) == 16:
            return format_guid(value)
        try:
            return value.decode('utf-8')
        except UnicodeDecodeError:
            return value.hex()
    return str(value)


def _interval(value, ticks_per_unit: int, unit: str) -> str:
    try:
        ticks = int(value)
    except (TypeError, ValueError):
        # ldap3 may already have converted the interval to a timedelta
        return str(value)
    if ticks == NEVER:
        return 'Never'
    amount = abs(ticks) / ticks_per_unit
    return f"{amount:g} {unit}"


class ResultProjector:
    """Projects ResultPages into ProjectedRecords.

    Usage:
        projector = ResultProjector()
        for record in projector.project(page, SingleValue("cn")):
            print(record.entry_name, record.fields)
    """

    def project(self, page: ResultPage, mode) -> Iterator[ProjectedRecord]:
        """Yield one record per entry that has something to show for mode."""
        if isinstance(mode, SingleValue):
            handler = self._single
        elif isinstance(mode, MultiValue):
            handler = self._multi
        elif isinstance(mode, ServicePrincipalName):
            handler = self._spn
        elif isinstance(mode, GroupPolicyObject):
            handler = self._gpo
        elif isinstance(mode, DomainAttributes):
            handler = self._domain
        elif isinstance(mode, Generic):
            handler = self._generic
        else:
            raise TypeError(f"Unknown projection mode: {mode!r}")

        for entry in page.entries:
            record = handler(entry, mode)
            if record is not None:
                yield record

    def _record(self, entry: Entry, fields: list) -> ProjectedRecord:
        return ProjectedRecord(entry_name=entry_name(entry), fields=fields, dn=entry.dn)

    def _single(self, entry: Entry, mode: SingleValue):
        values = entry.get(mode.attribute)
        if not values:
            return None
        return self._record(entry, [(mode.attribute, format_value(mode.attribute, values[0]))])

    def _multi(self, entry: Entry, mode: MultiValue):
        values = entry.get(mode.attribute)
        if not values:
            return None
        return self._record(entry, [(mode.attribute, format_value(mode.attribute, v)) for v in values])

    def _spn(self, entry: Entry, mode: ServicePrincipalName):
        target = mode.target_name.lower()
        spns = [format_value('servicePrincipalName', v) for v in entry.get('servicePrincipalName')]
        matched = [spn for spn in spns if not target or target in spn.lower()]
        if not matched:
            return None
        return self._record(entry, [('servicePrincipalName', spn) for spn in matched])

    def _gpo(self, entry: Entry, mode: GroupPolicyObject):
        fields = []
        display_name = entry.first('displayName')
        if display_name is not None:
            fields.append(('displayName', format_value('displayName', display_name)))
        path = entry.first('gPCFileSysPath')
        if path is not None:
            fields.append(('gPCFileSysPath', format_value('gPCFileSysPath', path)))

        flags = entry.first('flags')
        if flags is not None:
            try:
                status = GPO_STATUS.get(int(format_value('flags', flags)), str(flags))
            except ValueError:
                status = format_value('flags', flags)
            fields.append(('status', status))
        return self._record(entry, fields)

    def _domain(self, entry: Entry, mode: DomainAttributes):
        fields = []
        for attribute, label, kind in DOMAIN_FIELDS:
            value = entry.first(attribute)
            if value is None:
                continue
            text = format_value(attribute, value)
            if kind == 'level':
                try:
                    text = FUNCTIONAL_LEVELS.get(int(text), text)
                except ValueError:
                    pass
            elif kind == 'days':
                text = _interval(text, TICKS_PER_DAY, 'days')
            elif kind == 'minutes':
                text = _interval(text, TICKS_PER_MINUTE, 'minutes')
            elif kind == 'pwd_properties':
                try:
                    bits = int(text)
                    names = [name for bit, name in PASSWORD_PROPERTIES if bits & bit]
                    text = f"{bits} ({', '.join(names)})" if names else str(bits)
                except ValueError:
                    pass
            fields.append((label, text))
        return self._record(entry, fields)

    def _generic(self, entry: Entry, mode: Generic):
        ordered = [name for name in mode.attributes if name not in ('*', '+')]
        seen = {name.lower() for name in ordered}
        ordered.extend(name for name in entry.attribute_names() if name.lower() not in seen)

        fields = []
        for attribute in ordered:
            for value in entry.get(attribute):
                fields.append((attribute, format_value(attribute, value)))
        return self._record(entry, fields)
