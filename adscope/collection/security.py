"""
Security Descriptor Module
==========================

Binary helpers for Active Directory security data:
- SID and GUID conversion
- nTSecurityDescriptor / DACL parsing into raw ACEs
- Access mask and ACE flag decoding into right names
- SID -> principal name resolution over LDAP

Design Decisions:
-----------------
1. The parser walks the DACL by each ACE's declared size, so one malformed
   ACE is skipped without losing the ones after it
2. Both allow and deny ACEs are kept, object and non-object types alike
3. Principal names are cached per resolver; unresolvable SIDs are shown raw
"""

import struct
from dataclasses import dataclass
from typing import Optional, Callable

from ldap3 import SUBTREE
from ldap3.core.exceptions import LDAPException


# Well-known SIDs
WELL_KNOWN_SIDS = {
    'S-1-0-0': 'Null Authority',
    'S-1-1-0': 'Everyone',
    'S-1-2-0': 'Local',
    'S-1-3-0': 'Creator Owner',
    'S-1-3-1': 'Creator Group',
    'S-1-5-7': 'Anonymous',
    'S-1-5-9': 'Enterprise Domain Controllers',
    'S-1-5-10': 'Principal Self',
    'S-1-5-11': 'Authenticated Users',
    'S-1-5-18': 'Local System',
    'S-1-5-19': 'NT Authority Local Service',
    'S-1-5-20': 'NT Authority Network Service',
    'S-1-5-32-544': 'Builtin\\Administrators',
    'S-1-5-32-545': 'Builtin\\Users',
    'S-1-5-32-546': 'Builtin\\Guests',
    'S-1-5-32-548': 'Builtin\\Account Operators',
    'S-1-5-32-549': 'Builtin\\Server Operators',
    'S-1-5-32-550': 'Builtin\\Print Operators',
    'S-1-5-32-551': 'Builtin\\Backup Operators',
    'S-1-5-32-552': 'Builtin\\Replicators',
    'S-1-5-32-554': 'Builtin\\Pre-Windows 2000 Compatible Access',
    'S-1-5-32-557': 'Builtin\\Incoming Forest Trust Builders',
    'S-1-5-32-560': 'Builtin\\Windows Authorization Access Group',
    'S-1-5-32-561': 'Builtin\\Terminal Server License Servers',
}

# Domain-relative RIDs for well-known principals
DOMAIN_RIDS = {
    500: 'Administrator',
    501: 'Guest',
    502: 'krbtgt',
    512: 'Domain Admins',
    513: 'Domain Users',
    514: 'Domain Guests',
    515: 'Domain Computers',
    516: 'Domain Controllers',
    517: 'Cert Publishers',
    518: 'Schema Admins',
    519: 'Enterprise Admins',
    520: 'Group Policy Creator Owners',
    521: 'Read-only Domain Controllers',
    522: 'Cloneable Domain Controllers',
    525: 'Protected Users',
    526: 'Key Admins',
    527: 'Enterprise Key Admins',
    553: 'RAS and IAS Servers',
}

# ACE types
ACCESS_ALLOWED_ACE_TYPE = 0x00
ACCESS_DENIED_ACE_TYPE = 0x01
ACCESS_ALLOWED_OBJECT_ACE_TYPE = 0x05
ACCESS_DENIED_OBJECT_ACE_TYPE = 0x06

ALLOW_TYPES = (ACCESS_ALLOWED_ACE_TYPE, ACCESS_ALLOWED_OBJECT_ACE_TYPE)
OBJECT_TYPES = (ACCESS_ALLOWED_OBJECT_ACE_TYPE, ACCESS_DENIED_OBJECT_ACE_TYPE)
SUPPORTED_TYPES = ALLOW_TYPES + (ACCESS_DENIED_ACE_TYPE, ACCESS_DENIED_OBJECT_ACE_TYPE)

# ACE flags
OBJECT_INHERIT_ACE = 0x01
CONTAINER_INHERIT_ACE = 0x02
NO_PROPAGATE_INHERIT_ACE = 0x04
INHERIT_ONLY_ACE = 0x08
INHERITED_ACE = 0x10

ACE_FLAG_NAMES = [
    (OBJECT_INHERIT_ACE, 'ObjectInherit'),
    (CONTAINER_INHERIT_ACE, 'ContainerInherit'),
    (NO_PROPAGATE_INHERIT_ACE, 'NoPropagateInherit'),
    (INHERIT_ONLY_ACE, 'InheritOnly'),
]

# Object ACE flags
ACE_OBJECT_TYPE_PRESENT = 0x01
ACE_INHERITED_OBJECT_TYPE_PRESENT = 0x02

# AD-specific rights
ADS_RIGHT_DS_CREATE_CHILD = 0x00000001
ADS_RIGHT_DS_DELETE_CHILD = 0x00000002
ADS_RIGHT_ACTRL_DS_LIST = 0x00000004
ADS_RIGHT_DS_SELF = 0x00000008            # Validated write
ADS_RIGHT_DS_READ_PROP = 0x00000010
ADS_RIGHT_DS_WRITE_PROP = 0x00000020
ADS_RIGHT_DS_DELETE_TREE = 0x00000040
ADS_RIGHT_DS_LIST_OBJECT = 0x00000080
ADS_RIGHT_DS_CONTROL_ACCESS = 0x00000100  # Extended right

# Standard and generic rights
DELETE = 0x00010000
READ_CONTROL = 0x00020000
WRITE_DAC = 0x00040000
WRITE_OWNER = 0x00080000
SYNCHRONIZE = 0x00100000
ACCESS_SYSTEM_SECURITY = 0x01000000
GENERIC_ALL = 0x10000000
GENERIC_EXECUTE = 0x20000000
GENERIC_WRITE = 0x40000000
GENERIC_READ = 0x80000000

# Composite masks as shown by Active Directory tooling
FULL_CONTROL = 0x000F01FF
COMPOSITE_READ = READ_CONTROL | ADS_RIGHT_ACTRL_DS_LIST | ADS_RIGHT_DS_READ_PROP | ADS_RIGHT_DS_LIST_OBJECT
COMPOSITE_WRITE = READ_CONTROL | ADS_RIGHT_DS_SELF | ADS_RIGHT_DS_WRITE_PROP
COMPOSITE_EXECUTE = READ_CONTROL | ADS_RIGHT_ACTRL_DS_LIST

COMPOSITE_RIGHTS = [
    (COMPOSITE_READ, 'GenericRead'),
    (COMPOSITE_WRITE, 'GenericWrite'),
    (COMPOSITE_EXECUTE, 'GenericExecute'),
]

SIMPLE_RIGHTS = [
    (ADS_RIGHT_DS_CREATE_CHILD, 'CreateChild'),
    (ADS_RIGHT_DS_DELETE_CHILD, 'DeleteChild'),
    (ADS_RIGHT_ACTRL_DS_LIST, 'ListChildren'),
    (ADS_RIGHT_DS_SELF, 'Self'),
    (ADS_RIGHT_DS_READ_PROP, 'ReadProperty'),
    (ADS_RIGHT_DS_WRITE_PROP, 'WriteProperty'),
    (ADS_RIGHT_DS_DELETE_TREE, 'DeleteTree'),
    (ADS_RIGHT_DS_LIST_OBJECT, 'ListObject'),
    (ADS_RIGHT_DS_CONTROL_ACCESS, 'ExtendedRight'),
    (DELETE, 'Delete'),
    (READ_CONTROL, 'ReadControl'),
    (WRITE_DAC, 'WriteDacl'),
    (WRITE_OWNER, 'WriteOwner'),
    (SYNCHRONIZE, 'Synchronize'),
    (ACCESS_SYSTEM_SECURITY, 'AccessSystemSecurity'),
]

GENERIC_BITS = [
    (GENERIC_READ, 'GenericRead'),
    (GENERIC_WRITE, 'GenericWrite'),
    (GENERIC_EXECUTE, 'GenericExecute'),
]

# Display order for right sets
RIGHT_ORDER = ['GenericAll', 'GenericRead', 'GenericWrite', 'GenericExecute'] + [n for _, n in SIMPLE_RIGHTS]

# Rights that make an object ACE refer to an entry of the Extended-Rights
# container (control access rights, validated writes and property sets)
EXTENDED_RIGHT_MASK = (ADS_RIGHT_DS_CONTROL_ACCESS | ADS_RIGHT_DS_SELF |
                       ADS_RIGHT_DS_READ_PROP | ADS_RIGHT_DS_WRITE_PROP)


@dataclass
class RawAce:
    """An ACE as stored in the DACL, before name resolution."""
    ace_type: int
    flags: int
    access_mask: int
    sid: str
    object_type: Optional[str] = None
    inherited_object_type: Optional[str] = None

    @property
    def is_allow(self) -> bool:
        return self.ace_type in ALLOW_TYPES

    @property
    def is_inherited(self) -> bool:
        return bool(self.flags & INHERITED_ACE)


def convert_sid(sid_bytes: bytes) -> str:
    """Convert binary SID to string format.

    Args:
        sid_bytes: Binary SID data (trailing bytes are ignored)

    Returns:
        String SID (e.g., "S-1-5-21-..."), or "" for malformed input
    """
    if not sid_bytes or len(sid_bytes) < 8:
        return ""

    # SID structure:
    # Byte 0: Revision
    # Byte 1: Number of sub-authorities
    # Bytes 2-7: Identifier authority (big-endian)
    # Remaining: Sub-authorities (little-endian 32-bit)
    revision = sid_bytes[0]
    sub_auth_count = sid_bytes[1]
    if len(sid_bytes) < 8 + sub_auth_count * 4:
        return ""

    id_auth = int.from_bytes(sid_bytes[2:8], 'big')
    sub_auths = struct.unpack('<' + 'I' * sub_auth_count, sid_bytes[8:8 + sub_auth_count * 4])

    sid = f"S-{revision}-{id_auth}"
    for sub_auth in sub_auths:
        sid += f"-{sub_auth}"
    return sid


def format_guid(guid_bytes: bytes) -> str:
    """Format GUID bytes as string.

    GUIDs are stored with mixed endianness: the first three components
    are little-endian, the last two big-endian.
    """
    if len(guid_bytes) != 16:
        return ""

    data1 = struct.unpack('<I', guid_bytes[0:4])[0]
    data2 = struct.unpack('<H', guid_bytes[4:6])[0]
    data3 = struct.unpack('<H', guid_bytes[6:8])[0]
    data4 = guid_bytes[8:10].hex()
    data5 = guid_bytes[10:16].hex()

    return f"{data1:08x}-{data2:04x}-{data3:04x}-{data4}-{data5}"


def decode_access_mask(access_mask: int) -> frozenset:
    """Decode an access mask into the names of the rights it carries."""
    if access_mask & GENERIC_ALL or (access_mask & FULL_CONTROL) == FULL_CONTROL:
        return frozenset(['GenericAll'])

    names = set()
    covered = 0
    for bit, name in GENERIC_BITS:
        if access_mask & bit:
            names.add(name)

    for value, name in COMPOSITE_RIGHTS:
        # GenericExecute is a subset of GenericRead
        if access_mask & value == value and value & ~covered:
            names.add(name)
            covered |= value

    for bit, name in SIMPLE_RIGHTS:
        if access_mask & bit and not covered & bit:
            names.add(name)

    return frozenset(names)


def decode_ace_flags(flags: int) -> frozenset:
    return frozenset(name for bit, name in ACE_FLAG_NAMES if flags & bit)


def order_rights(rights) -> list[str]:
    """Sort right names in display order."""
    return sorted(rights, key=lambda r: RIGHT_ORDER.index(r) if r in RIGHT_ORDER else len(RIGHT_ORDER))


def references_extended_right(ace: RawAce) -> bool:
    """Whether an ACE is scoped to an entry of the Extended-Rights container."""
    return (
        ace.ace_type in OBJECT_TYPES
        and ace.object_type is not None
        and bool(ace.access_mask & EXTENDED_RIGHT_MASK)
    )


def parse_ace(ace_data: bytes) -> Optional[RawAce]:
    """Parse a single ACE.

    Returns:
        RawAce for allow/deny ACEs, None for other ACE types

    Raises:
        ValueError: If the ACE is truncated
    """
    if len(ace_data) < 8:
        raise ValueError("ACE shorter than its header")

    ace_type = ace_data[0]
    ace_flags = ace_data[1]
    if ace_type not in SUPPORTED_TYPES:
        return None

    access_mask = struct.unpack('<I', ace_data[4:8])[0]

    if ace_type in OBJECT_TYPES:
        # Bytes 8-11: Flags
        # Optional: Object type GUID (16 bytes)
        # Optional: Inherited object type GUID (16 bytes)
        # Remaining: SID
        if len(ace_data) < 12:
            raise ValueError("object ACE missing its flags")
        object_flags = struct.unpack('<I', ace_data[8:12])[0]
        offset = 12
        object_type = None
        inherited_object_type = None

        if object_flags & ACE_OBJECT_TYPE_PRESENT:
            if len(ace_data) < offset + 16:
                raise ValueError("object ACE truncated in ObjectType")
            object_type = format_guid(ace_data[offset:offset + 16])
            offset += 16

        if object_flags & ACE_INHERITED_OBJECT_TYPE_PRESENT:
            if len(ace_data) < offset + 16:
                raise ValueError("object ACE truncated in InheritedObjectType")
            inherited_object_type = format_guid(ace_data[offset:offset + 16])
            offset += 16
    else:
        offset = 8
        object_type = None
        inherited_object_type = None

    sid = convert_sid(ace_data[offset:])
    if not sid:
        raise ValueError("ACE carries a malformed SID")

    return RawAce(
        ace_type=ace_type,
        flags=ace_flags,
        access_mask=access_mask,
        sid=sid,
        object_type=object_type,
        inherited_object_type=inherited_object_type
    )


def parse_security_descriptor(sd_bytes: bytes, on_error: Optional[Callable[[str], None]] = None):
    """Parse a self-relative security descriptor.

    Args:
        sd_bytes: Raw nTSecurityDescriptor value
        on_error: Called once for each ACE that had to be skipped

    Returns:
        Tuple of (owner SID or "", list of RawAce in DACL order)

    Raises:
        ValueError: If the descriptor header itself is malformed
    """
    if not sd_bytes or len(sd_bytes) < 20:
        raise ValueError("security descriptor shorter than its header")

    # Security Descriptor structure:
    # Byte 0: Revision
    # Byte 1: Sbz1
    # Bytes 2-3: Control (little-endian)
    # Bytes 4-7: Owner offset
    # Bytes 8-11: Group offset
    # Bytes 12-15: SACL offset
    # Bytes 16-19: DACL offset
    control = struct.unpack('<H', sd_bytes[2:4])[0]
    owner_offset = struct.unpack('<I', sd_bytes[4:8])[0]
    dacl_offset = struct.unpack('<I', sd_bytes[16:20])[0]

    owner_sid = ""
    if 0 < owner_offset < len(sd_bytes):
        owner_sid = convert_sid(sd_bytes[owner_offset:])

    aces = []
    # SE_DACL_PRESENT
    if not (control & 0x0004) or dacl_offset == 0 or dacl_offset >= len(sd_bytes):
        return owner_sid, aces

    dacl = sd_bytes[dacl_offset:]
    if len(dacl) < 8:
        raise ValueError("DACL shorter than its header")

    # ACL structure:
    # Byte 0: AclRevision
    # Byte 1: Sbz1
    # Bytes 2-3: AclSize
    # Bytes 4-5: AceCount
    # Bytes 6-7: Sbz2
    ace_count = struct.unpack('<H', dacl[4:6])[0]

    ace_offset = 8
    for index in range(ace_count):
        if ace_offset + 4 > len(dacl):
            if on_error:
                on_error(f"DACL truncated before ACE #{index}")
            break

        ace_size = struct.unpack('<H', dacl[ace_offset + 2:ace_offset + 4])[0]
        if ace_size < 4 or ace_offset + ace_size > len(dacl):
            if on_error:
                on_error(f"ACE #{index} has an invalid size ({ace_size})")
            break

        try:
            ace = parse_ace(dacl[ace_offset:ace_offset + ace_size])
        except ValueError as e:
            if on_error:
                on_error(f"ACE #{index} skipped: {e}")
            ace = None

        if ace is not None:
            aces.append(ace)
        ace_offset += ace_size

    return owner_sid, aces


class SidResolver:
    """Resolves SIDs to principal names.

    Order of resolution: cache, well-known SIDs, an (objectSid=...) search
    under the domain base DN, then the well-known domain RIDs. When nothing
    matches the SID itself is returned.
    """

    def __init__(self, connection, base_dn: str, netbios_name: str = ""):
        self.connection = connection
        self.base_dn = base_dn
        self.netbios_name = netbios_name
        self._cache: dict[str, str] = {}

    def resolve(self, sid: str) -> str:
        if sid in self._cache:
            return self._cache[sid]

        name = WELL_KNOWN_SIDS.get(sid)
        if name is None:
            name = self._lookup(sid)
        if name is None:
            name = self._from_rid(sid)
        if name is None:
            name = sid

        self._cache[sid] = name
        return name

    def _lookup(self, sid: str) -> Optional[str]:
        if self.connection is None or not self.base_dn:
            return None
        try:
            self.connection.search(
                search_base=self.base_dn,
                search_filter=f"(objectSid={sid})",
                search_scope=SUBTREE,
                attributes=['sAMAccountName', 'name']
            )
        except LDAPException:
            return None

        for item in self.connection.response or []:
            if item.get('type') != 'searchResEntry':
                continue
            attrs = item.get('attributes') or {}
            for attr in ('sAMAccountName', 'name'):
                value = attrs.get(attr)
                if isinstance(value, list):
                    value = value[0] if value else None
                if value:
                    return self._qualify(str(value))
        return None

    def _from_rid(self, sid: str) -> Optional[str]:
        if not sid.startswith('S-1-5-21-'):
            return None
        try:
            rid = int(sid.rsplit('-', 1)[1])
        except ValueError:
            return None
        name = DOMAIN_RIDS.get(rid)
        return self._qualify(name) if name else None

    def _qualify(self, name: str) -> str:
        if self.netbios_name:
            return f"{self.netbios_name}\\{name}"
        return name
