"""
adscope Data Schemas
====================

Typed dataclasses for directory queries, result pages, access rules and
credential findings.

Design Decisions:
-----------------
1. Query, projection modes and findings are frozen dataclasses so they
   can be shared between components and compared by value
2. Entry attribute lookup is case-insensitive, as attribute names are in LDAP
3. ProjectionMode is a closed set of dataclasses; the projector matches on
   each concrete type and rejects anything else

Schema Overview:
- Query / SearchScope: one logical LDAP search
- Entry / ResultPage: one page of search results plus its cookie
- SingleValue, MultiValue, GroupPolicyObject, ServicePrincipalName,
  DomainAttributes, Generic: output shapes (ProjectionMode)
- ProjectedRecord: one formatted output record
- AccessRule / AccessType: one resolved ACE
- CredentialFileSchema / CredentialFinding: GPP credential extraction
- DomainInfo, DomainControllerInfo, TrustInfo, KerberosPolicy: topology
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from ldap3.utils.ciDict import CaseInsensitiveDict

from ..config import PAGE_SIZE


class SearchScope(Enum):
    """Scope of an LDAP search relative to its base DN."""
    OBJECT = "Object"
    ONE_LEVEL = "OneLevel"
    SUBTREE = "Subtree"


@dataclass(frozen=True)
class Query:
    """One logical directory query.

    Attributes:
        filter: LDAP filter expression
        scope: Search scope
        attributes: Attributes to return, in the order they should be shown
        base_dn: Search base
        page_size: Entries per page (always 500)
    """
    filter: str
    scope: SearchScope
    attributes: tuple
    base_dn: str
    page_size: int = PAGE_SIZE

    def __post_init__(self):
        # Accept any iterable of names but store an immutable tuple
        object.__setattr__(self, "attributes", tuple(self.attributes))


class Entry:
    """A single search result entry.

    Holds the formatted attribute values and the raw byte values that
    ldap3 returned. Every value is stored as a list, so single-valued and
    multi-valued attributes are read the same way.
    """

    __slots__ = ("dn", "attributes", "raw_attributes")

    def __init__(self, dn: str, attributes: Optional[dict] = None, raw_attributes: Optional[dict] = None):
        self.dn = dn
        self.attributes = CaseInsensitiveDict()
        self.raw_attributes = CaseInsensitiveDict()
        for name, values in (attributes or {}).items():
            self.attributes[name] = _as_list(values)
        for name, values in (raw_attributes or {}).items():
            self.raw_attributes[name] = _as_list(values)

    @classmethod
    def from_response(cls, item: dict) -> "Entry":
        """Build an Entry from one item of ldap3's connection.response."""
        return cls(
            dn=item.get("dn", ""),
            attributes=item.get("attributes") or {},
            raw_attributes=item.get("raw_attributes") or {}
        )

    def has(self, name: str) -> bool:
        return bool(self.attributes.get(name)) or bool(self.raw_attributes.get(name))

    def get(self, name: str) -> list:
        """Return all values of an attribute, or an empty list."""
        values = self.attributes.get(name)
        if values:
            return list(values)
        return list(self.raw_attributes.get(name) or [])

    def get_raw(self, name: str) -> list:
        """Return the raw byte values of an attribute, or an empty list."""
        values = self.raw_attributes.get(name)
        if values:
            return list(values)
        return [v for v in self.attributes.get(name) or [] if isinstance(v, bytes)]

    def first(self, name: str, default=None):
        values = self.get(name)
        return values[0] if values else default

    def attribute_names(self) -> list[str]:
        names = list(self.attributes.keys())
        seen = {n.lower() for n in names}
        for name in self.raw_attributes.keys():
            if name.lower() not in seen:
                names.append(name)
        return names

    def __repr__(self):
        return f"Entry({self.dn!r})"


def _as_list(values) -> list:
    if values is None:
        return []
    if isinstance(values, (list, tuple)):
        return list(values)
    return [values]


@dataclass
class ResultPage:
    """One page of search results.

    Attributes:
        entries: Entries in server order
        cookie: Continuation cookie; empty means no further pages
    """
    entries: list = field(default_factory=list)
    cookie: bytes = b""

    def __len__(self):
        return len(self.entries)


# ---------------------------------------------------------------------------
# Projection modes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SingleValue:
    """First value of one single-valued attribute per entry."""
    attribute: str


@dataclass(frozen=True)
class MultiValue:
    """Every value of one multi-valued attribute per entry."""
    attribute: str


@dataclass(frozen=True)
class GroupPolicyObject:
    """Display name, SYSVOL path and status of a groupPolicyContainer."""


@dataclass(frozen=True)
class ServicePrincipalName:
    """SPNs referencing target_name; all SPNs when target_name is empty."""
    target_name: str = ""


@dataclass(frozen=True)
class DomainAttributes:
    """Functional level and password/lockout policy of a domain object."""


@dataclass(frozen=True)
class Generic:
    """Every returned attribute, in requested order when one is given."""
    attributes: tuple = ()


ProjectionMode = Union[SingleValue, MultiValue, GroupPolicyObject,
                       ServicePrincipalName, DomainAttributes, Generic]


@dataclass
class ProjectedRecord:
    """One formatted output record for one entry.

    Attributes:
        entry_name: Name of the entry (first RDN value)
        fields: Ordered (label, value) pairs
        dn: Full DN of the entry
    """
    entry_name: str
    fields: list = field(default_factory=list)
    dn: str = ""

    def values(self, label: Optional[str] = None) -> list[str]:
        return [v for (l, v) in self.fields if label is None or l == label]


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

class AccessType(Enum):
    ALLOW = "Allow"
    DENY = "Deny"


@dataclass
class AccessRule:
    """One access-control entry of an object's DACL.

    Attributes:
        identity: Principal name (or SID when it cannot be resolved)
        rights: Names of the rights granted or denied
        access_type: Allow or Deny
        inheritance_flags: Names of the ACE inheritance flags
        is_inherited: Whether the ACE was inherited from a parent
        access_mask: Raw access mask
        object_type: ObjectType GUID of an object ACE, if present
        inherited_object_type: InheritedObjectType GUID, if present
        extended_right_id: GUID of the extended right the ACE is scoped to
        extended_right_name: Resolved display name of that right
        sid: Principal SID
    """
    identity: str
    rights: frozenset
    access_type: AccessType
    inheritance_flags: frozenset = frozenset()
    is_inherited: bool = False
    access_mask: int = 0
    object_type: Optional[str] = None
    inherited_object_type: Optional[str] = None
    extended_right_id: Optional[str] = None
    extended_right_name: Optional[str] = None
    sid: str = ""

    @property
    def extended_right_display(self) -> Optional[str]:
        """Resolved name of the extended right, or the raw GUID."""
        if self.extended_right_id is None:
            return None
        return self.extended_right_name or self.extended_right_id


# ---------------------------------------------------------------------------
# GPP credential extraction
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CredentialFileSchema:
    """Where credentials live inside one kind of GPP file.

    Attributes:
        filename: GPP file name (e.g. Groups.xml)
        record_path: Absolute path of the record nodes
        fields: Record attributes to report, always including cpassword
        aliases: Other spellings of the file name found in the wild
    """
    filename: str
    record_path: str
    fields: tuple
    aliases: tuple = ()

    @property
    def filenames(self) -> tuple:
        return (self.filename,) + tuple(self.aliases)

    @property
    def root_tag(self) -> str:
        return self.record_path.strip("/").split("/")[0]

    @property
    def relative_path(self) -> str:
        """Record path relative to the document element."""
        return "/".join(self.record_path.strip("/").split("/")[1:])


@dataclass(frozen=True)
class CredentialFinding:
    """One GPP record that carries a cpassword attribute.

    Attributes:
        source_path: File the record was found in
        fields: Ordered (name, value) pairs, ending with 'changed' when present
    """
    source_path: str
    fields: tuple

    def get(self, name: str, default=None):
        for key, value in self.fields:
            if key == name:
                return value
        return default

    def as_dict(self) -> dict:
        data = dict(self.fields)
        data["sourcePath"] = self.source_path
        return data


# ---------------------------------------------------------------------------
# Topology and policy
# ---------------------------------------------------------------------------

@dataclass
class DomainInfo:
    name: str
    distinguished_name: str
    sid: str = ""
    netbios_name: str = ""


@dataclass
class DomainControllerInfo:
    name: str
    dns_host_name: str = ""
    operating_system: str = ""
    is_read_only: bool = False
    is_global_catalog: bool = False
    site: str = ""
    ip_address: str = ""
    roles: list = field(default_factory=list)  # FSMO roles held


@dataclass
class TrustInfo:
    """One trust relationship of a domain.

    Attributes:
        source: Name of the trusting/trusted local domain
        target: trustPartner of the trustedDomain object
        trust_type: Mapped trust type (e.g. Forest, External, ParentChild)
        trust_direction: Inbound, Outbound or Bidirectional
        sid_filtering: Whether SID filtering applies to the trust
        attributes: Raw trustAttributes value
    """
    source: str
    target: str
    trust_type: str
    trust_direction: str
    sid_filtering: bool
    attributes: int = 0


@dataclass
class KerberosPolicy:
    """Kerberos settings from the Default Domain Policy security template.

    Units follow the template: service tickets in minutes, user tickets in
    hours, renewal in days and clock skew in minutes.
    """
    max_service_age: Optional[str] = None
    max_ticket_age: Optional[str] = None
    max_renew_age: Optional[str] = None
    max_clock_skew: Optional[str] = None
    ticket_validate_client: Optional[str] = None
