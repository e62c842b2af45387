"""
Topology Collector
==================

Enumerates the forest's domains, a domain's controllers (with their FSMO
roles and addresses) and the trust relationships of a domain or of the
forest root, all through the paged QueryExecutor.

Each lookup is isolated: a domain whose SID cannot be read is still
listed, a failed query yields whatever it returned before failing.
"""

import socket
from typing import Optional, Callable

from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import parse_dn

from ..model.schemas import (
    Query, SearchScope, DomainInfo, DomainControllerInfo, TrustInfo
)
from .query import QueryExecutor
from .security import convert_sid


# systemFlags of a crossRef: FLAG_CR_NTDS_DOMAIN
CROSSREF_DOMAIN_FILTER = "(&(objectClass=crossRef)(systemFlags:1.2.840.113556.1.4.803:=2))"
# userAccountControl: SERVER_TRUST_ACCOUNT
DC_FILTER = "(userAccountControl:1.2.840.113556.1.4.803:=8192)"
NTDSDSA_FILTER = "(objectClass=nTDSDSA)"
TRUST_FILTER = "(objectClass=trustedDomain)"
FSMO_FILTER = "(fSMORoleOwner=*)"

RODC_PRIMARY_GROUP = 521
NTDSDSA_OPT_IS_GC = 0x1

# trustAttributes
TRUST_ATTRIBUTE_NON_TRANSITIVE = 0x1
TRUST_ATTRIBUTE_QUARANTINED_DOMAIN = 0x4
TRUST_ATTRIBUTE_FOREST_TRANSITIVE = 0x8
TRUST_ATTRIBUTE_WITHIN_FOREST = 0x20
TRUST_ATTRIBUTE_TREAT_AS_EXTERNAL = 0x40

TRUST_DIRECTIONS = {
    0: 'Disabled',
    1: 'Inbound',
    2: 'Outbound',
    3: 'Bidirectional',
}

# trustType
TRUST_TYPE_DOWNLEVEL = 1
TRUST_TYPE_UPLEVEL = 2
TRUST_TYPE_MIT = 3


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def trust_type_name(trust_type: int, attributes: int) -> str:
    """Name a trust the way Windows tooling does."""
    if trust_type == TRUST_TYPE_MIT:
        return 'Kerberos'
    if attributes & TRUST_ATTRIBUTE_FOREST_TRANSITIVE:
        return 'Forest'
    if attributes & TRUST_ATTRIBUTE_WITHIN_FOREST:
        return 'ParentChild'
    return 'External'


def sid_filtering_enabled(attributes: int) -> bool:
    """Whether SID filtering applies to a trust with these trustAttributes."""
    if attributes & TRUST_ATTRIBUTE_WITHIN_FOREST:
        return False
    if attributes & TRUST_ATTRIBUTE_FOREST_TRANSITIVE:
        return not attributes & TRUST_ATTRIBUTE_TREAT_AS_EXTERNAL
    return bool(attributes & TRUST_ATTRIBUTE_QUARANTINED_DOMAIN)


def _rdn_values(dn: str) -> list[str]:
    try:
        return [component[1] for component in parse_dn(dn)]
    except (LDAPInvalidDnError, IndexError, ValueError):
        return []


class TopologyCollector:
    """Collects domains, domain controllers and trusts.

    Usage:
        topology = TopologyCollector(QueryExecutor(connection))
        for domain in topology.list_domains(forest_dn):
            print(domain.name, domain.sid)
    """

    def __init__(
        self,
        executor: QueryExecutor,
        verbose: bool = True,
        progress_callback: Optional[Callable[[str], None]] = None,
        resolve_addresses: bool = True
    ):
        self.executor = executor
        self.verbose = verbose
        self.resolve_addresses = resolve_addresses
        self.progress_callback = progress_callback

    def _log(self, message: str) -> None:
        """Log a message to console and/or callback."""
        if self.verbose:
            print(message)
        if self.progress_callback:
            self.progress_callback(message)

    def _entries(self, query: Query):
        for page in self.executor.iter_pages(query):
            yield from page.entries

    def list_domains(self, forest_dn: str) -> list[DomainInfo]:
        """List the domains of the forest from its Partitions container."""
        query = Query(
            filter=CROSSREF_DOMAIN_FILTER,
            scope=SearchScope.ONE_LEVEL,
            attributes=('dnsRoot', 'nETBIOSName', 'nCName'),
            base_dn=f"CN=Partitions,CN=Configuration,{forest_dn}"
        )
        domains = [
            DomainInfo(
                name=str(entry.first('dnsRoot', '')),
                distinguished_name=str(entry.first('nCName', '')),
                netbios_name=str(entry.first('nETBIOSName', ''))
            )
            for entry in self._entries(query)
        ]

        for domain in domains:
            if domain.distinguished_name:
                domain.sid = self._domain_sid(domain.distinguished_name)
        return domains

    def _domain_sid(self, domain_dn: str) -> str:
        query = Query(
            filter="(objectClass=domain)",
            scope=SearchScope.OBJECT,
            attributes=('objectSid',),
            base_dn=domain_dn
        )
        for entry in self._entries(query):
            raw = entry.get_raw('objectSid')
            if raw:
                return convert_sid(raw[0])
            value = entry.first('objectSid')
            if isinstance(value, str) and value.startswith('S-'):
                return value
        self._log(f"[!] Could not retrieve domain SID for {domain_dn}")
        return ""

    def list_domain_controllers(self, domain_dn: str, forest_dn: str) -> list[DomainControllerInfo]:
        """List the domain controllers of a domain."""
        roles = self._server_roles(forest_dn)
        fsmo = self._fsmo_roles(domain_dn, forest_dn)

        query = Query(
            filter=DC_FILTER,
            scope=SearchScope.SUBTREE,
            attributes=('name', 'dNSHostName', 'operatingSystem', 'primaryGroupID'),
            base_dn=domain_dn
        )
        controllers = []
        for entry in self._entries(query):
            name = str(entry.first('name', ''))
            is_gc, site = roles.get(name.lower(), (False, ''))
            dns_host_name = str(entry.first('dNSHostName', ''))
            controllers.append(DomainControllerInfo(
                name=name,
                dns_host_name=dns_host_name,
                operating_system=str(entry.first('operatingSystem', '')),
                is_read_only=_int(entry.first('primaryGroupID')) == RODC_PRIMARY_GROUP,
                is_global_catalog=is_gc,
                site=site,
                ip_address=self.resolve_address(dns_host_name),
                roles=fsmo.get(name.lower(), [])
            ))
        return controllers

    def resolve_address(self, host_name: str) -> str:
        """Resolve a DC host name to an IPv4 address, or "" when that fails."""
        if not host_name or not self.resolve_addresses:
            return ""
        try:
            return socket.gethostbyname(host_name)
        except OSError as e:
            self._log(f"[!] Could not resolve {host_name}: {e}")
            return ""

    def _fsmo_roles(self, domain_dn: str, forest_dn: str) -> dict:
        """Map server name -> FSMO roles it holds, read from fSMORoleOwner."""
        role_objects = (
            ('SchemaRole', f"CN=Schema,CN=Configuration,{forest_dn}"),
            ('NamingRole', f"CN=Partitions,CN=Configuration,{forest_dn}"),
            ('PdcRole', domain_dn),
            ('RidRole', f"CN=RID Manager$,CN=System,{domain_dn}"),
            ('InfrastructureRole', f"CN=Infrastructure,{domain_dn}"),
        )
        holders = {}
        for role, object_dn in role_objects:
            query = Query(
                filter=FSMO_FILTER,
                scope=SearchScope.OBJECT,
                attributes=('fSMORoleOwner',),
                base_dn=object_dn
            )
            for entry in self._entries(query):
                owner = entry.first('fSMORoleOwner')
                if not owner:
                    continue
                # CN=NTDS Settings,CN=<server>,CN=Servers,...
                rdns = _rdn_values(str(owner))
                if len(rdns) < 2:
                    continue
                holders.setdefault(rdns[1].lower(), []).append(role)
        return holders

    def _server_roles(self, forest_dn: str) -> dict:
        """Map server name -> (is global catalog, site) from NTDS Settings."""
        query = Query(
            filter=NTDSDSA_FILTER,
            scope=SearchScope.SUBTREE,
            attributes=('options',),
            base_dn=f"CN=Sites,CN=Configuration,{forest_dn}"
        )
        roles = {}
        for entry in self._entries(query):
            # CN=NTDS Settings,CN=<server>,CN=Servers,CN=<site>,CN=Sites,...
            rdns = _rdn_values(entry.dn)
            if len(rdns) < 4:
                continue
            options = _int(entry.first('options'))
            roles[rdns[1].lower()] = (bool(options & NTDSDSA_OPT_IS_GC), rdns[3])
        return roles

    def list_trusts(self, domain_dn: str, domain_name: str) -> list[TrustInfo]:
        """List the trust relationships stored under CN=System of a domain."""
        query = Query(
            filter=TRUST_FILTER,
            scope=SearchScope.ONE_LEVEL,
            attributes=('trustPartner', 'trustType', 'trustDirection', 'trustAttributes'),
            base_dn=f"CN=System,{domain_dn}"
        )
        trusts = []
        for entry in self._entries(query):
            attributes = _int(entry.first('trustAttributes'))
            trusts.append(TrustInfo(
                source=domain_name,
                target=str(entry.first('trustPartner', '')),
                trust_type=trust_type_name(_int(entry.first('trustType')), attributes),
                trust_direction=TRUST_DIRECTIONS.get(_int(entry.first('trustDirection')), 'Unknown'),
                sid_filtering=sid_filtering_enabled(attributes),
                attributes=attributes
            ))
        return trusts

    def list_forest_trusts(self, forest_dn: str, forest_name: str) -> list[TrustInfo]:
        """List the forest trusts held by the forest root domain."""
        return [
            trust for trust in self.list_trusts(forest_dn, forest_name)
            if trust.attributes & TRUST_ATTRIBUTE_FOREST_TRANSITIVE
        ]
