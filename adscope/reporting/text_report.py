"""
Text Report Module
==================

Renders collected records as console text, one record at a time so the
report can be streamed while the collectors are still running.

Every function returns a list of lines; the caller decides where they go.
"""

from typing import Iterable

from ..model.schemas import (
    ProjectedRecord, AccessRule, TrustInfo, CredentialFinding,
    DomainInfo, DomainControllerInfo, KerberosPolicy
)
from ..collection.security import order_rights


TRUST_COLUMNS = "    {:<30}{:<30}{:<15}{:<20}{:<10}"


def section(title: str) -> list[str]:
    return ["", "=" * 60, title, "=" * 60, ""]


def _block(pairs: list, width: int) -> list[str]:
    """Bulleted block: first pair marked with '*', the rest indented."""
    lines = []
    for i, (label, value) in enumerate(pairs):
        prefix = "  * " if i == 0 else "    "
        lines.append(f"{prefix}{(label + ':').ljust(width)} {value}")
    return lines


def render_values(record: ProjectedRecord) -> list[str]:
    """'<entryName>  <value>' lines, one per value."""
    return [f"  {record.entry_name}  {value}" for _, value in record.fields]


def render_record(record: ProjectedRecord) -> list[str]:
    """Labeled listing of every field of a record."""
    lines = [f"  * {record.entry_name}"]
    if record.fields:
        width = max(len(label) for label, _ in record.fields) + 1
        for label, value in record.fields:
            lines.append(f"    {(label + ':').ljust(width)}  {value}")
    return lines


def render_access_rule(rule: AccessRule) -> list[str]:
    pairs = [
        ("Identity", rule.identity),
        ("Rights", ", ".join(order_rights(rule.rights)) or f"0x{rule.access_mask:08x}"),
        ("Type", rule.access_type.value),
    ]
    if rule.extended_right_id is not None:
        pairs.append(("ExtendedRight", rule.extended_right_display))
    elif rule.object_type:
        pairs.append(("ObjectType", rule.object_type))
    if rule.inherited_object_type:
        pairs.append(("InheritedObjectType", rule.inherited_object_type))
    flags = sorted(rule.inheritance_flags)
    pairs.append(("Inheritance", ", ".join(flags) if flags else "None"))
    pairs.append(("IsInherited", str(rule.is_inherited)))
    return _block(pairs, 20) + [""]


def render_trust_table(trusts: Iterable[TrustInfo]) -> list[str]:
    trusts = list(trusts)
    if not trusts:
        return []
    lines = [TRUST_COLUMNS.format("Source", "Target", "TrustType", "TrustDirection", "SIDFiltering"), ""]
    for trust in trusts:
        status = "[SID Filtering is enabled]" if trust.sid_filtering else "[Not Filtering SIDs]"
        lines.append(TRUST_COLUMNS.format(trust.source, trust.target, trust.trust_type,
                                          trust.trust_direction, status))
    return lines


def render_credential_finding(finding: CredentialFinding) -> list[str]:
    pairs = list(finding.fields) + [("Path", finding.source_path)]
    return _block(pairs, 14) + [""]


def render_domain(domain: DomainInfo) -> list[str]:
    lines = [f"  * {domain.name}"]
    if domain.netbios_name:
        lines.append(f"    NetBIOS Name: {domain.netbios_name}")
    lines.append(f"    Domain SID:   {domain.sid or 'Unknown'}")
    lines.append("")
    return lines


def render_domain_controller(dc: DomainControllerInfo) -> list[str]:
    tags = ""
    if dc.is_global_catalog:
        tags += "[Global Catalog] "
    if dc.is_read_only:
        tags += "[Read-Only Domain Controller]"
    lines = [f"  * {dc.name}  {tags}".rstrip()]
    lines.append(f"    DNSHostName      :  {dc.dns_host_name}")
    if dc.ip_address:
        lines.append(f"    IPAddress        :  {dc.ip_address}")
    lines.append(f"    OS               :  {dc.operating_system}")
    if dc.site:
        lines.append(f"    Site             :  {dc.site}")
    if dc.roles:
        lines.append(f"    Roles            :  {'   '.join(dc.roles)}")
    lines.append("")
    return lines


def render_kerberos_policy(policy: KerberosPolicy) -> list[str]:
    return [
        f"    MaxServiceAge:           {policy.max_service_age} Minutes",
        f"    MaxTicketAge:            {policy.max_ticket_age} Hours",
        f"    MaxRenewAge:             {policy.max_renew_age} Days",
        f"    MaxClockSkew:            {policy.max_clock_skew} Minutes",
        f"    TicketValidateClient:    {policy.ticket_validate_client}",
    ]
