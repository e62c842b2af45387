#!/usr/bin/env python3
"""
adscope - Active Directory Security Configuration Collector
===========================================================

Command-line interface for enumerating a domain's security-relevant
configuration and recovering GPP credentials.

Usage:
    # Default LDAP sections (domains, DCs, trusts, domain policy, GPOs)
    python -m adscope -u user -p Password123 -d corp.local -s 192.168.1.100

    # ACL of an object, with extended rights resolved
    python -m adscope -u user -p Password123 -d corp.local -s 192.168.1.100 \\
        --acl "CN=AdminSDHolder,CN=System,DC=corp,DC=local"

    # GPP credentials in a mounted SYSVOL (no LDAP needed)
    python -m adscope --gpp /mnt/sysvol/corp.local/Policies

Options:
    --username, -u      Domain username
    --password, -p      Domain password
    --ntlm-hash         NTLM hash for Pass-the-Hash authentication
    --domain, -d        Domain name (e.g., corp.local)
    --server, -s        Domain controller IP address
    --ldaps             Use LDAPS (636)
    --verbose, -v       Announce each section as it is enumerated
    --no-inherited      Leave inherited ACEs out of ACL reports

Environment Variables:
    ADSCOPE_LDAP_TIMEOUT    LDAP timeout in seconds (default: 300)
    ALLUSERSPROFILE         Used by --cached-gpp
"""

import argparse
import sys

from ldap3.core.exceptions import LDAPException

from . import __version__
from .config import AdscopeConfig
from .errors import AdscopeError
from .collection.connection import DirectorySession, dn_to_domain
from .collection.query import QueryExecutor
from .collection.rights import RightsCache, RightsResolver
from .collection.acl import AclReporter
from .collection.security import SidResolver
from .collection.topology import TopologyCollector
from .harvest.gpp import GPPHarvester, cached_gpp_root, sysvol_policies_path
from .harvest.policy import read_kerberos_policy, default_domain_policy_path
from .model.schemas import (
    Query, SearchScope, SingleValue, MultiValue, GroupPolicyObject,
    ServicePrincipalName, DomainAttributes, Generic
)
from .reporting.text_report import (
    section, render_values, render_record, render_access_rule,
    render_trust_table, render_credential_finding, render_domain,
    render_domain_controller, render_kerberos_policy
)


LDAP_SECTIONS = ("domains", "dcs", "trusts", "domain_policy", "gpos")

SCOPE_CHOICES = {
    "base": SearchScope.OBJECT,
    "one": SearchScope.ONE_LEVEL,
    "sub": SearchScope.SUBTREE,
}


def emit(lines) -> None:
    if lines:
        print("\n".join(lines))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adscope",
        description="adscope - Active Directory security configuration collector",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default LDAP sections
  %(prog)s -u user -p Password123 -d corp.local -s 192.168.1.100

  # Kerberoastable accounts referencing a host
  %(prog)s -u user -p Password123 -d corp.local -s 192.168.1.100 --spn sql01

  # Custom query, every attribute
  %(prog)s -u user -p Password123 -d corp.local -s 192.168.1.100 \\
      --query "(adminCount=1)" --attrs sAMAccountName,memberOf --mode generic

  # GPP credentials from a mounted SYSVOL and the local GP cache
  %(prog)s --gpp /mnt/sysvol/corp.local/Policies --cached-gpp
        """
    )

    ldap_group = parser.add_argument_group("LDAP Connection")
    ldap_group.add_argument("-u", "--username", help="Domain username for LDAP authentication")
    ldap_group.add_argument("-p", "--password", help="Domain password for LDAP authentication")
    ldap_group.add_argument(
        "--ntlm-hash",
        dest="ntlm_hash",
        help="NTLM hash for Pass-the-Hash authentication (instead of password)"
    )
    ldap_group.add_argument("-d", "--domain", help="Domain name (e.g., corp.local)")
    ldap_group.add_argument("-s", "--server", help="Domain controller IP address or hostname")
    ldap_group.add_argument("--ldaps", action="store_true", help="Use LDAPS (port 636)")
    ldap_group.add_argument("--timeout", type=int, help="LDAP timeout in seconds (default: 300)")

    enum_group = parser.add_argument_group("Directory Enumeration")
    enum_group.add_argument("--domains", action="store_true", help="Domains of the forest")
    enum_group.add_argument("--dcs", action="store_true", help="Domain controllers")
    enum_group.add_argument("--trusts", action="store_true", help="Trust relationships")
    enum_group.add_argument("--domain-policy", dest="domain_policy", action="store_true",
                            help="Functional level and password/lockout policy")
    enum_group.add_argument("--gpos", action="store_true", help="Group Policy Objects")
    enum_group.add_argument("--spn", nargs="?", const="", metavar="TARGET",
                            help="Accounts with SPNs, optionally only those referencing TARGET")
    enum_group.add_argument("--acl", action="append", default=[], metavar="DN",
                            help="Report the DACL of DN (repeatable)")
    enum_group.add_argument("--no-inherited", dest="no_inherited", action="store_true",
                            help="Leave inherited ACEs out of --acl reports")
    enum_group.add_argument("--query", metavar="FILTER", help="Custom LDAP filter")
    enum_group.add_argument("--attrs", default="", help="Comma-separated attributes for --query")
    enum_group.add_argument("--base", help="Search base for --query (default: domain DN)")
    enum_group.add_argument("--scope", choices=sorted(SCOPE_CHOICES), default="sub",
                            help="Search scope for --query (default: sub)")
    enum_group.add_argument("--mode", choices=("single", "multi", "generic"), default="generic",
                            help="Output shape for --query (default: generic)")

    file_group = parser.add_argument_group("Files")
    file_group.add_argument("--gpp", action="append", default=[], metavar="PATH",
                            help="Harvest GPP credentials under PATH (repeatable)")
    file_group.add_argument("--sysvol-gpp", dest="sysvol_gpp", action="store_true",
                            help="Harvest GPP credentials from the domain's SYSVOL Policies folder")
    file_group.add_argument("--cached-gpp", dest="cached_gpp", action="store_true",
                            help="Harvest locally cached GPP files under %%ALLUSERSPROFILE%%")
    file_group.add_argument("--sysvol-root", dest="sysvol_root",
                            help="Local mount point of SYSVOL (default: UNC path)")
    file_group.add_argument("--kerberos-policy", dest="kerberos_policy", nargs="?", const="",
                            metavar="GPTTMPL",
                            help="Kerberos policy from GptTmpl.inf (default: Default Domain Policy)")

    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Announce each section as it is enumerated")
    parser.add_argument("--version", action="version", version=f"adscope {__version__}")
    return parser


def wants_ldap(args) -> bool:
    return bool(
        any(getattr(args, name) for name in LDAP_SECTIONS)
        or args.spn is not None or args.acl or args.query
    )


def build_config(args) -> AdscopeConfig:
    """Build the run configuration from parsed arguments."""
    ldap_config = {"use_ssl": args.ldaps}
    if args.timeout:
        ldap_config["timeout"] = args.timeout
    return AdscopeConfig.from_dict({
        "ldap": ldap_config,
        "harvest": {"sysvol_root": args.sysvol_root},
        "output": {"show_inherited": not args.no_inherited},
        "verbose": args.verbose,
    })


def announce(config: AdscopeConfig, what: str) -> None:
    if config.verbose:
        print(f"[*] Enumerating {what}...")


def run_ldap_sections(args, config: AdscopeConfig, session: DirectorySession) -> None:
    executor = QueryExecutor(session.connection)
    base_dn = session.base_dn
    forest_dn = session.forest_dn
    topology = TopologyCollector(executor, verbose=True)

    if args.domains:
        announce(config, "domains")
        emit(section("Domains"))
        try:
            for domain in topology.list_domains(forest_dn):
                emit(render_domain(domain))
        except (AdscopeError, LDAPException) as e:
            print(f"[!] Error: {e}")

    if args.dcs:
        announce(config, "domain controllers")
        emit(section("Domain Controllers"))
        try:
            for dc in topology.list_domain_controllers(base_dn, forest_dn):
                emit(render_domain_controller(dc))
        except (AdscopeError, LDAPException) as e:
            print(f"[!] Error: {e}")

    if args.trusts:
        announce(config, "trusts")
        emit(section("Domain Trusts"))
        try:
            emit(render_trust_table(topology.list_trusts(base_dn, args.domain)))
        except (AdscopeError, LDAPException) as e:
            print(f"[!] Error: {e}")

        emit(section("Forest Trusts"))
        try:
            emit(render_trust_table(topology.list_forest_trusts(forest_dn, dn_to_domain(forest_dn))))
        except (AdscopeError, LDAPException) as e:
            print(f"[!] Error: {e}")

    if args.domain_policy:
        announce(config, "domain attributes")
        emit(section("Domain Attributes"))
        query = Query("(objectClass=domain)", SearchScope.OBJECT, (
            "msDS-Behavior-Version", "minPwdLength", "minPwdAge", "maxPwdAge",
            "pwdHistoryLength", "pwdProperties", "lockoutThreshold", "lockoutDuration",
            "lockOutObservationWindow", "ms-DS-MachineAccountQuota"
        ), base_dn)
        for record in executor.search(query, DomainAttributes()):
            emit(render_record(record))

    if args.gpos:
        announce(config, "group policy objects")
        emit(section("Group Policy Objects"))
        query = Query("(objectClass=groupPolicyContainer)", SearchScope.SUBTREE,
                      ("displayName", "gPCFileSysPath", "flags"), base_dn)
        for record in executor.search(query, GroupPolicyObject()):
            emit(render_record(record))

    if args.spn is not None:
        announce(config, "service principal names")
        emit(section("Service Principal Names"))
        query = Query("(&(sAMAccountType=805306368)(servicePrincipalName=*))", SearchScope.SUBTREE,
                      ("servicePrincipalName",), base_dn)
        for record in executor.search(query, ServicePrincipalName(args.spn)):
            emit(render_values(record))

    if args.query:
        emit(section(f"Query {args.query}"))
        attributes = tuple(a.strip() for a in args.attrs.split(",") if a.strip())
        query = Query(args.query, SCOPE_CHOICES[args.scope], attributes, args.base or base_dn)
        if args.mode in ("single", "multi") and not attributes:
            print("[!] --mode single/multi needs --attrs")
        else:
            if args.mode == "single":
                mode, render = SingleValue(attributes[0]), render_values
            elif args.mode == "multi":
                mode, render = MultiValue(attributes[0]), render_values
            else:
                mode, render = Generic(attributes), render_record
            for record in executor.search(query, mode):
                emit(render(record))

    if args.acl:
        rights = RightsCache(RightsResolver(session.connection))
        reporter = AclReporter(
            session.connection,
            rights=rights,
            sid_resolver=SidResolver(session.connection, base_dn, session.netbios_name),
            verbose=True
        )
        for target_dn in args.acl:
            announce(config, f"ACL of {target_dn}")
            emit(section("Access Control"))
            print(f"  * Object DN: {target_dn}\n")
            for rule in reporter.report(target_dn, forest_dn):
                if rule.is_inherited and not config.output.show_inherited:
                    continue
                emit(render_access_rule(rule))


def run_file_sections(args, config: AdscopeConfig) -> None:
    roots = list(args.gpp)
    if args.sysvol_gpp:
        if args.domain:
            roots.append(sysvol_policies_path(args.domain, config.harvest.sysvol_root))
        else:
            print("[!] --sysvol-gpp needs -d/--domain")
    if args.cached_gpp:
        cached = cached_gpp_root()
        if cached:
            roots.append(cached)
        else:
            print("[!] ALLUSERSPROFILE is not set; skipping cached GPP files")

    if roots:
        harvester = GPPHarvester(config.harvest, verbose=True)
        emit(section("Group Policy Preferences Credentials"))
        for root in roots:
            for finding in harvester.harvest(root):
                emit(render_credential_finding(finding))

    if args.kerberos_policy is not None:
        emit(section("Kerberos Policy"))
        path = args.kerberos_policy
        if not path:
            if not args.domain:
                print("[!] --kerberos-policy without a path needs -d/--domain")
                return
            path = default_domain_policy_path(sysvol_policies_path(args.domain, config.harvest.sysvol_root))
        try:
            emit(render_kerberos_policy(read_kerberos_policy(path)))
        except AdscopeError as e:
            print(f"[!] Error: {e}")


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    has_ldap_target = bool(args.domain and args.server)
    selected_file = bool(args.gpp or args.sysvol_gpp or args.cached_gpp or args.kerberos_policy is not None)

    # Default to the topology sections when nothing was selected
    if has_ldap_target and not wants_ldap(args) and not selected_file:
        for name in LDAP_SECTIONS:
            setattr(args, name, True)

    if wants_ldap(args) and not has_ldap_target:
        parser.error("LDAP sections need -d (domain) and -s (server)")
    if not wants_ldap(args) and not selected_file:
        parser.error("Nothing to do: give -d/-s for LDAP enumeration or --gpp/--cached-gpp/--kerberos-policy")

    config = build_config(args)

    print_banner()

    status = 0
    if wants_ldap(args):
        session = DirectorySession(
            server_ip=args.server,
            domain=args.domain,
            username=args.username,
            password=args.password,
            ntlm_hash=args.ntlm_hash,
            config=config.ldap,
            verbose=True
        )
        if session.connect():
            try:
                run_ldap_sections(args, config, session)
            finally:
                session.disconnect()
        else:
            status = 1

    run_file_sections(args, config)
    return status


def print_banner():
    """Print the adscope banner."""
    banner = r"""
            _
   __ _  __| |___  ___ ___  _ __   ___
  / _` |/ _` / __|/ __/ _ \| '_ \ / _ \
 | (_| | (_| \__ \ (_| (_) | |_) |  __/
  \__,_|\__,_|___/\___\___/| .__/ \___|
                           |_|
  Active Directory Security Configuration Collector
    """
    print(banner)


if __name__ == "__main__":
    sys.exit(main())
