"""Tests for domain, DC and trust enumeration."""

import os
import socket
import sys
import unittest
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adscope.collection.query import LDAP_PAGED_RESULT_OID_STRING, QueryExecutor  # noqa: E402
from adscope.collection import topology as topology_module  # noqa: E402
from adscope.collection.topology import (  # noqa: E402
    DC_FILTER,
    FSMO_FILTER,
    TopologyCollector,
    sid_filtering_enabled,
    trust_type_name,
)

DOMAIN_SID = bytes.fromhex("010400000000000515000000010000000200000003000000")


class FakeTopologyConnection:
    """Returns one page per search, chosen by (search base, filter) or by search base."""

    def __init__(self, entries_by_base):
        self.entries_by_base = entries_by_base
        self.response = []
        self.result = {}

    def search(self, search_base, search_filter, search_scope=None, attributes=None, controls=None,
               paged_size=None, paged_cookie=None, **kwargs):
        self.response = [
            {"type": "searchResEntry", "dn": dn, "attributes": attrs, "raw_attributes": raw}
            for dn, attrs, raw in self.entries_by_base.get(
                (search_base, search_filter), self.entries_by_base.get(search_base, [])
            )
        ]
        self.result = {
            "result": 0,
            "controls": {LDAP_PAGED_RESULT_OID_STRING: {"value": {"size": 0, "cookie": b""}}},
        }
        return True


def collector(entries_by_base, resolve_addresses=False):
    return TopologyCollector(
        QueryExecutor(FakeTopologyConnection(entries_by_base), verbose=False),
        verbose=False,
        resolve_addresses=resolve_addresses
    )


class TestTrustClassification(unittest.TestCase):
    """Test trust type naming and SID filtering."""

    def test_forest_trust_filtered(self):
        """Test that forest trusts filter SIDs."""
        self.assertTrue(sid_filtering_enabled(0x8))

    def test_forest_trust_treated_as_external(self):
        """Test that TREAT_AS_EXTERNAL relaxes forest trust filtering."""
        self.assertFalse(sid_filtering_enabled(0x8 | 0x40))

    def test_within_forest_never_filtered(self):
        """Test that parent-child trusts never filter SIDs."""
        self.assertFalse(sid_filtering_enabled(0x20 | 0x4))

    def test_external_quarantined(self):
        """Test that external trusts filter only when quarantined."""
        self.assertTrue(sid_filtering_enabled(0x4))
        self.assertFalse(sid_filtering_enabled(0x0))

    def test_trust_type_names(self):
        """Test trust type naming."""
        self.assertEqual(trust_type_name(2, 0x8), "Forest")
        self.assertEqual(trust_type_name(2, 0x20), "ParentChild")
        self.assertEqual(trust_type_name(1, 0x4), "External")
        self.assertEqual(trust_type_name(3, 0x0), "Kerberos")


class TestTopologyCollector(unittest.TestCase):
    """Test directory topology enumeration."""

    def test_list_domains(self):
        """Test that domains come from crossRefs with their SIDs."""
        topology = collector({
            "CN=Partitions,CN=Configuration,DC=corp,DC=local": [
                ("CN=CORP,CN=Partitions,CN=Configuration,DC=corp,DC=local",
                 {"dnsRoot": ["corp.local"], "nETBIOSName": "CORP", "nCName": "DC=corp,DC=local"}, {}),
            ],
            "DC=corp,DC=local": [
                ("DC=corp,DC=local", {}, {"objectSid": [DOMAIN_SID]}),
            ],
        })
        domains = topology.list_domains("DC=corp,DC=local")

        self.assertEqual(len(domains), 1)
        self.assertEqual(domains[0].name, "corp.local")
        self.assertEqual(domains[0].netbios_name, "CORP")
        self.assertEqual(domains[0].sid, "S-1-5-21-1-2-3")

    def test_list_domain_controllers(self):
        """Test DC listing with GC, RODC and site information."""
        topology = collector({
            "CN=Sites,CN=Configuration,DC=corp,DC=local": [
                ("CN=NTDS Settings,CN=DC01,CN=Servers,CN=HQ,CN=Sites,CN=Configuration,DC=corp,DC=local",
                 {"options": 1}, {}),
            ],
            "DC=corp,DC=local": [
                ("CN=DC01,OU=Domain Controllers,DC=corp,DC=local",
                 {"name": "DC01", "dNSHostName": "dc01.corp.local",
                  "operatingSystem": "Windows Server 2019 Standard", "primaryGroupID": 516}, {}),
                ("CN=RODC01,OU=Domain Controllers,DC=corp,DC=local",
                 {"name": "RODC01", "dNSHostName": "rodc01.corp.local", "primaryGroupID": 521}, {}),
            ],
        })
        dcs = topology.list_domain_controllers("DC=corp,DC=local", "DC=corp,DC=local")

        self.assertEqual([dc.name for dc in dcs], ["DC01", "RODC01"])
        self.assertTrue(dcs[0].is_global_catalog)
        self.assertEqual(dcs[0].site, "HQ")
        self.assertFalse(dcs[0].is_read_only)
        self.assertTrue(dcs[1].is_read_only)
        self.assertFalse(dcs[1].is_global_catalog)

    def test_list_trusts(self):
        """Test trust listing."""
        topology = collector({
            "CN=System,DC=corp,DC=local": [
                ("CN=partner.local,CN=System,DC=corp,DC=local",
                 {"trustPartner": "partner.local", "trustType": 2, "trustDirection": 3,
                  "trustAttributes": 8}, {}),
                ("CN=child.corp.local,CN=System,DC=corp,DC=local",
                 {"trustPartner": "child.corp.local", "trustType": 2, "trustDirection": 3,
                  "trustAttributes": 0x20}, {}),
            ],
        })
        trusts = topology.list_trusts("DC=corp,DC=local", "corp.local")

        self.assertEqual([t.target for t in trusts], ["partner.local", "child.corp.local"])
        self.assertEqual(trusts[0].source, "corp.local")
        self.assertEqual(trusts[0].trust_type, "Forest")
        self.assertEqual(trusts[0].trust_direction, "Bidirectional")
        self.assertTrue(trusts[0].sid_filtering)
        self.assertFalse(trusts[1].sid_filtering)

    def test_fsmo_roles(self):
        """Test that FSMO role owners are attached to their domain controllers."""
        owner = "CN=NTDS Settings,CN={},CN=Servers,CN=HQ,CN=Sites,CN=Configuration,DC=corp,DC=local"
        topology = collector({
            ("DC=corp,DC=local", DC_FILTER): [
                ("CN=DC01,OU=Domain Controllers,DC=corp,DC=local", {"name": "DC01"}, {}),
                ("CN=DC02,OU=Domain Controllers,DC=corp,DC=local", {"name": "DC02"}, {}),
            ],
            ("DC=corp,DC=local", FSMO_FILTER): [
                ("DC=corp,DC=local", {"fSMORoleOwner": owner.format("DC02")}, {}),
            ],
            "CN=Schema,CN=Configuration,DC=corp,DC=local": [
                ("CN=Schema,CN=Configuration,DC=corp,DC=local", {"fSMORoleOwner": owner.format("DC01")}, {}),
            ],
            "CN=Partitions,CN=Configuration,DC=corp,DC=local": [
                ("CN=Partitions,CN=Configuration,DC=corp,DC=local", {"fSMORoleOwner": owner.format("DC01")}, {}),
            ],
            "CN=RID Manager$,CN=System,DC=corp,DC=local": [
                ("CN=RID Manager$,CN=System,DC=corp,DC=local", {"fSMORoleOwner": owner.format("DC02")}, {}),
            ],
            "CN=Infrastructure,DC=corp,DC=local": [
                ("CN=Infrastructure,DC=corp,DC=local", {"fSMORoleOwner": owner.format("DC02")}, {}),
            ],
        })
        dcs = {dc.name: dc for dc in topology.list_domain_controllers("DC=corp,DC=local", "DC=corp,DC=local")}

        self.assertEqual(dcs["DC01"].roles, ["SchemaRole", "NamingRole"])
        self.assertEqual(dcs["DC02"].roles, ["PdcRole", "RidRole", "InfrastructureRole"])

    def test_ip_address_resolved(self):
        """Test that DC host names are resolved to addresses."""
        topology = collector({
            "DC=corp,DC=local": [
                ("CN=DC01,OU=Domain Controllers,DC=corp,DC=local",
                 {"name": "DC01", "dNSHostName": "dc01.corp.local"}, {}),
            ],
        }, resolve_addresses=True)
        with mock.patch.object(topology_module.socket, "gethostbyname", return_value="10.0.0.10") as lookup:
            dcs = topology.list_domain_controllers("DC=corp,DC=local", "DC=corp,DC=local")

        lookup.assert_called_once_with("dc01.corp.local")
        self.assertEqual(dcs[0].ip_address, "10.0.0.10")

    def test_ip_address_failure_is_empty(self):
        """Test that a host name that does not resolve leaves the address empty."""
        topology = collector({
            "DC=corp,DC=local": [
                ("CN=DC01,OU=Domain Controllers,DC=corp,DC=local",
                 {"name": "DC01", "dNSHostName": "dc01.corp.local"}, {}),
            ],
        }, resolve_addresses=True)
        with mock.patch.object(topology_module.socket, "gethostbyname",
                               side_effect=socket.gaierror(-2, "Name or service not known")):
            dcs = topology.list_domain_controllers("DC=corp,DC=local", "DC=corp,DC=local")

        self.assertEqual(dcs[0].ip_address, "")

    def test_list_forest_trusts(self):
        """Test that only forest-transitive trusts of the forest root are listed."""
        topology = collector({
            "CN=System,DC=corp,DC=local": [
                ("CN=partner.local,CN=System,DC=corp,DC=local",
                 {"trustPartner": "partner.local", "trustType": 2, "trustDirection": 2,
                  "trustAttributes": 0x8}, {}),
                ("CN=legacy.local,CN=System,DC=corp,DC=local",
                 {"trustPartner": "legacy.local", "trustType": 1, "trustDirection": 1,
                  "trustAttributes": 0x4}, {}),
            ],
        })
        trusts = topology.list_forest_trusts("DC=corp,DC=local", "corp.local")

        self.assertEqual([t.target for t in trusts], ["partner.local"])
        self.assertEqual(trusts[0].source, "corp.local")
        self.assertEqual(trusts[0].trust_type, "Forest")
        self.assertEqual(trusts[0].trust_direction, "Outbound")


if __name__ == "__main__":
    unittest.main()
