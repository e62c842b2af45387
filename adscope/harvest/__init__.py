"""
adscope Harvest Module
======================

File-based collection: GPP credential files and security templates.

Components:
- gpp.py: cpassword recovery from Group Policy Preferences XML
- policy.py: Kerberos policy from GptTmpl.inf
"""

from .gpp import GPPHarvester, GPP_SCHEMAS, cached_gpp_root, sysvol_policies_path
from .policy import read_kerberos_policy, default_domain_policy_path
