"""
adscope Reporting Module
========================

Console rendering of collected records.

Components:
- text_report.py: line renderers for attribute listings, ACLs, trusts,
  GPP credential findings, domains, DCs and Kerberos policy
"""

from .text_report import (
    section,
    render_values,
    render_record,
    render_access_rule,
    render_trust_table,
    render_credential_finding,
    render_domain,
    render_domain_controller,
    render_kerberos_policy
)
