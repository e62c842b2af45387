"""
adscope Model Module
====================

Contains the typed data models shared by the collectors and the report.

Key Components:
- schemas.py: Queries, result pages, projection modes, access rules,
  credential findings and topology records
"""

from .schemas import (
    SearchScope,
    Query,
    Entry,
    ResultPage,
    SingleValue,
    MultiValue,
    GroupPolicyObject,
    ServicePrincipalName,
    DomainAttributes,
    Generic,
    ProjectionMode,
    ProjectedRecord,
    AccessType,
    AccessRule,
    CredentialFileSchema,
    CredentialFinding,
    DomainInfo,
    DomainControllerInfo,
    TrustInfo,
    KerberosPolicy
)
