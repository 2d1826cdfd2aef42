"""
SQLAlchemy models for the family finance assistant.
"""

from famfin.models.account import DEBT_ACCOUNT_TYPES, Account, AccountType
from famfin.models.budget import Budget, BudgetPeriod
from famfin.models.conversation import AIConversation
from famfin.models.document import Document, DocumentChunk, EntityType
from famfin.models.smsf import (
    AssetType,
    AuditStatus,
    FundStatus,
    LodgementStatus,
    MemberStatus,
    SmsfCarryForward,
    SmsfCompliance,
    SmsfContribution,
    SmsfContributionType,
    SmsfFund,
    SmsfInvestment,
    SmsfMember,
    SmsfTransaction,
    SmsfTransactionType,
)
from famfin.models.superannuation import ContributionType, SuperAccount, SuperContribution
from famfin.models.tax import Deduction, DeductionCategory, Income, IncomeType
from famfin.models.transaction import (
    CategorisationRule,
    Category,
    ExternalSource,
    MatchField,
    MatchType,
    Transaction,
    TransactionType,
)
from famfin.models.trust import (
    BeneficiaryType,
    DistributionType,
    FrankingCreditLedger,
    Trust,
    TrustBeneficiary,
    TrustDistribution,
    TrustIncome,
    TrustIncomeType,
    TrustInvestment,
)
from famfin.models.xero import (
    ConnectionStatus,
    SyncStatus,
    SyncType,
    XeroAccountMapping,
    XeroConnection,
    XeroSyncLog,
)

__all__ = [
    "Account",
    "AccountType",
    "DEBT_ACCOUNT_TYPES",
    "AIConversation",
    "Category",
    "CategorisationRule",
    "MatchField",
    "MatchType",
    "Transaction",
    "TransactionType",
    "ExternalSource",
    "Income",
    "IncomeType",
    "Deduction",
    "DeductionCategory",
    "SuperAccount",
    "SuperContribution",
    "ContributionType",
    "Trust",
    "TrustBeneficiary",
    "TrustIncome",
    "TrustDistribution",
    "TrustInvestment",
    "FrankingCreditLedger",
    "TrustIncomeType",
    "DistributionType",
    "BeneficiaryType",
    "Budget",
    "BudgetPeriod",
    "SmsfFund",
    "SmsfMember",
    "SmsfContribution",
    "SmsfInvestment",
    "SmsfTransaction",
    "SmsfCompliance",
    "SmsfCarryForward",
    "FundStatus",
    "MemberStatus",
    "SmsfContributionType",
    "AssetType",
    "SmsfTransactionType",
    "AuditStatus",
    "LodgementStatus",
    "Document",
    "DocumentChunk",
    "EntityType",
    "XeroConnection",
    "XeroAccountMapping",
    "XeroSyncLog",
    "ConnectionStatus",
    "SyncType",
    "SyncStatus",
]
