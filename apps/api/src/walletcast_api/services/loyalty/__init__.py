"""Loyalty collaborator exports."""

from .birthday_claims import BirthdayClaimStore, SqlBirthdayClaimStore  # noqa: F401
from .directory import MemberDirectory, SqlMemberDirectory  # noqa: F401
from .points import BalanceMutator, LedgerBalanceMutator, MutationResult  # noqa: F401
