"""Annual birthday rewards with per-pass, per-year exactly-once issuance."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from walletcast_api.domain.records import MembershipRecord, ProgramInfo
from walletcast_api.observability.broadcast import BroadcastObservabilityStore, get_broadcast_store
from walletcast_api.services.loyalty.birthday_claims import BirthdayClaimStore
from walletcast_api.services.loyalty.directory import MemberDirectory
from walletcast_api.services.loyalty.points import BalanceMutator
from walletcast_api.services.notifications.campaign_log import CampaignLogEntry, CampaignLogStore

from .errors import BroadcastSystemError

BIRTHDAY_CAMPAIGN_NAME = "Birthday Bot (Multi-Program)"
BIRTHDAY_SEGMENT = "BIRTHDAY"
BIRTHDAY_LEDGER_DESCRIPTION = "Birthday Bonus"

SendOne = Callable[[str | None, str, str], Awaitable[bool]]


class BirthdayOutcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class BirthdayDetail:
    pass_id: UUID
    email: str
    first_name: str
    last_name: str
    program_name: str
    points_awarded: int
    status: BirthdayOutcome = BirthdayOutcome.FAILED
    reason: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "passId": str(self.pass_id),
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "programName": self.program_name,
            "pointsAwarded": self.points_awarded,
            "status": self.status.value,
            "reason": self.reason,
        }


@dataclass(slots=True)
class BirthdayRunResult:
    run_date: date
    dry_run: bool
    processed: int = 0
    success_count: int = 0
    failed_count: int = 0
    already_gifted: int = 0
    programs_processed: int = 0
    details: list[BirthdayDetail] | None = None
    details_truncated: bool = False
    campaign_log_id: UUID | None = None

    def tally(self, outcome: BirthdayOutcome) -> None:
        self.processed += 1
        if outcome == BirthdayOutcome.SUCCESS:
            self.success_count += 1
        elif outcome == BirthdayOutcome.SKIPPED:
            self.already_gifted += 1
        else:
            self.failed_count += 1

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": True,
            "date": self.run_date.isoformat(),
            "dryRun": self.dry_run,
            "processed": self.processed,
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "alreadyGifted": self.already_gifted,
            "programsProcessed": self.programs_processed,
        }
        if self.campaign_log_id is not None:
            payload["campaignLogId"] = str(self.campaign_log_id)
        if self.details is not None:
            payload["details"] = [detail.as_dict() for detail in self.details]
            payload["detailsTruncated"] = self.details_truncated
        return payload


def is_birthday(birth_date: date | None, run_date: date) -> bool:
    """Month and day comparison; a Feb 29 birthday only matches in leap years."""

    if birth_date is None:
        return False
    return birth_date.month == run_date.month and birth_date.day == run_date.day


@dataclass
class BirthdayJob:
    """``SCAN_PROGRAMS -> SCAN_ELIGIBLE_MEMBERS -> CLAIM_YEAR -> AWARD_REWARD -> NOTIFY``.

    A claim conflict ends a member at ``SKIPPED``; a failed grant releases the
    claim and ends at ``FAILED`` even when the release itself fails. Notification
    failures never undo a grant.
    """

    directory: MemberDirectory
    claims: BirthdayClaimStore
    mutator: BalanceMutator
    send_one: SendOne
    log_store: CampaignLogStore
    detail_limit: int = 200
    observability: BroadcastObservabilityStore = field(default_factory=get_broadcast_store)

    async def run(self, *, dry_run: bool = False, test_date: date | None = None) -> BirthdayRunResult:
        run_date = test_date or datetime.now(timezone.utc).date()
        result = BirthdayRunResult(run_date=run_date, dry_run=dry_run, details=[] if dry_run else None)
        logger.info("Birthday job started", run_date=run_date.isoformat(), dry_run=dry_run)

        try:
            programs = await self.directory.list_birthday_programs()
        except SQLAlchemyError as exc:
            raise BroadcastSystemError("Failed to load birthday programs") from exc

        for program in programs:
            members = await self._eligible_members(program, run_date)
            if not members:
                logger.debug("No birthdays today", program_id=str(program.id))
                continue
            result.programs_processed += 1
            logger.info("Found birthdays", program_id=str(program.id), count=len(members))
            for member in members:
                detail = self._detail_for(program, member)
                if dry_run:
                    detail.status = BirthdayOutcome.SUCCESS
                    detail.reason = "Dry run - would be processed"
                else:
                    await self._process_member(program, member, run_date.year, detail)
                result.tally(detail.status)
                self.observability.record_birthday_outcome(detail.status.value)
                self._keep_detail(result, detail)

        if not dry_run:
            result.campaign_log_id = await self._write_log(result)

        logger.bind(
            summary={
                "run_date": run_date.isoformat(),
                "dry_run": dry_run,
                "programs": result.programs_processed,
                "processed": result.processed,
                "success": result.success_count,
                "failed": result.failed_count,
                "already_gifted": result.already_gifted,
            }
        ).info("Birthday job complete")
        return result

    async def _eligible_members(self, program: ProgramInfo, run_date: date) -> list[MembershipRecord]:
        try:
            records = await self.directory.list_eligible_members(program)
        except SQLAlchemyError as exc:
            raise BroadcastSystemError(
                "Failed to load program members",
                details={"program_id": str(program.id)},
            ) from exc
        return [
            record
            for record in records
            if isinstance(record, MembershipRecord)
            and record.is_dispatch_eligible
            and is_birthday(record.birth_date, run_date)
        ]

    async def _process_member(
        self,
        program: ProgramInfo,
        member: MembershipRecord,
        year: int,
        detail: BirthdayDetail,
    ) -> None:
        points = program.birthday.reward_points
        try:
            claim_id = await self.claims.claim(
                pass_id=member.id, program_id=program.id, year=year, points_awarded=points
            )
        except SQLAlchemyError as exc:
            logger.warning("Birthday claim insert failed", pass_id=str(member.id), error=str(exc))
            detail.reason = f"Claim error: {exc}"
            return
        if claim_id is None:
            detail.status = BirthdayOutcome.SKIPPED
            detail.reason = "Already gifted this year"
            return

        grant = await self.mutator.grant_points(
            member.id,
            points,
            BIRTHDAY_LEDGER_DESCRIPTION,
            {"source": "birthday_bot", "program_id": str(program.id)},
        )
        if not grant.success:
            released = await self._release(claim_id, member)
            detail.reason = f"Grant error: {grant.error}"
            if not released:
                detail.reason += "; claim release failed"
            return

        delivered = await self.send_one(member.wallet_internal_id, member.wallet_program_id, program.birthday.message)
        detail.status = BirthdayOutcome.SUCCESS
        detail.reason = (
            "Points awarded and notification sent" if delivered else "Points awarded; notification failed"
        )
        logger.info("Awarded birthday points", pass_id=str(member.id), points=points, notified=delivered)

    async def _release(self, claim_id: UUID, member: MembershipRecord) -> bool:
        try:
            await self.claims.release(claim_id)
        except SQLAlchemyError:
            logger.exception("Failed to release birthday claim", claim_id=str(claim_id), pass_id=str(member.id))
            return False
        logger.warning("Rolled back birthday claim after failed grant", pass_id=str(member.id))
        return True

    def _detail_for(self, program: ProgramInfo, member: MembershipRecord) -> BirthdayDetail:
        profile = member.profile
        return BirthdayDetail(
            pass_id=member.id,
            email=(profile.email if profile else None) or "unknown",
            first_name=(profile.first_name if profile else None) or "Unknown",
            last_name=(profile.last_name if profile else None) or "",
            program_name=program.name,
            points_awarded=program.birthday.reward_points,
        )

    def _keep_detail(self, result: BirthdayRunResult, detail: BirthdayDetail) -> None:
        if result.details is None:
            return
        if len(result.details) < self.detail_limit:
            result.details.append(detail)
        else:
            result.details_truncated = True

    async def _write_log(self, result: BirthdayRunResult) -> UUID:
        entry = CampaignLogEntry(
            program_id=None,
            campaign_name=BIRTHDAY_CAMPAIGN_NAME,
            recipient_count=result.processed,
            success_count=result.success_count,
            failed_count=result.failed_count,
            message_body=(
                f"Processed {result.programs_processed} programs, {result.already_gifted} already gifted"
            ),
            target_segment=BIRTHDAY_SEGMENT,
        )
        try:
            return await self.log_store.append(entry)
        except SQLAlchemyError as exc:
            logger.exception("Birthday campaign log write failed")
            raise BroadcastSystemError(
                "Birthday rewards processed but the campaign log could not be written",
                details={
                    "processed": result.processed,
                    "success_count": result.success_count,
                    "failed_count": result.failed_count,
                },
            ) from exc


__all__ = [
    "BIRTHDAY_CAMPAIGN_NAME",
    "BIRTHDAY_SEGMENT",
    "BirthdayDetail",
    "BirthdayJob",
    "BirthdayOutcome",
    "BirthdayRunResult",
    "is_birthday",
]
