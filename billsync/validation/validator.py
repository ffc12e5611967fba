"""
Fetched Bill Validation

DESIGN DECISION: Provider payloads are checked before they reach the
cache or the repository. Two kinds of checks run on every bill:

OWNERSHIP:
- Missing linked_account_id / provider_id are stamped from the account
- A bill that names ANOTHER account or provider is an error. Every bill
  must belong to the account it was fetched for, and that account's
  provider must be the bill's provider.

CONSISTENCY:
- Due date before bill date is a warning (providers do send these)

IMPORTANT: Validation never drops bills. It reports issues and the
caller decides; the orchestrators fail the account on any error.
"""

from billsync.models.bill import (
    Bill,
    BillValidationResult,
    LinkedAccount,
    ValidationIssue,
)


class BillValidator:
    """Validates one account's fetched bills."""

    def _normalize(self, account: LinkedAccount, bill: Bill) -> Bill:
        updates = {}
        if not bill.linked_account_id:
            updates["linked_account_id"] = account.id
        if not bill.provider_id:
            updates["provider_id"] = account.provider_id
        return bill.model_copy(update=updates) if updates else bill

    def _check_ownership(
        self,
        account: LinkedAccount,
        bill: Bill,
    ) -> list[ValidationIssue]:
        issues = []

        if bill.linked_account_id != account.id:
            issues.append(ValidationIssue(
                field="linked_account_id",
                issue_type="wrong_account",
                message=(
                    f"Bill belongs to account {bill.linked_account_id}, "
                    f"fetched for {account.id}"
                ),
                severity="error",
                bill_id=bill.id,
            ))

        if bill.provider_id != account.provider_id:
            issues.append(ValidationIssue(
                field="provider_id",
                issue_type="wrong_provider",
                message=(
                    f"Bill names provider {bill.provider_id}, "
                    f"account uses {account.provider_id}"
                ),
                severity="error",
                bill_id=bill.id,
            ))

        return issues

    def _check_consistency(self, bill: Bill) -> list[ValidationIssue]:
        issues = []

        if bill.due_date < bill.bill_date:
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="inconsistent",
                message=f"Due date ({bill.due_date}) is before bill date ({bill.bill_date})",
                severity="warning",
                bill_id=bill.id,
            ))

        return issues

    def validate(
        self,
        account: LinkedAccount,
        bills: list[Bill],
    ) -> BillValidationResult:
        """
        Validate and normalize bills fetched for an account.

        Args:
            account: The linked account the bills were fetched for
            bills: Bills as returned by the provider adapter

        Returns:
            BillValidationResult with the normalized bills and all issues
        """
        normalized = []
        issues = []

        for bill in bills:
            bill = self._normalize(account, bill)
            issues.extend(self._check_ownership(account, bill))
            issues.extend(self._check_consistency(bill))
            normalized.append(bill)

        return BillValidationResult(
            linked_account_id=account.id,
            bills=normalized,
            issues=issues,
        )

    def get_error_summary(self, result: BillValidationResult) -> str:
        """One-line description of the errors, for logs and exceptions."""
        errors = [issue.message for issue in result.issues if issue.severity == "error"]
        if not errors:
            return "No errors"
        if len(errors) == 1:
            return errors[0]
        return f"{errors[0]} (and {len(errors) - 1} more)"
