"""
Entry Validation

DESIGN DECISION: The register validates very little on purpose.
A draft needs a date, a reference and a payee to be appended; every
amount is coerced to a number on the way in, so there is nothing
numeric left to reject.

IMPORTANT: Validation NEVER silently fixes issues.
A rejected draft is returned to the user untouched, with the reasons.
"""

from rcb.models.ledger import (
    EntryDraft,
    PeriodKey,
    ValidationIssue,
    ValidationResult,
)


REQUIRED_FIELDS = {
    "date": "Date",
    "reference": "Reference",
    "payee": "Name of payee",
}


class EntryValidator:
    """Checks that a draft carries the fields the printed register needs."""

    def validate(self, period_key: PeriodKey, draft: EntryDraft) -> ValidationResult:
        issues = []

        for field, label in REQUIRED_FIELDS.items():
            value = getattr(draft, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{label} is required",
                ))

        return ValidationResult(
            period_key=str(period_key),
            is_valid=not issues,
            issues=issues,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """One line the caller can show next to the entry form."""
        if result.is_valid:
            return "Entry added."
        labels = [REQUIRED_FIELDS.get(name, name) for name in result.missing_fields]
        return f"Please fill in: {', '.join(labels)}."
