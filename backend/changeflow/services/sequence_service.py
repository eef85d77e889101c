# Overview: Service-layer operations for change numbers; encapsulates business logic and database work.

"""
Sequence Generator for ECR / ECO / ECN numbers.

FORMAT:  <TYPE>-<yy>-<seq>   e.g. ECO-24-001
SCOPE:   (organization, entity type, calendar year)

The counter lives in number_sequences and is advanced with a single atomic
UPDATE inside the caller's transaction. The row lock taken by that UPDATE
serializes concurrent writers for the same scope, and because nothing here
commits, a rolled-back transaction also rolls back the number it drew:
issued numbers per scope are always exactly 001..N.
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import ENTITY_MODELS, NumberSequence
from changeflow.time_utils import utcnow
from .concurrency import SequenceContention


NUMBER_PATTERN = re.compile(r"^(ECR|ECO|ECN)-(\d{2})-(\d+)$")

NUMBER_COLUMNS = {
    "ECR": "ecr_number",
    "ECO": "eco_number",
    "ECN": "ecn_number",
}


def format_number(entity_type: str, year: int, sequence: int, *, pad: int | None = None) -> str:
    if pad is None:
        pad = current_app.config.get("CHANGEFLOW_SEQUENCE_PAD", 3)
    return f"{entity_type}-{year % 100:02d}-{sequence:0{pad}d}"


def parse_number(number: str) -> tuple[str, str, int] | None:
    """Split 'ECO-24-007' into ('ECO', '24', 7); None for foreign formats."""
    match = NUMBER_PATTERN.match(number or "")
    if not match:
        return None
    return match.group(1), match.group(2), int(match.group(3))


def number_suffix(number: str) -> str | None:
    """Year-sequence part shared by an ECO and its ECN ('24-001')."""
    parsed = parse_number(number)
    if parsed is None:
        return None
    return number.split("-", 1)[1]


def _highest_issued(org_id: int, entity_type: str, year: int) -> int:
    """
    Largest sequence already present in the entity table for this scope.

    Only consulted when the counter row is first created, so that records
    inserted before the counter existed are never re-issued.
    """
    model = ENTITY_MODELS[entity_type]
    column = getattr(model, NUMBER_COLUMNS[entity_type])
    prefix = f"{entity_type}-{year % 100:02d}-"

    highest = 0
    rows = (
        db.session.query(column)
        .filter(model.org_id == org_id, column.like(f"{prefix}%"))
        .all()
    )
    for (number,) in rows:
        parsed = parse_number(number)
        if parsed is not None:
            highest = max(highest, parsed[2])
    return highest


def next_number(org_id: int, entity_type: str, year: int | None = None) -> str:
    """
    Atomically allocate the next number for (org, type, year).

    Must be called inside the transaction that inserts the record using
    the number; the caller commits. Raises SequenceContention when another
    writer created the counter row first (the unit of work is retried by
    run_with_retry).
    """
    if not org_id:
        raise ValidationError("org_id is required")
    if entity_type not in NUMBER_COLUMNS:
        raise ValidationError(f"Unknown entity type for numbering: {entity_type!r}")
    if year is None:
        year = utcnow().year

    stmt = (
        update(NumberSequence)
        .where(
            NumberSequence.org_id == org_id,
            NumberSequence.entity_type == entity_type,
            NumberSequence.year == year,
        )
        .values(next_number=NumberSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(NumberSequence.next_number)
            .filter_by(org_id=org_id, entity_type=entity_type, year=year)
            .scalar()
        )
        sequence = current - 1
    else:
        sequence = _highest_issued(org_id, entity_type, year) + 1
        db.session.add(
            NumberSequence(
                org_id=org_id,
                entity_type=entity_type,
                year=year,
                next_number=sequence + 1,
            )
        )
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise SequenceContention(
                f"Counter row for {entity_type}/{year} in org {org_id} was created concurrently"
            ) from exc

    return format_number(entity_type, year, sequence)
