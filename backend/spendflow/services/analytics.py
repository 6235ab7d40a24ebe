"""Company spending dashboard aggregates.

Every query groups by the expense's own currency as well as its key; the
rows are then folded into the company currency with ``fx.convert``. All
totals returned from here are in the company currency.
"""
import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spendflow.models.expense import AWAITING_DECISION_STATUSES, STATUSES, Expense
from spendflow.models.user import User
from spendflow.services import fx

logger = logging.getLogger(__name__)

TOP_SPENDERS_LIMIT = 10
ZERO = Decimal("0.00")


def month_window(today: date, months: int) -> list[tuple[int, int]]:
    """(year, month) pairs for the last ``months`` months, oldest first, ending with today's month."""
    current = today.year * 12 + today.month - 1
    window = []
    for index in range(current - months + 1, current + 1):
        year, month0 = divmod(index, 12)
        window.append((year, month0 + 1))
    return window


def fold_totals(rows, currency: str) -> dict:
    """Collapse ``(key, row_currency, count, amount)`` rows into ``{key: (count, total)}``."""
    counts: dict = defaultdict(int)
    totals: dict = defaultdict(lambda: ZERO)
    for key, row_currency, count, amount in rows:
        counts[key] += int(count)
        totals[key] += fx.convert(Decimal(str(amount or 0)), row_currency, currency)
    return {key: (counts[key], totals[key]) for key in counts}


async def company_dashboard(
    db: AsyncSession,
    company_id: uuid.UUID,
    currency: str,
    months: int = 12,
    today: date | None = None,
) -> dict:
    today = today or datetime.now(timezone.utc).date()
    in_company = Expense.company_id == company_id
    count, amount = func.count(Expense.id), func.sum(Expense.amount)

    # ─── By status ───
    rows = (await db.execute(
        select(Expense.status, Expense.currency, count, amount)
        .where(in_company)
        .group_by(Expense.status, Expense.currency)
    )).all()
    by_status = fold_totals(rows, currency)

    # ─── By category ───
    rows = (await db.execute(
        select(Expense.category, Expense.currency, count, amount)
        .where(in_company)
        .group_by(Expense.category, Expense.currency)
    )).all()
    by_category = sorted(
        fold_totals(rows, currency).items(), key=lambda item: (-item[1][1], item[0])
    )

    # ─── By month ───
    window = month_window(today, months)
    start = datetime(window[0][0], window[0][1], 1, tzinfo=timezone.utc)
    year_col = extract("year", Expense.created_at)
    month_col = extract("month", Expense.created_at)
    rows = (await db.execute(
        select(year_col, month_col, Expense.currency, count, amount)
        .where(in_company, Expense.created_at >= start)
        .group_by(year_col, month_col, Expense.currency)
    )).all()
    by_month = fold_totals(
        (((int(y), int(m)), row_currency, c, a) for y, m, row_currency, c, a in rows), currency
    )

    # ─── Top spenders ───
    rows = (await db.execute(
        select(Expense.submitted_by, Expense.currency, count, amount)
        .where(in_company)
        .group_by(Expense.submitted_by, Expense.currency)
    )).all()
    ranked = sorted(
        fold_totals(rows, currency).items(), key=lambda item: (-item[1][1], -item[1][0])
    )[:TOP_SPENDERS_LIMIT]
    people = {}
    if ranked:
        result = await db.execute(
            select(User.id, User.name, User.email).where(
                User.company_id == company_id,
                User.id.in_([user_id for user_id, _ in ranked]),
            )
        )
        people = {row.id: row for row in result.all()}

    total_count = sum(c for c, _ in by_status.values())
    total_amount = sum((t for _, t in by_status.values()), ZERO)
    awaiting = [by_status.get(s, (0, ZERO)) for s in AWAITING_DECISION_STATUSES]

    logger.info(
        "Dashboard for company %s: %d expenses over %d months", company_id, total_count, months
    )
    return {
        "currency": currency,
        "summary": {
            "total_expenses": total_count,
            "total_amount": total_amount,
            "awaiting_decision": sum(c for c, _ in awaiting),
            "awaiting_amount": sum((t for _, t in awaiting), ZERO),
        },
        "by_status": [
            {"status": s, "count": by_status.get(s, (0, ZERO))[0], "total": by_status.get(s, (0, ZERO))[1]}
            for s in STATUSES
        ],
        "by_category": [
            {"category": category, "count": c, "total": t} for category, (c, t) in by_category
        ],
        "by_month": [
            {"year": y, "month": m, "count": by_month.get((y, m), (0, ZERO))[0],
             "total": by_month.get((y, m), (0, ZERO))[1]}
            for y, m in window
        ],
        "top_spenders": [
            {
                "user_id": user_id,
                "name": people[user_id].name if user_id in people else None,
                "email": people[user_id].email if user_id in people else None,
                "count": c,
                "total": t,
            }
            for user_id, (c, t) in ranked
        ],
    }
