"""Builders for snapshot schemas and seeded database rows."""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from anomaly_engine.models.dealer import DealerModel
from anomaly_engine.models.submission import SubmissionCellModel, SubmissionModel
from anomaly_engine.models.template import (
    TemplateCellModel,
    TemplateModel,
    TemplateSheetModel,
    TemplateTableModel,
)
from anomaly_engine.schemas.dealer import Dealer
from anomaly_engine.schemas.submission import Submission, SubmissionCell
from anomaly_engine.utils.periods import shift_period


def months(start_year: int, start_month: int, count: int) -> List[Tuple[int, int]]:
    """``count`` consecutive (year, month) periods starting at the given one."""
    return [shift_period(start_year, start_month, i) for i in range(count)]


# ── schema builders (engine tests) ───────────────────────────────────────


def make_dealer(dealer_id: int, name: Optional[str] = None, group_id: Optional[int] = None,
                group_name: Optional[str] = None) -> Dealer:
    return Dealer(id=dealer_id, name=name or f"Dealer {dealer_id}",
                  group_id=group_id, group_name=group_name)


def make_submission(
    sub_id: int,
    dealer_id: int,
    year: int,
    month: int,
    values: Dict[str, Optional[float]],
    submitted_at: Optional[datetime] = None,
    template_id: Optional[int] = None,
) -> Submission:
    cells = tuple(
        SubmissionCell(
            cell_address=address.split("!", 1)[-1],
            global_address=address,
            value=value,
        )
        for address, value in values.items()
    )
    return Submission(
        id=sub_id,
        dealer_id=dealer_id,
        template_id=template_id,
        title=f"{month:02d}/{year}",
        month=month,
        year=year,
        submitted_at=submitted_at or datetime(year, month, 15),
        cells=cells,
    )


def make_series(dealer_id: int, periods: Iterable[Tuple[int, int]],
                rows: Iterable[Dict[str, float]], first_id: int = 1) -> List[Submission]:
    """One submission per (period, values) pair, ids counting up from ``first_id``."""
    return [
        make_submission(first_id + i, dealer_id, year, month, values)
        for i, ((year, month), values) in enumerate(zip(periods, rows))
    ]


# ── database seeding (repository, service and facade tests) ──────────────


def seed_dealer(db: Session, name: str, group_id: Optional[int] = None,
                group_name: Optional[str] = None) -> DealerModel:
    dealer = DealerModel(name=name, group_id=group_id, group_name=group_name)
    db.add(dealer)
    db.commit()
    db.refresh(dealer)
    return dealer


def seed_submission(
    db: Session,
    dealer: DealerModel,
    year: int,
    month: int,
    values: Dict[str, Optional[float]],
    template: Optional[TemplateModel] = None,
    submitted_at: Optional[datetime] = None,
) -> SubmissionModel:
    submission = SubmissionModel(
        dealer_id=dealer.id,
        template_id=template.id if template else None,
        title=f"{dealer.name} {month:02d}/{year}",
        month=month,
        year=year,
        submitted_at=submitted_at or datetime(year, month, 15),
    )
    submission.cells = [
        SubmissionCellModel(
            cell_address=address.split("!", 1)[-1],
            global_address=address,
            value=value,
        )
        for address, value in values.items()
    ]
    db.add(submission)
    db.commit()
    db.refresh(submission)
    return submission


def seed_template(db: Session, tables: Dict[str, List[str]], sheet: str = "Income",
                  name: str = "Monthly Financials", year: int = 2024) -> TemplateModel:
    """A one-sheet template; ``tables`` maps table name to its global addresses."""
    template = TemplateModel(name=name, year=year)
    sheet_row = TemplateSheetModel(name=sheet, page_number=1)
    for table_name, addresses in tables.items():
        table = TemplateTableModel(name=table_name, row_count=len(addresses), column_count=1)
        table.cells = [
            TemplateCellModel(
                cell_address=address.split("!", 1)[-1],
                global_address=address,
                label=address,
            )
            for address in addresses
        ]
        sheet_row.tables.append(table)
    template.sheets = [sheet_row]
    db.add(template)
    db.commit()
    db.refresh(template)
    return template
