"""Loan tracked balance report output."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from loan_inspector.block_tag import BlockTag

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class LoanTrackedBalance:
    """One row of the report."""

    #: Block tag as it was given in the input
    block_tag: BlockTag

    #: Loan id
    loan_id: int

    #: Tracked balance of the loan at the block, raw uint256
    tracked_balance: int

    def to_json(self) -> dict:
        """Report file representation."""
        return {
            "blockTag": self.block_tag,
            "loanId": self.loan_id,
            "trackedBalance": self.tracked_balance,
        }


def write_report(balances: Iterable[LoanTrackedBalance], path: Path | str) -> Path:
    """Write the report as an indented JSON array.

    Any existing file is overwritten.

    :return:
        The written file
    """
    path = Path(path)
    rows = [b.to_json() for b in balances]
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(rows, f, indent=2)
    logger.debug("Wrote %d rows to %s", len(rows), path)
    return path
