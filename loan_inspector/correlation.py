"""Match decoded call results back to their requests."""

import logging
from typing import Final, Iterable, Sequence

from loan_inspector import LoanInspectorError
from loan_inspector.batch import CallResult
from loan_inspector.report import LoanTrackedBalance
from loan_inspector.request import LoanPreviewRequest

logger = logging.getLogger(__name__)


#: Largest integer a IEEE 754 double holds exactly, ``Number.MAX_SAFE_INTEGER`` in JavaScript
MAX_SAFE_INTEGER: Final[int] = 2**53 - 1


class CorrelationError(LoanInspectorError):
    """Call results do not line up with the requests by JSON-RPC id."""


def prepare_tracked_balances(
    requests: Sequence[LoanPreviewRequest],
    call_results: Iterable[CallResult],
) -> list[LoanTrackedBalance]:
    """Create report rows by matching results to requests by JSON-RPC id.

    - Results may come in any order, they are sorted by id first

    - Requests are already in id order as created by :py:func:`loan_inspector.request.prepare_requests`

    - After sorting the ids must match position by position

    Tracked balances are kept as exact ints. Values that do not fit
    in a double are logged, as JavaScript based consumers of the report
    will round them.

    :param requests:
        All requests of the run in the enumeration order

    :param call_results:
        All decoded results of the run in any order

    :return:
        One row per request, in the request order

    :raise CorrelationError:
        Result count differs from the request count, or
        a result id does not match the request at the same sorted position
    """
    sorted_results = sorted(call_results, key=lambda r: r.request_id)

    if len(sorted_results) != len(requests):
        raise CorrelationError(f"Got {len(sorted_results)} call results for {len(requests)} requests")

    balances = []
    for request, call_result in zip(requests, sorted_results):
        if call_result.request_id != request.request_id:
            raise CorrelationError(f"An ID mismatch found. Call result ID: {call_result.request_id}. Request ID: {request.request_id}")

        tracked_balance = call_result.preview.tracked_balance
        if tracked_balance > MAX_SAFE_INTEGER:
            logger.warning(
                "Tracked balance %d of loan %d at block %s exceeds the safe integer range of JavaScript numbers",
                tracked_balance,
                request.loan_id,
                request.block_tag,
            )

        balances.append(
            LoanTrackedBalance(
                block_tag=request.block_tag,
                loan_id=request.loan_id,
                tracked_balance=tracked_balance,
            )
        )

    return balances
